from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from drying.database import Base


class RunStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DryingRun(Base):
    """One kiln batch. Cost fields are derived and rewritten on every recalculation."""
    __tablename__ = "drying_runs"

    id = Column(Integer, primary_key=True, index=True)
    batch_number = Column(String(50), unique=True, nullable=False, index=True)
    wood_type = Column(String(100), nullable=True)
    status = Column(Enum(RunStatus), nullable=False, default=RunStatus.IN_PROGRESS, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    starting_meter = Column(Float, nullable=False)  # kWh left on the prepaid meter at start
    hourly_rate_override = Column(Float, nullable=True)  # Replaces the configured non-electrical rate

    # Derived by the reconciler
    total_consumed_kwh = Column(Float, nullable=True)
    electricity_rate = Column(Float, nullable=True)
    electricity_cost = Column(Float, nullable=True)
    running_hours = Column(Float, nullable=True)
    non_electrical_cost = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    diagnostics = Column(JSON, nullable=True)
    cost_calculated_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('end_time IS NULL OR end_time >= start_time', name='check_run_times'),
        CheckConstraint('starting_meter >= 0', name='check_starting_meter_positive'),
    )

    # Relationships
    readings = relationship(
        "MeterReading",
        back_populates="drying_run",
        order_by="MeterReading.reading_time",
        cascade="all, delete-orphan",
    )
    recharges = relationship(
        "ElectricityRecharge",
        back_populates="drying_run",
        order_by="ElectricityRecharge.recharge_time",
    )

    @property
    def anomaly_count(self):
        return len(self.diagnostics) if self.diagnostics else 0

    def __repr__(self):
        return f"<DryingRun(id={self.id}, batch_number='{self.batch_number}', status={self.status})>"
