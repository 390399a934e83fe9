from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from drying.database import Base


class MeterReading(Base):
    """Remaining balance on the prepaid meter, observed during a drying run."""
    __tablename__ = "meter_readings"

    id = Column(Integer, primary_key=True, index=True)
    drying_run_id = Column(Integer, ForeignKey("drying_runs.id"), nullable=False, index=True)
    reading_time = Column(DateTime, nullable=False, index=True)
    meter_value = Column(Float, nullable=False)  # kWh remaining
    humidity = Column(Float, nullable=True)  # Wood moisture %, recorded alongside the meter
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    drying_run = relationship("DryingRun", back_populates="readings")

    __table_args__ = (
        Index('ix_meter_readings_run_time', 'drying_run_id', 'reading_time'),
    )

    def __repr__(self):
        return f"<MeterReading(id={self.id}, reading_time='{self.reading_time}', meter_value={self.meter_value})>"
