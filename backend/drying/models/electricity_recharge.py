from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from datetime import datetime
from drying.database import Base


class ElectricityRecharge(Base):
    """
    A Luku top-up of the prepaid meter.
    Recharges without a drying run are orphaned until someone assigns them.
    """
    __tablename__ = "electricity_recharges"

    id = Column(Integer, primary_key=True, index=True)
    drying_run_id = Column(Integer, ForeignKey("drying_runs.id"), nullable=True, index=True)
    token = Column(String(40), unique=True, nullable=False, index=True)
    recharge_time = Column(DateTime, nullable=False, index=True)
    kwh_amount = Column(Float, nullable=False)
    total_paid = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="TZS")

    # Itemized vendor charges (from the SMS receipt)
    base_cost = Column(Float, nullable=True)
    vat = Column(Float, nullable=True)
    ewura_fee = Column(Float, nullable=True)
    rea_fee = Column(Float, nullable=True)
    debt_collected = Column(Float, nullable=True)

    meter_reading_after = Column(Float, nullable=True)  # Cross-check only
    source = Column(String(20), nullable=False, default="manual")  # 'manual', 'sms'
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('kwh_amount > 0', name='check_kwh_positive'),
        CheckConstraint('total_paid >= 0', name='check_paid_not_negative'),
    )

    drying_run = relationship("DryingRun", back_populates="recharges")

    @hybrid_property
    def price_per_kwh(self):
        if self.kwh_amount:
            return float(self.total_paid) / float(self.kwh_amount)
        return None

    @hybrid_property
    def is_orphaned(self):
        return self.drying_run_id is None

    @is_orphaned.expression
    def is_orphaned(cls):
        return cls.drying_run_id.is_(None)

    def __repr__(self):
        return f"<ElectricityRecharge(id={self.id}, token='{self.token}', kwh_amount={self.kwh_amount})>"
