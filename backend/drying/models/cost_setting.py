from sqlalchemy import Column, Integer, String, Float, DateTime
from datetime import datetime
from drying.database import Base


class CostSetting(Base):
    """Key/value table for the rates used in drying cost calculations."""
    __tablename__ = "cost_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Float, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CostSetting(key='{self.key}', value={self.value})>"
