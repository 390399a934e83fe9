from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from drying.services.timestamps import to_local_naive


class MeterReadingBase(BaseModel):
    reading_time: datetime
    meter_value: float
    humidity: Optional[float] = None
    notes: Optional[str] = None

    @field_validator('meter_value')
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('meter_value cannot be negative')
        return v

    @field_validator('reading_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class MeterReadingCreate(MeterReadingBase):
    pass


class MeterReadingCorrection(BaseModel):
    reading_time: Optional[datetime] = None
    meter_value: Optional[float] = None

    @field_validator('reading_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)

    @field_validator('meter_value')
    @classmethod
    def must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('meter_value cannot be negative')
        return v


class MeterReadingResponse(MeterReadingBase):
    id: int
    drying_run_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
