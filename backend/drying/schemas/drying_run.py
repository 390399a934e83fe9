from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional, List, Any

from drying.models import RunStatus
from drying.services.timestamps import to_local_naive


class DryingRunBase(BaseModel):
    batch_number: str
    wood_type: Optional[str] = None
    start_time: datetime
    starting_meter: float
    hourly_rate_override: Optional[float] = None
    notes: Optional[str] = None

    @field_validator('batch_number')
    @classmethod
    def batch_number_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('batch_number cannot be empty')
        return v

    @field_validator('starting_meter', 'hourly_rate_override')
    @classmethod
    def must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('Value cannot be negative')
        return v

    @field_validator('start_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class DryingRunCreate(DryingRunBase):
    pass


class DryingRunUpdate(BaseModel):
    wood_type: Optional[str] = None
    start_time: Optional[datetime] = None
    starting_meter: Optional[float] = None
    hourly_rate_override: Optional[float] = None
    notes: Optional[str] = None

    @field_validator('starting_meter', 'hourly_rate_override')
    @classmethod
    def must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('Value cannot be negative')
        return v

    @field_validator('start_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class RunCompletion(BaseModel):
    end_time: Optional[datetime] = None  # Defaults to the last reading time

    @field_validator('end_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class DryingRunResponse(DryingRunBase):
    id: int
    status: RunStatus
    end_time: Optional[datetime] = None
    total_consumed_kwh: Optional[float] = None
    electricity_rate: Optional[float] = None
    electricity_cost: Optional[float] = None
    running_hours: Optional[float] = None
    non_electrical_cost: Optional[float] = None
    total_cost: Optional[float] = None
    diagnostics: Optional[List[Any]] = None
    anomaly_count: int = 0
    cost_calculated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
