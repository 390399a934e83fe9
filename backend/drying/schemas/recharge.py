from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from drying.services.timestamps import to_local_naive


class RechargeBase(BaseModel):
    token: str
    recharge_time: datetime
    kwh_amount: float
    total_paid: float
    currency: str = "TZS"
    base_cost: Optional[float] = None
    vat: Optional[float] = None
    ewura_fee: Optional[float] = None
    rea_fee: Optional[float] = None
    debt_collected: Optional[float] = None
    meter_reading_after: Optional[float] = None
    drying_run_id: Optional[int] = None
    notes: Optional[str] = None

    @field_validator('token')
    @classmethod
    def normalize_token(cls, v):
        v = "".join(v.split())
        if not v:
            raise ValueError('token cannot be empty')
        return v

    @field_validator('kwh_amount')
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('kwh_amount must be positive')
        return v

    @field_validator('total_paid', 'meter_reading_after')
    @classmethod
    def must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('Value cannot be negative')
        return v

    @field_validator('recharge_time')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class RechargeCreate(RechargeBase):
    pass


class RechargeResponse(RechargeBase):
    id: int
    source: str
    price_per_kwh: Optional[float] = None
    is_orphaned: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SmsRechargeRequest(BaseModel):
    sms_text: str
    drying_run_id: Optional[int] = None
    received_at: Optional[datetime] = None  # Used when the SMS carries no date

    @field_validator('received_at')
    @classmethod
    def to_local_time(cls, v):
        return to_local_naive(v)


class RechargeAssignment(BaseModel):
    drying_run_id: int
    reading_id: Optional[int] = None
    meter_reading_after: Optional[float] = None


class ElectricityStatistics(BaseModel):
    total_paid: float
    total_kwh: float
    average_price_per_kwh: float
    recharge_count: int
    orphaned_count: int
