from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any


class DiagnosticResponse(BaseModel):
    code: str
    message: str
    timestamp: Optional[datetime] = None
    details: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class SegmentResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    previous_meter_value: float
    meter_value: float
    recharged_kwh: float
    recharge_count: int
    raw_consumed_kwh: float
    consumed_kwh: float
    hours: float
    reading_reference: Optional[int] = None

    class Config:
        from_attributes = True


class CostBreakdownResponse(BaseModel):
    run_id: int
    batch_number: str
    start_time: datetime
    end_time: datetime
    total_consumed_kwh: float
    electricity_rate: Optional[float] = None
    rate_source: Optional[str] = None
    electricity_cost: float
    running_hours: float
    hourly_non_electrical_rate: float
    non_electrical_cost: float
    total_cost: float
    segments: List[SegmentResponse]
    diagnostics: List[DiagnosticResponse]


class RechargeCandidate(BaseModel):
    recharge_id: int
    token: str
    recharge_time: datetime
    kwh_amount: float
    kwh_difference: float


class MissingRechargeSuggestion(BaseModel):
    reading_id: Optional[int] = None
    window_start: datetime
    window_end: datetime
    meter_increase_kwh: float
    median_hourly_consumption_kwh: float
    estimated_recharge_kwh: float
    candidates: List[RechargeCandidate]


class RecalculationSummary(BaseModel):
    total_runs: int
    updated: int
    errors: List[Dict[str, Any]]
    details: List[Dict[str, Any]]
