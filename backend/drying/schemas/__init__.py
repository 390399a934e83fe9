from drying.schemas.drying_run import DryingRunCreate, DryingRunUpdate, DryingRunResponse, RunCompletion
from drying.schemas.meter_reading import MeterReadingCreate, MeterReadingCorrection, MeterReadingResponse
from drying.schemas.recharge import (
    RechargeCreate, RechargeResponse, SmsRechargeRequest, RechargeAssignment, ElectricityStatistics,
)
from drying.schemas.reconciliation import (
    DiagnosticResponse, SegmentResponse, CostBreakdownResponse, MissingRechargeSuggestion, RecalculationSummary,
)
from drying.schemas.cost_settings import CostSettingsUpdate, CostSettingsResponse

__all__ = [
    "DryingRunCreate", "DryingRunUpdate", "DryingRunResponse", "RunCompletion",
    "MeterReadingCreate", "MeterReadingCorrection", "MeterReadingResponse",
    "RechargeCreate", "RechargeResponse", "SmsRechargeRequest", "RechargeAssignment", "ElectricityStatistics",
    "DiagnosticResponse", "SegmentResponse", "CostBreakdownResponse", "MissingRechargeSuggestion",
    "RecalculationSummary",
    "CostSettingsUpdate", "CostSettingsResponse",
]
