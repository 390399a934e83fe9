from drying.models.drying_run import DryingRun, RunStatus
from drying.models.meter_reading import MeterReading
from drying.models.electricity_recharge import ElectricityRecharge
from drying.models.cost_setting import CostSetting

__all__ = [
    "DryingRun",
    "RunStatus",
    "MeterReading",
    "ElectricityRecharge",
    "CostSetting",
]
