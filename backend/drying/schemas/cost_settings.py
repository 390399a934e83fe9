from pydantic import BaseModel, field_validator
from typing import Optional


class CostSettingsUpdate(BaseModel):
    oven_purchase_price: Optional[float] = None
    oven_lifespan_years: Optional[float] = None
    maintenance_cost_per_year: Optional[float] = None
    labor_cost_per_hour: Optional[float] = None

    @field_validator(
        'oven_purchase_price', 'oven_lifespan_years', 'maintenance_cost_per_year', 'labor_cost_per_hour'
    )
    @classmethod
    def must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('Value cannot be negative')
        return v


class CostSettingsResponse(CostSettingsUpdate):
    depreciation_per_hour: Optional[float] = None
    maintenance_per_hour: Optional[float] = None
    labor_per_hour: Optional[float] = None
    hourly_non_electrical_rate: Optional[float] = None
    configuration_error: Optional[str] = None
