from dataclasses import dataclass
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy import desc

from drying.config import settings
from drying.models import CostSetting, ElectricityRecharge
from drying.services.errors import ConfigurationError

logger = logging.getLogger(__name__)

HOURS_PER_YEAR = 8760

# Keys stored in the cost_settings table
OVEN_PURCHASE_PRICE = "oven_purchase_price"
OVEN_LIFESPAN_YEARS = "oven_lifespan_years"
MAINTENANCE_COST_PER_YEAR = "maintenance_cost_per_year"
LABOR_COST_PER_HOUR = "labor_cost_per_hour"

SETTING_KEYS = [OVEN_PURCHASE_PRICE, OVEN_LIFESPAN_YEARS, MAINTENANCE_COST_PER_YEAR, LABOR_COST_PER_HOUR]


@dataclass(frozen=True)
class CostRates:
    """Non-electrical running costs of the kiln, per hour."""
    depreciation_per_hour: float
    maintenance_per_hour: float = 0.0
    labor_per_hour: float = 0.0

    @property
    def hourly_non_electrical_rate(self) -> float:
        return self.depreciation_per_hour + self.maintenance_per_hour + self.labor_per_hour

    @classmethod
    def from_oven_settings(
        cls,
        oven_purchase_price: float,
        oven_lifespan_years: float,
        maintenance_cost_per_year: float = 0.0,
        labor_cost_per_hour: float = 0.0,
    ) -> "CostRates":
        """Straight-line depreciation of the oven over its lifespan, running every hour of the year."""
        if not oven_lifespan_years or oven_lifespan_years <= 0:
            raise ConfigurationError("Oven lifespan must be a positive number of years")
        return cls(
            depreciation_per_hour=oven_purchase_price / oven_lifespan_years / HOURS_PER_YEAR,
            maintenance_per_hour=(maintenance_cost_per_year or 0.0) / HOURS_PER_YEAR,
            labor_per_hour=labor_cost_per_hour or 0.0,
        )


def get_setting_values(db: Session) -> Dict[str, float]:
    rows = db.query(CostSetting).filter(CostSetting.key.in_(SETTING_KEYS)).all()
    return {row.key: float(row.value) for row in rows}


def load_cost_rates(db: Session) -> CostRates:
    """
    Build the hourly rates from the settings table, falling back to the
    environment for anything the table does not define.
    """
    values = get_setting_values(db)

    if OVEN_PURCHASE_PRICE in values and OVEN_LIFESPAN_YEARS in values:
        return CostRates.from_oven_settings(
            values[OVEN_PURCHASE_PRICE],
            values[OVEN_LIFESPAN_YEARS],
            values.get(MAINTENANCE_COST_PER_YEAR, settings.maintenance_per_hour * HOURS_PER_YEAR),
            values.get(LABOR_COST_PER_HOUR, settings.labor_per_hour),
        )

    if settings.depreciation_per_hour is None:
        raise ConfigurationError(
            "Kiln depreciation is not configured: set oven_purchase_price and oven_lifespan_years "
            "or DEPRECIATION_PER_HOUR"
        )

    maintenance = values.get(MAINTENANCE_COST_PER_YEAR)
    return CostRates(
        depreciation_per_hour=settings.depreciation_per_hour,
        maintenance_per_hour=maintenance / HOURS_PER_YEAR if maintenance is not None else settings.maintenance_per_hour,
        labor_per_hour=values.get(LABOR_COST_PER_HOUR, settings.labor_per_hour),
    )


def save_setting_values(db: Session, values: Dict[str, Optional[float]]) -> Dict[str, float]:
    for key, value in values.items():
        if key not in SETTING_KEYS:
            raise ValueError(f"Unknown cost setting: {key}")
        if value is None:
            continue
        row = db.query(CostSetting).filter(CostSetting.key == key).first()
        if row:
            row.value = value
        else:
            db.add(CostSetting(key=key, value=value))
    db.commit()
    logger.info(f"Updated cost settings: {sorted(k for k, v in values.items() if v is not None)}")
    return get_setting_values(db)


def latest_paid_rate(db: Session) -> Optional[float]:
    """Price per kWh of the most recent recharge that has a payment recorded."""
    latest = db.query(ElectricityRecharge).filter(
        ElectricityRecharge.total_paid > 0
    ).order_by(desc(ElectricityRecharge.recharge_time)).first()

    if not latest:
        return None
    return latest.total_paid / latest.kwh_amount


def fallback_electricity_rate(db: Session) -> Optional[float]:
    if settings.fallback_electricity_rate is not None:
        return settings.fallback_electricity_rate
    return latest_paid_rate(db)
