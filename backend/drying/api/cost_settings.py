from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from drying.database import get_db
from drying.schemas import CostSettingsUpdate, CostSettingsResponse
from drying.services.errors import ConfigurationError
from drying.services.rates import get_setting_values, load_cost_rates, save_setting_values

router = APIRouter()


def _settings_response(db: Session) -> dict:
    response = dict(get_setting_values(db))
    try:
        rates = load_cost_rates(db)
    except ConfigurationError as e:
        response["configuration_error"] = str(e)
        return response

    response.update({
        "depreciation_per_hour": rates.depreciation_per_hour,
        "maintenance_per_hour": rates.maintenance_per_hour,
        "labor_per_hour": rates.labor_per_hour,
        "hourly_non_electrical_rate": rates.hourly_non_electrical_rate,
    })
    return response


@router.get("/cost-rates", response_model=CostSettingsResponse)
async def get_cost_rates(db: Session = Depends(get_db)):
    """Stored oven settings and the hourly rates derived from them."""
    return _settings_response(db)


@router.put("/cost-rates", response_model=CostSettingsResponse)
async def update_cost_rates(update: CostSettingsUpdate, db: Session = Depends(get_db)):
    """
    Update oven settings. Existing run costs are not touched; use
    /api/drying-runs/recalculate-all to apply the new rates.
    """
    save_setting_values(db, update.model_dump(exclude_unset=True))
    return _settings_response(db)
