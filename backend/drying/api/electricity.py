from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from typing import List, Optional
from datetime import datetime
import logging

from drying.database import get_db
from drying.models import ElectricityRecharge, DryingRun
from drying.schemas import (
    RechargeCreate, RechargeResponse, SmsRechargeRequest, RechargeAssignment, ElectricityStatistics,
)
from drying.services.cost_service import DryingCostService
from drying.services.errors import NotFoundError, ValidationError, SmsParseError
from drying.services.sms_parser import parse_recharge_sms
from drying.services.timestamps import to_local_naive
from drying.api.drying_runs import raise_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_new_token(db: Session, token: str):
    existing = db.query(ElectricityRecharge).filter(ElectricityRecharge.token == token).first()
    if existing:
        raise HTTPException(
            status_code=409,
            detail=f"Token {token} is already recorded (recharge {existing.id})"
        )


def _check_run(db: Session, run_id: Optional[int]):
    if run_id is not None:
        if not db.query(DryingRun).filter(DryingRun.id == run_id).first():
            raise HTTPException(status_code=404, detail="Drying run not found")


@router.get("/recharges", response_model=List[RechargeResponse])
async def list_recharges(
    orphaned: Optional[bool] = Query(None, description="Only recharges with (true) or without (false) a drying run"),
    drying_run_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    query = db.query(ElectricityRecharge)
    if orphaned is True:
        query = query.filter(ElectricityRecharge.is_orphaned)
    elif orphaned is False:
        query = query.filter(~ElectricityRecharge.is_orphaned)
    if drying_run_id is not None:
        query = query.filter(ElectricityRecharge.drying_run_id == drying_run_id)
    return query.order_by(desc(ElectricityRecharge.recharge_time)).all()


@router.post("/recharges", response_model=RechargeResponse, status_code=201)
async def create_recharge(recharge: RechargeCreate, db: Session = Depends(get_db)):
    """Record a recharge entered by hand."""
    _check_new_token(db, recharge.token)
    _check_run(db, recharge.drying_run_id)

    db_recharge = ElectricityRecharge(**recharge.model_dump(), source="manual")
    db.add(db_recharge)
    db.commit()
    db.refresh(db_recharge)
    logger.info(f"Recorded recharge {db_recharge.token}: {db_recharge.kwh_amount} kWh")

    if db_recharge.drying_run_id is not None:
        DryingCostService(db).refresh_cost(db_recharge.drying_run_id)
    return db_recharge


@router.post("/recharges/parse-sms", response_model=RechargeResponse, status_code=201)
async def create_recharge_from_sms(request: SmsRechargeRequest, db: Session = Depends(get_db)):
    """Parse a Luku confirmation SMS and record the recharge."""
    try:
        parsed = parse_recharge_sms(request.sms_text, received_at=request.received_at)
    except SmsParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    _check_new_token(db, parsed.token)
    _check_run(db, request.drying_run_id)

    notes = "Parsed from SMS"
    if abs(parsed.unaccounted_amount) >= 0.01:
        notes += f"; itemized charges differ from total by {parsed.unaccounted_amount:.2f}"
        logger.warning(f"SMS for token {parsed.token}: {notes}")

    db_recharge = ElectricityRecharge(
        drying_run_id=request.drying_run_id,
        token=parsed.token,
        recharge_time=parsed.recharge_time,
        kwh_amount=parsed.kwh_amount,
        total_paid=parsed.total_paid,
        currency=parsed.currency,
        base_cost=parsed.base_cost,
        vat=parsed.vat,
        ewura_fee=parsed.ewura_fee,
        rea_fee=parsed.rea_fee,
        debt_collected=parsed.debt_collected,
        source="sms",
        notes=notes,
    )
    db.add(db_recharge)
    db.commit()
    db.refresh(db_recharge)

    if db_recharge.drying_run_id is not None:
        DryingCostService(db).refresh_cost(db_recharge.drying_run_id)
    return db_recharge


@router.post("/recharges/{recharge_id}/assign", response_model=RechargeResponse)
async def assign_recharge(recharge_id: int, assignment: RechargeAssignment, db: Session = Depends(get_db)):
    """
    Attribute a recharge to a drying run. Passing reading_id moves the
    recharge to just before that reading.
    """
    try:
        return DryingCostService(db).assign_recharge(
            recharge_id,
            assignment.drying_run_id,
            reading_id=assignment.reading_id,
            meter_reading_after=assignment.meter_reading_after,
        )
    except (NotFoundError, ValidationError) as e:
        raise_http_error(e)


@router.delete("/recharges/{recharge_id}", status_code=204)
async def delete_recharge(recharge_id: int, db: Session = Depends(get_db)):
    recharge = db.query(ElectricityRecharge).filter(ElectricityRecharge.id == recharge_id).first()
    if not recharge:
        raise HTTPException(status_code=404, detail="Recharge not found")

    run_id = recharge.drying_run_id
    db.delete(recharge)
    db.commit()
    logger.info(f"Deleted recharge {recharge_id}")

    if run_id is not None:
        DryingCostService(db).refresh_cost(run_id)
    return None


@router.get("/statistics", response_model=ElectricityStatistics)
async def get_statistics(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    """Total spent, total kWh and average price across recharges."""
    date_from = to_local_naive(date_from)
    date_to = to_local_naive(date_to)
    query = db.query(
        func.coalesce(func.sum(ElectricityRecharge.total_paid), 0.0),
        func.coalesce(func.sum(ElectricityRecharge.kwh_amount), 0.0),
        func.count(ElectricityRecharge.id),
    )
    orphan_query = db.query(func.count(ElectricityRecharge.id)).filter(ElectricityRecharge.is_orphaned)
    if date_from:
        query = query.filter(ElectricityRecharge.recharge_time >= date_from)
        orphan_query = orphan_query.filter(ElectricityRecharge.recharge_time >= date_from)
    if date_to:
        query = query.filter(ElectricityRecharge.recharge_time <= date_to)
        orphan_query = orphan_query.filter(ElectricityRecharge.recharge_time <= date_to)

    total_paid, total_kwh, count = query.one()
    total_paid = float(total_paid)
    total_kwh = float(total_kwh)

    return {
        "total_paid": round(total_paid, 2),
        "total_kwh": round(total_kwh, 2),
        "average_price_per_kwh": round(total_paid / total_kwh, 4) if total_kwh > 0 else 0.0,
        "recharge_count": count,
        "orphaned_count": orphan_query.scalar(),
    }
