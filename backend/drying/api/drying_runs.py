from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List, Optional

from drying.database import get_db
from drying.models import DryingRun, MeterReading, RunStatus
from drying.schemas import (
    DryingRunCreate, DryingRunUpdate, DryingRunResponse, RunCompletion,
    MeterReadingCreate, MeterReadingCorrection, MeterReadingResponse,
    CostBreakdownResponse, MissingRechargeSuggestion, RecalculationSummary,
)
from drying.services.cost_service import DryingCostService
from drying.services.errors import ConfigurationError, NotFoundError, ValidationError

router = APIRouter()


def raise_http_error(e: Exception):
    """Translate service errors into HTTP responses."""
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConfigurationError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail=str(e))
    raise e


def get_run_or_404(db: Session, run_id: int) -> DryingRun:
    run = db.query(DryingRun).filter(DryingRun.id == run_id).first()
    if not run:
        raise HTTPException(status_code=404, detail="Drying run not found")
    return run


@router.get("", response_model=List[DryingRunResponse])
async def list_runs(
    skip: int = 0,
    limit: int = 100,
    status: Optional[RunStatus] = None,
    db: Session = Depends(get_db)
):
    """List drying runs, newest first."""
    query = db.query(DryingRun)
    if status:
        query = query.filter(DryingRun.status == status)
    return query.order_by(desc(DryingRun.start_time)).offset(skip).limit(limit).all()


@router.post("", response_model=DryingRunResponse, status_code=201)
async def create_run(run: DryingRunCreate, db: Session = Depends(get_db)):
    """Start a new drying run."""
    existing = db.query(DryingRun).filter(DryingRun.batch_number == run.batch_number).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Batch {run.batch_number} already exists")

    db_run = DryingRun(**run.model_dump())
    db.add(db_run)
    db.commit()
    db.refresh(db_run)
    return db_run


@router.get("/{run_id}", response_model=DryingRunResponse)
async def get_run(run_id: int, db: Session = Depends(get_db)):
    return get_run_or_404(db, run_id)


@router.put("/{run_id}", response_model=DryingRunResponse)
async def update_run(run_id: int, update: DryingRunUpdate, db: Session = Depends(get_db)):
    """Edit run details. Cost is recalculated because start time and meter feed into it."""
    run = get_run_or_404(db, run_id)

    data = update.model_dump(exclude_unset=True)
    if "start_time" in data and data["start_time"] is not None:
        first_reading = db.query(MeterReading).filter(
            MeterReading.drying_run_id == run_id
        ).order_by(MeterReading.reading_time).first()
        if first_reading and first_reading.reading_time < data["start_time"]:
            raise HTTPException(status_code=422, detail="Start time cannot be after the first reading")
        if run.end_time and run.end_time < data["start_time"]:
            raise HTTPException(status_code=422, detail="Start time cannot be after the end time")

    for key, value in data.items():
        if value is None and key in ("start_time", "starting_meter"):
            continue
        setattr(run, key, value)
    db.commit()

    DryingCostService(db).refresh_cost(run_id)
    db.refresh(run)
    return run


@router.get("/{run_id}/readings", response_model=List[MeterReadingResponse])
async def list_readings(run_id: int, db: Session = Depends(get_db)):
    get_run_or_404(db, run_id)
    return db.query(MeterReading).filter(
        MeterReading.drying_run_id == run_id
    ).order_by(MeterReading.reading_time).all()


@router.post("/{run_id}/readings", response_model=MeterReadingResponse, status_code=201)
async def add_reading(run_id: int, reading: MeterReadingCreate, db: Session = Depends(get_db)):
    """Record a meter reading and recalculate the run cost."""
    run = get_run_or_404(db, run_id)
    if reading.reading_time < run.start_time:
        raise HTTPException(status_code=422, detail="Reading time is before the run start")

    db_reading = MeterReading(drying_run_id=run_id, **reading.model_dump())
    db.add(db_reading)
    db.commit()
    db.refresh(db_reading)

    DryingCostService(db).refresh_cost(run_id)
    return db_reading


@router.patch("/{run_id}/readings/{reading_id}", response_model=MeterReadingResponse)
async def correct_reading(
    run_id: int,
    reading_id: int,
    correction: MeterReadingCorrection,
    db: Session = Depends(get_db)
):
    """Correct a reading's time or meter value."""
    try:
        return DryingCostService(db).correct_reading(
            run_id, reading_id,
            reading_time=correction.reading_time,
            meter_value=correction.meter_value,
        )
    except (NotFoundError, ValidationError) as e:
        raise_http_error(e)


@router.post("/{run_id}/complete", response_model=DryingRunResponse)
async def complete_run(
    run_id: int,
    completion: Optional[RunCompletion] = None,
    db: Session = Depends(get_db)
):
    """Close the run and store its final cost."""
    end_time = completion.end_time if completion else None
    try:
        DryingCostService(db).complete_run(run_id, end_time=end_time)
    except (NotFoundError, ValidationError, ConfigurationError) as e:
        raise_http_error(e)
    return get_run_or_404(db, run_id)


@router.get("/{run_id}/cost", response_model=CostBreakdownResponse)
async def get_cost_breakdown(run_id: int, db: Session = Depends(get_db)):
    """
    Full reconciliation for a run: consumption per reading, rates and any
    anomalies found. Nothing is saved.
    """
    run = get_run_or_404(db, run_id)
    try:
        result = DryingCostService(db).calculate(run_id)
    except (NotFoundError, ValidationError, ConfigurationError) as e:
        raise_http_error(e)

    return {
        "run_id": run.id,
        "batch_number": run.batch_number,
        "start_time": result.start_time,
        "end_time": result.end_time,
        "total_consumed_kwh": result.total_consumed_kwh,
        "electricity_rate": result.electricity_rate,
        "rate_source": result.rate_source,
        "electricity_cost": result.electricity_cost,
        "running_hours": result.running_hours,
        "hourly_non_electrical_rate": result.hourly_non_electrical_rate,
        "non_electrical_cost": result.non_electrical_cost,
        "total_cost": result.total_cost,
        "segments": [
            {
                "start_time": s.start_time,
                "end_time": s.end_time,
                "previous_meter_value": s.previous_meter_value,
                "meter_value": s.meter_value,
                "recharged_kwh": s.recharged_kwh,
                "recharge_count": s.recharge_count,
                "raw_consumed_kwh": s.raw_consumed_kwh,
                "consumed_kwh": s.consumed_kwh,
                "hours": s.hours,
                "reading_reference": s.reading_reference,
            }
            for s in result.segments
        ],
        "diagnostics": [d.to_dict() for d in result.diagnostics],
    }


@router.post("/{run_id}/recalculate", response_model=DryingRunResponse)
async def recalculate_run(run_id: int, db: Session = Depends(get_db)):
    """Recalculate and store the run cost."""
    try:
        DryingCostService(db).recalculate_run(run_id)
    except (NotFoundError, ValidationError, ConfigurationError) as e:
        raise_http_error(e)
    return get_run_or_404(db, run_id)


@router.get("/{run_id}/missing-recharges", response_model=List[MissingRechargeSuggestion])
async def get_missing_recharges(run_id: int, db: Session = Depends(get_db)):
    """
    Meter increases with no recorded recharge, with orphaned recharges that
    might explain them. Use /api/electricity/recharges/{id}/assign to apply one.
    """
    try:
        return DryingCostService(db).suggest_missing_recharges(run_id)
    except (NotFoundError, ValidationError) as e:
        raise_http_error(e)


@router.post("/recalculate-all", response_model=RecalculationSummary)
async def recalculate_all_runs(
    status: Optional[RunStatus] = Query(None, description="Only recalculate runs with this status"),
    db: Session = Depends(get_db)
):
    return DryingCostService(db).recalculate_all(status=status)
