from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from drying.models import DryingRun, MeterReading, ElectricityRecharge
from drying.services.errors import RunNotFoundError
from drying.services.reconciler import MeterReadingPoint, RechargePoint


@dataclass
class RunHistory:
    run: DryingRun
    readings: List[MeterReadingPoint] = field(default_factory=list)
    recharges: List[RechargePoint] = field(default_factory=list)


class RunHistoryRepository:
    """Loads what the reconciler needs for one run from the database."""

    def __init__(self, db: Session):
        self.db = db

    def get_run(self, run_id: int) -> DryingRun:
        run = self.db.query(DryingRun).filter(DryingRun.id == run_id).first()
        if not run:
            raise RunNotFoundError(run_id)
        return run

    def fetch_run_history(self, run_id: int) -> RunHistory:
        run = self.get_run(run_id)

        readings = self.db.query(MeterReading).filter(
            MeterReading.drying_run_id == run_id
        ).order_by(MeterReading.reading_time, MeterReading.id).all()

        recharges = self.db.query(ElectricityRecharge).filter(
            ElectricityRecharge.drying_run_id == run_id
        ).order_by(ElectricityRecharge.recharge_time, ElectricityRecharge.id).all()

        return RunHistory(
            run=run,
            readings=[
                MeterReadingPoint(timestamp=r.reading_time, meter_value=r.meter_value, reference=r.id)
                for r in readings
            ],
            recharges=[
                RechargePoint(
                    timestamp=r.recharge_time,
                    kwh_added=r.kwh_amount,
                    amount_paid=r.total_paid or 0.0,
                    meter_value_after=r.meter_reading_after,
                    reference=r.token,
                )
                for r in recharges
            ],
        )
