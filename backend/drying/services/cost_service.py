from datetime import datetime, timedelta
from typing import Dict, List, Optional
import logging

import numpy as np
from sqlalchemy.orm import Session

from drying.config import settings
from drying.models import DryingRun, MeterReading, ElectricityRecharge, RunStatus
from drying.services.errors import NotFoundError, ReconciliationError, ValidationError
from drying.services.rates import load_cost_rates, fallback_electricity_rate
from drying.services.reconciler import AnomalyCode, ConsumptionReconciler, ReconciliationResult
from drying.services.run_repository import RunHistory, RunHistoryRepository
from drying.services.timestamps import to_local_naive

logger = logging.getLogger(__name__)

# Orphaned recharges this close to a meter jump are offered as candidates
CANDIDATE_WINDOW = timedelta(days=1)


class DryingCostService:
    def __init__(
        self,
        db: Session,
        repository: Optional[RunHistoryRepository] = None,
        reconciler: Optional[ConsumptionReconciler] = None,
    ):
        self.db = db
        self.repository = repository or RunHistoryRepository(db)
        self.reconciler = reconciler or ConsumptionReconciler(settings.reconciliation_tolerance_kwh)

    def calculate(self, run_id: int) -> ReconciliationResult:
        """Reconcile a run's history without writing anything."""
        history = self.repository.fetch_run_history(run_id)
        return self._reconcile(history)

    def _reconcile(self, history: RunHistory) -> ReconciliationResult:
        run = history.run
        if run.hourly_rate_override is not None:
            hourly_rate = run.hourly_rate_override
        else:
            hourly_rate = load_cost_rates(self.db).hourly_non_electrical_rate

        return self.reconciler.reconcile(
            start_meter=run.starting_meter,
            start_time=run.start_time,
            readings=history.readings,
            recharges=history.recharges,
            end_time=run.end_time,
            hourly_non_electrical_rate=hourly_rate,
            fallback_electricity_rate=fallback_electricity_rate(self.db),
        )

    def recalculate_run(self, run_id: int) -> ReconciliationResult:
        """Reconcile and store the derived cost fields on the run."""
        history = self.repository.fetch_run_history(run_id)
        run = history.run
        result = self._reconcile(history)

        old_cost = run.total_cost
        run.total_consumed_kwh = result.total_consumed_kwh
        run.electricity_rate = result.electricity_rate
        run.electricity_cost = result.electricity_cost
        run.running_hours = result.running_hours
        run.non_electrical_cost = result.non_electrical_cost
        run.total_cost = result.total_cost
        run.diagnostics = [d.to_dict() for d in result.diagnostics]
        run.cost_calculated_at = datetime.utcnow()
        self.db.commit()

        diff = result.total_cost - (old_cost or 0.0)
        logger.info(
            f"Recalculated {run.batch_number}: {result.total_consumed_kwh:.2f} kWh, "
            f"{result.running_hours:.2f} h, total {result.total_cost:.2f} "
            f"(was {old_cost if old_cost is not None else 'N/A'}, change {diff:+.2f})"
        )
        if result.diagnostics:
            logger.warning(f"{run.batch_number} has {len(result.diagnostics)} reconciliation anomalies")
        return result

    def refresh_cost(self, run_id: int) -> Optional[ReconciliationResult]:
        """
        Recalculate after the run's history changed. A run that cannot be
        costed yet (no readings, rates missing) keeps its previous figures.
        """
        try:
            return self.recalculate_run(run_id)
        except ReconciliationError as e:
            self.db.rollback()
            logger.warning(f"Cost for run {run_id} not updated: {e}")
            return None

    def recalculate_all(self, status: Optional[RunStatus] = None) -> Dict:
        query = self.db.query(DryingRun)
        if status:
            query = query.filter(DryingRun.status == status)
        runs = query.order_by(DryingRun.batch_number).all()

        summary = {"total_runs": len(runs), "updated": 0, "errors": [], "details": []}
        for run in runs:
            old_cost = run.total_cost
            try:
                result = self.recalculate_run(run.id)
            except ReconciliationError as e:
                self.db.rollback()
                logger.error(f"Error recalculating {run.batch_number}: {e}")
                summary["errors"].append({"batch_number": run.batch_number, "error": str(e)})
                continue

            summary["updated"] += 1
            summary["details"].append({
                "batch_number": run.batch_number,
                "old_cost": old_cost,
                "new_cost": result.total_cost,
                "difference": result.total_cost - (old_cost or 0.0),
                "anomalies": len(result.diagnostics),
            })

        logger.info(
            f"Recalculated {summary['updated']}/{summary['total_runs']} runs, "
            f"{len(summary['errors'])} errors"
        )
        return summary

    def complete_run(self, run_id: int, end_time: Optional[datetime] = None) -> ReconciliationResult:
        """
        Close a run. Without an explicit end time the last reading's time is
        used, not the moment someone pressed the button.
        """
        run = self.repository.get_run(run_id)
        end_time = to_local_naive(end_time)

        if end_time is None:
            last_reading = self.db.query(MeterReading).filter(
                MeterReading.drying_run_id == run_id
            ).order_by(MeterReading.reading_time.desc()).first()
            if not last_reading:
                raise ValidationError("Cannot complete a run without readings or an end time")
            end_time = last_reading.reading_time

        if end_time < run.start_time:
            raise ValidationError(f"End time {end_time} is before start time {run.start_time}")

        run.end_time = end_time
        run.status = RunStatus.COMPLETED
        try:
            return self.recalculate_run(run_id)
        except ReconciliationError:
            self.db.rollback()
            raise

    def assign_recharge(
        self,
        recharge_id: int,
        run_id: int,
        reading_id: Optional[int] = None,
        meter_reading_after: Optional[float] = None,
    ) -> ElectricityRecharge:
        """
        Attribute a recharge to a run. When a reading is given, the recharge is
        placed one minute before it and that reading's meter value is taken as
        the balance after the recharge.
        """
        recharge = self.db.query(ElectricityRecharge).filter(ElectricityRecharge.id == recharge_id).first()
        if not recharge:
            raise NotFoundError(f"Recharge {recharge_id} not found")
        run = self.repository.get_run(run_id)
        previous_run_id = recharge.drying_run_id

        if reading_id is not None:
            reading = self.db.query(MeterReading).filter(
                MeterReading.id == reading_id,
                MeterReading.drying_run_id == run_id
            ).first()
            if not reading:
                raise NotFoundError(f"Reading {reading_id} not found in run {run.batch_number}")
            recharge.recharge_time = reading.reading_time - timedelta(minutes=1)
            recharge.meter_reading_after = reading.meter_value

        if meter_reading_after is not None:
            if meter_reading_after < 0:
                raise ValidationError("Meter reading after recharge cannot be negative")
            recharge.meter_reading_after = meter_reading_after

        recharge.drying_run_id = run.id
        self.db.commit()
        self.db.refresh(recharge)
        logger.info(
            f"Recharge {recharge.token} ({recharge.kwh_amount} kWh) assigned to {run.batch_number}"
            f" at {recharge.recharge_time}"
        )

        self.refresh_cost(run.id)
        if previous_run_id is not None and previous_run_id != run.id:
            self.refresh_cost(previous_run_id)
        return recharge

    def correct_reading(
        self,
        run_id: int,
        reading_id: int,
        reading_time: Optional[datetime] = None,
        meter_value: Optional[float] = None,
    ) -> MeterReading:
        run = self.repository.get_run(run_id)
        reading_time = to_local_naive(reading_time)
        reading = self.db.query(MeterReading).filter(
            MeterReading.id == reading_id,
            MeterReading.drying_run_id == run_id
        ).first()
        if not reading:
            raise NotFoundError(f"Reading {reading_id} not found in run {run.batch_number}")

        if reading_time is not None:
            if reading_time < run.start_time:
                raise ValidationError(f"Reading time {reading_time} is before the run start {run.start_time}")
            reading.reading_time = reading_time
        if meter_value is not None:
            if meter_value < 0:
                raise ValidationError("Meter value cannot be negative")
            reading.meter_value = meter_value

        self.db.commit()
        self.db.refresh(reading)
        logger.info(
            f"Reading {reading_id} of {run.batch_number} corrected: "
            f"{reading.reading_time} / {reading.meter_value} kWh"
        )
        self.refresh_cost(run_id)
        return reading

    def suggest_missing_recharges(self, run_id: int) -> List[Dict]:
        """
        For every meter jump without a recharge, estimate how much was
        recharged and list orphaned recharges that could explain it.
        Nothing is written; assigning is up to the user.
        """
        history = self.repository.fetch_run_history(run_id)
        run = history.run
        if not history.readings:
            return []

        # Consumption only: costs are not needed for the estimate
        result = self.reconciler.reconcile(
            start_meter=run.starting_meter,
            start_time=run.start_time,
            readings=history.readings,
            recharges=history.recharges,
            end_time=run.end_time,
            hourly_non_electrical_rate=0.0,
            electricity_rate=0.0,
        )

        clean_rates = [
            s.consumed_kwh / s.hours
            for s in result.segments
            if s.recharge_count == 0 and s.hours > 0 and s.consumed_kwh > 0
        ]
        median_rate = float(np.median(clean_rates)) if clean_rates else 0.0

        orphans = self.db.query(ElectricityRecharge).filter(
            ElectricityRecharge.is_orphaned
        ).order_by(ElectricityRecharge.recharge_time).all()

        suggestions = []
        for diag in result.diagnostics:
            if diag.code != AnomalyCode.METER_INCREASE:
                continue

            window_start = datetime.fromisoformat(diag.details["window_start"])
            window_end = diag.timestamp
            gap_hours = (window_end - window_start).total_seconds() / 3600
            estimated_kwh = diag.details["increase_kwh"] + median_rate * gap_hours

            candidates = [
                o for o in orphans
                if window_start - CANDIDATE_WINDOW <= o.recharge_time <= window_end + CANDIDATE_WINDOW
            ]
            candidates.sort(key=lambda o: abs(o.kwh_amount - estimated_kwh))

            suggestions.append({
                "reading_id": diag.details.get("reference"),
                "window_start": window_start,
                "window_end": window_end,
                "meter_increase_kwh": round(diag.details["increase_kwh"], 2),
                "median_hourly_consumption_kwh": round(median_rate, 3),
                "estimated_recharge_kwh": round(estimated_kwh, 2),
                "candidates": [
                    {
                        "recharge_id": o.id,
                        "token": o.token,
                        "recharge_time": o.recharge_time,
                        "kwh_amount": o.kwh_amount,
                        "kwh_difference": round(o.kwh_amount - estimated_kwh, 2),
                    }
                    for o in candidates
                ],
            })

        logger.info(f"{run.batch_number}: {len(suggestions)} unexplained meter increases")
        return suggestions
