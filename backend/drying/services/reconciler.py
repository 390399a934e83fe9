"""
Prepaid meter consumption and drying cost reconciliation.

A prepaid (Luku) meter counts DOWN while the kiln uses electricity and jumps
UP when a recharge token is entered. Between two checkpoints:

    consumed = previous - current                  (no recharge in between)
    consumed = previous + recharged - current      (one or more recharges)

Checkpoints are the run start followed by every reading. A recharge belongs to
the window (previous_time, reading_time]; a recharge stamped at exactly the
reading time is already visible in that reading.

Nothing here touches the database. Inconsistencies are returned as
diagnostics for a person to act on; only malformed input raises.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from drying.services.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


class AnomalyCode(str, Enum):
    METER_INCREASE = "meter_increase_without_recharge"
    METER_INCREASE_WITHIN_TOLERANCE = "meter_increase_within_tolerance"
    NEGATIVE_SEGMENT_CLIPPED = "negative_segment_clipped"
    OUT_OF_ORDER_INPUT = "out_of_order_input"
    RECHARGE_BEFORE_START = "recharge_before_start"
    RECHARGE_AFTER_END = "recharge_after_end"
    RECHARGE_AFTER_LAST_READING = "recharge_after_last_reading"
    READING_AFTER_END = "reading_after_end"
    RECHARGE_METER_MISMATCH = "recharge_meter_mismatch"
    ZERO_PAYMENT_RECHARGE = "zero_payment_recharge"


@dataclass(frozen=True)
class MeterReadingPoint:
    timestamp: datetime
    meter_value: float
    reference: Optional[int] = None


@dataclass(frozen=True)
class RechargePoint:
    timestamp: datetime
    kwh_added: float
    amount_paid: float = 0.0
    meter_value_after: Optional[float] = None
    reference: Optional[str] = None


@dataclass
class Diagnostic:
    code: AnomalyCode
    message: str
    timestamp: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "details": self.details,
        }


@dataclass
class Segment:
    start_time: datetime
    end_time: datetime
    previous_meter_value: float
    meter_value: float
    recharged_kwh: float
    recharge_count: int
    raw_consumed_kwh: float
    consumed_kwh: float
    reading_reference: Optional[int] = None

    @property
    def hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / SECONDS_PER_HOUR


@dataclass
class ReconciliationResult:
    start_time: datetime
    end_time: datetime
    total_consumed_kwh: float
    electricity_rate: Optional[float]
    rate_source: Optional[str]
    electricity_cost: float
    running_hours: float
    hourly_non_electrical_rate: float
    non_electrical_cost: float
    total_cost: float
    segments: List[Segment] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def has_anomalies(self) -> bool:
        return bool(self.diagnostics)


def derive_electricity_rate(recharges: Sequence[RechargePoint]) -> Optional[float]:
    """Average price per kWh over the given recharges, or None if nothing was paid."""
    total_kwh = sum(r.kwh_added for r in recharges)
    total_paid = sum(r.amount_paid for r in recharges)
    if total_kwh <= 0 or total_paid <= 0:
        return None
    return total_paid / total_kwh


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class ConsumptionReconciler:
    def __init__(self, tolerance_kwh: float = 0.01):
        if not _is_number(tolerance_kwh) or tolerance_kwh < 0:
            raise ValueError("tolerance_kwh must be a non-negative number")
        self.tolerance_kwh = tolerance_kwh

    def reconcile(
        self,
        start_meter: float,
        start_time: datetime,
        readings: Sequence[MeterReadingPoint],
        recharges: Sequence[RechargePoint],
        end_time: Optional[datetime] = None,
        hourly_non_electrical_rate: Optional[float] = None,
        electricity_rate: Optional[float] = None,
        fallback_electricity_rate: Optional[float] = None,
    ) -> ReconciliationResult:
        """
        Compute consumed kWh and operating cost for one drying run.

        `end_time` defaults to the last reading. The electricity rate is taken
        from `electricity_rate`, else derived from the recharges, else from
        `fallback_electricity_rate`.

        Raises ValidationError for malformed history and ConfigurationError
        when a rate needed for the cost is missing.
        """
        self._validate(
            start_meter, start_time, readings, recharges, end_time,
            hourly_non_electrical_rate, electricity_rate, fallback_electricity_rate,
        )

        diagnostics: List[Diagnostic] = []
        readings = self._in_time_order(readings, "readings", diagnostics)
        recharges = self._in_time_order(recharges, "recharges", diagnostics)

        effective_end = end_time if end_time is not None else (readings[-1].timestamp if readings else None)
        if effective_end is None:
            raise ValidationError("Run has no end time and no readings; cost is unavailable")
        if hourly_non_electrical_rate is None:
            raise ConfigurationError("Hourly non-electrical rate is not configured")

        self._check_bounds(start_time, end_time, readings, recharges, diagnostics)
        segments = self._consumption_segments(start_meter, start_time, readings, recharges, diagnostics)
        total_consumed = sum(s.consumed_kwh for s in segments)

        rate, rate_source = self._resolve_rate(recharges, electricity_rate, fallback_electricity_rate)
        if rate is None and total_consumed > 0:
            raise ConfigurationError(
                "No electricity rate: run has no paid recharges and no fallback rate is configured"
            )

        electricity_cost = total_consumed * rate if rate is not None else 0.0
        running_hours = (effective_end - start_time).total_seconds() / SECONDS_PER_HOUR
        non_electrical_cost = running_hours * hourly_non_electrical_rate

        logger.debug(
            f"Reconciled {len(readings)} readings, {len(recharges)} recharges: "
            f"{total_consumed:.2f} kWh, {running_hours:.2f} h, {len(diagnostics)} diagnostics"
        )

        return ReconciliationResult(
            start_time=start_time,
            end_time=effective_end,
            total_consumed_kwh=total_consumed,
            electricity_rate=rate,
            rate_source=rate_source,
            electricity_cost=electricity_cost,
            running_hours=running_hours,
            hourly_non_electrical_rate=hourly_non_electrical_rate,
            non_electrical_cost=non_electrical_cost,
            total_cost=electricity_cost + non_electrical_cost,
            segments=segments,
            diagnostics=diagnostics,
        )

    def _validate(self, start_meter, start_time, readings, recharges, end_time,
                  hourly_rate, electricity_rate, fallback_rate):
        if start_time is None:
            raise ValidationError("Run start time is required")
        self._check_timezones(start_time, end_time, readings, recharges)
        if not _is_number(start_meter) or start_meter < 0:
            raise ValidationError(f"Starting meter value must be a non-negative number, got {start_meter!r}")
        if end_time is not None and end_time < start_time:
            raise ValidationError(f"End time {end_time} is before start time {start_time}")

        for name, value in (
            ("hourly non-electrical rate", hourly_rate),
            ("electricity rate", electricity_rate),
            ("fallback electricity rate", fallback_rate),
        ):
            if value is not None and (not _is_number(value) or value < 0):
                raise ValidationError(f"The {name} must be a non-negative number, got {value!r}")

        for reading in readings:
            if reading.timestamp is None:
                raise ValidationError("Reading without a timestamp")
            if not _is_number(reading.meter_value) or reading.meter_value < 0:
                raise ValidationError(
                    f"Reading at {reading.timestamp} has invalid meter value {reading.meter_value!r}"
                )
            if reading.timestamp < start_time:
                raise ValidationError(
                    f"Reading at {reading.timestamp} is before the run start {start_time}"
                )

        for recharge in recharges:
            if recharge.timestamp is None:
                raise ValidationError("Recharge without a timestamp")
            if not _is_number(recharge.kwh_added) or recharge.kwh_added < 0:
                raise ValidationError(
                    f"Recharge at {recharge.timestamp} has invalid kWh amount {recharge.kwh_added!r}"
                )
            if not _is_number(recharge.amount_paid) or recharge.amount_paid < 0:
                raise ValidationError(
                    f"Recharge at {recharge.timestamp} has invalid amount paid {recharge.amount_paid!r}"
                )
            if recharge.meter_value_after is not None and (
                not _is_number(recharge.meter_value_after) or recharge.meter_value_after < 0
            ):
                raise ValidationError(
                    f"Recharge at {recharge.timestamp} has invalid meter value after {recharge.meter_value_after!r}"
                )

    @staticmethod
    def _check_timezones(start_time, end_time, readings, recharges):
        stamps = [start_time, end_time] + [r.timestamp for r in readings] + [r.timestamp for r in recharges]
        awareness = {ts.utcoffset() is not None for ts in stamps if ts is not None}
        if len(awareness) > 1:
            raise ValidationError(
                "Timestamps mix timezone-aware and naive values; convert them to one convention first"
            )

    @staticmethod
    def _in_time_order(items, label: str, diagnostics: List[Diagnostic]):
        items = list(items)
        ordered = sorted(items, key=lambda x: x.timestamp)
        if ordered != items:
            first_bad = next(
                b for a, b in zip(items, items[1:]) if b.timestamp < a.timestamp
            )
            diagnostics.append(Diagnostic(
                code=AnomalyCode.OUT_OF_ORDER_INPUT,
                message=f"{label.capitalize()} were not in time order and have been sorted",
                timestamp=first_bad.timestamp,
                details={"sequence": label, "count": len(items)},
            ))
        return ordered

    def _check_bounds(self, start_time, end_time, readings, recharges, diagnostics):
        last_reading_time = readings[-1].timestamp if readings else None

        for recharge in recharges:
            details = {"reference": recharge.reference, "kwh_added": recharge.kwh_added}
            if recharge.timestamp <= start_time:
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.RECHARGE_BEFORE_START,
                    message=f"Recharge of {recharge.kwh_added} kWh is dated at or before the run start and is not counted",
                    timestamp=recharge.timestamp,
                    details=details,
                ))
            elif end_time is not None and recharge.timestamp > end_time:
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.RECHARGE_AFTER_END,
                    message=f"Recharge of {recharge.kwh_added} kWh is dated after the run end",
                    timestamp=recharge.timestamp,
                    details=details,
                ))
            elif last_reading_time is None or recharge.timestamp > last_reading_time:
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.RECHARGE_AFTER_LAST_READING,
                    message=f"Recharge of {recharge.kwh_added} kWh has no later reading and is not counted",
                    timestamp=recharge.timestamp,
                    details=details,
                ))

            if recharge.amount_paid == 0:
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.ZERO_PAYMENT_RECHARGE,
                    message=f"Recharge of {recharge.kwh_added} kWh has no recorded payment",
                    timestamp=recharge.timestamp,
                    details=details,
                ))

        if end_time is not None:
            for reading in readings:
                if reading.timestamp > end_time:
                    diagnostics.append(Diagnostic(
                        code=AnomalyCode.READING_AFTER_END,
                        message=f"Reading of {reading.meter_value} kWh is dated after the run end",
                        timestamp=reading.timestamp,
                        details={"reference": reading.reference, "meter_value": reading.meter_value},
                    ))

    def _consumption_segments(self, start_meter, start_time, readings, recharges, diagnostics):
        segments = []
        previous_value = start_meter
        previous_time = start_time

        for reading in readings:
            window = [r for r in recharges if previous_time < r.timestamp <= reading.timestamp]
            recharged = sum(r.kwh_added for r in window)
            raw = previous_value + recharged - reading.meter_value

            if window:
                consumed = max(0.0, raw)
                if raw < -self.tolerance_kwh:
                    diagnostics.append(Diagnostic(
                        code=AnomalyCode.NEGATIVE_SEGMENT_CLIPPED,
                        message=(
                            f"Meter reads {reading.meter_value} kWh, more than {previous_value} + "
                            f"{recharged} recharged; segment counted as 0"
                        ),
                        timestamp=reading.timestamp,
                        details={
                            "reference": reading.reference,
                            "previous_meter_value": previous_value,
                            "recharged_kwh": recharged,
                            "meter_value": reading.meter_value,
                            "excess_kwh": -raw,
                        },
                    ))
                recharged_so_far = 0.0
                for recharge in window:
                    recharged_so_far += recharge.kwh_added
                    self._cross_check_recharge(
                        recharge, previous_value, recharged_so_far, recharged - recharged_so_far,
                        reading, diagnostics,
                    )
            elif raw < -self.tolerance_kwh:
                consumed = 0.0
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.METER_INCREASE,
                    message=(
                        f"Meter rose from {previous_value} to {reading.meter_value} kWh "
                        f"with no recharge recorded"
                    ),
                    timestamp=reading.timestamp,
                    details={
                        "reference": reading.reference,
                        "window_start": previous_time.isoformat(),
                        "previous_meter_value": previous_value,
                        "meter_value": reading.meter_value,
                        "increase_kwh": -raw,
                    },
                ))
            elif raw < 0:
                consumed = 0.0
                diagnostics.append(Diagnostic(
                    code=AnomalyCode.METER_INCREASE_WITHIN_TOLERANCE,
                    message=(
                        f"Meter rose by {-raw:.4f} kWh with no recharge recorded, "
                        f"within the {self.tolerance_kwh} kWh reading tolerance"
                    ),
                    timestamp=reading.timestamp,
                    details={
                        "reference": reading.reference,
                        "previous_meter_value": previous_value,
                        "meter_value": reading.meter_value,
                        "increase_kwh": -raw,
                    },
                ))
            else:
                consumed = max(0.0, raw)

            segments.append(Segment(
                start_time=previous_time,
                end_time=reading.timestamp,
                previous_meter_value=previous_value,
                meter_value=reading.meter_value,
                recharged_kwh=recharged,
                recharge_count=len(window),
                raw_consumed_kwh=raw,
                consumed_kwh=consumed,
                reading_reference=reading.reference,
            ))

            previous_value = reading.meter_value
            previous_time = reading.timestamp

        return segments

    def _cross_check_recharge(self, recharge, previous_value, recharged_so_far, recharged_later,
                              reading, diagnostics):
        """
        Check a recharge's recorded meter_value_after against the balance before
        the window and the reading that closes it. Recharges later in the same
        window may still raise the meter before that reading.
        """
        after = recharge.meter_value_after
        if after is None:
            return

        problems = []
        if after > previous_value + recharged_so_far + self.tolerance_kwh:
            problems.append(
                f"meter after recharge ({after}) exceeds balance before plus recharged kWh "
                f"({previous_value + recharged_so_far:.2f})"
            )
        if reading.meter_value > after + recharged_later + self.tolerance_kwh:
            problems.append(
                f"next reading ({reading.meter_value}) is above the meter after recharge ({after})"
                + (f" plus {recharged_later} kWh recharged later" if recharged_later else "")
            )
        if problems:
            diagnostics.append(Diagnostic(
                code=AnomalyCode.RECHARGE_METER_MISMATCH,
                message="; ".join(problems),
                timestamp=recharge.timestamp,
                details={
                    "reference": recharge.reference,
                    "meter_value_after": after,
                    "previous_meter_value": previous_value,
                    "recharged_kwh": recharged_so_far,
                    "reading_meter_value": reading.meter_value,
                },
            ))

    @staticmethod
    def _resolve_rate(recharges, electricity_rate, fallback_rate) -> Tuple[Optional[float], Optional[str]]:
        if electricity_rate is not None:
            return electricity_rate, "explicit"
        derived = derive_electricity_rate(recharges)
        if derived is not None:
            return derived, "recharge_history"
        if fallback_rate is not None:
            return fallback_rate, "fallback"
        return None, None


_default_reconciler = ConsumptionReconciler()


def reconcile(*args, **kwargs) -> ReconciliationResult:
    """Reconcile with the default tolerance. See ConsumptionReconciler.reconcile."""
    return _default_reconciler.reconcile(*args, **kwargs)
