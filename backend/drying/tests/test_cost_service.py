from datetime import datetime, timedelta, timezone

import pytest

from drying.models import DryingRun, MeterReading, ElectricityRecharge, RunStatus
from drying.services.cost_service import DryingCostService
from drying.services.errors import ConfigurationError, RunNotFoundError, ValidationError

T0 = datetime(2025, 11, 22, 8, 0)


def at(hours):
    return T0 + timedelta(hours=hours)


def make_run(db, batch="DRY-00010", start_meter=300.0, readings=(), **kwargs):
    run = DryingRun(batch_number=batch, start_time=T0, starting_meter=start_meter, **kwargs)
    db.add(run)
    db.flush()
    for hours, value in readings:
        db.add(MeterReading(drying_run_id=run.id, reading_time=at(hours), meter_value=value))
    db.commit()
    return run


def make_recharge(db, token, hours, kwh, paid=0.0, run=None, after=None):
    recharge = ElectricityRecharge(
        token=token,
        recharge_time=at(hours),
        kwh_amount=kwh,
        total_paid=paid,
        meter_reading_after=after,
        drying_run_id=run.id if run else None,
    )
    db.add(recharge)
    db.commit()
    return recharge


def reading_at(db, run, hours):
    return db.query(MeterReading).filter(
        MeterReading.drying_run_id == run.id,
        MeterReading.reading_time == at(hours),
    ).one()


@pytest.fixture
def recharged_run(db):
    run = make_run(db, readings=[(12, 250.0), (24, 200.0), (48, 27.89), (52, 2834.89), (72, 2700.0)])
    make_recharge(db, "14718551887027478392", 50, 2807.0, paid=1_000_000, run=run, after=2834.89)
    return run


def test_recalculate_run_stores_costs(db, recharged_run, configured_rates):
    result = DryingCostService(db).recalculate_run(recharged_run.id)
    db.refresh(recharged_run)

    assert result.total_consumed_kwh == pytest.approx(407.0)
    assert recharged_run.total_consumed_kwh == pytest.approx(407.0)
    assert recharged_run.electricity_rate == pytest.approx(1_000_000 / 2807)
    assert recharged_run.running_hours == pytest.approx(72.0)
    assert recharged_run.non_electrical_cost == pytest.approx(432_000.0)
    assert recharged_run.total_cost == pytest.approx(407.0 * 1_000_000 / 2807 + 432_000.0)
    assert recharged_run.diagnostics == []
    assert recharged_run.cost_calculated_at is not None


def test_calculate_does_not_write(db, recharged_run, configured_rates):
    result = DryingCostService(db).calculate(recharged_run.id)
    db.refresh(recharged_run)

    assert result.total_cost > 0
    assert recharged_run.total_cost is None


def test_hourly_rate_override(db, configured_rates):
    run = make_run(db, readings=[(10, 290.0)], hourly_rate_override=1000.0)

    result = DryingCostService(db).recalculate_run(run.id)
    assert result.non_electrical_cost == pytest.approx(10_000.0)


def test_unknown_run(db):
    with pytest.raises(RunNotFoundError):
        DryingCostService(db).calculate(999)


def test_refresh_cost_keeps_previous_figures_when_unconfigured(db, recharged_run):
    assert DryingCostService(db).refresh_cost(recharged_run.id) is None

    db.refresh(recharged_run)
    assert recharged_run.total_cost is None


def test_recalculate_run_raises_when_unconfigured(db, recharged_run):
    with pytest.raises(ConfigurationError):
        DryingCostService(db).recalculate_run(recharged_run.id)


def test_complete_run_uses_last_reading_time(db, recharged_run, configured_rates):
    DryingCostService(db).complete_run(recharged_run.id)
    db.refresh(recharged_run)

    assert recharged_run.status == RunStatus.COMPLETED
    assert recharged_run.end_time == at(72)
    assert recharged_run.running_hours == pytest.approx(72.0)


def test_complete_run_with_explicit_end(db, recharged_run, configured_rates):
    DryingCostService(db).complete_run(recharged_run.id, end_time=at(80))
    db.refresh(recharged_run)

    assert recharged_run.end_time == at(80)
    assert recharged_run.running_hours == pytest.approx(80.0)


def test_complete_run_without_readings(db, configured_rates):
    run = make_run(db)

    with pytest.raises(ValidationError):
        DryingCostService(db).complete_run(run.id)

    db.refresh(run)
    assert run.status == RunStatus.IN_PROGRESS


def test_assign_recharge_to_reading(db, configured_rates):
    run = make_run(db, start_meter=100.0, readings=[(10, 90.0), (20, 580.0)])
    orphan = make_recharge(db, "53758923593871403552", 30, 500.0, paid=178_125)

    service = DryingCostService(db)
    service.recalculate_run(run.id)
    db.refresh(run)
    assert run.anomaly_count == 1

    target = reading_at(db, run, 20)
    recharge = service.assign_recharge(orphan.id, run.id, reading_id=target.id)
    db.refresh(run)

    assert recharge.drying_run_id == run.id
    assert recharge.recharge_time == at(20) - timedelta(minutes=1)
    assert recharge.meter_reading_after == 580.0
    assert run.total_consumed_kwh == pytest.approx(20.0)
    assert run.electricity_rate == pytest.approx(356.25)
    assert run.anomaly_count == 0


def test_assign_recharge_refreshes_previous_run(db, configured_rates):
    first = make_run(db, batch="DRY-00001", start_meter=100.0, readings=[(10, 550.0)])
    second = make_run(db, batch="DRY-00002", start_meter=100.0, readings=[(10, 90.0)])
    recharge = make_recharge(db, "111", 5, 500.0, paid=1000, run=first)

    service = DryingCostService(db)
    service.recalculate_run(first.id)
    service.assign_recharge(recharge.id, second.id)
    db.refresh(first)

    assert first.anomaly_count == 1
    assert first.total_consumed_kwh == 0.0


def test_assign_recharge_to_reading_of_other_run(db):
    run = make_run(db, batch="DRY-00001", readings=[(10, 290.0)])
    other = make_run(db, batch="DRY-00002", readings=[(10, 290.0)])
    recharge = make_recharge(db, "111", 5, 500.0)

    with pytest.raises(LookupError):
        DryingCostService(db).assign_recharge(recharge.id, run.id, reading_id=reading_at(db, other, 10).id)


def test_correct_reading(db, configured_rates):
    run = make_run(db, readings=[(10, 290.0), (20, 2800.0)])
    service = DryingCostService(db)
    service.recalculate_run(run.id)
    db.refresh(run)
    assert run.anomaly_count == 1

    service.correct_reading(run.id, reading_at(db, run, 20).id, meter_value=280.0)
    db.refresh(run)

    assert run.total_consumed_kwh == pytest.approx(20.0)
    assert run.anomaly_count == 0


def test_correct_reading_before_start(db):
    run = make_run(db, readings=[(10, 290.0)])

    with pytest.raises(ValidationError):
        DryingCostService(db).correct_reading(run.id, reading_at(db, run, 10).id, reading_time=at(-1))


def test_suggest_missing_recharges(db):
    run = make_run(db, start_meter=1000.0, readings=[(10, 900.0), (20, 800.0), (30, 1500.0)])
    close_match = make_recharge(db, "111", 25, 800.0, paid=285_000)
    rough_match = make_recharge(db, "222", 28, 1403.5, paid=500_000)
    make_recharge(db, "333", 30 + 24 * 5, 800.0, paid=285_000)
    other_run = make_run(db, batch="DRY-00011", start_meter=10.0)
    make_recharge(db, "444", 26, 800.0, paid=285_000, run=other_run)

    suggestions = DryingCostService(db).suggest_missing_recharges(run.id)

    assert len(suggestions) == 1
    suggestion = suggestions[0]
    assert suggestion["reading_id"] == reading_at(db, run, 30).id
    assert suggestion["window_start"] == at(20)
    assert suggestion["meter_increase_kwh"] == pytest.approx(700.0)
    assert suggestion["median_hourly_consumption_kwh"] == pytest.approx(10.0)
    assert suggestion["estimated_recharge_kwh"] == pytest.approx(800.0)
    assert [c["recharge_id"] for c in suggestion["candidates"]] == [close_match.id, rough_match.id]
    assert suggestion["candidates"][0]["kwh_difference"] == pytest.approx(0.0)


def test_suggest_missing_recharges_clean_run(db, recharged_run):
    assert DryingCostService(db).suggest_missing_recharges(recharged_run.id) == []


def test_recalculate_all_collects_errors(db, recharged_run, configured_rates):
    make_run(db, batch="DRY-00011")

    summary = DryingCostService(db).recalculate_all()

    assert summary["total_runs"] == 2
    assert summary["updated"] == 1
    assert summary["errors"][0]["batch_number"] == "DRY-00011"
    assert summary["details"][0]["batch_number"] == "DRY-00010"
    assert summary["details"][0]["old_cost"] is None


def test_recalculate_all_by_status(db, recharged_run, configured_rates):
    make_run(db, batch="DRY-00011", readings=[(5, 250.0)], status=RunStatus.COMPLETED, end_time=at(5))

    summary = DryingCostService(db).recalculate_all(status=RunStatus.COMPLETED)

    assert summary["total_runs"] == 1
    assert summary["details"][0]["batch_number"] == "DRY-00011"


def test_complete_run_with_aware_end_time(db, recharged_run, configured_rates):
    DryingCostService(db).complete_run(recharged_run.id, end_time=datetime(2025, 11, 25, 5, 0, tzinfo=timezone.utc))
    db.refresh(recharged_run)

    assert recharged_run.end_time == at(72)


def test_correct_reading_with_aware_time(db):
    run = make_run(db, readings=[(10, 290.0)])

    reading = DryingCostService(db).correct_reading(
        run.id, reading_at(db, run, 10).id, reading_time=datetime(2025, 11, 22, 9, 0, tzinfo=timezone.utc)
    )
    assert reading.reading_time == at(4)
