# tests/test_orchestrator.py
import threading
from dataclasses import replace

import pytest

from listing_pipeline import crud
from listing_pipeline.classifier import Classifier
from listing_pipeline.models import Classification, Status
from listing_pipeline.normalizer import normalize
from listing_pipeline.orchestrator import CycleAlreadyRunning, Orchestrator, RunLog
from listing_pipeline.schemas import RunRecord, RunStatus

from factories import FakeProvider, raw_item, zone


def make_orchestrator(provider, session_factory, settings, **kwargs):
    return Orchestrator(provider, session_factory, Classifier(), settings, sleep=lambda s: None, **kwargs)


def scenario_items():
    private = [raw_item(f"p-{i}", city="X") for i in range(70)]
    agency = [raw_item(f"ag-{i}", city="X", user_type="professional", contact_name="Tecnocasa") for i in range(30)]
    return private + agency


def test_end_to_end_scenario_and_unchanged_reingest(session_factory, settings):
    x = zone(city="X")
    # the 30 agency ids were previously ingested as private listings
    db = session_factory()
    for i in range(30):
        crud.upsert_listing(db, normalize(raw_item(f"ag-{i}", city="X")))
    db.close()

    provider = FakeProvider(results={x.label(): scenario_items()})
    orch = make_orchestrator(provider, session_factory, settings)

    first = orch.run_cycle([x])
    r = first.per_zone_results[0]
    assert first.status is RunStatus.COMPLETED
    assert (r.new_count, r.updated_count, r.deactivated_count, r.error) == (70, 0, 30, None)
    assert (r.total, r.private_count, r.agency_count) == (100, 70, 30)

    db = session_factory()
    assert crud.count_active(db) == 70
    ag = crud.get_listing(db, "ag-3")
    assert ag.status == Status.INACTIVE.value
    assert ag.classification == Classification.AGENCY.value
    db.close()

    second = orch.run_cycle([x])
    r = second.per_zone_results[0]
    assert (r.new_count, r.updated_count, r.deactivated_count) == (0, 70, 0)

    db = session_factory()
    assert crud.count_active(db) == 70
    assert crud.get_listing(db, "p-1").price_history == []
    db.close()


def test_one_zone_failing_does_not_abort_the_cycle(session_factory, settings):
    ok, refused, broken = zone(city="A"), zone(city="B"), zone(city="C")
    provider = FakeProvider(
        results={ok.label(): [raw_item(f"a-{i}", city="A") for i in range(3)]},
        fail=[refused.label()],
        failed_jobs=[broken.label()],
    )
    run = make_orchestrator(provider, session_factory, settings).run_cycle([refused, ok, broken])

    assert [r.zone for r in run.per_zone_results] == [refused.label(), ok.label(), broken.label()]
    assert "quota" in run.per_zone_results[0].error
    assert run.per_zone_results[1].error is None
    assert run.per_zone_results[1].new_count == 3
    assert "failed" in run.per_zone_results[2].error
    assert run.finished_at is not None


def test_every_zone_failing_still_produces_a_completed_run(session_factory, settings):
    zones = [zone(city=c) for c in "ABC"]
    provider = FakeProvider(fail=[z.label() for z in zones])
    run = make_orchestrator(provider, session_factory, settings).run_cycle(zones)
    assert run.status is RunStatus.COMPLETED
    assert run.all_failed


def test_job_timeout_is_a_zone_failure(session_factory, settings):
    slow = zone(city="S")
    provider = FakeProvider(pending=[slow.label()])
    orch = make_orchestrator(provider, session_factory, replace(settings, job_timeout=0.05))
    run = orch.run_cycle([slow])
    assert "timed out" in run.per_zone_results[0].error


def test_items_are_capped_at_max_items(session_factory, settings):
    small = zone(city="M", max_items=5)
    provider = FakeProvider(results={small.label(): [raw_item(f"m-{i}", city="M") for i in range(8)]})
    run = make_orchestrator(provider, session_factory, settings).run_cycle([small])
    assert provider.limits[small.label()] == 6
    assert run.per_zone_results[0].total == 5
    assert run.per_zone_results[0].new_count == 5


def seed_stale(session_factory, city):
    db = session_factory()
    crud.upsert_listing(db, normalize(raw_item("stale-1", city=city)))
    db.close()


def test_result_of_exactly_max_items_is_reconciled(session_factory, settings):
    full = zone(city="F", max_items=60)
    seed_stale(session_factory, "F")
    provider = FakeProvider(results={full.label(): [raw_item(f"f-{i}", city="F") for i in range(60)]})
    r = make_orchestrator(provider, session_factory, settings).run_cycle([full]).per_zone_results[0]
    assert (r.new_count, r.deactivated_count) == (60, 1)

    db = session_factory()
    assert crud.get_listing(db, "stale-1").status == Status.INACTIVE.value
    db.close()


def test_result_past_max_items_skips_missing_listing_pass(session_factory, settings):
    capped = zone(city="G", max_items=60)
    seed_stale(session_factory, "G")
    provider = FakeProvider(results={capped.label(): [raw_item(f"g-{i}", city="G") for i in range(61)]})
    r = make_orchestrator(provider, session_factory, settings).run_cycle([capped]).per_zone_results[0]
    assert (r.total, r.new_count, r.deactivated_count) == (60, 60, 0)

    db = session_factory()
    assert crud.get_listing(db, "stale-1").status == Status.ACTIVE.value
    db.close()


def test_malformed_items_are_skipped_and_counted(session_factory, settings):
    z = zone(city="K")
    items = [raw_item("k-1", city="K"), raw_item("k-2", city="K", price=None), {"price": 10}]
    # the id-less item has no contact info: labelled agency, but there is no id to retire
    run = make_orchestrator(FakeProvider(results={z.label(): items}), session_factory, settings).run_cycle([z])
    r = run.per_zone_results[0]
    assert (r.new_count, r.skipped_count, r.agency_count) == (1, 1, 0)


def test_bad_item_mid_result_set_does_not_lose_the_zone(session_factory, settings):
    z = zone(city="K")
    items = (
        [raw_item(f"k-{i}", city="K") for i in range(5)]
        + [raw_item("k-nan", city="K", price="NaN"), raw_item("k-typed", city="K", district=28), "garbage"]
        + [raw_item(f"k-{i}", city="K") for i in range(5, 10)]
    )
    run = make_orchestrator(FakeProvider(results={z.label(): items}), session_factory, settings).run_cycle([z])
    r = run.per_zone_results[0]
    assert r.error is None
    assert (r.total, r.new_count, r.skipped_count) == (13, 11, 2)
    assert run.new_total == 11

    db = session_factory()
    assert crud.get_listing(db, "k-typed").district == "28"
    assert crud.get_listing(db, "k-nan") is None
    db.close()


def test_zones_in_a_batch_run_concurrently(session_factory, settings):
    barrier = threading.Barrier(2, timeout=5)
    zones = [zone(city=c) for c in "ABCD"]
    provider = FakeProvider(on_submit=lambda z: barrier.wait())
    run = make_orchestrator(provider, session_factory, replace(settings, batch_size=2)).run_cycle(zones)
    assert [r.error for r in run.per_zone_results] == [None] * 4
    assert sorted(provider.submitted) == sorted(z.label() for z in zones)


def test_concurrent_cycle_is_rejected_without_side_effects(session_factory, settings):
    provider = FakeProvider()
    orch = make_orchestrator(provider, session_factory, settings)
    orch._cycle_lock.acquire()
    try:
        assert orch.running
        with pytest.raises(CycleAlreadyRunning):
            orch.run_cycle([zone(city="A")])
    finally:
        orch._cycle_lock.release()
    assert len(orch.run_log) == 0
    assert provider.submitted == []


def test_completion_handler_called_once(session_factory, settings):
    seen = []
    orch = make_orchestrator(FakeProvider(), session_factory, settings)
    run = orch.run_cycle([zone(city="A")], on_complete=seen.append)
    assert [r.id for r in seen] == [run.id]
    assert not orch.running


def test_run_log_is_bounded_and_most_recent_first():
    log = RunLog(size=3)
    runs = [RunRecord(zones=[str(i)]) for i in range(5)]
    for run in runs:
        log.add(run)
    assert [r.id for r in log.list()] == [runs[4].id, runs[3].id, runs[2].id]
    assert log.last(completed=True) is None
