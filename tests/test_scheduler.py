"""Mini README: Tests for the daily automatic levy scheduler.

Structure:
    * tick semantics - hour gate, once-per-day marker and day rollover.
    * failure handling - a failing pass still commits the marker and persists.
    * background loop - start, run one pass, stop promptly.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import List

import pytest

from levytreasury.assessment import AssessmentScheduler, ConfigStore, SchedulerState, TaxConfig


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _scheduler(store: ConfigStore, clock: FakeClock, passes: List[str], persisted: List[str]) -> AssessmentScheduler:
    return AssessmentScheduler(
        store,
        lambda: passes.append(clock.now.strftime("%Y%m%d")),
        assess_hour=12,
        interval_seconds=60,
        persist=lambda: persisted.append(store.snapshot().last_assessed_day),
        clock=clock,
    )


def test_tick_waits_for_configured_hour() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 11, 59))
    passes: List[str] = []
    scheduler = _scheduler(store, clock, passes, [])

    assert scheduler.tick() is False
    assert passes == []
    assert store.snapshot().last_assessed_day == ""


def test_tick_runs_once_per_day_and_persists() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 12, 0))
    passes: List[str] = []
    persisted: List[str] = []
    scheduler = _scheduler(store, clock, passes, persisted)

    assert scheduler.tick() is True
    clock.now = datetime(2024, 6, 1, 18, 30)
    assert scheduler.tick() is False

    assert passes == ["20240601"]
    assert persisted == ["20240601"]
    assert scheduler.state is SchedulerState.IDLE


def test_next_day_triggers_new_pass() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 13, 0))
    passes: List[str] = []
    scheduler = _scheduler(store, clock, passes, [])

    scheduler.tick()
    clock.now = datetime(2024, 6, 2, 9, 0)
    scheduler.tick()
    clock.now = datetime(2024, 6, 2, 12, 1)
    scheduler.tick()

    assert passes == ["20240601", "20240602"]


def test_marker_from_persisted_state_suppresses_pass() -> None:
    store = ConfigStore(TaxConfig(last_assessed_day="20240601"))
    clock = FakeClock(datetime(2024, 6, 1, 23, 0))
    passes: List[str] = []
    scheduler = _scheduler(store, clock, passes, [])

    assert scheduler.tick() is False
    assert passes == []


def test_failing_pass_keeps_marker_and_persists() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 12, 0))
    persisted: List[str] = []

    def broken_pass() -> None:
        raise RuntimeError("membership service down")

    scheduler = AssessmentScheduler(
        store,
        broken_pass,
        persist=lambda: persisted.append("saved"),
        clock=clock,
    )

    assert scheduler.tick() is True
    assert store.snapshot().last_assessed_day == "20240601"
    assert persisted == ["saved"]
    assert scheduler.tick() is False


def test_tick_hook_runs_every_tick() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 8, 0))
    hooks: List[int] = []
    scheduler = AssessmentScheduler(store, lambda: None, on_tick=lambda: hooks.append(1), clock=clock)

    scheduler.tick()
    scheduler.tick()

    assert hooks == [1, 1]


def test_rejects_invalid_hour() -> None:
    with pytest.raises(ValueError):
        AssessmentScheduler(ConfigStore(), lambda: None, assess_hour=24)


def test_background_loop_runs_pass_and_stops() -> None:
    store = ConfigStore()
    clock = FakeClock(datetime(2024, 6, 1, 12, 0))
    passes: List[str] = []
    scheduler = AssessmentScheduler(
        store,
        lambda: passes.append("run"),
        interval_seconds=0.01,
        clock=clock,
    )

    scheduler.start()
    deadline = time.monotonic() + 2.0
    while not passes and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop(timeout=1.0)

    assert passes == ["run"]
    assert not scheduler.is_running
