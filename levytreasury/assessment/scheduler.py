"""Mini README: Daily automatic levy scheduler.

Structure:
    * SchedulerState - IDLE, TICK or ASSESS.
    * AssessmentScheduler - background loop running one pass per day.

Every tick compares today's date (``YYYYMMDD``) with the marker held by the
``ConfigStore``. Once the configured hour has passed and the marker is
stale, ``mark_assessed_today`` commits the new day and the bulk pass runs.
The marker is the only idempotency guard: a tick on an already assessed day
does nothing whatever the hour. A stop request is observed between ticks;
a pass that has started always runs to completion.
"""

from __future__ import annotations

import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ..logging_utils import get_logger
from .config_store import ConfigStore

LOGGER = get_logger(__name__)

DAY_FORMAT = "%Y%m%d"


class SchedulerState(str, Enum):
    IDLE = "idle"
    TICK = "tick"
    ASSESS = "assess"


class AssessmentScheduler:
    """Trigger ``run_pass`` once per calendar day after ``assess_hour``."""

    def __init__(
        self,
        config: ConfigStore,
        run_pass: Callable[[], object],
        *,
        assess_hour: int = 12,
        interval_seconds: float = 60.0,
        persist: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[], object]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if not 0 <= assess_hour <= 23:
            raise ValueError(f"assess_hour must be between 0 and 23, got {assess_hour}")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._config = config
        self._run_pass = run_pass
        self.assess_hour = assess_hour
        self.interval_seconds = interval_seconds
        self._persist = persist
        self._on_tick = on_tick
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SchedulerState) -> None:
        with self._state_lock:
            self._state = state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def is_due(self, now: datetime) -> bool:
        day = now.strftime(DAY_FORMAT)
        return day != self._config.snapshot().last_assessed_day and now.hour >= self.assess_hour

    def tick(self) -> bool:
        """Run one scheduler step; return True when a pass was executed."""

        self._set_state(SchedulerState.TICK)
        try:
            if self._on_tick is not None:
                try:
                    self._on_tick()
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Scheduler tick hook failed")

            now = self.clock()
            if not self.is_due(now):
                return False
            day = now.strftime(DAY_FORMAT)
            if self._config.mark_assessed_today(day):
                return False

            self._set_state(SchedulerState.ASSESS)
            LOGGER.info("Starting automatic levy pass for %s", day)
            try:
                self._run_pass()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Automatic levy pass for %s failed", day)
            if self._persist is not None:
                try:
                    self._persist()
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Persisting levy config after the pass for %s failed", day)
            return True
        finally:
            self._set_state(SchedulerState.IDLE)

    def run_forever(self) -> None:
        """Tick every ``interval_seconds`` until ``stop`` is requested."""

        LOGGER.info(
            "Levy scheduler started (hour=%s interval=%ss)", self.assess_hour, self.interval_seconds
        )
        while not self._stop.wait(self.interval_seconds):
            self.tick()
        LOGGER.info("Levy scheduler stopped")

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="levy-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
