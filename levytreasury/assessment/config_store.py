"""Mini README: Shared levy configuration with reader/writer locking.

Structure:
    * TaxConfig - immutable snapshot of rate, threshold and last assessed day.
    * ReadWriteLock - many concurrent readers or a single writer.
    * ConfigStore - the one mutable configuration object of the process.
    * ConfigFile - text persistence for ``ConfigStore`` snapshots.

Usage:
    Build one ``ConfigStore`` at start-up (usually from ``ConfigFile.load``)
    and pass it by reference to every component that needs it; tests build
    their own isolated instance. Mutations validate before taking the write
    lock, never hold it across I/O, and notify subscribers with the new
    snapshot once the lock has been released. ``ConfigFile.attach`` is the
    subscriber that keeps the file in step with the store.
"""

from __future__ import annotations

import math
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from ..exceptions import InvalidRangeError
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

DEFAULT_RATE = 0.10
DEFAULT_THRESHOLD = 1000

ConfigListener = Callable[["TaxConfig"], None]


@dataclass(frozen=True, slots=True)
class TaxConfig:
    """Point-in-time copy of the levy configuration."""

    rate: float = DEFAULT_RATE
    threshold: int = DEFAULT_THRESHOLD
    last_assessed_day: str = ""

    def as_dict(self) -> dict:
        return {
            "rate": self.rate,
            "rate_percent": round(self.rate * 100, 2),
            "threshold": self.threshold,
            "last_assessed_day": self.last_assessed_day,
        }


def validate_rate(rate: float, field: str = "rate") -> float:
    """Return ``rate`` as a float when it lies in [0, 1]."""

    try:
        value = float(rate)
    except (TypeError, ValueError):
        raise InvalidRangeError(field, rate, "a number between 0 and 1") from None
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidRangeError(field, rate, "a number between 0 and 1")
    return value


def validate_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
        raise InvalidRangeError("threshold", threshold, "an integer >= 0")
    return threshold


class ReadWriteLock:
    """Reader/writer lock that lets a waiting writer block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConfigStore:
    """Process-wide levy configuration guarded by a ``ReadWriteLock``."""

    def __init__(self, initial: Optional[TaxConfig] = None) -> None:
        initial = initial or TaxConfig()
        self._config = TaxConfig(
            rate=validate_rate(initial.rate),
            threshold=validate_threshold(initial.threshold),
            last_assessed_day=initial.last_assessed_day,
        )
        self._lock = ReadWriteLock()
        self._listeners: List[ConfigListener] = []
        self._dirty = False
        LOGGER.debug("Config store initialised with %s", self._config)

    def snapshot(self) -> TaxConfig:
        with self._lock.read_locked():
            return self._config

    @property
    def rate(self) -> float:
        return self.snapshot().rate

    @property
    def threshold(self) -> int:
        return self.snapshot().threshold

    @property
    def dirty(self) -> bool:
        with self._lock.read_locked():
            return self._dirty

    def mark_clean(self) -> None:
        with self._lock.write_locked():
            self._dirty = False

    def subscribe(self, listener: ConfigListener) -> None:
        """Call ``listener`` with the new snapshot after every mutation."""

        self._listeners.append(listener)

    def set_rate(self, rate: float) -> TaxConfig:
        value = validate_rate(rate)
        with self._lock.write_locked():
            self._config = replace(self._config, rate=value)
            self._dirty = True
            updated = self._config
        LOGGER.info("Global levy rate set to %.2f%%", value * 100)
        self._notify(updated)
        return updated

    def set_threshold(self, threshold: int) -> TaxConfig:
        value = validate_threshold(threshold)
        with self._lock.write_locked():
            self._config = replace(self._config, threshold=value)
            self._dirty = True
            updated = self._config
        LOGGER.info("Levy threshold set to %s", value)
        self._notify(updated)
        return updated

    def mark_assessed_today(self, day: str) -> bool:
        """Commit ``day`` as the marker; return True if it was already assessed."""

        with self._lock.write_locked():
            if self._config.last_assessed_day == day:
                return True
            previous = self._config.last_assessed_day
            self._config = replace(self._config, last_assessed_day=day)
            self._dirty = True
            updated = self._config
        LOGGER.info("Assessment marker moved from %r to %r", previous, day)
        self._notify(updated)
        return False

    def _notify(self, config: TaxConfig) -> None:
        for listener in list(self._listeners):
            try:
                listener(config)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Config listener %r failed", listener)


class ConfigFile:
    """Persist ``TaxConfig`` as ``rate,threshold,last_assessed_day``."""

    def __init__(
        self,
        path: Union[str, Path],
        *,
        default_rate: float = DEFAULT_RATE,
        default_threshold: int = DEFAULT_THRESHOLD,
    ) -> None:
        self.path = Path(path)
        self.defaults = TaxConfig(rate=default_rate, threshold=default_threshold)

    def load(self) -> TaxConfig:
        """Read the stored config, falling back to defaults field by field."""

        if not self.path.exists():
            LOGGER.info("No levy config at %s; using defaults", self.path)
            return self.defaults
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except OSError as error:
            LOGGER.warning("Unable to read levy config %s: %s", self.path, error)
            return self.defaults

        parts = text.split(",")
        config = self.defaults
        if len(parts) >= 2:
            try:
                config = replace(config, rate=validate_rate(parts[0]))
            except InvalidRangeError:
                LOGGER.warning("Ignoring stored rate %r", parts[0])
            try:
                config = replace(config, threshold=validate_threshold(int(parts[1])))
            except (ValueError, InvalidRangeError):
                LOGGER.warning("Ignoring stored threshold %r", parts[1])
        if len(parts) >= 3:
            config = replace(config, last_assessed_day=parts[2].strip())
        LOGGER.info("Loaded levy config from %s: %s", self.path, config)
        return config

    def save(self, config: TaxConfig) -> None:
        """Write the snapshot via a temporary file and an atomic replace."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = f"{config.rate:.4f},{config.threshold},{config.last_assessed_day}"
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(payload, encoding="utf-8")
        os.replace(temp_path, self.path)
        LOGGER.debug("Saved levy config to %s", self.path)

    def flush(self, store: ConfigStore) -> None:
        self.save(store.snapshot())
        store.mark_clean()

    def attach(self, store: ConfigStore) -> None:
        """Keep the file in step with every mutation of ``store``."""

        def _on_change(_: TaxConfig) -> None:
            self.flush(store)

        store.subscribe(_on_change)
