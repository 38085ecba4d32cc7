"""Mini README: Levy assessment core.

``config_store`` holds the shared rate/threshold/day configuration,
``rate_overrides`` the per-entity rates, ``engine`` computes and applies
levies and ``scheduler`` runs the daily automatic pass.
"""

from .config_store import ConfigFile, ConfigStore, ReadWriteLock, TaxConfig
from .engine import (
    AssessmentEngine,
    AssessmentResult,
    PassSummary,
    SkipReason,
    UnrecordedLevy,
    compute_levy,
)
from .rate_overrides import RateOverride, RateOverrideStore
from .scheduler import AssessmentScheduler, SchedulerState

__all__ = [
    "AssessmentEngine",
    "AssessmentResult",
    "AssessmentScheduler",
    "ConfigFile",
    "ConfigStore",
    "PassSummary",
    "RateOverride",
    "RateOverrideStore",
    "ReadWriteLock",
    "SchedulerState",
    "SkipReason",
    "TaxConfig",
    "UnrecordedLevy",
    "compute_levy",
]
