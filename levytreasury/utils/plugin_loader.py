"""Mini README: Entry point loading for optional wallet backends.

Structure:
    * load_entry_point_plugins - import every object published in a group.

A distribution adds a wallet backend by declaring, for example,
``[project.entry-points."levytreasury.wallets"] redis = "pkg.mod:RedisWallet"``.
Import errors in one backend are logged and do not stop the others.
"""

from __future__ import annotations

from importlib.metadata import entry_points
from typing import List

from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


def load_entry_point_plugins(group: str) -> List[object]:
    """Import the objects published under ``group``; broken ones are skipped."""

    loaded = []
    for entry_point in entry_points(group=group):
        try:
            loaded.append(entry_point.load())
        except Exception:  # noqa: BLE001
            LOGGER.exception("Could not import %s from entry point %s", entry_point.value, entry_point.name)
            continue
        LOGGER.info("Imported %s backend from %s", entry_point.name, entry_point.value)
    return loaded
