"""Mini README: Core package initializer for the levy treasury.

The package assesses a proportional levy against wallet balances, keeps
an immutable history of every levy and derives the treasury balance from
an append-only income/expense ledger. Sub-packages:

    * assessment - shared config, rate overrides, engine and scheduler.
    * finance - history and ledger stores.
    * storage - generic row store.
    * wallets - wallet gateway, providers and membership sources.
    * interface - FastAPI operator surface.
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]
