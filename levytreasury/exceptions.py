"""Mini README: Typed exceptions raised by the levy core.

Structure:
    * LevyError - base class carrying a machine-readable ``code``.
    * InvalidRangeError - rejected configuration or record values.
    * BackendFailure - wallet or row store call failed.
    * InsufficientFundsError - wallet refused a debit.

Callers catch by type and read ``code`` for API responses instead of
matching message text. A missing rate override is not an error: the
override store reports it through its ``found`` flag.
"""

from __future__ import annotations

from typing import Any, Optional


class LevyError(Exception):
    """Base class for every error raised by the levy treasury."""

    code: str = "LEVY_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRangeError(LevyError, ValueError):
    """A value fell outside its allowed range; no state was changed."""

    code = "INVALID_RANGE"

    def __init__(self, field: str, value: Any, allowed: str) -> None:
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"{field} must be {allowed}, got {value!r}")


class BackendFailure(LevyError):
    """A wallet or storage backend call failed."""

    code = "BACKEND_FAILURE"

    def __init__(self, backend: str, message: str, *, cause: Optional[BaseException] = None) -> None:
        self.backend = backend
        self.cause = cause
        super().__init__(f"[{backend}] {message}")


class InsufficientFundsError(BackendFailure):
    """The wallet holds less than the requested debit."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, entity_id: int, balance: int, requested: int) -> None:
        self.entity_id = entity_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            "wallet",
            f"entity {entity_id} holds {balance}, cannot debit {requested}",
        )
