"""Mini README: Levy assessment engine.

Structure:
    * SkipReason - why an entity was not charged.
    * AssessmentResult - outcome of one assessment (collected or skipped).
    * PassSummary - aggregate of a bulk pass.
    * UnrecordedLevy - a debited levy whose history or ledger write failed.
    * compute_levy - ``floor(balance * rate)``.
    * AssessmentEngine - assess one entity, many entities or a whole group.

One assessment runs: read balance, compare with the threshold, resolve the
rate (override first, then global), compute the levy, debit the wallet,
then append a history entry and an income ledger entry. The wallet debit
and the two writes are not transactional. When a write fails after a
successful debit the discrepancy is logged and the missing record is kept
in an outbox that ``retry_unrecorded`` drains later; the debit itself is
never rolled back.
"""

from __future__ import annotations

import math
import threading
import time
import weakref
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..exceptions import BackendFailure
from ..finance import SYSTEM_ACTOR, HistoryEntry, HistoryStore, Ledger, LedgerEntry, OperationKind
from ..logging_utils import get_logger
from ..wallets import MembershipSource, WalletGateway
from .config_store import ConfigStore
from .rate_overrides import RateOverrideStore

LOGGER = get_logger(__name__)

EntitySpec = Tuple[int, int, str]


class SkipReason(str, Enum):
    """Reasons an assessment ends without a levy."""

    NO_BALANCE = "no balance"
    BELOW_THRESHOLD = "below threshold"
    COMPUTED_ZERO = "computed zero"
    DEBIT_FAILED = "debit failed"
    BALANCE_UNAVAILABLE = "balance unavailable"
    RATE_UNAVAILABLE = "rate unavailable"
    ASSESSMENT_ERROR = "assessment error"


@dataclass(slots=True)
class AssessmentResult:
    """Outcome of ``AssessmentEngine.assess_one``."""

    entity_id: int
    group_id: int
    display_name: str
    amount: int = 0
    reason: Optional[SkipReason] = None
    balance: int = 0
    rate: float = 0.0
    threshold: int = 0
    recorded: bool = True
    detail: str = ""

    @property
    def collected(self) -> bool:
        return self.reason is None and self.amount > 0

    def describe(self, currency_name: str = "coins") -> str:
        """Human readable summary for the command layer."""

        name = self.display_name
        if self.collected:
            text = f"Collected {self.amount} {currency_name} from {name}"
            return text if self.recorded else text + " (records pending)"
        if self.reason is SkipReason.NO_BALANCE:
            return f"{name} holds no {currency_name}; nothing to collect"
        if self.reason is SkipReason.BELOW_THRESHOLD:
            return (
                f"{name} holds {self.balance} {currency_name}, below the threshold of "
                f"{self.threshold}; nothing to collect"
            )
        if self.reason is SkipReason.COMPUTED_ZERO:
            return f"{name} owes nothing at a rate of {self.rate * 100:.2f}%"
        return f"Could not collect from {name}: {self.reason.value if self.reason else 'unknown'} {self.detail}".rstrip()

    def as_dict(self) -> Dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "group_id": self.group_id,
            "display_name": self.display_name,
            "status": "collected" if self.collected else "skipped",
            "amount": self.amount,
            "reason": self.reason.value if self.reason else None,
            "balance": self.balance,
            "rate": self.rate,
            "recorded": self.recorded,
        }


@dataclass(slots=True)
class PassSummary:
    """Totals of a bulk pass; only collected outcomes are counted."""

    count: int = 0
    total_collected: int = 0
    results: List[AssessmentResult] = field(default_factory=list)

    def add(self, result: AssessmentResult) -> None:
        self.results.append(result)
        if result.collected:
            self.count += 1
            self.total_collected += result.amount

    def as_dict(self) -> Dict[str, object]:
        return {
            "count": self.count,
            "total_collected": self.total_collected,
            "results": [result.as_dict() for result in self.results],
        }


@dataclass(slots=True)
class UnrecordedLevy:
    """Records still owed for a levy whose debit already succeeded."""

    history: Optional[HistoryEntry]
    ledger: Optional[LedgerEntry]


def compute_levy(balance: int, rate: float) -> int:
    """Return ``floor(balance * rate)`` capped at ``balance``.

    Balances above 2**53 lose precision as floats and can round up.
    """

    return min(balance, int(math.floor(float(balance) * rate)))


class AssessmentEngine:
    """Compute and apply levies against wallet balances."""

    def __init__(
        self,
        config: ConfigStore,
        overrides: RateOverrideStore,
        wallet: WalletGateway,
        history: HistoryStore,
        ledger: Ledger,
        *,
        membership: Optional[MembershipSource] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.overrides = overrides
        self.wallet = wallet
        self.history = history
        self.ledger = ledger
        self.membership = membership
        self._clock = clock
        self._entity_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
        self._entity_locks_guard = threading.Lock()
        self._unrecorded: List[UnrecordedLevy] = []
        self._unrecorded_lock = threading.Lock()

    def _entity_lock(self, entity_id: int) -> threading.Lock:
        """Lock shared by every assessment of ``entity_id``, whatever the group."""

        with self._entity_locks_guard:
            lock = self._entity_locks.get(entity_id)
            if lock is None:
                lock = threading.Lock()
                self._entity_locks[entity_id] = lock
            return lock

    @property
    def unrecorded(self) -> List[UnrecordedLevy]:
        with self._unrecorded_lock:
            return list(self._unrecorded)

    def assess_one(
        self,
        entity_id: int,
        group_id: int,
        display_name: str = "",
        *,
        actor_id: int = SYSTEM_ACTOR,
    ) -> AssessmentResult:
        """Assess and collect the levy for one entity."""

        result = AssessmentResult(entity_id=entity_id, group_id=group_id, display_name=display_name or str(entity_id))
        lock = self._entity_lock(entity_id)
        with lock:
            try:
                balance = int(self.wallet.balance(entity_id))
            except BackendFailure as error:
                LOGGER.warning("Balance lookup failed for entity %s: %s", entity_id, error)
                result.reason, result.detail = SkipReason.BALANCE_UNAVAILABLE, str(error)
                return result
            result.balance = balance
            if balance <= 0:
                result.reason = SkipReason.NO_BALANCE
                return result

            snapshot = self.config.snapshot()
            result.threshold = snapshot.threshold
            if balance < snapshot.threshold:
                result.reason = SkipReason.BELOW_THRESHOLD
                return result

            try:
                rate, _ = self.overrides.effective_rate(entity_id, group_id, snapshot.rate)
            except BackendFailure as error:
                LOGGER.warning("Rate lookup failed for entity %s: %s", entity_id, error)
                result.reason, result.detail = SkipReason.RATE_UNAVAILABLE, str(error)
                return result
            result.rate = rate

            amount = compute_levy(balance, rate)
            if amount <= 0:
                result.reason = SkipReason.COMPUTED_ZERO
                return result

            try:
                self.wallet.debit(entity_id, amount)
            except BackendFailure as error:
                LOGGER.warning("Debit of %s from entity %s failed: %s", amount, entity_id, error)
                result.reason, result.detail = SkipReason.DEBIT_FAILED, str(error)
                return result
            result.amount = amount
            result.recorded = self._record(result, actor_id)

        LOGGER.info(
            "Collected levy of %s from entity %s in group %s (balance=%s rate=%.4f actor=%s)",
            amount,
            entity_id,
            group_id,
            balance,
            rate,
            actor_id,
        )
        return result

    def _record(self, result: AssessmentResult, actor_id: int) -> bool:
        now = int(self._clock())
        prefix = "Levy" if actor_id == SYSTEM_ACTOR else "Manual levy"
        history_entry = HistoryEntry(
            entity_id=result.entity_id,
            group_id=result.group_id,
            amount=result.amount,
            timestamp=now,
            display_name=result.display_name,
        )
        ledger_entry = LedgerEntry(
            amount=result.amount,
            operation_kind=OperationKind.INCOME,
            actor_id=actor_id,
            timestamp=now,
            description=f"{prefix} collected from {result.display_name}({result.entity_id})",
        )
        pending = UnrecordedLevy(history=None, ledger=None)
        try:
            self.history.append(history_entry)
        except BackendFailure as error:
            LOGGER.warning("History write failed for entity %s: %s", result.entity_id, error)
            pending.history = history_entry
        try:
            self.ledger.append(ledger_entry)
        except BackendFailure as error:
            LOGGER.warning("Ledger write failed for entity %s: %s", result.entity_id, error)
            pending.ledger = ledger_entry
        if pending.history is None and pending.ledger is None:
            return True
        LOGGER.warning(
            "Levy of %s debited from entity %s but not fully recorded (history=%s ledger=%s); queued for retry",
            result.amount,
            result.entity_id,
            pending.history is None,
            pending.ledger is None,
        )
        with self._unrecorded_lock:
            self._unrecorded.append(pending)
        return False

    def retry_unrecorded(self) -> int:
        """Re-attempt queued writes; return how many levies are now fully recorded."""

        with self._unrecorded_lock:
            queued, self._unrecorded = self._unrecorded, []
        completed = 0
        still_pending: List[UnrecordedLevy] = []
        for item in queued:
            if item.history is not None:
                try:
                    self.history.append(item.history)
                    item.history = None
                except BackendFailure as error:
                    LOGGER.warning("History retry failed: %s", error)
            if item.ledger is not None:
                try:
                    self.ledger.append(item.ledger)
                    item.ledger = None
                except BackendFailure as error:
                    LOGGER.warning("Ledger retry failed: %s", error)
            if item.history is None and item.ledger is None:
                completed += 1
            else:
                still_pending.append(item)
        if still_pending:
            with self._unrecorded_lock:
                self._unrecorded[:0] = still_pending
        if completed:
            LOGGER.info("Recorded %s previously unrecorded levies", completed)
        return completed

    def _assess_guarded(self, entity: EntitySpec, actor_id: int) -> AssessmentResult:
        entity_id, group_id, display_name = entity
        try:
            return self.assess_one(entity_id, group_id, display_name, actor_id=actor_id)
        except Exception as error:  # noqa: BLE001
            LOGGER.exception("Assessment of entity %s in group %s failed", entity_id, group_id)
            return AssessmentResult(
                entity_id=entity_id,
                group_id=group_id,
                display_name=display_name or str(entity_id),
                reason=SkipReason.ASSESSMENT_ERROR,
                detail=str(error),
            )

    def assess_many(
        self,
        entities: Iterable[EntitySpec],
        *,
        actor_id: int = SYSTEM_ACTOR,
        max_workers: int = 1,
    ) -> PassSummary:
        """Assess ``(entity_id, group_id, display_name)`` triples in input order."""

        queue: Sequence[EntitySpec] = list(entities)
        summary = PassSummary()
        if max_workers > 1 and len(queue) > 1:
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="levy-pass") as pool:
                for result in pool.map(lambda entity: self._assess_guarded(entity, actor_id), queue):
                    summary.add(result)
        else:
            for entity in queue:
                summary.add(self._assess_guarded(entity, actor_id))
        LOGGER.info(
            "Levy pass finished: %s of %s entities charged, %s collected (actor=%s)",
            summary.count,
            len(queue),
            summary.total_collected,
            actor_id,
        )
        return summary

    def assess_group(
        self,
        group_id: int,
        *,
        actor_id: int = SYSTEM_ACTOR,
        max_workers: int = 1,
    ) -> PassSummary:
        """Assess every member of ``group_id`` listed by the membership source."""

        if self.membership is None:
            raise RuntimeError("AssessmentEngine has no membership source configured")
        members = self.membership.list_entities(group_id)
        queue = [(member.entity_id, group_id, member.display_name) for member in members if member.entity_id != 0]
        LOGGER.info("Assessing %s members of group %s", len(queue), group_id)
        return self.assess_many(queue, actor_id=actor_id, max_workers=max_workers)
