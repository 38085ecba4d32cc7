"""Mini README: Tests covering levy assessment.

Structure:
    * worked examples - collected amounts and every skip path.
    * compute_levy - flooring behaviour.
    * failure handling - failed debits write nothing; failed writes are queued.
    * bulk passes - ordering, partial failure, per-entity serialisation, groups.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Dict, Optional

import pytest

from levytreasury.assessment import (
    AssessmentEngine,
    ConfigStore,
    RateOverrideStore,
    SkipReason,
    TaxConfig,
    compute_levy,
)
from levytreasury.exceptions import BackendFailure
from levytreasury.finance import HistoryStore, Ledger, LedgerEntry, OperationKind
from levytreasury.storage import SqliteRowStore
from levytreasury.wallets import Member, MemoryWalletProvider, StaticMembership


class FailingDebitWallet(MemoryWalletProvider):
    def debit(self, entity_id: int, amount: int) -> None:
        raise BackendFailure("wallet", "backend offline")


class ExplodingBalanceWallet(MemoryWalletProvider):
    """Raises an unexpected error for a single entity."""

    def balance(self, entity_id: int) -> int:
        if entity_id == 2:
            raise RuntimeError("corrupt wallet row")
        return super().balance(entity_id)


class SlowWallet(MemoryWalletProvider):
    """Widens the gap between the balance read and the debit."""

    def balance(self, entity_id: int) -> int:
        value = super().balance(entity_id)
        time.sleep(0.05)
        return value


class FlakyLedger(Ledger):
    def __init__(self, store: SqliteRowStore) -> None:
        super().__init__(store)
        self.failing = True

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        if self.failing:
            raise BackendFailure("sqlite", "disk I/O error")
        return super().append(entry)


def _build_engine(
    balances: Dict[int, int],
    *,
    config: Optional[TaxConfig] = None,
    wallet_cls: type = MemoryWalletProvider,
    ledger_cls: type = Ledger,
    membership: Optional[StaticMembership] = None,
) -> AssessmentEngine:
    store = SqliteRowStore()
    return AssessmentEngine(
        ConfigStore(config or TaxConfig(rate=0.10, threshold=1000)),
        RateOverrideStore(store),
        wallet_cls(balances=balances),
        HistoryStore(store),
        ledger_cls(store),
        membership=membership,
        clock=lambda: 1_700_000_000.0,
    )


def test_collects_floor_of_balance_times_rate() -> None:
    engine = _build_engine({1: 5000})

    result = engine.assess_one(1, 10, "ann")

    assert result.collected
    assert result.amount == 500
    assert engine.wallet.balance(1) == 4500
    assert engine.ledger.treasury_balance() == 500
    history = engine.history.recent(1)
    assert [(entry.amount, entry.timestamp, entry.display_name) for entry in history] == [
        (500, 1_700_000_000, "ann")
    ]
    entry = engine.ledger.entries()[0]
    assert entry.operation_kind is OperationKind.INCOME
    assert entry.actor_id == 0


@pytest.mark.parametrize(
    "balance, config, reason",
    [
        (0, TaxConfig(rate=0.1, threshold=0), SkipReason.NO_BALANCE),
        (500, TaxConfig(rate=0.1, threshold=1000), SkipReason.BELOW_THRESHOLD),
        (1200, TaxConfig(rate=0.0, threshold=1000), SkipReason.COMPUTED_ZERO),
        (9, TaxConfig(rate=0.1, threshold=0), SkipReason.COMPUTED_ZERO),
    ],
)
def test_skips_without_side_effects(balance: int, config: TaxConfig, reason: SkipReason) -> None:
    engine = _build_engine({1: balance}, config=config)

    result = engine.assess_one(1, 10, "ann")

    assert not result.collected
    assert result.reason is reason
    assert engine.wallet.balance(1) == balance
    assert engine.history.recent(1) == []
    assert engine.ledger.treasury_balance() == 0


def test_balance_equal_to_threshold_is_levied() -> None:
    engine = _build_engine({1: 1000})

    assert engine.assess_one(1, 10).amount == 100


def test_rate_override_takes_precedence() -> None:
    engine = _build_engine({1: 5000, 2: 5000})
    engine.overrides.upsert(1, 10, 0.5)

    assert engine.assess_one(1, 10).amount == 2500
    assert engine.assess_one(2, 10).amount == 500


@pytest.mark.parametrize(
    "balance, rate, expected",
    [(5000, 0.10, 500), (999, 0.15, 149), (1001, 0.10, 100), (7, 1.0, 7), (123456, 0.0, 0)],
)
def test_compute_levy_floors(balance: int, rate: float, expected: int) -> None:
    amount = compute_levy(balance, rate)

    assert amount == expected
    assert amount == math.floor(balance * rate)
    assert 0 <= amount <= balance


def test_compute_levy_never_exceeds_large_balance() -> None:
    balance = 2**53 + 3

    assert compute_levy(balance, 1.0) == balance
    assert compute_levy(balance, 0.5) <= balance // 2 + 1


def test_failed_debit_writes_no_records() -> None:
    engine = _build_engine({1: 5000}, wallet_cls=FailingDebitWallet)

    result = engine.assess_one(1, 10, "ann")

    assert result.reason is SkipReason.DEBIT_FAILED
    assert engine.wallet.balance(1) == 5000
    assert engine.history.recent(1) == []
    assert engine.ledger.treasury_balance() == 0


def test_failed_ledger_write_keeps_debit_and_is_retried() -> None:
    engine = _build_engine({1: 5000}, ledger_cls=FlakyLedger)

    result = engine.assess_one(1, 10, "ann")

    assert result.collected
    assert result.recorded is False
    assert engine.wallet.balance(1) == 4500
    assert len(engine.history.recent(1)) == 1
    assert len(engine.unrecorded) == 1
    assert engine.retry_unrecorded() == 0

    engine.ledger.failing = False
    assert engine.retry_unrecorded() == 1
    assert engine.unrecorded == []
    assert engine.ledger.treasury_balance() == 500
    assert len(engine.history.recent(1)) == 1


def test_manual_assessment_records_operator() -> None:
    engine = _build_engine({1: 5000})

    engine.assess_one(1, 10, "ann", actor_id=77)

    entry = engine.ledger.entries()[0]
    assert entry.actor_id == 77
    assert entry.description.startswith("Manual levy")


def test_assess_many_continues_past_failures() -> None:
    engine = _build_engine({1: 5000, 2: 5000, 3: 200, 4: 3000}, wallet_cls=ExplodingBalanceWallet)

    summary = engine.assess_many([(1, 10, "a"), (2, 10, "b"), (3, 10, "c"), (4, 10, "d")], actor_id=5)

    assert (summary.count, summary.total_collected) == (2, 800)
    assert [result.entity_id for result in summary.results] == [1, 2, 3, 4]
    assert summary.results[1].reason is SkipReason.ASSESSMENT_ERROR
    assert summary.results[2].reason is SkipReason.BELOW_THRESHOLD
    assert engine.ledger.treasury_balance() == 800


def test_parallel_pass_serialises_each_entity() -> None:
    engine = _build_engine({1: 10000}, config=TaxConfig(rate=0.1, threshold=0))

    summary = engine.assess_many([(1, 10, "a"), (1, 10, "a")], max_workers=4)

    assert sorted(result.amount for result in summary.results) == [900, 1000]
    assert summary.total_collected == 1900
    assert engine.wallet.balance(1) == 8100


def test_same_entity_in_two_groups_is_charged_sequentially() -> None:
    engine = _build_engine({1: 5000}, config=TaxConfig(rate=0.1, threshold=0), wallet_cls=SlowWallet)
    amounts = []

    def assess(group_id: int) -> None:
        amounts.append(engine.assess_one(1, group_id).amount)

    threads = [threading.Thread(target=assess, args=(group_id,)) for group_id in (10, 20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(amounts) == [450, 500]
    assert engine.wallet.balance(1) == 4050
    assert engine.ledger.treasury_balance() == 950


def test_assess_group_uses_membership_and_ignores_entity_zero() -> None:
    membership = StaticMembership({10: [Member(1, "ann"), Member(0, "system"), Member(2, "bob")]})
    engine = _build_engine({0: 9000, 1: 5000, 2: 2000}, membership=membership)

    summary = engine.assess_group(10, actor_id=3)

    assert (summary.count, summary.total_collected) == (2, 700)
    assert engine.wallet.balance(0) == 9000
    assert [row.entity_id for row in engine.history.top_by_total(10)] == [1, 2]


def test_describe_reports_outcome() -> None:
    engine = _build_engine({1: 5000, 2: 10})

    assert engine.assess_one(1, 10, "ann").describe("gold") == "Collected 500 gold from ann"
    assert "below the threshold of 1000" in engine.assess_one(2, 10, "bob").describe("gold")
