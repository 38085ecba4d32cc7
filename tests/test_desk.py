"""Mini README: Tests for desk wiring and restart durability.

Structure:
    * test_state_survives_restart - config file and ledger reload from disk.
    * test_scheduled_pass_covers_configured_groups - automatic pass population.
    * test_manual_pass_ignores_daily_marker - operators may rerun passes.
    * test_close_waits_for_running_pass - shutdown never cuts a pass short.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime

import pytest

from levytreasury.assessment import SchedulerState
from levytreasury.configuration import LevySettings
from levytreasury.desk import build_desk
from levytreasury.wallets import Member, MemoryWalletProvider, StaticMembership


class SlowDebitWallet(MemoryWalletProvider):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.first_debit = threading.Event()

    def debit(self, entity_id: int, amount: int) -> None:
        super().debit(entity_id, amount)
        self.first_debit.set()
        time.sleep(0.1)


def _settings(tmp_path, **overrides) -> LevySettings:
    return LevySettings(data_directory=tmp_path, group_ids=[10, 20], currency_name="gold", **overrides)


def test_state_survives_restart(tmp_path) -> None:
    wallet = MemoryWalletProvider(balances={1: 5000})
    membership = StaticMembership({10: [Member(1, "ann")]})
    desk = build_desk(_settings(tmp_path), wallet=wallet, membership=membership)
    desk.set_rate(0.2)
    desk.set_threshold(100)
    desk.assess_one(1, 10, actor_id=4)
    desk.close()

    reopened = build_desk(_settings(tmp_path), wallet=wallet, membership=membership)
    try:
        assert reopened.get_rate() == pytest.approx(0.2)
        assert reopened.get_threshold() == 100
        assert reopened.treasury_balance() == 1000
        assert reopened.recent_history(1)[0].display_name == "ann"
    finally:
        reopened.close()


def test_build_desk_uses_registry_wallet(tmp_path) -> None:
    desk = build_desk(_settings(tmp_path))
    try:
        assert desk.wallet.provider_name == "memory"
        assert desk.currency_name == "gold"
    finally:
        desk.close()


def test_scheduled_pass_covers_configured_groups(tmp_path) -> None:
    wallet = MemoryWalletProvider(balances={1: 5000, 2: 3000, 3: 4000})
    membership = StaticMembership({10: [Member(1, "ann"), Member(2, "bob")], 20: [Member(3, "cat")]})
    desk = build_desk(_settings(tmp_path), wallet=wallet, membership=membership)
    desk.scheduler.clock = lambda: datetime(2024, 6, 1, 12, 5)
    try:
        assert desk.scheduler.tick() is True
        assert desk.scheduler.tick() is False
        assert desk.treasury_balance() == 1200
        assert all(entry.actor_id == 0 for entry in desk.ledger_entries())
        assert (tmp_path / "config.txt").read_text(encoding="utf-8").endswith(",20240601")
    finally:
        desk.close()


def test_manual_pass_ignores_daily_marker(tmp_path) -> None:
    wallet = MemoryWalletProvider(balances={1: 10000})
    membership = StaticMembership({10: [Member(1, "ann")]})
    desk = build_desk(_settings(tmp_path), wallet=wallet, membership=membership)
    desk.config.mark_assessed_today("20240601")
    try:
        first = desk.assess_all(10, actor_id=7)
        second = desk.assess_all(10, actor_id=7)
        assert (first.total_collected, second.total_collected) == (1000, 900)
    finally:
        desk.close()


def test_personal_rate_falls_back_to_global(tmp_path) -> None:
    desk = build_desk(_settings(tmp_path))
    try:
        assert desk.get_personal_rate(1, 10).is_override is False
        desk.set_personal_rate(1, 10, 0.25)
        personal = desk.get_personal_rate(1, 10)
        assert (personal.rate, personal.is_override) == (pytest.approx(0.25), True)
    finally:
        desk.close()


def test_close_waits_for_running_pass(tmp_path) -> None:
    balances = {entity_id: 5000 for entity_id in range(1, 6)}
    wallet = SlowDebitWallet(balances=dict(balances))
    membership = StaticMembership({10: [Member(entity_id, f"m{entity_id}") for entity_id in balances]})
    settings = _settings(tmp_path, tick_interval_seconds=0.01)
    desk = build_desk(settings, wallet=wallet, membership=membership)
    desk.scheduler.clock = lambda: datetime(2024, 6, 1, 12, 5)

    desk.start()
    assert wallet.first_debit.wait(5.0)
    desk.close()

    assert desk.scheduler.state is SchedulerState.IDLE
    assert all(wallet.balance(entity_id) == 4500 for entity_id in balances)
    reopened = build_desk(settings, wallet=wallet, membership=membership)
    try:
        assert reopened.treasury_balance() == 2500
        assert reopened.config_snapshot().last_assessed_day == "20240601"
    finally:
        reopened.close()
