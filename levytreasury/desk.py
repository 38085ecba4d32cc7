"""Mini README: Wiring and operator operations for the levy treasury.

Structure:
    * PersonalRate - effective rate of one entity and whether it is custom.
    * TreasuryDesk - holds the components and exposes every operation the
      command layers (HTTP, CLI, chat front-ends) call.
    * build_desk - factory assembling a desk from ``LevySettings``.

Usage:
    ``desk = build_desk(get_settings())`` opens the SQLite store, loads the
    persisted levy config, wires the wallet provider from the registry and
    prepares (without starting) the daily scheduler. Tests build a
    ``TreasuryDesk`` directly around an in-memory store and wallet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .assessment import (
    AssessmentEngine,
    AssessmentResult,
    AssessmentScheduler,
    ConfigFile,
    ConfigStore,
    PassSummary,
    RateOverride,
    RateOverrideStore,
    TaxConfig,
)
from .configuration import LevySettings
from .finance import SYSTEM_ACTOR, HistoryEntry, HistoryStore, Ledger, LedgerEntry, OperationKind, RankingRow
from .logging_utils import get_logger
from .storage import RowStore, SqliteRowStore, SqlRowStore
from .wallets import REGISTRY, MembershipSource, StaticMembership, WalletGateway

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PersonalRate:
    entity_id: int
    group_id: int
    rate: float
    is_override: bool

    def as_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "group_id": self.group_id,
            "rate": self.rate,
            "rate_percent": round(self.rate * 100, 2),
            "is_override": self.is_override,
        }


class TreasuryDesk:
    """Facade over the levy core used by every command surface."""

    def __init__(
        self,
        store: RowStore,
        wallet: WalletGateway,
        *,
        config: Optional[ConfigStore] = None,
        config_file: Optional[ConfigFile] = None,
        membership: Optional[MembershipSource] = None,
        group_ids: Optional[List[int]] = None,
        assess_hour: int = 12,
        tick_interval_seconds: float = 60.0,
        history_limit: int = 10,
        ranking_limit: int = 10,
    ) -> None:
        self.store = store
        self.wallet = wallet
        self.config_file = config_file
        if config is None:
            config = ConfigStore(config_file.load() if config_file else None)
        self.config = config
        if config_file is not None:
            config_file.attach(config)
        self.membership = membership or StaticMembership()
        self.group_ids = list(group_ids or [])
        self.history_limit = history_limit
        self.ranking_limit = ranking_limit

        self.overrides = RateOverrideStore(store)
        self.history = HistoryStore(store)
        self.ledger = Ledger(store)
        self.engine = AssessmentEngine(
            config,
            self.overrides,
            wallet,
            self.history,
            self.ledger,
            membership=self.membership,
        )
        self.scheduler = AssessmentScheduler(
            config,
            self.run_scheduled_pass,
            assess_hour=assess_hour,
            interval_seconds=tick_interval_seconds,
            persist=self.persist_config,
            on_tick=self.engine.retry_unrecorded,
        )

    @property
    def currency_name(self) -> str:
        return self.wallet.currency_name

    # Configuration -----------------------------------------------------

    def config_snapshot(self) -> TaxConfig:
        return self.config.snapshot()

    def get_rate(self) -> float:
        return self.config.rate

    def set_rate(self, rate: float) -> TaxConfig:
        return self.config.set_rate(rate)

    def get_threshold(self) -> int:
        return self.config.threshold

    def set_threshold(self, threshold: int) -> TaxConfig:
        return self.config.set_threshold(threshold)

    def persist_config(self) -> None:
        if self.config_file is not None:
            self.config_file.flush(self.config)

    def get_personal_rate(self, entity_id: int, group_id: int) -> PersonalRate:
        rate, is_override = self.overrides.effective_rate(entity_id, group_id, self.config.rate)
        return PersonalRate(entity_id=entity_id, group_id=group_id, rate=rate, is_override=is_override)

    def set_personal_rate(self, entity_id: int, group_id: int, rate: float) -> RateOverride:
        return self.overrides.upsert(entity_id, group_id, rate)

    # Assessment --------------------------------------------------------

    def assess_one(
        self,
        entity_id: int,
        group_id: int,
        display_name: str = "",
        *,
        actor_id: int = SYSTEM_ACTOR,
    ) -> AssessmentResult:
        if not display_name and isinstance(self.membership, StaticMembership):
            display_name = self.membership.display_name(group_id, entity_id)
        return self.engine.assess_one(entity_id, group_id, display_name, actor_id=actor_id)

    def assess_all(self, group_id: int, *, actor_id: int = SYSTEM_ACTOR) -> PassSummary:
        """Manual bulk pass over one group; bypasses the daily marker."""

        return self.engine.assess_group(group_id, actor_id=actor_id)

    def run_scheduled_pass(self) -> PassSummary:
        """Assess every configured group as the system actor."""

        combined = PassSummary()
        for group_id in self.group_ids:
            try:
                summary = self.engine.assess_group(group_id, actor_id=SYSTEM_ACTOR)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Automatic pass skipped group %s", group_id)
                continue
            for result in summary.results:
                combined.add(result)
        LOGGER.info(
            "Automatic pass over %s groups collected %s from %s entities",
            len(self.group_ids),
            combined.total_collected,
            combined.count,
        )
        return combined

    # Records -----------------------------------------------------------

    def recent_history(self, entity_id: int, limit: Optional[int] = None) -> List[HistoryEntry]:
        return self.history.recent(entity_id, limit or self.history_limit)

    def top_rankings(self, group_id: int, limit: Optional[int] = None) -> List[RankingRow]:
        return self.history.top_by_total(group_id, limit or self.ranking_limit)

    def treasury_balance(self) -> int:
        return self.ledger.treasury_balance()

    def ledger_entries(self, limit: Optional[int] = None) -> List[LedgerEntry]:
        return self.ledger.entries(limit)

    def record_treasury_operation(
        self,
        kind: OperationKind | str,
        amount: int,
        *,
        actor_id: int,
        description: str = "",
    ) -> LedgerEntry:
        return self.ledger.record(kind, amount, actor_id=actor_id, description=description)

    # Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        self.scheduler.start()

    def close(self) -> None:
        """Stop the scheduler, letting a running pass finish, then release the store."""

        self.scheduler.stop()
        self.store.close()


def build_desk(
    settings: LevySettings,
    *,
    wallet: Optional[WalletGateway] = None,
    membership: Optional[MembershipSource] = None,
) -> TreasuryDesk:
    """Assemble a desk from runtime settings."""

    if wallet is None:
        REGISTRY.discover_plugins()
        wallet = REGISTRY.create(
            settings.wallet_provider,
            connection_string=settings.wallet_connection,
            currency_name=settings.currency_name,
        )
    config_file = ConfigFile(
        settings.config_path,
        default_rate=settings.default_rate,
        default_threshold=settings.default_threshold,
    )
    if settings.database_url:
        store: RowStore = SqlRowStore(settings.database_url, pool_pre_ping=True)
    else:
        store = SqliteRowStore(settings.database_path)
    desk = TreasuryDesk(
        store,
        wallet,
        config_file=config_file,
        membership=membership,
        group_ids=settings.group_ids,
        assess_hour=settings.assess_hour,
        tick_interval_seconds=settings.tick_interval_seconds,
        history_limit=settings.history_limit,
        ranking_limit=settings.ranking_limit,
    )
    LOGGER.info(
        "Treasury desk ready (db=%s wallet=%s groups=%s)",
        settings.database_url or settings.database_path,
        wallet.provider_name,
        settings.group_ids,
    )
    return desk
