"""
Main Orchestrator for balancebook

Ties the record store to the engine. Every public method takes one
snapshot from the store (or uses the snapshot it is given) and computes
over that snapshot only, so a caller never sees results mixing two
versions of the records.

Flow:
1. Records → store (validated, aliases resolved, audited)
2. Store → snapshot
3. Snapshot → balances, running balances, net worth, kind groups
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from balancebook.audit import AuditLogger, configure_logging, create_correlation_id
from balancebook.config import EngineSettings, get_settings
from balancebook.engine import (
    ZERO,
    all_running_balances,
    current_balance,
    current_balances,
    final_balances,
    group_by_kind,
    referenced_accounts,
    running_balances,
    summarize,
)
from balancebook.models.account import Account
from balancebook.models.balance import (
    KindGroup,
    LedgerBalances,
    LedgerReport,
    NetWorthSummary,
    RunningBalances,
)
from balancebook.queries import LedgerQueries
from balancebook.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
    LedgerSnapshot,
    RecordStoreInterface,
    RunningBalanceCache,
)
from balancebook.validation import RecordValidator


logger = structlog.get_logger(__name__)


class LedgerEngine:
    """
    Computes every balance view over record store snapshots.

    Holds no computed state of its own; the optional cache lives on the
    store side and is only consulted for single-account running balances
    when no explicit snapshot is passed.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        cache: Optional[RunningBalanceCache] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger
        self._cache = cache

    @property
    def epsilon(self) -> Decimal:
        return self._settings.zero_epsilon

    def snapshot(self) -> LedgerSnapshot:
        """Take a fresh snapshot from the store."""
        return self._store.snapshot()

    def _resolve(self, snapshot: Optional[LedgerSnapshot]) -> LedgerSnapshot:
        return snapshot if snapshot is not None else self.snapshot()

    def current_balance(
        self,
        account_name: str,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> Decimal:
        """
        Current balance of one account.

        An account the store doesn't know starts from zero; an empty name
        has no balance.
        """
        if not account_name:
            return ZERO
        snapshot = self._resolve(snapshot)
        account = snapshot.account(account_name) or Account(name=account_name)
        return current_balance(account, snapshot.transactions, self.epsilon)

    def current_balances(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> dict[str, Decimal]:
        """Current balance of every known or referenced account."""
        snapshot = self._resolve(snapshot)
        return current_balances(
            snapshot.accounts,
            snapshot.transactions,
            self.epsilon,
            extra_names=referenced_accounts(snapshot.transactions),
        )

    def running_balances(
        self,
        account_name: str,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> RunningBalances:
        """Before/after per transaction for one account, oldest first."""
        if snapshot is None and self._cache is not None:
            return self._cache.get(account_name)

        snapshot = self._resolve(snapshot)
        account = snapshot.account(account_name)
        opening = account.opening_balance if account else Decimal("0")
        return running_balances(account_name, opening, snapshot.transactions, self.epsilon)

    def all_running_balances(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> LedgerBalances:
        """Before/after per transaction for every known account, in one pass."""
        snapshot = self._resolve(snapshot)
        return all_running_balances(
            snapshot.opening_balances,
            snapshot.transactions,
            self.epsilon,
        )

    def summarize(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> NetWorthSummary:
        snapshot = self._resolve(snapshot)
        return summarize(snapshot.accounts, snapshot.transactions, self.epsilon)

    def group_by_kind(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
    ) -> list[KindGroup]:
        snapshot = self._resolve(snapshot)
        return group_by_kind(
            snapshot.accounts,
            snapshot.transactions,
            kind_order=self._settings.kind_order_list,
            epsilon=self.epsilon,
        )

    def queries(self, snapshot: Optional[LedgerSnapshot] = None) -> LedgerQueries:
        return LedgerQueries(self._resolve(snapshot))

    def compute(self, correlation_id: Optional[UUID] = None) -> LedgerReport:
        """
        Compute every view over a single snapshot.

        When ``verify_replay`` is enabled, each tracked account's final
        replayed balance is compared with its aggregated balance; accounts
        that disagree are reported on the result and audited.
        """
        correlation_id = correlation_id or create_correlation_id()
        snapshot = self.snapshot()

        balances = self.current_balances(snapshot)
        ledger = self.all_running_balances(snapshot)

        mismatched = []
        if self._settings.verify_replay:
            replayed = final_balances(snapshot.opening_balances, ledger, self.epsilon)
            mismatched = sorted(
                name for name, balance in replayed.items()
                if balance != balances.get(name)
            )
            if mismatched:
                logger.warning("replay_mismatch", accounts=mismatched)

        report = LedgerReport(
            balances=balances,
            running_balances=ledger,
            summary=self.summarize(snapshot),
            groups=self.group_by_kind(snapshot),
            mismatched_accounts=mismatched,
        )

        if self._audit_logger is not None:
            self._audit_logger.log_balances_recomputed(
                account_count=len(snapshot.accounts),
                transaction_count=len(snapshot.transactions),
                correlation_id=correlation_id,
                mismatched=mismatched,
            )

        return report


def create_engine_components(
    use_audit_storage: bool = True,
    use_cache: bool = True,
    settings: Optional[EngineSettings] = None,
) -> tuple[InMemoryRecordStore, LedgerEngine, AuditLogger]:
    """
    Factory function to create all components.

    Args:
        use_audit_storage: Keep audit events in memory in addition to logging them.
        use_cache: Attach a running balance cache to the store.
        settings: Engine settings; loaded from the environment if None.

    Returns:
        (record_store, engine, audit_logger)
    """
    configure_logging()
    settings = settings or get_settings().engine

    audit_logger = AuditLogger(InMemoryAuditStorage() if use_audit_storage else None)

    store = InMemoryRecordStore(
        validator=RecordValidator(),
        audit_logger=audit_logger,
        reject_invalid=settings.reject_invalid_records,
    )

    cache = None
    if use_cache:
        cache = RunningBalanceCache(
            store,
            epsilon=settings.zero_epsilon,
            audit_logger=audit_logger,
        )

    engine = LedgerEngine(
        store,
        settings=settings,
        audit_logger=audit_logger,
        cache=cache,
    )

    return store, engine, audit_logger
