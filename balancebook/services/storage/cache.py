"""
Running Balance Cache

Write-through cache of per-account running balances, kept next to the
record store. When a record changes, the accounts it touched (before and
after the change) are invalidated; those that were cached are recomputed
straight away from the store's current records.

The cache is never required for correctness: ``get`` always returns what a
fresh ``running_balances`` call over the store's records would return.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from balancebook.engine.normalize import ZERO, ZERO_EPSILON
from balancebook.engine.replay import running_balances
from balancebook.models.account import Account
from balancebook.models.balance import RunningBalances
from balancebook.models.transaction import Transaction
from balancebook.services.storage.interface import RecordChangeListener
from balancebook.services.storage.memory import InMemoryRecordStore

if TYPE_CHECKING:
    from balancebook.audit import AuditLogger


def _touched_accounts(txn: Optional[Transaction]) -> set[str]:
    if txn is None:
        return set()
    return {
        name
        for name in (txn.source_account, txn.destination_account, txn.refund_target)
        if name
    }


class RunningBalanceCache(RecordChangeListener):
    """
    Per-account running balances, invalidated by record changes.

    Registers itself as a listener on the store it is given.
    """

    def __init__(
        self,
        store: InMemoryRecordStore,
        epsilon: Decimal = ZERO_EPSILON,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._store = store
        self._epsilon = epsilon
        self._audit = audit_logger
        self._entries: dict[str, RunningBalances] = {}
        store.add_listener(self)

    @property
    def cached_accounts(self) -> list[str]:
        return sorted(self._entries)

    def _compute(self, account_name: str) -> RunningBalances:
        account = self._store.get_account(account_name)
        opening = account.opening_balance if account else ZERO
        return running_balances(
            account_name,
            opening,
            self._store.list_transactions(),
            self._epsilon,
        )

    def get(self, account_name: str) -> RunningBalances:
        """Running balances for one account, computed on first use."""
        if account_name not in self._entries:
            self._entries[account_name] = self._compute(account_name)
        return dict(self._entries[account_name])

    def invalidate(self, accounts: Iterable[str], reason: str) -> None:
        """
        Drop the given accounts and recompute those that were cached.
        """
        stale = [name for name in set(accounts) if name in self._entries]
        if not stale:
            return

        for name in stale:
            self._entries[name] = self._compute(name)

        if self._audit is not None:
            self._audit.log_cache_invalidated(stale, reason)

    def clear(self) -> None:
        self._entries.clear()

    # Store notifications

    def on_account_changed(self, old: Optional[Account], new: Optional[Account]) -> None:
        name = (new or old).name
        if new is None:
            # Next get() replays it from an implicit zero opening balance
            self._entries.pop(name, None)
            return
        self.invalidate([name], reason="account_changed")

    def on_transaction_changed(
        self,
        old: Optional[Transaction],
        new: Optional[Transaction],
    ) -> None:
        self.invalidate(
            _touched_accounts(old) | _touched_accounts(new),
            reason="transaction_changed",
        )

    def on_reset(self) -> None:
        self.clear()
