"""
Chronological Balance Replay

Two ways of replaying transactions in (date, time) order:

1. ``running_balances`` replays one account on its own, from a given
   opening balance, over the transactions that touch it.
2. ``all_running_balances`` replays every tracked account in a single
   globally sorted pass, sharing one table of running totals. This is what
   ledger-style listings use: a transaction touching two accounts updates
   both in the same step, in the same order the listing shows.

IMPORTANT: Running totals are carried unrounded. Only the recorded
before/after values are snapped to zero, so the last ``after`` of an
account always equals its aggregated current balance.

Neither function keeps state between calls. Each call works on the
snapshot it is handed and nothing else.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping

import structlog

from balancebook.engine.deltas import balance_delta
from balancebook.engine.normalize import (
    ZERO_EPSILON,
    normalize_balance,
    sort_chronologically,
    to_decimal,
)
from balancebook.models.balance import BalanceChange, LedgerBalances, RunningBalances
from balancebook.models.transaction import Transaction


logger = structlog.get_logger(__name__)


def _change(before: Decimal, after: Decimal, epsilon: Decimal) -> BalanceChange:
    return BalanceChange(
        before=normalize_balance(before, epsilon),
        after=normalize_balance(after, epsilon),
    )


def running_balances(
    account_name: str,
    opening_balance: Any,
    transactions: Iterable[Transaction],
    epsilon: Decimal = ZERO_EPSILON,
) -> RunningBalances:
    """
    Before/after balance of ``account_name`` at each transaction touching it.

    Transactions are filtered to those naming the account as source,
    destination or refund target, then stable-sorted oldest first. The
    result preserves that order.
    """
    relevant = [txn for txn in transactions if txn.touches(account_name)]

    result: RunningBalances = {}
    running = to_decimal(opening_balance)

    for txn in sort_chronologically(relevant):
        after = running + balance_delta(txn, account_name)
        result[txn.path] = _change(running, after, epsilon)
        running = after

    return result


def _affected_accounts(txn: Transaction) -> list[str]:
    """Accounts a transaction can move, in update order, without repeats."""
    accounts = []
    # An explicit refund target is the only way a third account is involved
    for name in (txn.source_account, txn.destination_account, txn.refund_to):
        if name and name not in accounts:
            accounts.append(name)
    return accounts


def all_running_balances(
    opening_balances: Mapping[str, Any],
    transactions: Iterable[Transaction],
    epsilon: Decimal = ZERO_EPSILON,
) -> LedgerBalances:
    """
    Replay every tracked account in one global chronological pass.

    For each transaction the source is updated first, then the destination
    (when different), then an explicit refund target (when different from
    both). Each update starts from that account's current running total.
    Accounts absent from ``opening_balances`` are skipped. Every transaction
    gets an entry, empty if it touches no tracked account.
    """
    running = {name: to_decimal(balance) for name, balance in opening_balances.items()}
    result: LedgerBalances = {}

    ordered = sort_chronologically(transactions)
    for txn in ordered:
        changes: dict[str, BalanceChange] = {}

        for account in _affected_accounts(txn):
            if account not in running:
                continue
            before = running[account]
            after = before + balance_delta(txn, account)
            changes[account] = _change(before, after, epsilon)
            running[account] = after

        result[txn.path] = changes

    logger.debug(
        "ledger_replayed",
        account_count=len(running),
        transaction_count=len(ordered),
    )
    return result


def final_balances(
    opening_balances: Mapping[str, Any],
    ledger: LedgerBalances,
    epsilon: Decimal = ZERO_EPSILON,
) -> dict[str, Decimal]:
    """
    Balance of each tracked account after the last replayed transaction.

    ``ledger`` must come from ``all_running_balances`` so its entries are in
    replay order.
    """
    balances = {
        name: normalize_balance(balance, epsilon)
        for name, balance in opening_balances.items()
    }
    for changes in ledger.values():
        for account, change in changes.items():
            balances[account] = change.after
    return balances
