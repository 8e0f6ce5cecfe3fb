"""
Current balance aggregation.

A current balance is the opening balance plus the sum of every
transaction's delta for the account. Summation does not depend on order,
which is what makes it a useful cross-check for the chronological replay.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from balancebook.engine.deltas import balance_delta
from balancebook.engine.normalize import ZERO, ZERO_EPSILON, normalize_balance, to_decimal
from balancebook.models.account import Account
from balancebook.models.transaction import Transaction


logger = structlog.get_logger(__name__)


def balance_change(account_name: str, transactions: Iterable[Transaction]) -> Decimal:
    """Raw sum of deltas for ``account_name``; no zero snapping."""
    return sum((balance_delta(txn, account_name) for txn in transactions), ZERO)


def current_balance(
    account: Account,
    transactions: Iterable[Transaction],
    epsilon: Decimal = ZERO_EPSILON,
) -> Decimal:
    """
    Opening balance plus all deltas, snapped to zero within ``epsilon``.
    """
    raw = to_decimal(account.opening_balance) + balance_change(account.name, transactions)
    return normalize_balance(raw, epsilon)


def current_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    epsilon: Decimal = ZERO_EPSILON,
    extra_names: Optional[Iterable[str]] = None,
) -> dict[str, Decimal]:
    """
    Current balance of every account, keyed by account name.

    ``extra_names`` are accounts referenced by transactions but missing from
    ``accounts``; they get an implicit opening balance of zero.
    """
    transactions = tuple(transactions)
    balances = {
        account.name: current_balance(account, transactions, epsilon)
        for account in accounts
    }
    for name in extra_names or ():
        if name and name not in balances:
            balances[name] = normalize_balance(balance_change(name, transactions), epsilon)

    logger.debug(
        "balances_aggregated",
        account_count=len(balances),
        transaction_count=len(transactions),
    )
    return balances


def referenced_accounts(transactions: Iterable[Transaction]) -> set[str]:
    """Every non-empty account name any transaction points at."""
    names = set()
    for txn in transactions:
        names.update(
            name
            for name in (txn.source_account, txn.destination_account, txn.refund_target)
            if name
        )
    return names
