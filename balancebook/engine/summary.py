"""
Net worth summary and grouping by account kind.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from balancebook.engine.aggregator import current_balance
from balancebook.engine.normalize import ZERO, ZERO_EPSILON, normalize_balance
from balancebook.models.account import ACCOUNT_KIND_ORDER, Account
from balancebook.models.balance import AccountBalance, KindGroup, NetWorthSummary
from balancebook.models.transaction import Transaction


def summarize(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    epsilon: Decimal = ZERO_EPSILON,
) -> NetWorthSummary:
    """
    Split current balances into assets and liabilities.

    A non-negative balance is an asset and a negative one a liability,
    whatever the account kind. Balances are zero-snapped first, so a tiny
    negative residue counts as a zero asset.
    """
    transactions = tuple(transactions)
    assets = ZERO
    liabilities = ZERO

    for account in accounts:
        item = AccountBalance(
            account=account,
            balance=current_balance(account, transactions, epsilon),
        )
        if item.is_liability:
            liabilities += -item.balance
        else:
            assets += item.balance

    return NetWorthSummary(
        assets=assets,
        liabilities=liabilities,
        net_worth=assets - liabilities,
    )


def group_by_kind(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    kind_order: Optional[Sequence[str]] = None,
    epsilon: Decimal = ZERO_EPSILON,
) -> list[KindGroup]:
    """
    Group accounts by kind with a per-group balance total.

    Groups follow ``kind_order`` (the standard display order by default);
    kinds not listed there come last, alphabetically. Accounts keep their
    input order within a group. Empty groups are omitted.
    """
    transactions = tuple(transactions)
    order = list(kind_order if kind_order is not None else ACCOUNT_KIND_ORDER)

    grouped: dict[str, list[AccountBalance]] = {}
    for account in accounts:
        grouped.setdefault(account.kind_label, []).append(
            AccountBalance(
                account=account,
                balance=current_balance(account, transactions, epsilon),
            )
        )

    known = [kind for kind in order if kind in grouped]
    unknown = sorted(kind for kind in grouped if kind not in order)

    return [
        KindGroup(
            kind=kind,
            accounts=grouped[kind],
            total=normalize_balance(
                sum((item.balance for item in grouped[kind]), ZERO),
                epsilon,
            ),
        )
        for kind in known + unknown
    ]
