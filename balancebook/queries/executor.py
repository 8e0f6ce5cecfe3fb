"""
Ledger Queries

Read-only lookups and aggregates over one snapshot, for listings and
dashboards. Everything here is computed from the records in the snapshot;
nothing is estimated.

Expense figures are net of refunds (amount - refund) throughout.
"""

from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from balancebook.engine.normalize import ZERO, sort_chronologically
from balancebook.models.account import Account
from balancebook.models.transaction import Transaction, TransactionType
from balancebook.services.storage.interface import LedgerSnapshot


UNKNOWN_DATE = "unknown"
OTHER_CATEGORY = "other"


class PeriodTotals(BaseModel):
    """Income and expense figures for one period prefix (YYYY, YYYY-MM or a day)."""

    period: str
    income: Decimal = ZERO
    expense: Decimal = ZERO
    expense_count: int = Field(default=0, ge=0)
    max_expense: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def _check_period(period: str) -> str:
    period = (period or "").strip()
    parts = period.split("-")
    if not (
        (len(parts) == 1 and len(parts[0]) == 4 and parts[0].isdigit())
        or (len(parts) == 2 and len(parts[0]) == 4 and len(parts[1]) == 2
            and parts[0].isdigit() and parts[1].isdigit())
    ):
        raise QueryExecutionError(f"Period must be YYYY or YYYY-MM, got '{period}'")
    return period


def _totals(period: str, transactions: Iterable[Transaction]) -> PeriodTotals:
    income = ZERO
    expense = ZERO
    count = 0
    largest = ZERO
    for txn in transactions:
        if txn.txn_type == TransactionType.INCOME:
            income += txn.amount
        elif txn.txn_type == TransactionType.EXPENSE:
            net = txn.net_amount
            expense += net
            count += 1
            largest = max(largest, net)

    return PeriodTotals(
        period=period,
        income=income,
        expense=expense,
        expense_count=count,
        max_expense=largest,
    )


class LedgerQueries:
    """
    Queries over a single ledger snapshot.

    Results are newest first wherever transactions are listed.
    """

    def __init__(self, snapshot: LedgerSnapshot):
        self._snapshot = snapshot

    def _expenses_in(self, period: str) -> list[Transaction]:
        return [
            txn for txn in self._snapshot.transactions
            if txn.txn_type == TransactionType.EXPENSE and txn.date.startswith(period)
        ]

    def transactions_for_account(self, account_name: str) -> list[Transaction]:
        """Transactions naming the account as source, destination or refund target."""
        return sort_chronologically(
            (txn for txn in self._snapshot.transactions if txn.touches(account_name)),
            newest_first=True,
        )

    def group_by_date(self) -> dict[str, list[Transaction]]:
        """
        Transactions grouped by date, newest date first.

        Transactions without a date are grouped under ``"unknown"``, last.
        """
        grouped: dict[str, list[Transaction]] = {}
        for txn in sort_chronologically(self._snapshot.transactions, newest_first=True):
            grouped.setdefault(txn.date or UNKNOWN_DATE, []).append(txn)
        return grouped

    def filter_accounts(self, query: str) -> list[Account]:
        """Accounts whose name, label, kind or institution contains ``query``."""
        needle = (query or "").strip().casefold()
        if not needle:
            return list(self._snapshot.accounts)
        return [
            account for account in self._snapshot.accounts
            if any(
                needle in value.casefold()
                for value in (account.name, account.label, account.kind, account.institution)
            )
        ]

    def period_totals(self, period: str) -> PeriodTotals:
        """
        Income and net expense totals for a ``YYYY`` or ``YYYY-MM`` period.

        Raises:
            QueryExecutionError: If the period is malformed
        """
        period = _check_period(period)
        return _totals(
            period,
            (txn for txn in self._snapshot.transactions if txn.date.startswith(period)),
        )

    def daily_totals(self, period: str) -> dict[str, PeriodTotals]:
        """
        Income and net expense per day within a period, oldest day first.

        Only days with at least one transaction appear; transfers and
        repayments count as activity with zero totals.

        Raises:
            QueryExecutionError: If the period is malformed
        """
        period = _check_period(period)
        days: dict[str, list[Transaction]] = {}
        for txn in sort_chronologically(self._snapshot.transactions):
            if txn.date and txn.date.startswith(period):
                days.setdefault(txn.date, []).append(txn)
        return {day: _totals(day, txns) for day, txns in days.items()}

    def expense_by_category(self, period: str, top: int = 5) -> list[tuple[str, Decimal]]:
        """
        Net expense per root category, largest first.

        ``food/lunch`` counts under ``food``. Categories beyond the first
        ``top`` are folded into ``"other"``. Fully refunded expenses are
        left out.
        """
        period = _check_period(period)
        totals: dict[str, Decimal] = {}
        for txn in self._expenses_in(period):
            net = txn.net_amount
            if net <= 0:
                continue
            root = txn.category.split("/")[0].strip() or OTHER_CATEGORY
            totals[root] = totals.get(root, ZERO) + net

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        head = dict(ranked[:top])
        rest = sum((amount for _, amount in ranked[top:]), ZERO)
        if rest > 0:
            head[OTHER_CATEGORY] = head.get(OTHER_CATEGORY, ZERO) + rest
        return list(head.items())

    def top_payees(
        self,
        period: Optional[str] = None,
        limit: int = 5,
    ) -> list[tuple[str, Decimal, int]]:
        """
        Payees ranked by net expense, as (payee, total, count).

        Expenses without a payee are skipped.
        """
        period = _check_period(period) if period else ""
        totals: dict[str, Decimal] = {}
        counts: dict[str, int] = {}
        for txn in self._expenses_in(period):
            if not txn.payee:
                continue
            totals[txn.payee] = totals.get(txn.payee, ZERO) + txn.net_amount
            counts[txn.payee] = counts.get(txn.payee, 0) + 1

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [(payee, total, counts[payee]) for payee, total in ranked[:limit]]
