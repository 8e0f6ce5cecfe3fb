"""Ledger query package."""

from balancebook.queries.executor import LedgerQueries, PeriodTotals, QueryExecutionError

__all__ = ["LedgerQueries", "PeriodTotals", "QueryExecutionError"]
