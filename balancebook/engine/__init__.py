"""
Balance computation engine.

Pure, synchronous functions over an immutable (accounts, transactions)
snapshot. Nothing in here performs I/O or keeps state between calls.
"""

from balancebook.engine.aggregator import (
    balance_change,
    current_balance,
    current_balances,
    referenced_accounts,
)
from balancebook.engine.deltas import balance_delta
from balancebook.engine.normalize import (
    ZERO,
    ZERO_EPSILON,
    chronological_key,
    normalize_balance,
    sort_chronologically,
    to_decimal,
)
from balancebook.engine.replay import (
    all_running_balances,
    final_balances,
    running_balances,
)
from balancebook.engine.summary import group_by_kind, summarize

__all__ = [
    "ZERO",
    "ZERO_EPSILON",
    "all_running_balances",
    "balance_change",
    "balance_delta",
    "chronological_key",
    "current_balance",
    "current_balances",
    "final_balances",
    "group_by_kind",
    "normalize_balance",
    "referenced_accounts",
    "running_balances",
    "sort_chronologically",
    "summarize",
    "to_decimal",
]
