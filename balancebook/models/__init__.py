"""
Data Models Package

This package contains all Pydantic models used by balancebook.
Records coming from the record store and every computed view conform to
these schemas.
"""

from balancebook.models.account import (
    ACCOUNT_KIND_ORDER,
    DEFAULT_CURRENCY,
    Account,
    AccountKind,
)
from balancebook.models.transaction import (
    Transaction,
    TransactionType,
)
from balancebook.models.balance import (
    AccountBalance,
    BalanceChange,
    KindGroup,
    LedgerBalances,
    LedgerReport,
    NetWorthSummary,
    RunningBalances,
)
from balancebook.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from balancebook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "ACCOUNT_KIND_ORDER",
    "DEFAULT_CURRENCY",
    "Account",
    "AccountKind",
    "Transaction",
    "TransactionType",
    # Computed models
    "AccountBalance",
    "BalanceChange",
    "KindGroup",
    "LedgerBalances",
    "LedgerReport",
    "NetWorthSummary",
    "RunningBalances",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
