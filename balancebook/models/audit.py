"""
Audit Models for balancebook

Every change to the record store and every full recomputation is recorded
as an audit event. This gives:
1. Traceability of which records fed a computation
2. Debugging information when balances look wrong
3. A history of validation problems found at ingestion

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Record store mutations
    ACCOUNT_UPSERTED = "account_upserted"
    ACCOUNT_REMOVED = "account_removed"
    TRANSACTION_UPSERTED = "transaction_upserted"
    TRANSACTION_REMOVED = "transaction_removed"
    SNAPSHOT_TAKEN = "snapshot_taken"

    # Ingestion checks
    VALIDATION_FAILED = "validation_failed"

    # Computation
    CACHE_INVALIDATED = "cache_invalidated"
    BALANCES_RECOMPUTED = "balances_recomputed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    ``entity_id`` is the account name or transaction path the event is
    about, so it is a plain string rather than a UUID.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('account', 'transaction', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Account name or transaction path"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one bulk reload)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Set on system_error events
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_upserted(path, created=True)
        event = AuditEventBuilder.balances_recomputed(3, 120, correlation_id)
    """

    @staticmethod
    def account_upserted(
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPSERTED,
            entity_type="account",
            entity_id=name,
            correlation_id=correlation_id,
            description=f"Account {'created' if created else 'updated'}: {name}",
            details={"created": created},
        )

    @staticmethod
    def account_removed(
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_REMOVED,
            entity_type="account",
            entity_id=name,
            correlation_id=correlation_id,
            description=f"Account removed: {name}",
        )

    @staticmethod
    def transaction_upserted(
        path: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPSERTED,
            entity_type="transaction",
            entity_id=path,
            correlation_id=correlation_id,
            description=f"Transaction {'created' if created else 'updated'}: {path}",
            details={"created": created},
        )

    @staticmethod
    def transaction_removed(
        path: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REMOVED,
            entity_type="transaction",
            entity_id=path,
            correlation_id=correlation_id,
            description=f"Transaction removed: {path}",
        )

    @staticmethod
    def snapshot_taken(
        account_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_TAKEN,
            severity=AuditSeverity.DEBUG,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=(
                f"Snapshot taken: {account_count} accounts, "
                f"{transaction_count} transactions"
            ),
            details={
                "account_count": account_count,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        entity_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Validation found {len(issues)} issues on {entity_type} {entity_id}",
            details={"issues": issues},
        )

    @staticmethod
    def cache_invalidated(
        accounts: list[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_INVALIDATED,
            severity=AuditSeverity.DEBUG,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Running balances invalidated for {len(accounts)} accounts",
            details={"accounts": sorted(accounts), "reason": reason},
        )

    @staticmethod
    def balances_recomputed(
        account_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
        mismatched: Optional[list[str]] = None,
    ) -> AuditEvent:
        mismatched = mismatched or []
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECOMPUTED,
            severity=AuditSeverity.WARNING if mismatched else AuditSeverity.INFO,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=(
                f"Balances recomputed for {account_count} accounts "
                f"over {transaction_count} transactions"
            ),
            details={
                "account_count": account_count,
                "transaction_count": transaction_count,
                "mismatched_accounts": mismatched,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
