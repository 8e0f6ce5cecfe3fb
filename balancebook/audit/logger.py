"""
Audit Logger

Every record store mutation and every full recomputation is logged.

The audit logger:
- Always writes a structured local log entry
- Appends to an audit storage backend when one is configured
- Never lets a storage failure propagate into the caller's flow
- Supports correlation IDs to tie related events together (one bulk reload)
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from balancebook.config import LoggingSettings, get_settings
from balancebook.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from balancebook.services.storage.interface import AuditStorageInterface


_CONFIGURED = False


def configure_logging(settings: Optional[LoggingSettings] = None, force: bool = False) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Runs once per process unless ``force`` is set. Hosts that configure
    structlog themselves can simply not call this.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    settings = settings or get_settings().logging
    level = getattr(logging, settings.level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("balancebook")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend (for history), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("balancebook.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage is not None:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_account_upserted(
        self,
        name: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.account_upserted(name, created, correlation_id))

    def log_account_removed(
        self,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.account_removed(name, correlation_id))

    def log_transaction_upserted(
        self,
        path: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_upserted(path, created, correlation_id))

    def log_transaction_removed(
        self,
        path: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_removed(path, correlation_id))

    def log_snapshot_taken(
        self,
        account_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.snapshot_taken(
            account_count=account_count,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        entity_type: str,
        entity_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation issues found at ingestion."""
        self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    def log_cache_invalidated(
        self,
        accounts: list[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.cache_invalidated(accounts, reason, correlation_id))

    def log_balances_recomputed(
        self,
        account_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
        mismatched: Optional[list[str]] = None,
    ) -> None:
        """Log a full recomputation."""
        self.log(AuditEventBuilder.balances_recomputed(
            account_count=account_count,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
            mismatched=mismatched,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a bulk operation (e.g., reloading every record)
    and pass it through all subsequent calls.
    """
    return uuid4()
