"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to storage. A record store hands it
an immutable ``LedgerSnapshot`` and the engine computes over that. This lets
us:
1. Keep parsing of account/transaction files outside this package
2. Use in-memory storage for testing
3. Add caching layers on the store side only

The interface is intentionally small: read access plus a snapshot.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from balancebook.models.account import Account
from balancebook.models.audit import AuditEvent
from balancebook.models.transaction import Transaction


class LedgerSnapshot(BaseModel):
    """
    A consistent, read-only view of every account and transaction.

    All computations over one snapshot see the same records; a store must
    never hand out a partially updated snapshot.
    """
    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    taken_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def account(self, name: str) -> Optional[Account]:
        """Look up an account by identity."""
        for account in self.accounts:
            if account.name == name:
                return account
        return None

    @property
    def opening_balances(self) -> dict:
        """Opening balance per account name."""
        return {account.name: account.opening_balance for account in self.accounts}


class RecordStoreInterface(ABC):
    """
    Abstract interface for the record store.

    Any source of parsed records (markdown vault, database, test fixture)
    must implement these methods.
    """

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """
        List all accounts.

        Returns:
            Accounts sorted by display label
        """
        pass

    @abstractmethod
    def list_transactions(self) -> list[Transaction]:
        """
        List all transactions.

        Returns:
            Transactions newest first by (date, time)
        """
        pass

    @abstractmethod
    def get_account(self, name: str) -> Optional[Account]:
        """
        Retrieve an account by identity.

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    def get_transaction(self, path: str) -> Optional[Transaction]:
        """
        Retrieve a transaction by path.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    def snapshot(self) -> LedgerSnapshot:
        """Take a consistent snapshot of all records."""
        return LedgerSnapshot(
            accounts=tuple(self.list_accounts()),
            transactions=tuple(self.list_transactions()),
        )


class RecordChangeListener:
    """
    Receives notifications after a record store changes.

    Subclasses override what they need; the defaults do nothing.
    """

    def on_account_changed(self, old: Optional[Account], new: Optional[Account]) -> None:
        """Called after an account is added (old is None), updated or removed (new is None)."""

    def on_transaction_changed(
        self,
        old: Optional[Transaction],
        new: Optional[Transaction],
    ) -> None:
        """Called after a transaction is added, updated or removed."""

    def on_reset(self) -> None:
        """Called after the whole record set was replaced."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one bulk reload).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific account or transaction.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class RecordValidationError(StorageError):
    """A record failed validation and the store is set to reject it."""

    def __init__(self, record_id: str, messages: list[str]):
        self.record_id = record_id
        self.messages = messages
        super().__init__(f"{record_id}: " + "; ".join(messages))
