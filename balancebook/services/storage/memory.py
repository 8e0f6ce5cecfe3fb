"""
In-Memory Record Store

Reference implementation of the record store used by tests and by hosts
that parse their own files and push the results in.

Responsibilities:
- Keep the current set of accounts and transactions, keyed by identity
- Resolve account references (``[[wiki links]]`` and display names) to
  account identities against the accounts currently stored
- Run boundary validation and audit what it finds
- Notify listeners (e.g. the running balance cache) after every change

IMPORTANT: Transactions are kept as written and resolved again whenever the
account set changes, so the stored state depends only on the set of records,
never on the order they arrived in.
"""

import re
from typing import TYPE_CHECKING, Iterable, Optional, Union
from uuid import UUID

from balancebook.engine.normalize import sort_chronologically
from balancebook.models.account import Account
from balancebook.models.audit import AuditEvent
from balancebook.models.transaction import Transaction
from balancebook.models.validation import ValidationResult
from balancebook.services.storage.interface import (
    AuditStorageInterface,
    LedgerSnapshot,
    NotFoundError,
    RecordChangeListener,
    RecordStoreInterface,
    RecordValidationError,
)
from balancebook.validation import RecordValidator

if TYPE_CHECKING:
    from balancebook.audit import AuditLogger


_WIKI_LINK = re.compile(r"^\[\[\s*([^\]|]+?)\s*(?:\|[^\]]*)?\]\]$")

AccountRecord = Union[Account, dict]
TransactionRecord = Union[Transaction, dict]
TransactionChange = tuple[Optional[Transaction], Optional[Transaction]]


def _as_account(record: AccountRecord) -> Account:
    return record if isinstance(record, Account) else Account.model_validate(record)


def _as_transaction(record: TransactionRecord) -> Transaction:
    return record if isinstance(record, Transaction) else Transaction.model_validate(record)


class InMemoryRecordStore(RecordStoreInterface):
    """
    Record store holding everything in dictionaries.

    Each mutation replaces a whole record; there is no partial update. A
    snapshot copies the current state, so later mutations never leak into a
    computation already running on an earlier snapshot.
    """

    def __init__(
        self,
        validator: Optional[RecordValidator] = None,
        audit_logger: Optional["AuditLogger"] = None,
        reject_invalid: bool = False,
    ):
        """
        Initialize the store.

        Args:
            validator: Boundary validator. If None, records are not checked.
            audit_logger: Receives an event for every mutation.
            reject_invalid: Raise RecordValidationError for records with
                           validation errors instead of storing them.
        """
        self._accounts: dict[str, Account] = {}
        # Transactions as written, and with references resolved
        self._written: dict[str, Transaction] = {}
        self._transactions: dict[str, Transaction] = {}
        self._validator = validator
        self._audit = audit_logger
        self._reject_invalid = reject_invalid
        self._listeners: list[RecordChangeListener] = []

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: RecordChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: RecordChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_transactions(self, changes: Iterable[TransactionChange]) -> None:
        for old, new in changes:
            for listener in self._listeners:
                listener.on_transaction_changed(old, new)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def list_accounts(self) -> list[Account]:
        return sorted(self._accounts.values(), key=lambda a: a.label.casefold())

    def list_transactions(self) -> list[Transaction]:
        return sort_chronologically(self._transactions.values(), newest_first=True)

    def get_account(self, name: str) -> Optional[Account]:
        return self._accounts.get(name)

    def get_transaction(self, path: str) -> Optional[Transaction]:
        return self._transactions.get(path)

    def snapshot(self, correlation_id: Optional[UUID] = None) -> LedgerSnapshot:
        snapshot = super().snapshot()
        if self._audit is not None:
            self._audit.log_snapshot_taken(
                account_count=len(snapshot.accounts),
                transaction_count=len(snapshot.transactions),
                correlation_id=correlation_id,
            )
        return snapshot

    # -------------------------------------------------------------------------
    # Alias resolution
    # -------------------------------------------------------------------------

    def resolve_account_ref(self, ref: Optional[str]) -> str:
        """
        Map an account reference to an account identity.

        ``[[Name]]`` and ``[[Name|alias]]`` are unwrapped. A reference that
        matches no identity but matches exactly one account's display name
        resolves to that account. Anything else, including a display name
        shared by several accounts, is returned unchanged.
        """
        ref = (ref or "").strip()
        match = _WIKI_LINK.match(ref)
        if match:
            ref = match.group(1)
        if not ref or ref in self._accounts:
            return ref
        named = [
            account.name
            for account in self._accounts.values()
            if account.display_name and account.display_name == ref
        ]
        return named[0] if len(named) == 1 else ref

    def _resolve_references(self, txn: Transaction) -> Transaction:
        resolved = {
            "source_account": self.resolve_account_ref(txn.source_account),
            "destination_account": self.resolve_account_ref(txn.destination_account),
            "refund_to": self.resolve_account_ref(txn.refund_to),
        }
        changed = {
            field: value
            for field, value in resolved.items()
            if getattr(txn, field) != value
        }
        return txn.model_copy(update=changed) if changed else txn

    def _reresolve(self) -> list[TransactionChange]:
        """Resolve every stored transaction again after the accounts changed."""
        changes = []
        for path, written in self._written.items():
            old = self._transactions[path]
            new = self._resolve_references(written)
            if new != old:
                self._transactions[path] = new
                changes.append((old, new))
        return changes

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate_account(
        self,
        account: Account,
        others: Iterable[Account],
    ) -> Optional[ValidationResult]:
        if self._validator is None:
            return None
        return self._validator.validate_account(
            account,
            known_accounts=[other for other in others if other.name != account.name],
        )

    def _validate_transaction(
        self,
        txn: Transaction,
        known_accounts: Iterable[str],
    ) -> Optional[ValidationResult]:
        if self._validator is None:
            return None
        return self._validator.validate_transaction(txn, known_accounts=known_accounts)

    def _audit_issues(
        self,
        result: Optional[ValidationResult],
        correlation_id: Optional[UUID],
    ) -> None:
        if result is None or not result.issues or self._audit is None:
            return
        self._audit.log_validation_failed(
            entity_type=result.record_type,
            entity_id=result.record_id,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )

    def _enforce(self, result: Optional[ValidationResult]) -> None:
        if result is not None and self._reject_invalid and result.has_errors:
            raise RecordValidationError(
                result.record_id,
                [issue.message for issue in result.issues if issue.severity == "error"],
            )

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def upsert_account(
        self,
        record: AccountRecord,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[ValidationResult]:
        """
        Add or replace an account.

        Stored transactions are resolved again, since the new account (or its
        new display name) may be what their references point at. Returns the
        validation result when a validator is configured.

        Raises:
            RecordValidationError: If rejecting invalid records and the
                                  account has errors
        """
        account = _as_account(record)

        result = self._validate_account(account, self._accounts.values())
        self._audit_issues(result, correlation_id)
        self._enforce(result)

        old = self._accounts.get(account.name)
        self._accounts[account.name] = account
        changes = self._reresolve()

        if self._audit is not None:
            self._audit.log_account_upserted(account.name, old is None, correlation_id)
        for listener in self._listeners:
            listener.on_account_changed(old, account)
        self._notify_transactions(changes)

        return result

    def remove_account(
        self,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Remove an account. Returns False if it did not exist."""
        old = self._accounts.pop(name, None)
        if old is None:
            return False
        changes = self._reresolve()

        if self._audit is not None:
            self._audit.log_account_removed(name, correlation_id)
        for listener in self._listeners:
            listener.on_account_changed(old, None)
        self._notify_transactions(changes)
        return True

    def upsert_transaction(
        self,
        record: TransactionRecord,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[ValidationResult]:
        """
        Add or replace a transaction, keyed by its path.

        Raises:
            RecordValidationError: If rejecting invalid records and the
                                  transaction has errors
        """
        written = _as_transaction(record)
        txn = self._resolve_references(written)

        result = self._validate_transaction(txn, self._accounts.keys())
        self._audit_issues(result, correlation_id)
        self._enforce(result)

        old = self._transactions.get(txn.path)
        self._written[txn.path] = written
        self._transactions[txn.path] = txn

        if self._audit is not None:
            self._audit.log_transaction_upserted(txn.path, old is None, correlation_id)
        self._notify_transactions([(old, txn)])

        return result

    def remove_transaction(
        self,
        path: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Remove a transaction. Returns False if it did not exist."""
        old = self._transactions.pop(path, None)
        if old is None:
            return False
        del self._written[path]

        if self._audit is not None:
            self._audit.log_transaction_removed(path, correlation_id)
        self._notify_transactions([(old, None)])
        return True

    def replace_all(
        self,
        accounts: Iterable[AccountRecord],
        transactions: Iterable[TransactionRecord],
        correlation_id: Optional[UUID] = None,
    ) -> list[ValidationResult]:
        """
        Replace every record at once.

        The new record set is built and validated completely before it
        becomes visible; if a record is rejected, the store is unchanged and
        nothing about the rejected set is audited.
        """
        previous_accounts = self._accounts
        results = []

        try:
            staged_accounts: dict[str, Account] = {}
            for record in accounts:
                account = _as_account(record)
                result = self._validate_account(account, staged_accounts.values())
                self._enforce(result)
                if result is not None:
                    results.append(result)
                staged_accounts[account.name] = account

            # References resolve against the incoming accounts
            self._accounts = staged_accounts
            staged_written: dict[str, Transaction] = {}
            staged_transactions: dict[str, Transaction] = {}
            for record in transactions:
                written = _as_transaction(record)
                txn = self._resolve_references(written)
                result = self._validate_transaction(txn, staged_accounts.keys())
                self._enforce(result)
                if result is not None:
                    results.append(result)
                staged_written[txn.path] = written
                staged_transactions[txn.path] = txn
        except Exception:
            self._accounts = previous_accounts
            raise

        self._written = staged_written
        self._transactions = staged_transactions

        for result in results:
            self._audit_issues(result, correlation_id)
        if self._audit is not None:
            self._audit.log_snapshot_taken(
                account_count=len(staged_accounts),
                transaction_count=len(staged_transactions),
                correlation_id=correlation_id,
            )
        for listener in self._listeners:
            listener.on_reset()

        return results

    def require_account(self, name: str) -> Account:
        """
        Get an account or raise.

        Raises:
            NotFoundError: If no account has this identity
        """
        account = self._accounts.get(name)
        if account is None:
            raise NotFoundError(f"Account not found: {name}")
        return account


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]

    def __len__(self) -> int:
        return len(self._events)
