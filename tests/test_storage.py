"""
Tests for the in-memory record store and the running balance cache.

Test strategy:
1. Record CRUD and snapshot isolation
2. Account reference resolution
3. Validation at the boundary (audit only vs. reject)
4. Cache results always equal a fresh replay
"""

from decimal import Decimal

import pytest

from balancebook.audit import AuditLogger, create_correlation_id
from balancebook.engine import running_balances
from balancebook.models import Account, AuditEventBuilder, AuditEventType, Transaction
from balancebook.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordChangeListener,
    RecordValidationError,
    RunningBalanceCache,
)
from balancebook.validation import RecordValidator


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def store(audit_storage):
    return InMemoryRecordStore(
        validator=RecordValidator(),
        audit_logger=AuditLogger(audit_storage),
    )


def _event_types(audit_storage):
    return [event.event_type for event in reversed(audit_storage.get_recent_events())]


class RecordingListener(RecordChangeListener):
    def __init__(self):
        self.calls = []

    def on_account_changed(self, old, new):
        self.calls.append(("account", old, new))

    def on_transaction_changed(self, old, new):
        self.calls.append(("transaction", old, new))

    def on_reset(self):
        self.calls.append(("reset",))


class TestRecordStore:
    """Basic record operations."""

    def test_upsert_and_get(self, store, make_account, make_txn):
        store.upsert_account(make_account("checking", "1000"))
        txn = make_txn("expense", "10", source_account="checking")
        store.upsert_transaction(txn)

        assert store.get_account("checking").opening_balance == Decimal("1000")
        assert store.get_transaction(txn.path) == txn
        assert store.get_account("missing") is None

    def test_upsert_from_dict(self, store):
        store.upsert_account({"name": "wallet", "opening_balance": "5"})
        store.upsert_transaction({
            "path": "t/1.md", "date": "2024-01-01", "txn_type": "income",
            "amount": 3, "to": "wallet",
        })
        assert store.get_transaction("t/1.md").destination_account == "wallet"

    def test_upsert_replaces_whole_record(self, store, make_txn):
        store.upsert_account(Account(name="A"))
        store.upsert_transaction(make_txn("expense", "10", path="t/1.md", source_account="A", memo="x"))
        store.upsert_transaction(make_txn("expense", "20", path="t/1.md", source_account="A"))
        txn = store.get_transaction("t/1.md")
        assert txn.amount == Decimal("20")
        assert txn.memo == ""

    def test_remove(self, store, make_txn):
        store.upsert_account(Account(name="A"))
        txn = make_txn("expense", "10", source_account="A")
        store.upsert_transaction(txn)

        assert store.remove_transaction(txn.path) is True
        assert store.remove_transaction(txn.path) is False
        assert store.remove_account("A") is True
        assert store.remove_account("A") is False

    def test_list_order(self, store, make_txn):
        store.upsert_account(Account(name="b-acct", display_name="zeta"))
        store.upsert_account(Account(name="a-acct", display_name="Alpha"))
        old = make_txn(date="2023-05-01", source_account="a-acct")
        new = make_txn(date="2024-05-01", source_account="a-acct")
        store.upsert_transaction(old)
        store.upsert_transaction(new)

        assert [a.name for a in store.list_accounts()] == ["a-acct", "b-acct"]
        assert store.list_transactions() == [new, old]

    def test_snapshot_isolated_from_later_changes(self, store, make_txn):
        store.upsert_account(Account(name="A"))
        snapshot = store.snapshot()
        store.upsert_transaction(make_txn("expense", "10", source_account="A"))
        store.upsert_account(Account(name="B"))

        assert snapshot.transactions == ()
        assert [a.name for a in snapshot.accounts] == ["A"]
        assert snapshot.opening_balances == {"A": Decimal("0")}

    def test_require_account(self, store):
        with pytest.raises(NotFoundError):
            store.require_account("nope")


class TestReferenceResolution:
    """Account references are mapped to identities before storing."""

    @pytest.fixture
    def seeded(self, store):
        store.upsert_account(Account(name="cmb-debit", display_name="CMB Debit"))
        store.upsert_account(Account(name="alipay"))
        return store

    @pytest.mark.parametrize("ref, expected", [
        ("[[alipay]]", "alipay"),
        ("[[ alipay ]]", "alipay"),
        ("[[alipay|Alipay Wallet]]", "alipay"),
        ("CMB Debit", "cmb-debit"),
        ("[[CMB Debit]]", "cmb-debit"),
        ("alipay", "alipay"),
        ("unknown", "unknown"),
        ("", ""),
        (None, ""),
    ])
    def test_resolve_account_ref(self, seeded, ref, expected):
        assert seeded.resolve_account_ref(ref) == expected

    def test_transaction_references_resolved(self, seeded, make_txn):
        txn = make_txn(
            "expense", "100", source_account="[[CMB Debit]]",
            refund="10", refund_to="[[alipay]]",
        )
        seeded.upsert_transaction(txn)
        stored = seeded.get_transaction(txn.path)
        assert stored.source_account == "cmb-debit"
        assert stored.refund_to == "alipay"

    def test_shared_display_name_is_not_resolved(self, store):
        store.upsert_account(Account(name="card-1", display_name="Card"))
        store.upsert_account(Account(name="card-2", display_name="Card"))
        assert store.resolve_account_ref("Card") == "Card"


class TestLoadOrder:
    """The stored state depends on the record set, not on arrival order."""

    def _load(self, store, records):
        for record in records:
            if isinstance(record, Account):
                store.upsert_account(record)
            else:
                store.upsert_transaction(record)

    def test_transaction_before_account(self, make_txn):
        wallet = Account(name="acct-1", display_name="Wallet", opening_balance=Decimal("500"))
        txn = make_txn("expense", "100", path="t/1.md", source_account="Wallet")

        account_first = InMemoryRecordStore(validator=RecordValidator())
        self._load(account_first, [wallet, txn])
        txn_first = InMemoryRecordStore(validator=RecordValidator())
        self._load(txn_first, [txn, wallet])

        assert txn_first.get_transaction("t/1.md").source_account == "acct-1"
        assert txn_first.snapshot().transactions == account_first.snapshot().transactions

    def test_cache_follows_late_account(self, make_txn):
        store = InMemoryRecordStore()
        cache = RunningBalanceCache(store)
        store.upsert_transaction(make_txn("expense", "100", path="t/1.md", source_account="[[Wallet]]"))
        assert cache.get("acct-1") == {}

        store.upsert_account(Account(name="acct-1", display_name="Wallet", opening_balance=Decimal("500")))

        assert cache.get("acct-1")["t/1.md"].after == Decimal("400")

    def test_cached_alias_entry_refreshed(self, make_txn):
        store = InMemoryRecordStore()
        cache = RunningBalanceCache(store)
        store.upsert_transaction(make_txn("expense", "100", path="t/1.md", source_account="Wallet"))
        assert list(cache.get("Wallet")) == ["t/1.md"]

        store.upsert_account(Account(name="acct-1", display_name="Wallet"))

        assert cache.get("Wallet") == {}

    def test_removing_account_restores_written_reference(self, make_txn):
        store = InMemoryRecordStore()
        listener = RecordingListener()
        store.upsert_account(Account(name="acct-1", display_name="Wallet"))
        store.upsert_transaction(make_txn("expense", "100", path="t/1.md", source_account="Wallet"))
        store.add_listener(listener)

        store.remove_account("acct-1")

        txn = store.get_transaction("t/1.md")
        assert txn.source_account == "Wallet"
        assert listener.calls[-1][0] == "transaction"
        assert listener.calls[-1][2] == txn

    def test_renamed_display_name_reresolves(self, make_txn):
        store = InMemoryRecordStore()
        store.upsert_account(Account(name="acct-1", display_name="Wallet"))
        store.upsert_account(Account(name="acct-2", display_name="Purse"))
        store.upsert_transaction(make_txn("expense", "1", path="t/1.md", source_account="Purse"))

        store.upsert_account(Account(name="acct-2", display_name="Old Purse"))
        store.upsert_account(Account(name="acct-1", display_name="Purse"))

        assert store.get_transaction("t/1.md").source_account == "acct-1"


class TestBoundaryValidation:
    """Validation issues are audited, and optionally rejected."""

    def test_invalid_record_stored_and_audited(self, store, audit_storage, make_txn):
        store.upsert_account(Account(name="A"))
        txn = make_txn("expense", "10", refund="50", source_account="A")

        result = store.upsert_transaction(txn)

        assert result.has_errors
        assert store.get_transaction(txn.path) is not None
        events = audit_storage.get_events_by_entity("transaction", txn.path)
        assert [e.event_type for e in events] == [
            AuditEventType.VALIDATION_FAILED,
            AuditEventType.TRANSACTION_UPSERTED,
        ]

    def test_reject_invalid(self, make_txn):
        store = InMemoryRecordStore(validator=RecordValidator(), reject_invalid=True)
        txn = make_txn("expense", "-10", source_account="A")

        with pytest.raises(RecordValidationError) as exc_info:
            store.upsert_transaction(txn)

        assert exc_info.value.record_id == txn.path
        assert store.get_transaction(txn.path) is None

    def test_warnings_never_reject(self, make_txn):
        store = InMemoryRecordStore(validator=RecordValidator(), reject_invalid=True)
        store.upsert_transaction(make_txn("expense", "10", source_account="ghost"))
        assert len(store.list_transactions()) == 1

    def test_duplicate_display_name_reported(self, store, audit_storage):
        store.upsert_account(Account(name="acct-1", display_name="Card"))
        result = store.upsert_account(Account(name="acct-2", display_name="Card"))

        assert result.has_errors
        assert result.issues[0].issue_type == "duplicate"
        events = audit_storage.get_events_by_entity("account", "acct-2")
        assert events[0].event_type == AuditEventType.VALIDATION_FAILED

    def test_duplicate_display_name_rejected(self):
        store = InMemoryRecordStore(validator=RecordValidator(), reject_invalid=True)
        store.upsert_account(Account(name="acct-1", display_name="Card"))

        with pytest.raises(RecordValidationError):
            store.upsert_account(Account(name="acct-2", display_name="Card"))
        assert store.get_account("acct-2") is None

    def test_updating_own_display_name_is_fine(self, store):
        store.upsert_account(Account(name="acct-1", display_name="Card"))
        result = store.upsert_account(Account(name="acct-1", display_name="Card", note="x"))
        assert not result.has_errors

    def test_no_validator(self, make_txn):
        store = InMemoryRecordStore()
        assert store.upsert_transaction(make_txn("expense", "-1")) is None


class TestReplaceAll:
    """Bulk replacement."""

    def test_replaces_everything(self, store, make_txn):
        store.upsert_account(Account(name="old"))
        store.replace_all(
            [Account(name="A"), {"name": "B", "display_name": "Bee"}],
            [make_txn("transfer", "5", source_account="[[A]]", destination_account="Bee")],
        )
        assert [a.name for a in store.list_accounts()] == ["A", "B"]
        txn = store.list_transactions()[0]
        assert (txn.source_account, txn.destination_account) == ("A", "B")

    def test_atomic_on_rejection(self, make_txn):
        store = InMemoryRecordStore(validator=RecordValidator(), reject_invalid=True)
        store.upsert_account(Account(name="keep"))
        keep = make_txn("expense", "1", source_account="keep")
        store.upsert_transaction(keep)

        with pytest.raises(RecordValidationError):
            store.replace_all(
                [Account(name="new")],
                [make_txn("expense", "1", source_account="new"),
                 make_txn("expense", "-1", source_account="new")],
            )

        assert [a.name for a in store.list_accounts()] == ["keep"]
        assert store.list_transactions() == [keep]

    def test_rejected_set_leaves_no_audit_events(self, audit_storage, make_txn):
        store = InMemoryRecordStore(
            validator=RecordValidator(),
            audit_logger=AuditLogger(audit_storage),
            reject_invalid=True,
        )
        correlation_id = create_correlation_id()

        with pytest.raises(RecordValidationError):
            store.replace_all(
                [Account(name="new")],
                [make_txn("expense", "1", source_account="ghost"),
                 make_txn("expense", "-1", source_account="new")],
                correlation_id=correlation_id,
            )

        assert audit_storage.get_events_by_correlation_id(correlation_id) == []

    def test_duplicate_display_names_in_set(self):
        store = InMemoryRecordStore(validator=RecordValidator(), reject_invalid=True)
        with pytest.raises(RecordValidationError):
            store.replace_all(
                [Account(name="a", display_name="Card"), Account(name="b", display_name="Card")],
                [],
            )
        assert store.list_accounts() == []

    def test_notifies_reset(self, store):
        listener = RecordingListener()
        store.add_listener(listener)
        store.replace_all([], [])
        assert listener.calls == [("reset",)]

    def test_correlation_id_ties_events(self, store, audit_storage, make_txn):
        correlation_id = create_correlation_id()
        store.replace_all(
            [Account(name="A")],
            [make_txn("expense", "1", source_account="A", refund="5")],
            correlation_id=correlation_id,
        )
        events = audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.VALIDATION_FAILED,
            AuditEventType.SNAPSHOT_TAKEN,
        ]


class TestListeners:
    """Change notifications."""

    def test_notifications(self, store, make_txn):
        listener = RecordingListener()
        store.add_listener(listener)
        account = Account(name="A")
        txn = make_txn("expense", "1", source_account="A")

        store.upsert_account(account)
        store.upsert_transaction(txn)
        store.remove_transaction(txn.path)

        assert listener.calls == [
            ("account", None, account),
            ("transaction", None, txn),
            ("transaction", txn, None),
        ]

    def test_remove_listener(self, store):
        listener = RecordingListener()
        store.add_listener(listener)
        store.remove_listener(listener)
        store.upsert_account(Account(name="A"))
        assert listener.calls == []


class TestAuditTrail:
    """Audit events for store mutations."""

    def test_mutation_events(self, store, audit_storage, make_txn):
        store.upsert_account(Account(name="A"))
        store.upsert_account(Account(name="A", opening_balance=Decimal("1")))
        txn = make_txn("expense", "1", source_account="A")
        store.upsert_transaction(txn)
        store.remove_transaction(txn.path)
        store.remove_account("A")

        assert _event_types(audit_storage) == [
            AuditEventType.ACCOUNT_UPSERTED,
            AuditEventType.ACCOUNT_UPSERTED,
            AuditEventType.TRANSACTION_UPSERTED,
            AuditEventType.TRANSACTION_REMOVED,
            AuditEventType.ACCOUNT_REMOVED,
        ]
        created = [e.details["created"] for e in audit_storage.get_events_by_entity("account", "A")[:2]]
        assert created == [True, False]

    def test_empty_storage_receives_events(self):
        audit_storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(audit_storage)

        assert audit_logger.log(AuditEventBuilder.account_removed("A")) is True
        audit_logger.log_account_removed("B")

        assert len(audit_storage) == 2

    def test_log_error(self, audit_storage):
        audit_logger = AuditLogger(audit_storage)
        audit_logger.log_error("ReplayError", "boom", details={"account": "A"})

        event = audit_storage.get_recent_events(limit=1)[0]
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.error_message == "boom"
        assert event.to_log_dict()["error_message"] == "boom"

    def test_storage_failure_does_not_propagate(self, make_txn):
        class BrokenStorage(InMemoryAuditStorage):
            def append_event(self, event):
                raise RuntimeError("disk full")

        audit_logger = AuditLogger(BrokenStorage())
        store = InMemoryRecordStore(audit_logger=audit_logger)
        store.upsert_account(Account(name="A"))
        assert store.get_account("A") is not None


class TestRunningBalanceCache:
    """The cache always agrees with a fresh replay."""

    @pytest.fixture
    def cache(self, store, audit_storage):
        return RunningBalanceCache(store, audit_logger=AuditLogger(audit_storage))

    def _fresh(self, store, name):
        account = store.get_account(name)
        opening = account.opening_balance if account else Decimal("0")
        return running_balances(name, opening, store.list_transactions())

    def test_lazy_computation(self, store, cache, make_txn):
        store.upsert_account(Account(name="A", opening_balance=Decimal("100")))
        store.upsert_transaction(make_txn("expense", "10", source_account="A"))

        assert cache.cached_accounts == []
        assert cache.get("A") == self._fresh(store, "A")
        assert cache.cached_accounts == ["A"]

    def test_transaction_change_refreshes_touched_accounts(self, store, cache, make_txn):
        store.upsert_account(Account(name="A", opening_balance=Decimal("100")))
        store.upsert_account(Account(name="B"))
        cache.get("A")
        cache.get("B")

        txn = make_txn("transfer", "40", path="t/1.md", source_account="A", destination_account="B")
        store.upsert_transaction(txn)
        assert cache.get("A") == self._fresh(store, "A")
        assert cache.get("B")["t/1.md"].after == Decimal("40")

        # Moving the transaction to another destination refreshes the old one
        store.upsert_transaction(
            make_txn("transfer", "40", path="t/1.md", source_account="A", destination_account="C")
        )
        assert cache.get("B") == {}
        assert cache.get("C") == self._fresh(store, "C")

    def test_opening_balance_change(self, store, cache, make_txn):
        store.upsert_account(Account(name="A", opening_balance=Decimal("100")))
        txn = make_txn("expense", "10", source_account="A")
        store.upsert_transaction(txn)
        cache.get("A")

        store.upsert_account(Account(name="A", opening_balance=Decimal("200")))

        assert cache.get("A")[txn.path].after == Decimal("190")

    def test_account_removal(self, store, cache, make_txn):
        store.upsert_account(Account(name="A", opening_balance=Decimal("100")))
        txn = make_txn("expense", "10", source_account="A")
        store.upsert_transaction(txn)
        cache.get("A")

        store.remove_account("A")

        assert "A" not in cache.cached_accounts
        assert cache.get("A")[txn.path].after == Decimal("-10")

    def test_reset_clears(self, store, cache):
        store.upsert_account(Account(name="A"))
        cache.get("A")
        store.replace_all([Account(name="A", opening_balance=Decimal("7"))], [])
        assert cache.cached_accounts == []
        assert cache.get("A") == {}

    def test_returned_dict_is_a_copy(self, store, cache, make_txn):
        store.upsert_account(Account(name="A"))
        store.upsert_transaction(make_txn("income", "1", destination_account="A"))
        cache.get("A").clear()
        assert len(cache.get("A")) == 1

    def test_invalidation_audited(self, store, cache, audit_storage, make_txn):
        store.upsert_account(Account(name="A"))
        cache.get("A")
        store.upsert_transaction(make_txn("income", "1", destination_account="A"))
        assert AuditEventType.CACHE_INVALIDATED in _event_types(audit_storage)

    def test_uncached_accounts_not_audited(self, store, cache, audit_storage, make_txn):
        store.upsert_transaction(make_txn("income", "1", destination_account="A"))
        assert AuditEventType.CACHE_INVALIDATED not in _event_types(audit_storage)

    def test_cache_matches_fresh_after_many_edits(self, store, cache, make_txn):
        store.upsert_account(Account(name="A", opening_balance=Decimal("50")))
        store.upsert_account(Account(name="B", opening_balance=Decimal("-20")))
        cache.get("A")
        cache.get("B")

        edits = [
            make_txn("income", "10", path="t/1.md", date="2024-01-03", destination_account="A"),
            make_txn("expense", "5", path="t/2.md", date="2024-01-01", source_account="B",
                     refund="2", refund_to="A"),
            make_txn("repayment", "20", path="t/3.md", date="2024-01-02", discount="1",
                     source_account="A", destination_account="B"),
            make_txn("income", "11", path="t/1.md", date="2024-01-04", destination_account="B"),
        ]
        for txn in edits:
            store.upsert_transaction(txn)
        store.remove_transaction("t/2.md")

        assert cache.get("A") == self._fresh(store, "A")
        assert cache.get("B") == self._fresh(store, "B")
