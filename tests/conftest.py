"""Shared fixtures for balancebook tests."""

from decimal import Decimal

import pytest

from balancebook.config import get_settings
from balancebook.models import Account, Transaction


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Run every test with default settings and no stray .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "BALANCEBOOK_ZERO_EPSILON",
        "BALANCEBOOK_ACCOUNT_KIND_ORDER",
        "BALANCEBOOK_REJECT_INVALID_RECORDS",
        "BALANCEBOOK_VERIFY_REPLAY",
        "BALANCEBOOK_LOG_LEVEL",
        "BALANCEBOOK_LOG_JSON_OUTPUT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_txn():
    """Build a Transaction with a generated path and sensible defaults."""
    counter = {"n": 0}

    def _make(txn_type="expense", amount="0", **fields):
        counter["n"] += 1
        fields.setdefault("path", f"txn/{counter['n']:04d}.md")
        fields.setdefault("date", "2024-01-01")
        return Transaction(txn_type=txn_type, amount=Decimal(str(amount)), **fields)

    return _make


@pytest.fixture
def make_account():
    """Build an Account from a name and opening balance."""

    def _make(name, opening="0", **fields):
        return Account(name=name, opening_balance=Decimal(str(opening)), **fields)

    return _make
