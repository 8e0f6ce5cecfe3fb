"""
Transaction Models

A transaction is an atomic fact identified by its ``path``. The set of
transactions is the source of truth; there is no append-only log.

Amounts are stored as non-negative face values. The sign of a balance
change is derived by the engine from ``txn_type`` and the account being
asked about, never stored on the record.

IMPORTANT: The model does not reject negative amounts or refunds larger
than the amount. Those are data-quality problems reported by
``balancebook.validation``; the engine still has to compute something for
them.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from balancebook.models.account import DEFAULT_CURRENCY


class TransactionType(str, Enum):
    """
    Closed set of transaction types.

    The balance effect of each type is defined in
    ``balancebook.engine.deltas``.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    REPAYMENT = "repayment"


class Transaction(BaseModel):
    """
    A single financial record as supplied by the record store.

    ``source_account`` and ``destination_account`` accept the record keys
    ``from`` and ``to`` as aliases. An empty string means "not applicable".
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )

    # Identity
    path: str = Field(
        ...,
        min_length=1,
        description="Unique record key"
    )
    uid: str = ""
    date: str = Field(
        default="",
        description="Calendar date, YYYY-MM-DD"
    )
    time: str = Field(
        default="",
        description="Time of day, HH:MM or HH:MM:SS; orders records within a date"
    )

    txn_type: TransactionType = TransactionType.EXPENSE
    category: str = ""

    # Money
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Face value"
    )
    discount: Decimal = Field(
        default=Decimal("0"),
        description="Repayment discount"
    )
    refund: Decimal = Field(
        default=Decimal("0"),
        description="Amount refunded on an expense"
    )
    refund_to: str = Field(
        default="",
        description="Account receiving the refund; defaults to the paying account"
    )
    currency: str = DEFAULT_CURRENCY

    # Accounts
    source_account: str = Field(default="", alias="from")
    destination_account: str = Field(default="", alias="to")

    # Descriptive fields, carried through untouched
    payee: str = ""
    address: str = ""
    memo: str = ""
    note: str = ""
    tags: tuple[str, ...] = ()
    persons: tuple[str, ...] = ()

    @field_validator("amount", "discount", "refund", mode="before")
    @classmethod
    def missing_money_is_zero(cls, v: Any) -> Any:
        """Absent monetary fields default to zero."""
        if v is None or v == "":
            return Decimal("0")
        if isinstance(v, float):
            return Decimal(repr(v))
        return v

    @field_validator(
        "uid", "date", "time", "category", "refund_to",
        "source_account", "destination_account",
        "payee", "address", "memo", "note",
        mode="before",
    )
    @classmethod
    def missing_text_is_empty(cls, v: Any) -> Any:
        if v is None:
            return ""
        # YAML front matter hands dates and times over as objects
        if not isinstance(v, str):
            return str(v)
        return v

    @field_validator("txn_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def refund_target(self) -> str:
        """Account credited with the refund."""
        return self.refund_to or self.source_account

    @property
    def net_amount(self) -> Decimal:
        """Face value after refund (expense) or discount (repayment)."""
        if self.txn_type == TransactionType.EXPENSE:
            return self.amount - self.refund
        if self.txn_type == TransactionType.REPAYMENT:
            return self.amount - self.discount
        return self.amount

    def touches(self, account: str) -> bool:
        """Whether ``account`` is the source, destination or refund target."""
        if not account:
            return False
        return account in (
            self.source_account,
            self.destination_account,
            self.refund_target,
        )
