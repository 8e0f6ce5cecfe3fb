"""
Account Models

An account is identified by its immutable ``name`` (the key the record store
derived it from). The display name is presentation only; the engine never
looks accounts up by it.

DESIGN DECISION: ``kind`` stays an open-ended string so records carrying a
kind we don't know about still load. ``AccountKind`` lists the kinds with a
fixed display position; anything else is shown after them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_CURRENCY = "CNY"


class AccountKind(str, Enum):
    """Account kinds with a known display position."""
    BANK = "bank"
    CREDIT = "credit"
    WALLET = "wallet"
    CASH = "cash"
    INVESTMENT = "investment"
    PREPAID = "prepaid"
    OTHER = "other"


# Display order used when grouping accounts by kind
ACCOUNT_KIND_ORDER: tuple[str, ...] = (
    AccountKind.BANK.value,
    AccountKind.CREDIT.value,
    AccountKind.WALLET.value,
    AccountKind.CASH.value,
    AccountKind.PREPAID.value,
    AccountKind.INVESTMENT.value,
    AccountKind.OTHER.value,
)


class Account(BaseModel):
    """
    A single account with its opening balance.

    CRITICAL: ``opening_balance`` is the starting point for every replay.
    Changing it invalidates all running balances of the account; there is
    no incremental patch for that.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Unique account identity (file-derived key)"
    )
    display_name: str = Field(
        default="",
        max_length=200,
        description="Human-facing name; falls back to the identity when empty"
    )
    kind: str = Field(
        default="",
        description="Account kind tag (bank, credit, wallet, ...)"
    )
    institution: str = Field(
        default="",
        description="Bank or provider holding the account"
    )
    opening_balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed balance before any recorded transaction"
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        max_length=10,
        description="Currency code; one currency per account"
    )

    # Optional descriptive fields
    opening_date: Optional[date] = None
    credit_limit: Optional[Decimal] = None
    note: str = ""
    tags: tuple[str, ...] = ()

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> str:
        """Kinds compare case-insensitively."""
        if v is None:
            return ""
        return str(v).strip().lower()

    @field_validator("opening_balance", mode="before")
    @classmethod
    def default_missing_balance(cls, v: Any) -> Any:
        """A missing opening balance means zero."""
        if v is None or v == "":
            return Decimal("0")
        if isinstance(v, float):
            return Decimal(repr(v))
        return v

    @field_validator("display_name", "institution", "note", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def label(self) -> str:
        """Name to show for this account."""
        return self.display_name or self.name

    @property
    def kind_label(self) -> str:
        """Grouping key: the raw kind, with an empty kind counted as other."""
        return self.kind or AccountKind.OTHER.value

    @property
    def kind_category(self) -> AccountKind:
        """Known kind for this account; unknown kinds fall into OTHER."""
        try:
            return AccountKind(self.kind_label)
        except ValueError:
            return AccountKind.OTHER
