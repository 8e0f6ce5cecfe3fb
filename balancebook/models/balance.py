"""
Computed Balance Models

Everything here is derived output: produced fresh on each computation and
never persisted. None of it is authoritative.
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from balancebook.models.account import Account


class BalanceChange(BaseModel):
    """Balance of one account immediately before and after one transaction."""
    model_config = ConfigDict(frozen=True)

    before: Decimal
    after: Decimal

    @property
    def delta(self) -> Decimal:
        return self.after - self.before


# transaction path -> change for one account
RunningBalances = dict[str, BalanceChange]

# transaction path -> account name -> change
LedgerBalances = dict[str, dict[str, BalanceChange]]


class AccountBalance(BaseModel):
    """An account paired with its current balance."""
    model_config = ConfigDict(frozen=True)

    account: Account
    balance: Decimal

    @property
    def is_liability(self) -> bool:
        return self.balance < 0


class KindGroup(BaseModel):
    """Accounts sharing one kind, with the sum of their balances."""

    kind: str
    accounts: list[AccountBalance] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class NetWorthSummary(BaseModel):
    """
    Asset / liability split across all accounts.

    ``assets`` sums non-negative balances, ``liabilities`` sums the absolute
    value of negative ones, whatever the account kind.
    """
    model_config = ConfigDict(frozen=True)

    assets: Decimal = Decimal("0")
    liabilities: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")


class LedgerReport(BaseModel):
    """All computed views over a single snapshot."""

    computed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    balances: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Current balance per account name"
    )
    running_balances: LedgerBalances = Field(
        default_factory=dict,
        description="Per-transaction before/after for every tracked account"
    )
    summary: NetWorthSummary = Field(default_factory=NetWorthSummary)
    groups: list[KindGroup] = Field(default_factory=list)
    mismatched_accounts: list[str] = Field(
        default_factory=list,
        description="Accounts whose replayed balance disagreed with the aggregate"
    )
