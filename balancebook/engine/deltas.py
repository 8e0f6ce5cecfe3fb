"""
Balance Delta Resolution

The signed effect of one transaction on one account. Every other
computation in the engine is a sum or a fold over these deltas.

Rules per transaction type (``from`` = source, ``to`` = destination,
refund target = ``refund_to`` or else the source):

    income     to, or from when there is no to      +amount
    expense    from                                 -amount
               refund target                        +refund
               both                                 -amount + refund
    repayment  from only                            -(amount - discount)
               to only                              +amount
               from and to                          +discount
    transfer   from only                            -amount
               to only                              +amount
               from and to                          0
    any        unrelated account                    0

An expense refunded to another account yields two independent deltas,
one per account asked about.
"""

from decimal import Decimal
from typing import Callable

from balancebook.engine.normalize import ZERO
from balancebook.models.transaction import Transaction, TransactionType


_Resolver = Callable[[Transaction, bool, bool, bool], Decimal]


def _income_delta(txn: Transaction, is_from: bool, is_to: bool, is_refund_target: bool) -> Decimal:
    if is_to or (is_from and not txn.destination_account):
        return txn.amount
    return ZERO


def _expense_delta(txn: Transaction, is_from: bool, is_to: bool, is_refund_target: bool) -> Decimal:
    change = ZERO
    if is_from:
        change -= txn.amount
    if is_refund_target:
        change += txn.refund
    return change


def _repayment_delta(txn: Transaction, is_from: bool, is_to: bool, is_refund_target: bool) -> Decimal:
    if is_from and is_to:
        # Paid out (amount - discount) and received amount on the same account
        return txn.discount
    if is_from:
        return -(txn.amount - txn.discount)
    if is_to:
        return txn.amount
    return ZERO


def _transfer_delta(txn: Transaction, is_from: bool, is_to: bool, is_refund_target: bool) -> Decimal:
    if is_from and is_to:
        return ZERO
    if is_from:
        return -txn.amount
    if is_to:
        return txn.amount
    return ZERO


_RESOLVERS: dict[TransactionType, _Resolver] = {
    TransactionType.INCOME: _income_delta,
    TransactionType.EXPENSE: _expense_delta,
    TransactionType.REPAYMENT: _repayment_delta,
    TransactionType.TRANSFER: _transfer_delta,
}

_missing = set(TransactionType) - set(_RESOLVERS)
if _missing:
    raise RuntimeError(f"No balance rule for transaction types: {sorted(t.value for t in _missing)}")


def balance_delta(txn: Transaction, account: str) -> Decimal:
    """
    Signed balance change ``txn`` causes on ``account``.

    Pure: safe to call for any account, including ones the transaction
    does not mention (returns zero). An empty account name never matches.
    """
    if not account:
        return ZERO

    is_from = txn.source_account == account
    is_to = txn.destination_account == account
    is_refund_target = txn.refund_target == account

    if not (is_from or is_to or is_refund_target):
        return ZERO

    return _RESOLVERS[txn.txn_type](txn, is_from, is_to, is_refund_target)
