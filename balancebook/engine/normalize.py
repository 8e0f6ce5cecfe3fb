"""
Numeric and ordering helpers shared by the engine.
"""

from decimal import Decimal
from typing import Any, Iterable

from balancebook.models.transaction import Transaction


ZERO = Decimal("0")
ZERO_EPSILON = Decimal("0.000001")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a balance-like value to Decimal.

    Floats go through ``repr`` so 0.1 becomes Decimal("0.1") rather than
    its binary expansion. ``None`` counts as zero.
    """
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def normalize_balance(value: Any, epsilon: Decimal = ZERO_EPSILON) -> Decimal:
    """
    Snap values within ``epsilon`` of zero to exactly zero.

    Prevents tiny negative residues (and Decimal("-0")) from being shown or
    classified as negative.
    """
    amount = to_decimal(value)
    if abs(amount) < epsilon:
        return ZERO
    return amount


def _pad_parts(value: str, sep: str, widths: tuple[int, ...]) -> str:
    parts = value.split(sep)
    if len(parts) > len(widths) or not all(part.isdigit() for part in parts):
        return value
    padded = [part.zfill(width) for part, width in zip(parts, widths)]
    # Missing trailing components (e.g. seconds) count as zero
    padded.extend("0" * width for width in widths[len(parts):])
    return sep.join(padded)


def date_sort_key(value: str) -> str:
    """Zero-padded ``YYYY-MM-DD`` so string comparison is chronological."""
    value = (value or "").strip()
    if not value:
        return ""
    return _pad_parts(value, "-", (4, 2, 2))


def time_sort_key(value: str) -> str:
    """
    Zero-padded ``HH:MM:SS``.

    An empty time stays empty and therefore sorts before any time on the
    same date.
    """
    value = (value or "").strip()
    if not value:
        return ""
    return _pad_parts(value, ":", (2, 2, 2))


def chronological_key(txn: Transaction) -> tuple[str, str]:
    """Sort key ordering transactions by (date, time)."""
    return date_sort_key(txn.date), time_sort_key(txn.time)


def sort_chronologically(
    transactions: Iterable[Transaction],
    newest_first: bool = False,
) -> list[Transaction]:
    """
    Stable sort by (date, time).

    Ties keep their input order in both directions.
    """
    return sorted(transactions, key=chronological_key, reverse=newest_first)
