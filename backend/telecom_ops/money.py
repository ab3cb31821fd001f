"""Money helpers. Amounts are stored as integer cents everywhere."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def parse_amount_to_cents(value) -> int:
    """
    Parse a monetary amount ("1590.00", 1590, 1590.5) into integer cents.

    Raises:
        ValueError: if the value is empty, not numeric or negative.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("Amount is required")

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValueError("Amount cannot be negative")

    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def format_cents(cents: int | None, currency: str = "DA") -> str:
    """Display form used by the dashboard, e.g. 477000 -> '4,770.00 DA'."""
    if cents is None:
        return "N/A"
    return f"{cents_to_decimal(cents):,.2f} {currency}"
