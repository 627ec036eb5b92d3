from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

CENT = Decimal("0.01")


def round_currency(value: Decimal | int | float) -> Decimal:
    """Round a currency amount to cents, half up.

    Used by every caller right after a calculator call so stored amounts do
    not drift between call sites.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    cleaned = str(value).strip().replace(" ", "")
    if "," in cleaned:
        # German notation: "1.234,50"
        cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        return Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc


def format_currency(amount: Decimal | int | float, currency: str = "EUR") -> str:
    """Format an amount in German notation, e.g. ``1.234,50 €``."""
    rounded = round_currency(amount)
    text = f"{rounded:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    symbol = "€" if currency == "EUR" else currency
    return f"{text} {symbol}"
