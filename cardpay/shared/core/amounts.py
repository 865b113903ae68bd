"""Coin amount helpers (8 fractional digits, never rounded up)."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

from cardpay.shared.core.config import PRICE_PATTERN
from cardpay.shared.core.exceptions import InvalidPriceError

COIN_QUANTUM = Decimal("0.00000001")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their shortest repr instead of binary noise.
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid coin amount: {value!r}") from exc


def truncate_amount(value: Any) -> Decimal:
    """Truncate toward zero to 8 fractional digits."""
    amount = _to_decimal(value)
    if not amount.is_finite():
        raise ValueError(f"Invalid coin amount: {value!r}")
    return amount.quantize(COIN_QUANTUM, rounding=ROUND_DOWN)


def format_coin(value: Any) -> str:
    """Render an amount with exactly 8 decimals; unparseable input renders as zero."""
    if value is None or value == "":
        return "0.00000000"
    try:
        return f"{truncate_amount(value):.8f}"
    except ValueError:
        return "0.00000000"


def is_valid_price(price: str | None) -> bool:
    return bool(price) and PRICE_PATTERN.match(str(price).strip()) is not None


def require_price(price: str | None) -> str:
    """8-decimal charge amount for a stored price; malformed prices raise."""
    if not is_valid_price(price):
        raise InvalidPriceError(str(price))
    return format_coin(str(price).strip())
