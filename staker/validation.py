"""Validation helpers for the delegation staker."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation


ACCOUNT_NAME_RE = re.compile(r"[a-z1-5.]{1,12}[a-j1-5.]?")
SYMBOL_RE = re.compile(r"[A-Z]{1,7}")
MAX_PRECISION = 18


class ValidationError(ValueError):
    """Raised when inputs fail validation."""


def validate_account_name(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise ValidationError("account name must be a non-empty string")
    if not ACCOUNT_NAME_RE.fullmatch(name) or name.endswith("."):
        raise ValidationError(f"invalid account name: {name}")


def validate_symbol(symbol: str, precision: int) -> None:
    if not isinstance(symbol, str) or not SYMBOL_RE.fullmatch(symbol):
        raise ValidationError(f"invalid token symbol: {symbol}")
    if not isinstance(precision, int) or not 0 <= precision <= MAX_PRECISION:
        raise ValidationError(f"precision must be between 0 and {MAX_PRECISION}")


def validate_positive_int(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")


def validate_positive_amount(value: object, name: str) -> Decimal:
    """Return ``value`` as a Decimal, rejecting non-numbers and values <= 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"{name} must be a number: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{name} must be greater than zero")
    return amount


def validate_non_negative_number(value: object, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"{name} must be a non-negative number")
    return float(value)


def validate_url(url: str) -> None:
    if not isinstance(url, str) or not url:
        raise ValidationError("url must be a non-empty string")
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ValidationError(f"url must start with http:// or https://: {url}")
