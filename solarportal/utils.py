"""
Input parsing helpers shared by services and blueprints:
- parse_decimal / parse_optional_int: lenient parsing of user input (comma or dot decimals).
- require_positive_decimal: strict variant that raises ValidationFailed.
- require_positive_money: same, checked after rounding to cents.
- request_payload: JSON body or form data as a plain dict.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import request

from .errors import ValidationFailed
from .models import money


def parse_decimal(value) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_int(value) -> int | None:
    """Parse optional int from form/query/JSON."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def require_positive_decimal(value, field: str) -> Decimal:
    parsed = parse_decimal(value)
    if parsed is None or parsed <= 0:
        raise ValidationFailed(f"{field} must be a positive number")
    return parsed


def require_positive_money(value, field: str) -> Decimal:
    """Amount rounded to cents; an amount that rounds to 0.00 is rejected."""
    parsed = parse_decimal(value)
    amount = money(parsed) if parsed is not None else None
    if amount is None or amount <= 0:
        raise ValidationFailed(f"{field} must be a positive amount")
    return amount


def require_text(value, field: str) -> str:
    text = (value or "").strip() if isinstance(value, str) or value is None else str(value).strip()
    if not text:
        raise ValidationFailed(f"{field} is required")
    return text


def request_payload() -> dict:
    """JSON body if present, else form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
