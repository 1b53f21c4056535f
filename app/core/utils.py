from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import request

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")


def money(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_decimal(value, field_name: str, *, positive: bool = False, allow_zero: bool = True) -> Decimal:
    raw = "" if value is None else str(value).strip().replace(",", "")
    if not raw:
        raise ValidationError(f"Missing {field_name}", details={field_name: "required"})
    try:
        parsed = Decimal(raw)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount for {field_name}", details={field_name: "invalid"}) from exc
    if not parsed.is_finite():
        raise ValidationError(f"Invalid amount for {field_name}", details={field_name: "invalid"})
    if positive and parsed <= 0:
        raise ValidationError(f"{field_name} must be greater than zero", details={field_name: "not_positive"})
    if not allow_zero and parsed == 0:
        raise ValidationError(f"{field_name} cannot be zero", details={field_name: "zero"})
    if parsed < 0:
        raise ValidationError(f"{field_name} cannot be negative", details={field_name: "negative"})
    return parsed


def parse_id(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid id for {field_name}", details={field_name: "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid id for {field_name}", details={field_name: "invalid"}) from exc


def parse_iso_date(value, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Invalid date format for {field_name}", details={field_name: "invalid"})
    raw = (value or "").strip()
    if not raw:
        raise ValidationError(f"Missing {field_name}", details={field_name: "required"})
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid date format for {field_name}", details={field_name: "invalid"}) from exc


def parse_optional_iso_date(value, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    return parse_iso_date(value, field_name)


def required_text(value, field_name: str, max_length: int = 500) -> str:
    text = (value or "").strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError(f"Missing {field_name}", details={field_name: "required"})
    if len(text) > max_length:
        raise ValidationError(f"{field_name} is too long", details={field_name: "too_long"})
    return text


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid"})
    return payload
