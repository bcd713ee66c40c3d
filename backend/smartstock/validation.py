from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationFailed
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - money_fields: wire name -> *_cents column for decimal amounts
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    money_fields: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field_name: str) -> int:
    """Strict integer coercion: rejects floats, bools and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationFailed(field_name, "must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationFailed(field_name, "must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationFailed(field_name, "must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationFailed(field_name, "must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationFailed(field_name, "must be an integer, not a decimal")
    raise ValidationFailed(field_name, "must be an integer")


def parse_money_cents(value: Any, field_name: str) -> int:
    """
    Parse a decimal amount (number or string, at most two decimal places)
    into integer cents. Amounts must be >= 0 and <= MAX_PRICE_CENTS.
    """
    if value is None or isinstance(value, bool):
        raise ValidationFailed(field_name, "must be a decimal amount")
    try:
        # str() first so floats like 10.1 are read as written, not as binary
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailed(field_name, "must be a decimal amount")
    if not amount.is_finite():
        raise ValidationFailed(field_name, "must be a decimal amount")
    if amount != amount.quantize(CENT):
        raise ValidationFailed(field_name, "must have at most two decimal places")
    cents = int(amount.quantize(CENT) * 100)
    if cents < 0:
        raise ValidationFailed(field_name, "must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationFailed(field_name, f"cannot exceed {format_cents(MAX_PRICE_CENTS)}")
    return cents


def format_cents(cents: int | None) -> str | None:
    """Render integer cents as a fixed two-place decimal string ("15.00")."""
    if cents is None:
        return None
    return str((Decimal(int(cents)) / 100).quantize(CENT))


def divide_cents_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half-up, used for weighted averages in cents."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return int((Decimal(numerator) / Decimal(denominator)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationFailed(col.key, "must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationFailed(col.key, "must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationFailed(col.key, "must be an ISO-8601 datetime")
            return dt
        raise ValidationFailed(col.key, "must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("body", "Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationFailed(missing[0], "is required")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationFailed(k, "field not allowed")
        if k not in cols and k not in policy.money_fields:
            raise ValidationFailed(k, "unknown field")

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.money_fields:
            target = policy.money_fields[k]
            if raw is None:
                if not cols[target].nullable:
                    raise ValidationFailed(k, "cannot be null")
                patch[target] = None
            else:
                patch[target] = parse_money_cents(raw, k)
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationFailed(k, "cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationFailed(k, "cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationFailed(k, f"exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict, *, current=None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    ``current`` is the existing product on update so cross-field rules see
    the merged values.
    """
    if "reorder_level" in patch and patch["reorder_level"] is not None:
        if patch["reorder_level"] < 0:
            raise ValidationFailed("reorder_level", "must be >= 0")

    cost = patch.get("cost_price_cents", getattr(current, "cost_price_cents", None))
    selling = patch.get("selling_price_cents", getattr(current, "selling_price_cents", None))
    if cost is not None and selling is not None and selling < cost:
        raise ValidationFailed("selling_price", "cannot be less than cost_price")


def require_positive_int(value: Any, field_name: str) -> int:
    if value is None:
        raise ValidationFailed(field_name, "is required")
    number = parse_int(value, field_name)
    if number <= 0:
        raise ValidationFailed(field_name, "must be > 0")
    return number
