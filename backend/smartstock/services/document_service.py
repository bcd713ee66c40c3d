# Overview: Shared posting skeleton for purchase and sale documents (numbering, line parsing, locking, cancellation).

"""
Document posting skeleton

WHY: Purchases and sales differ only in sign, pricing and which table they
land in. Numbering, line validation, duplicate merging, product locking and
the retry policy live here so both paths behave identically.

POSTING RULES:
- One document post == one transaction. Any error rolls back header, lines,
  movements and alerts together.
- Product rows are locked in ascending id order so two documents touching
  the same products cannot deadlock.
- Caller-supplied numbers are used as-is; a taken number is a Conflict.
- Generated numbers are <PREFIX>-<epoch_ms>; on a clash we retry with a
  fresh suffix, at most MAX_NUMBER_ATTEMPTS times.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from ..errors import Conflict, NotFound, UniqueViolation, ValidationFailed
from ..extensions import db
from ..models import Product
from ..time_utils import normalize_datetime, utcnow
from ..validation import parse_money_cents, require_positive_int
from .concurrency import check_deadline, flush, lock_for_update, run_with_retry, transaction

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 3
MAX_LINES = 500
FUTURE_TOLERANCE = timedelta(minutes=2)


@dataclass
class LineInput:
    product_id: int
    quantity: int
    unit_cents: Optional[int] = None
    notes: Optional[str] = None


class _NumberTaken(Exception):
    """Generated number already in use; retry with a new one."""


def parse_lines(raw_lines: Any, *, price_field: str, price_required: bool) -> list[LineInput]:
    """Validate the request's line array into LineInput records (input order kept)."""
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationFailed("lines", "at least one line is required")
    if len(raw_lines) > MAX_LINES:
        raise ValidationFailed("lines", f"at most {MAX_LINES} lines per document")

    parsed = []
    for index, raw in enumerate(raw_lines):
        prefix = f"lines[{index}]"
        if not isinstance(raw, dict):
            raise ValidationFailed(prefix, "must be an object")

        product_id = require_positive_int(raw.get("product_id"), f"{prefix}.product_id")
        quantity = require_positive_int(raw.get("quantity"), f"{prefix}.quantity")

        price = raw.get(price_field)
        if price is None:
            if price_required:
                raise ValidationFailed(f"{prefix}.{price_field}", "is required")
            unit_cents = None
        else:
            unit_cents = parse_money_cents(price, f"{prefix}.{price_field}")

        notes = raw.get("notes")
        if notes is not None:
            notes = str(notes).strip()[:255] or None

        parsed.append(LineInput(product_id=product_id, quantity=quantity, unit_cents=unit_cents, notes=notes))
    return parsed


def group_lines(lines: Iterable[LineInput]) -> dict[int, list[LineInput]]:
    """Group duplicate product lines, keeping first-appearance order."""
    grouped: dict[int, list[LineInput]] = {}
    for line in lines:
        grouped.setdefault(line.product_id, []).append(line)
    return grouped


def resolve_occurred_at(value: Any) -> datetime:
    """Business time for a document; defaults to now, may be back-dated but not future-dated."""
    if value in (None, ""):
        return utcnow()
    try:
        occurred_at = normalize_datetime(value)
    except ValueError:
        raise ValidationFailed("occurred_at", "must be an ISO-8601 datetime")
    if occurred_at > utcnow() + FUTURE_TOLERANCE:
        raise ValidationFailed("occurred_at", "cannot be in the future")
    return occurred_at


def clean_number(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    number = str(value).strip()
    if not number:
        return None
    if len(number) > 64:
        raise ValidationFailed(field_name, "exceeds max length 64")
    return number


def generate_number(prefix: str, attempt: int) -> str:
    base = f"{prefix}-{int(time.time() * 1000)}"
    if attempt == 0:
        return base
    return f"{base}-{secrets.token_hex(2).upper()}"


def number_taken(model, number_field: str, number: str) -> bool:
    column = getattr(model, number_field)
    return db.session.query(model.id).filter(column == number).first() is not None


def get_active(model, entity_id: Any, which: str):
    """Resolve a referenced catalog entity; NotFound if absent, ValidationFailed if inactive."""
    entity_id = require_positive_int(entity_id, f"{which}_id")
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFound(which, entity_id)
    if not entity.is_active:
        raise ValidationFailed(f"{which}_id", f"{which} {entity_id} is inactive")
    return entity


def lock_products(product_ids: Iterable[int], *, require_active: bool = True) -> dict[int, Product]:
    """Lock product rows in ascending id order; NotFound on the first missing id."""
    wanted = sorted(set(product_ids))
    rows = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(wanted)))
        .order_by(Product.id.asc())
        .all()
    )
    by_id = {p.id: p for p in rows}
    for product_id in wanted:
        product = by_id.get(product_id)
        if product is None:
            raise NotFound("product", product_id)
        if require_active and not product.is_active:
            raise ValidationFailed("product_id", f"product {product_id} is inactive")
    return by_id


def post_with_number(
    *,
    model,
    number_field: str,
    prefix: str,
    requested: Optional[str],
    build: Callable[[str], Any],
):
    """
    Run ``build(number)`` inside one transaction and return its result.

    Handles numbering: caller-supplied numbers conflict if taken; generated
    numbers are retried with a fresh suffix. Transient store failures re-run
    the whole transaction.
    """
    for attempt in range(MAX_NUMBER_ATTEMPTS):
        number = requested or generate_number(prefix, attempt)

        def _op():
            with transaction():
                check_deadline()
                if number_taken(model, number_field, number):
                    if requested:
                        raise Conflict(f"{number_field} {number!r} already exists", {"field": number_field})
                    raise _NumberTaken(number)
                return build(number)

        try:
            return run_with_retry(_op)
        except _NumberTaken:
            continue
        except UniqueViolation as exc:
            if number_field not in (exc.constraint or ""):
                raise Conflict(exc.message, {"constraint": exc.constraint}) from exc
            if requested:
                raise Conflict(f"{number_field} {number!r} already exists", {"field": number_field}) from exc
            logger.warning("Generated %s %s collided, retrying", number_field, number)
            continue

    raise Conflict(f"Could not allocate a unique {number_field}", {"field": number_field})


def load_for_cancel(model, document_id: int, which: str):
    document = lock_for_update(db.session.query(model).filter_by(id=document_id)).first()
    if document is None:
        raise NotFound(which, document_id)
    if document.compensates_id is not None:
        raise Conflict(f"{which} {document_id} is a cancellation and cannot be cancelled")
    if document.status == "CANCELLED":
        raise Conflict(f"{which} {document_id} is already cancelled")
    if document.status != "POSTED":
        raise Conflict(f"Cannot cancel {which} with status {document.status}")
    return document


def compensator_number(original_number: str, attempt: int = 0) -> str:
    suffix = "-CXL" if attempt == 0 else f"-CXL-{secrets.token_hex(2).upper()}"
    # Keep within the column width
    return f"{original_number[:64 - len(suffix)]}{suffix}"


def allocate_compensator_number(model, number_field: str, original_number: str) -> str:
    """
    Number for a cancellation document: <original>-CXL, or a suffixed variant
    when that is taken. Conflict after MAX_NUMBER_ATTEMPTS clashes.
    """
    for attempt in range(MAX_NUMBER_ATTEMPTS):
        number = compensator_number(original_number, attempt)
        if not number_taken(model, number_field, number):
            return number
        logger.warning("Cancellation %s %s already in use, retrying", number_field, number)
    raise Conflict(f"Could not allocate a unique {number_field} for the cancellation", {"field": number_field})


def flush_numbered_header(number_field: str, number: str) -> None:
    """Flush a new header; a clash on its number surfaces as Conflict."""
    try:
        flush()
    except UniqueViolation as exc:
        if number_field in (exc.constraint or ""):
            raise Conflict(f"{number_field} {number!r} already exists", {"field": number_field}) from exc
        raise
