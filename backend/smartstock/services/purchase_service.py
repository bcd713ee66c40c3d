"""
Purchase Service - stock-in documents

WHY: Every unit that enters a warehouse arrives through a posted purchase.
Posting writes the header, its lines and one PURCHASE_IN movement per line
in a single transaction, then refreshes alerts for the touched products.

COST POLICY:
Receiving overwrites Product.cost_price with the line's unit cost
(last-received cost). Cancelling a purchase does not restore the previous
cost.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import PurchaseHeader, PurchaseItem, Supplier, Warehouse
from ..validation import divide_cents_half_up, format_cents
from . import alert_service, ledger_service
from .concurrency import flush, run_with_retry, transaction
from .document_service import (
    LineInput,
    allocate_compensator_number,
    clean_number,
    flush_numbered_header,
    get_active,
    group_lines,
    load_for_cancel,
    lock_products,
    parse_lines,
    post_with_number,
    resolve_occurred_at,
)
from .ledger_service import DocumentRef

logger = logging.getLogger(__name__)

DOCUMENT_KIND = "PURCHASE"


def merge_purchase_lines(lines: list[LineInput]) -> list[LineInput]:
    """
    Merge duplicate products: quantities add up, unit cost becomes the
    quantity-weighted average rounded half-up to the cent.
    """
    merged = []
    for product_id, group in group_lines(lines).items():
        quantity = sum(line.quantity for line in group)
        if len(group) == 1:
            merged.append(group[0])
            continue
        weighted = sum(line.quantity * line.unit_cents for line in group)
        notes = "; ".join(line.notes for line in group if line.notes) or None
        merged.append(LineInput(
            product_id=product_id,
            quantity=quantity,
            unit_cents=divide_cents_half_up(weighted, quantity),
            notes=notes[:255] if notes else None,
        ))
    return merged


def post_purchase(
    *,
    supplier_id: Any,
    warehouse_id: Any,
    lines: Any,
    actor_user_id: int | None = None,
    reference_number: Any = None,
    notes: Optional[str] = None,
    occurred_at: Any = None,
) -> PurchaseHeader:
    """
    Post a purchase in one step (DRAFT -> POSTED).

    Raises ValidationFailed, NotFound, Conflict or Transient; on any error
    nothing is written.
    """
    parsed = merge_purchase_lines(parse_lines(lines, price_field="unit_cost", price_required=True))
    requested = clean_number(reference_number, "reference_number")
    when = resolve_occurred_at(occurred_at)

    def _build(number: str) -> PurchaseHeader:
        supplier = get_active(Supplier, supplier_id, "supplier")
        warehouse = get_active(Warehouse, warehouse_id, "warehouse")
        products = lock_products(line.product_id for line in parsed)

        header = PurchaseHeader(
            reference_number=number,
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            status="POSTED",
            notes=notes,
            occurred_at=when,
            created_by_user_id=actor_user_id,
        )
        db.session.add(header)
        flush()

        total = 0
        for line_no, line in enumerate(parsed, start=1):
            product = products[line.product_id]
            line_total = line.quantity * line.unit_cents
            item = PurchaseItem(
                purchase_id=header.id,
                line_no=line_no,
                product_id=product.id,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cents,
                line_total_cents=line_total,
                notes=line.notes,
            )
            db.session.add(item)
            flush()

            ledger_service.append(
                product_id=product.id,
                warehouse_id=warehouse.id,
                delta=line.quantity,
                kind="PURCHASE_IN",
                doc_ref=DocumentRef(DOCUMENT_KIND, header.id, item.id),
                unit_cost_snapshot_cents=line.unit_cents,
                actor_user_id=actor_user_id,
                occurred_at=when,
            )

            # Last-received cost becomes the product cost
            product.cost_price_cents = line.unit_cents
            alert_service.evaluate(product)
            total += line_total

        header.total_cost_cents = total
        return header

    header = post_with_number(
        model=PurchaseHeader,
        number_field="reference_number",
        prefix="PO",
        requested=requested,
        build=_build,
    )
    logger.info("Posted purchase %s with %d line(s)", header.reference_number, len(parsed))
    return header


def cancel_purchase(purchase_id: int, *, actor_user_id: int | None = None, notes: Optional[str] = None) -> PurchaseHeader:
    """
    Cancel a posted purchase by posting a compensating document.

    The compensator copies the lines and removes the stock again with
    ADJUSTMENT movements. Fails with InsufficientStock if the received units
    were already sold. Returns the compensating document.
    """
    def _op():
        with transaction():
            original = load_for_cancel(PurchaseHeader, purchase_id, "purchase")
            products = lock_products((item.product_id for item in original.items), require_active=False)

            number = allocate_compensator_number(PurchaseHeader, "reference_number", original.reference_number)
            compensator = PurchaseHeader(
                reference_number=number,
                supplier_id=original.supplier_id,
                warehouse_id=original.warehouse_id,
                status="POSTED",
                total_cost_cents=original.total_cost_cents,
                notes=notes or f"Cancellation of {original.reference_number}",
                created_by_user_id=actor_user_id,
                compensates_id=original.id,
            )
            db.session.add(compensator)
            flush_numbered_header("reference_number", number)

            for item in original.items:
                copy = PurchaseItem(
                    purchase_id=compensator.id,
                    line_no=item.line_no,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_cost_cents=item.unit_cost_cents,
                    line_total_cents=item.line_total_cents,
                    notes=item.notes,
                )
                db.session.add(copy)
                flush()

                ledger_service.append(
                    product_id=item.product_id,
                    warehouse_id=original.warehouse_id,
                    delta=-item.quantity,
                    kind="ADJUSTMENT",
                    doc_ref=DocumentRef(DOCUMENT_KIND, compensator.id, copy.id),
                    unit_cost_snapshot_cents=item.unit_cost_cents,
                    actor_user_id=actor_user_id,
                    occurred_at=compensator.occurred_at,
                    notes=f"Cancel {original.reference_number}",
                )
                alert_service.evaluate(products[item.product_id])

            original.status = "CANCELLED"
            original.cancelled_by_id = compensator.id
            return compensator

    compensator = run_with_retry(_op)
    logger.info("Cancelled purchase %s via %s", purchase_id, compensator.reference_number)
    return compensator


def get_purchase(purchase_id: int) -> PurchaseHeader:
    purchase = db.session.get(PurchaseHeader, purchase_id)
    if purchase is None:
        raise NotFound("purchase", purchase_id)
    return purchase


def list_purchases(*, status: Optional[str] = None, limit: int = 200) -> tuple[list[PurchaseHeader], dict]:
    """
    Purchases newest first, plus a summary over effective purchases
    (posted, not cancelled, not a cancellation).
    """
    query = db.session.query(PurchaseHeader)
    if status:
        if status not in ("POSTED", "CANCELLED"):
            raise ValidationFailed("status", "must be POSTED or CANCELLED")
        query = query.filter(PurchaseHeader.status == status)
    purchases = (
        query.order_by(PurchaseHeader.occurred_at.desc(), PurchaseHeader.id.desc())
        .limit(limit)
        .all()
    )

    count, total = (
        db.session.query(
            func.count(PurchaseHeader.id),
            func.coalesce(func.sum(PurchaseHeader.total_cost_cents), 0),
        )
        .filter(
            PurchaseHeader.status == "POSTED",
            PurchaseHeader.compensates_id.is_(None),
        )
        .one()
    )
    summary = {
        "total_purchases": int(count or 0),
        "total_cost": format_cents(int(total or 0)),
    }
    return purchases, summary
