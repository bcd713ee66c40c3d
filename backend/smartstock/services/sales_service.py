"""
Sales Service - stock-out documents

WHY: A sale is the only way stock leaves a warehouse outside of explicit
adjustments. Posting checks stock per (product, warehouse) under a row lock,
so two concurrent sales of the last unit cannot both succeed.

COGS:
Each line snapshots the product's cost_price at posting time; that snapshot
(not the purchase-line cost) is the COGS basis in every report.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import Customer, SaleHeader, SaleItem, StockMovement, Warehouse
from ..validation import format_cents
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

DOCUMENT_KIND = "SALE"


def merge_sale_lines(lines: list[LineInput]) -> list[LineInput]:
    """
    Merge duplicate products: quantities add up, the latest unit_price given
    wins (None means "use the product's selling price").
    """
    merged = []
    for product_id, group in group_lines(lines).items():
        if len(group) == 1:
            merged.append(group[0])
            continue
        unit_cents = None
        for line in group:
            if line.unit_cents is not None:
                unit_cents = line.unit_cents
        merged.append(LineInput(
            product_id=product_id,
            quantity=sum(line.quantity for line in group),
            unit_cents=unit_cents,
        ))
    return merged


def post_sale(
    *,
    warehouse_id: Any,
    lines: Any,
    customer_id: Any = None,
    actor_user_id: int | None = None,
    invoice_number: Any = None,
    notes: Optional[str] = None,
    occurred_at: Any = None,
) -> SaleHeader:
    """
    Post a sale in one step (DRAFT -> POSTED).

    Stock is checked against the given warehouse only. Raises
    ValidationFailed, NotFound, InsufficientStock, Conflict or Transient; on
    any error nothing is written.
    """
    parsed = merge_sale_lines(parse_lines(lines, price_field="unit_price", price_required=False))
    requested = clean_number(invoice_number, "invoice_number")
    when = resolve_occurred_at(occurred_at)

    def _build(number: str) -> SaleHeader:
        customer = None
        if customer_id not in (None, ""):
            customer = get_active(Customer, customer_id, "customer")
        warehouse = get_active(Warehouse, warehouse_id, "warehouse")
        products = lock_products(line.product_id for line in parsed)

        header = SaleHeader(
            invoice_number=number,
            customer_id=customer.id if customer else None,
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
            unit_price = line.unit_cents if line.unit_cents is not None else product.selling_price_cents
            line_total = line.quantity * unit_price
            cost_snapshot = product.cost_price_cents

            item = SaleItem(
                sale_id=header.id,
                line_no=line_no,
                product_id=product.id,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                line_total_cents=line_total,
                unit_cost_snapshot_cents=cost_snapshot,
            )
            db.session.add(item)
            flush()

            ledger_service.append(
                product_id=product.id,
                warehouse_id=warehouse.id,
                delta=-line.quantity,
                kind="SALE_OUT",
                doc_ref=DocumentRef(DOCUMENT_KIND, header.id, item.id),
                unit_cost_snapshot_cents=cost_snapshot,
                actor_user_id=actor_user_id,
                occurred_at=when,
            )
            alert_service.evaluate(product)
            total += line_total

        header.total_amount_cents = total
        return header

    header = post_with_number(
        model=SaleHeader,
        number_field="invoice_number",
        prefix="INV",
        requested=requested,
        build=_build,
    )
    logger.info("Posted sale %s with %d line(s)", header.invoice_number, len(parsed))
    return header


def cancel_sale(sale_id: int, *, actor_user_id: int | None = None, notes: Optional[str] = None) -> SaleHeader:
    """
    Cancel a posted sale by posting a compensating document that returns the
    units to the same warehouse (ADJUSTMENT movements, positive delta).
    Returns the compensating document.
    """
    def _op():
        with transaction():
            original = load_for_cancel(SaleHeader, sale_id, "sale")
            products = lock_products((item.product_id for item in original.items), require_active=False)

            number = allocate_compensator_number(SaleHeader, "invoice_number", original.invoice_number)
            compensator = SaleHeader(
                invoice_number=number,
                customer_id=original.customer_id,
                warehouse_id=original.warehouse_id,
                status="POSTED",
                total_amount_cents=original.total_amount_cents,
                notes=notes or f"Cancellation of {original.invoice_number}",
                created_by_user_id=actor_user_id,
                compensates_id=original.id,
            )
            db.session.add(compensator)
            flush_numbered_header("invoice_number", number)

            for item in original.items:
                copy = SaleItem(
                    sale_id=compensator.id,
                    line_no=item.line_no,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    line_total_cents=item.line_total_cents,
                    unit_cost_snapshot_cents=item.unit_cost_snapshot_cents,
                )
                db.session.add(copy)
                flush()

                ledger_service.append(
                    product_id=item.product_id,
                    warehouse_id=original.warehouse_id,
                    delta=item.quantity,
                    kind="ADJUSTMENT",
                    doc_ref=DocumentRef(DOCUMENT_KIND, compensator.id, copy.id),
                    unit_cost_snapshot_cents=item.unit_cost_snapshot_cents,
                    actor_user_id=actor_user_id,
                    occurred_at=compensator.occurred_at,
                    notes=f"Cancel {original.invoice_number}",
                )
                alert_service.evaluate(products[item.product_id])

            original.status = "CANCELLED"
            original.cancelled_by_id = compensator.id
            return compensator

    compensator = run_with_retry(_op)
    logger.info("Cancelled sale %s via %s", sale_id, compensator.invoice_number)
    return compensator


def get_sale(sale_id: int) -> SaleHeader:
    sale = db.session.get(SaleHeader, sale_id)
    if sale is None:
        raise NotFound("sale", sale_id)
    return sale


def effective_sales_filter():
    """Sales that count toward revenue: posted, not cancelled, not a cancellation."""
    return db.and_(SaleHeader.status == "POSTED", SaleHeader.compensates_id.is_(None))


def list_sales(*, status: Optional[str] = None, limit: int = 200) -> tuple[list[SaleHeader], dict]:
    query = db.session.query(SaleHeader)
    if status:
        if status not in ("POSTED", "CANCELLED"):
            raise ValidationFailed("status", "must be POSTED or CANCELLED")
        query = query.filter(SaleHeader.status == status)
    sales = (
        query.order_by(SaleHeader.occurred_at.desc(), SaleHeader.id.desc())
        .limit(limit)
        .all()
    )

    count, revenue = (
        db.session.query(
            func.count(SaleHeader.id),
            func.coalesce(func.sum(SaleHeader.total_amount_cents), 0),
        )
        .filter(effective_sales_filter())
        .one()
    )
    cogs = (
        db.session.query(func.coalesce(func.sum(SaleItem.quantity * SaleItem.unit_cost_snapshot_cents), 0))
        .join(SaleHeader, SaleHeader.id == SaleItem.sale_id)
        .filter(effective_sales_filter())
        .scalar()
    )
    revenue = int(revenue or 0)
    cogs = int(cogs or 0)
    summary = {
        "total_sales": int(count or 0),
        "total_revenue": format_cents(revenue),
        "total_profit": format_cents(revenue - cogs),
    }
    return sales, summary


def last_sale_movements():
    """
    Subquery of (product_id, last_sold_at) over SALE_OUT movements whose sale
    was not cancelled.
    """
    cancelled_ids = db.select(SaleHeader.id).where(SaleHeader.status == "CANCELLED")
    return (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.max(StockMovement.occurred_at).label("last_sold_at"),
        )
        .filter(
            StockMovement.kind == "SALE_OUT",
            StockMovement.document_id.notin_(cancelled_ids),
        )
        .group_by(StockMovement.product_id)
        .subquery()
    )
