# Overview: Service-layer operations for invoices; amounts, issue/cancel/overdue transitions.

"""
Invoice Service

Amounts (integer cents):
- line total = quantity * unit_price_cents
- subtotal   = sum(line totals)
- tax        = round half up (subtotal * tax_rate_bps / 10000)
- total      = subtotal + tax - discount, never negative
- balance    = total - paid

paid_cents / balance_cents only move through payment_service. This module
owns the status transitions that are not driven by money:
DRAFT -> SENT, SENT/PARTIAL -> OVERDUE, DRAFT/SENT/OVERDUE -> CANCELLED.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceLine
from .catalog_service import get_product, require_int
from .concurrency import lock_for_update, run_with_retry
from .sequence_service import INVOICE_PREFIX, next_document_number
from stockledger.time_utils import utcnow


# =============================================================================
# INVOICE STATUS (CONSTANTS)
# =============================================================================

INVOICE_STATUS_DRAFT = "DRAFT"
INVOICE_STATUS_SENT = "SENT"
INVOICE_STATUS_PARTIAL = "PARTIAL"
INVOICE_STATUS_PAID = "PAID"
INVOICE_STATUS_OVERDUE = "OVERDUE"
INVOICE_STATUS_CANCELLED = "CANCELLED"

VALID_INVOICE_STATUSES = [
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_SENT,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_CANCELLED,
]

MAX_PAGE_SIZE = 200


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Round half up on integer cents; no float arithmetic."""
    return (subtotal_cents * tax_rate_bps + 5000) // 10000


# =============================================================================
# INVOICE CREATION
# =============================================================================

def create_invoice(
    *,
    customer_name: str,
    lines: list[dict],
    acting_user_id: int,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    customer_address: str | None = None,
    tax_rate_bps: int = 0,
    discount_cents: int = 0,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> Invoice:
    """
    Create a DRAFT invoice.

    Each line is {"product_id", "quantity", "unit_price_cents"?, "description"?};
    unit price and description default to the product's current values and
    are snapshotted on the line.

    Raises:
        ValidationError: missing customer/lines, bad amounts, negative total
        NotFoundError: unknown product
    """
    if acting_user_id is None:
        raise ValidationError("acting_user_id is required", field="acting_user_id")
    user_id = require_int(acting_user_id, "acting_user_id")
    if customer_name is None or not str(customer_name).strip():
        raise ValidationError("customer_name is required", field="customer_name")
    if not lines or not isinstance(lines, (list, tuple)):
        raise ValidationError("At least one line is required", field="lines")

    tax_rate_bps = require_int(tax_rate_bps or 0, "tax_rate_bps", allow_zero=True)
    discount_cents = require_int(discount_cents or 0, "discount_cents", allow_zero=True)

    def _op():
        invoice_lines = []
        for index, line in enumerate(lines):
            if not isinstance(line, dict):
                raise ValidationError(f"Line {index} must be an object", field="lines", line=index)
            if line.get("product_id") is None:
                raise ValidationError("product_id is required", field="product_id", line=index)
            if line.get("quantity") is None:
                raise ValidationError(f"Line {index} is missing quantity", field="quantity", line=index)

            product = get_product(require_int(line["product_id"], "product_id"))
            quantity = require_int(line["quantity"], "quantity")
            unit_price = line.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.price_cents
            unit_price = require_int(unit_price, "unit_price_cents", allow_zero=True)

            invoice_lines.append(
                InvoiceLine(
                    product_id=product.id,
                    description=line.get("description") or product.name,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    total_price_cents=quantity * unit_price,
                )
            )

        subtotal = sum(line.total_price_cents for line in invoice_lines)
        tax = compute_tax_cents(subtotal, tax_rate_bps)
        total = subtotal + tax - discount_cents
        if total < 0:
            raise ValidationError(
                "Discount exceeds invoice amount",
                subtotal_cents=subtotal,
                tax_cents=tax,
                discount_cents=discount_cents,
            )

        invoice = Invoice(
            invoice_number=next_document_number(INVOICE_PREFIX),
            customer_name=str(customer_name).strip(),
            customer_email=customer_email,
            customer_phone=customer_phone,
            customer_address=customer_address,
            subtotal_cents=subtotal,
            tax_rate_bps=tax_rate_bps,
            tax_cents=tax,
            discount_cents=discount_cents,
            total_cents=total,
            paid_cents=0,
            balance_cents=total,
            status=INVOICE_STATUS_DRAFT,
            due_date=due_date,
            notes=notes,
            created_by_user_id=user_id,
        )
        invoice.lines = invoice_lines
        db.session.add(invoice)
        db.session.commit()

        current_app.logger.info(
            "Created invoice %s (id=%s, total=%d)", invoice.invoice_number, invoice.id, total
        )
        return invoice

    return run_with_retry(_op)


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def _lock_invoice(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)
    return invoice


def send_invoice(invoice_id: int) -> Invoice:
    """DRAFT -> SENT."""
    def _op():
        invoice = _lock_invoice(invoice_id)
        if invoice.status != INVOICE_STATUS_DRAFT:
            raise ValidationError(
                f"Cannot send invoice in {invoice.status} status",
                invoice_id=invoice_id,
                status=invoice.status,
            )
        invoice.status = INVOICE_STATUS_SENT
        invoice.sent_at = utcnow()
        db.session.commit()
        current_app.logger.info("Sent invoice %s", invoice.invoice_number)
        return invoice

    return run_with_retry(_op)


def cancel_invoice(invoice_id: int) -> Invoice:
    """Cancel an invoice with nothing paid against it."""
    def _op():
        invoice = _lock_invoice(invoice_id)
        if invoice.status == INVOICE_STATUS_CANCELLED:
            raise ValidationError("Invoice is already cancelled", invoice_id=invoice_id)
        if invoice.paid_cents > 0:
            raise ValidationError(
                "Cannot cancel an invoice with recorded payments; reverse them first",
                invoice_id=invoice_id,
                paid_cents=invoice.paid_cents,
            )
        invoice.status = INVOICE_STATUS_CANCELLED
        invoice.cancelled_at = utcnow()
        db.session.commit()
        current_app.logger.info("Cancelled invoice %s", invoice.invoice_number)
        return invoice

    return run_with_retry(_op)


def mark_overdue_invoices(as_of: datetime | None = None) -> int:
    """
    Flag SENT and PARTIAL invoices whose due_date has passed.

    Returns the number of invoices moved to OVERDUE.
    """
    as_of = as_of or utcnow()

    def _op():
        query = db.session.query(Invoice).filter(
            Invoice.status.in_([INVOICE_STATUS_SENT, INVOICE_STATUS_PARTIAL]),
            Invoice.due_date.isnot(None),
            Invoice.due_date < as_of,
        )
        invoices = lock_for_update(query).all()
        for invoice in invoices:
            invoice.status = INVOICE_STATUS_OVERDUE
        db.session.commit()
        return len(invoices)

    count = run_with_retry(_op)
    if count:
        current_app.logger.info("Marked %d invoice(s) overdue", count)
    return count


def delete_invoice(invoice_id: int) -> None:
    """Delete an invoice that has no payments."""
    def _op():
        invoice = _lock_invoice(invoice_id)
        if invoice.payments:
            raise ValidationError(
                "Cannot delete an invoice with recorded payments",
                invoice_id=invoice_id,
            )
        number = invoice.invoice_number
        db.session.delete(invoice)
        db.session.commit()
        current_app.logger.info("Deleted invoice %s (id=%s)", number, invoice_id)

    run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)
    return invoice


def list_invoices(*, status: str | None = None, page: int = 1, limit: int = 20):
    """Returns (invoices, total), newest first."""
    if status is not None and status not in VALID_INVOICE_STATUSES:
        raise ValidationError(f"Invalid invoice status: {status}", status=status)
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), MAX_PAGE_SIZE))

    query = db.session.query(Invoice)
    if status is not None:
        query = query.filter(Invoice.status == status)

    total = query.count()
    invoices = (
        query.order_by(Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return invoices, total
