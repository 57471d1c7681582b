# Overview: Service-layer operations for payments; records and reverses payments against invoice balances.

"""
Payment Processing Service

DESIGN PRINCIPLES:
- Payments belong to exactly one invoice (many-to-one)
- Partial payments: an invoice may be settled by several payments
- No over-payment: amount may not exceed the current balance
- Immutable ledger: every record/reverse appends a PaymentEvent
- Invoice paid/balance/status are written here and nowhere else
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, PaymentExceedsBalanceError, ValidationError
from ..extensions import db
from ..models import Invoice, Payment, PaymentEvent
from .catalog_service import require_int
from .concurrency import lock_for_update, run_with_retry
from .invoice_service import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_SENT,
)
from .sequence_service import PAYMENT_PREFIX, next_document_number
from stockledger.time_utils import as_naive_utc, utcnow


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CHECK = "CHECK"
METHOD_BANK_TRANSFER = "BANK_TRANSFER"
METHOD_CREDIT_CARD = "CREDIT_CARD"
METHOD_DEBIT_CARD = "DEBIT_CARD"
METHOD_OTHER = "OTHER"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CHECK,
    METHOD_BANK_TRANSFER,
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_OTHER,
]

EVENT_RECORDED = "RECORDED"
EVENT_REVERSED = "REVERSED"


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(
    invoice_id: int,
    amount_cents: int,
    method: str,
    *,
    acting_user_id: int,
    reference: str | None = None,
    notes: str | None = None,
) -> Payment:
    """
    Record a payment against an invoice.

    Updates paid/balance/status and appends a RECORDED event in the same
    transaction. A DRAFT invoice is treated as issued by its first payment.

    Raises:
        ValidationError: amount <= 0, unknown method, cancelled or settled invoice
        PaymentExceedsBalanceError: amount greater than the current balance
        NotFoundError: invoice does not exist
    """
    if acting_user_id is None:
        raise ValidationError("acting_user_id is required", field="acting_user_id")
    user_id = require_int(acting_user_id, "acting_user_id")
    if invoice_id is None:
        raise ValidationError("invoice_id is required", field="invoice_id")
    invoice_id = require_int(invoice_id, "invoice_id")
    if amount_cents is None:
        raise ValidationError("amount_cents is required", field="amount_cents")
    amount_cents = require_int(amount_cents, "amount_cents", allow_negative=True, allow_zero=True)
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive", amount_cents=amount_cents)
    method = str(method or "").strip().upper()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method or None}. Must be one of {VALID_PAYMENT_METHODS}",
            method=method,
        )

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)

        if invoice.status == INVOICE_STATUS_CANCELLED:
            raise ValidationError("Cannot record a payment on a cancelled invoice", invoice_id=invoice_id)
        if invoice.balance_cents <= 0:
            raise ValidationError("Invoice has no remaining balance due", invoice_id=invoice_id)
        if amount_cents > invoice.balance_cents:
            raise PaymentExceedsBalanceError(
                f"Payment amount {amount_cents} exceeds invoice balance {invoice.balance_cents}",
                invoice_id=invoice_id,
                amount_cents=amount_cents,
                balance_cents=invoice.balance_cents,
            )

        now = utcnow()
        payment = Payment(
            payment_number=next_document_number(PAYMENT_PREFIX),
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            method=method,
            reference=reference,
            notes=notes,
            created_by_user_id=user_id,
            created_at=now,
        )
        db.session.add(payment)
        db.session.flush()  # Get payment ID

        invoice.paid_cents += amount_cents
        invoice.balance_cents = invoice.total_cents - invoice.paid_cents
        if invoice.sent_at is None:
            invoice.sent_at = now
        if invoice.balance_cents == 0:
            invoice.status = INVOICE_STATUS_PAID
            invoice.paid_at = now
        else:
            invoice.status = INVOICE_STATUS_PARTIAL

        _log_payment_event(
            event_type=EVENT_RECORDED,
            payment=payment,
            invoice=invoice,
            amount_cents=amount_cents,
            user_id=user_id,
            created_at=now,
        )

        db.session.commit()

        current_app.logger.info(
            "Recorded payment %s of %d on invoice %s (status=%s, balance=%d)",
            payment.payment_number, amount_cents, invoice.invoice_number,
            invoice.status, invoice.balance_cents,
        )
        return payment

    return run_with_retry(_op)


# =============================================================================
# PAYMENT REVERSAL
# =============================================================================

def _status_after_reversal(invoice: Invoice, now) -> str:
    if invoice.paid_cents > 0:
        return INVOICE_STATUS_PARTIAL
    due_date = as_naive_utc(invoice.due_date)
    if due_date is not None and due_date < as_naive_utc(now):
        return INVOICE_STATUS_OVERDUE
    return INVOICE_STATUS_SENT


def reverse_payment(payment_id: int, *, acting_user_id: int) -> Invoice:
    """
    Reverse (delete) a payment and restore the invoice balance.

    Returns the updated invoice. The REVERSED event keeps the payment's
    number and amount after the row is gone.
    """
    if acting_user_id is None:
        raise ValidationError("acting_user_id is required", field="acting_user_id")
    user_id = require_int(acting_user_id, "acting_user_id")

    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)

        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=payment.invoice_id)).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {payment.invoice_id} not found", invoice_id=payment.invoice_id)

        now = utcnow()
        invoice.paid_cents -= payment.amount_cents
        invoice.balance_cents = invoice.total_cents - invoice.paid_cents
        invoice.paid_at = None
        invoice.status = _status_after_reversal(invoice, now)

        _log_payment_event(
            event_type=EVENT_REVERSED,
            payment=payment,
            invoice=invoice,
            amount_cents=-payment.amount_cents,
            user_id=user_id,
            created_at=now,
        )

        number = payment.payment_number
        db.session.delete(payment)
        db.session.commit()

        current_app.logger.info(
            "Reversed payment %s on invoice %s (status=%s, balance=%d)",
            number, invoice.invoice_number, invoice.status, invoice.balance_cents,
        )
        return invoice

    return run_with_retry(_op)


# =============================================================================
# PAYMENT LEDGER
# =============================================================================

def _log_payment_event(
    *,
    event_type: str,
    payment: Payment,
    invoice: Invoice,
    amount_cents: int,
    user_id: int,
    created_at,
) -> PaymentEvent:
    """Append-only; never updated or deleted."""
    event = PaymentEvent(
        event_type=event_type,
        payment_id=payment.id,
        payment_number=payment.payment_number,
        invoice_id=invoice.id,
        amount_cents=amount_cents,
        method=payment.method,
        paid_after_cents=invoice.paid_cents,
        balance_after_cents=invoice.balance_cents,
        status_after=invoice.status,
        user_id=user_id,
        created_at=created_at,
    )
    db.session.add(event)
    return event


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    return payment


def get_invoice_payments(invoice_id: int) -> list[Payment]:
    if db.session.get(Invoice, invoice_id) is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)
    return (
        db.session.query(Payment)
        .filter_by(invoice_id=invoice_id)
        .order_by(Payment.id.asc())
        .all()
    )


def list_payment_events(*, invoice_id: int | None = None) -> list[PaymentEvent]:
    query = db.session.query(PaymentEvent)
    if invoice_id is not None:
        query = query.filter(PaymentEvent.invoice_id == invoice_id)
    return query.order_by(PaymentEvent.id.asc()).all()
