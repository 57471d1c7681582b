# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/stockledger/routes/payments.py
"""
Payment API Routes

DESIGN:
- Record payments against invoices (partial payments allowed)
- Reverse payments for mistake correction
- Read the append-only payment event ledger

Every record/reverse updates the invoice paid/balance/status in the same
transaction and appends a PaymentEvent.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import LedgerError, ledger_error_response
from ..services import payment_service
from ..decorators import require_acting_user


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@require_acting_user
def record_payment_route():
    """
    Record a payment against an invoice.

    Request body:
    {
        "invoice_id": 123,
        "amount_cents": 4000,
        "method": "CASH",
        "reference": "TXN-9",  (optional)
        "notes": "..."         (optional)
    }

    METHODS: CASH, CHECK, BANK_TRANSFER, CREDIT_CARD, DEBIT_CARD, OTHER

    Returns:
        201: Payment recorded, with the updated invoice
        400: Invalid input or amount exceeds balance
        404: Invoice not found
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.record_payment(
            data.get("invoice_id"),
            data.get("amount_cents"),
            data.get("method"),
            acting_user_id=g.acting_user_id,
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "invoice": payment.invoice.to_dict(include_lines=False),
        }), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT REVERSAL
# =============================================================================

@payments_bp.post("/<int:payment_id>/reverse")
@require_acting_user
def reverse_payment_route(payment_id: int):
    """
    Reverse a payment and restore the invoice balance.

    Returns:
        200: Updated invoice
        404: Payment not found
    """
    try:
        invoice = payment_service.reverse_payment(payment_id, acting_user_id=g.acting_user_id)
        return jsonify({"invoice": invoice.to_dict(include_lines=False)}), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reverse payment %s", payment_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/<int:payment_id>")
@require_acting_user
def get_payment_route(payment_id: int):
    try:
        return jsonify(payment_service.get_payment(payment_id).to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)


@payments_bp.get("/events")
@require_acting_user
def list_payment_events_route():
    """Payment event ledger, oldest first. Optional invoice_id filter."""
    events = payment_service.list_payment_events(
        invoice_id=request.args.get("invoice_id", type=int)
    )
    return jsonify({"items": [e.to_dict() for e in events]}), 200
