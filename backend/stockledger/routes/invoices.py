# Overview: Flask API routes for invoices; create, issue, cancel, delete and read.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import LedgerError, ValidationError, ledger_error_response
from ..services import invoice_service, payment_service
from ..decorators import require_acting_user
from stockledger.time_utils import parse_iso_datetime


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _transition(action: str, invoice_id: int, fn):
    try:
        invoice = fn(invoice_id)
        return jsonify(invoice.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s invoice %s", action, invoice_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# INVOICE CREATION
# =============================================================================

@invoices_bp.post("")
@require_acting_user
def create_invoice_route():
    """
    Create a DRAFT invoice.

    Request body:
    {
        "customer_name": "ACME",
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 500}],
        "tax_rate_bps": 825,        (optional, 8.25%)
        "discount_cents": 0,        (optional)
        "due_date": "2026-01-31Z",  (optional, ISO-8601)
        "customer_email": "...", "customer_phone": "...", "customer_address": "...", "notes": "..."
    }

    Returns:
        201: Invoice created
        400: Invalid input
        404: Unknown product
    """
    data = request.get_json(silent=True) or {}

    try:
        try:
            due_date = parse_iso_datetime(data.get("due_date"))
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("due_date must be an ISO-8601 datetime", field="due_date")

        invoice = invoice_service.create_invoice(
            customer_name=data.get("customer_name"),
            lines=data.get("lines"),
            acting_user_id=g.acting_user_id,
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            customer_address=data.get("customer_address"),
            tax_rate_bps=data.get("tax_rate_bps", 0),
            discount_cents=data.get("discount_cents", 0),
            due_date=due_date,
            notes=data.get("notes"),
        )
        return jsonify(invoice.to_dict()), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@invoices_bp.post("/<int:invoice_id>/send")
@require_acting_user
def send_invoice_route(invoice_id: int):
    return _transition("send", invoice_id, invoice_service.send_invoice)


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_acting_user
def cancel_invoice_route(invoice_id: int):
    return _transition("cancel", invoice_id, invoice_service.cancel_invoice)


@invoices_bp.delete("/<int:invoice_id>")
@require_acting_user
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(invoice_id)
        return jsonify({"deleted": True, "id": invoice_id}), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete invoice %s", invoice_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@invoices_bp.get("/<int:invoice_id>")
@require_acting_user
def get_invoice_route(invoice_id: int):
    """Invoice with lines and payments."""
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        data = invoice.to_dict()
        data["payments"] = [p.to_dict() for p in payment_service.get_invoice_payments(invoice_id)]
        return jsonify(data), 200
    except LedgerError as e:
        return ledger_error_response(e)


@invoices_bp.get("")
@require_acting_user
def list_invoices_route():
    status = (request.args.get("status") or "").upper() or None
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)

    try:
        invoices, total = invoice_service.list_invoices(status=status, page=page, limit=limit)
    except LedgerError as e:
        return ledger_error_response(e)

    return jsonify({
        "items": [inv.to_dict(include_lines=False) for inv in invoices],
        "total": total,
        "page": page,
        "limit": limit,
    }), 200
