# Overview: Flask API routes for stock documents; create, apply, delete and read receipts, deliveries, transfers and adjustments.

# backend/stockledger/routes/documents.py
"""
Stock document API routes.

LIFECYCLE: every document is created PENDING and becomes APPLIED through
POST /api/<kind>/<id>/apply. Only applying touches stock levels and move
history. PENDING documents may be deleted.

Kinds: receipts, deliveries, transfers, adjustments.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import LedgerError, ValidationError, ledger_error_response
from ..services import document_service
from ..decorators import require_acting_user


documents_bp = Blueprint("documents", __name__, url_prefix="/api")

KIND_TO_DOC_TYPE = {
    "receipts": "receipt",
    "deliveries": "delivery",
    "transfers": "transfer",
    "adjustments": "adjustment",
}

DOCUMENT_KINDS = "any(receipts, deliveries, transfers, adjustments)"


def _create(kind: str, create_fn, **kwargs):
    try:
        doc = create_fn(acting_user_id=g.acting_user_id, **kwargs)
        return jsonify(doc.to_dict()), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create %s", kind)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DOCUMENT CREATION
# =============================================================================

@documents_bp.post("/receipts")
@require_acting_user
def create_receipt_route():
    """
    Create a PENDING receipt.

    Request body:
    {
        "vendor_id": 1,
        "location_id": 1,
        "lines": [{"product_id": 1, "quantity": 10}],
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    return _create(
        "receipt",
        document_service.create_receipt,
        vendor_id=data.get("vendor_id"),
        location_id=data.get("location_id"),
        lines=data.get("lines"),
        notes=data.get("notes"),
    )


@documents_bp.post("/deliveries")
@require_acting_user
def create_delivery_route():
    """
    Create a PENDING delivery.

    Request body:
    {
        "location_id": 1,
        "lines": [{"product_id": 1, "quantity": 4}],
        "customer_name": "ACME",  (optional)
        "notes": "..."            (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    return _create(
        "delivery",
        document_service.create_delivery,
        location_id=data.get("location_id"),
        lines=data.get("lines"),
        customer_name=data.get("customer_name"),
        notes=data.get("notes"),
    )


@documents_bp.post("/transfers")
@require_acting_user
def create_transfer_route():
    data = request.get_json(silent=True) or {}
    return _create(
        "transfer",
        document_service.create_transfer,
        from_location_id=data.get("from_location_id"),
        to_location_id=data.get("to_location_id"),
        lines=data.get("lines"),
        notes=data.get("notes"),
    )


@documents_bp.post("/adjustments")
@require_acting_user
def create_adjustment_route():
    """
    Create a PENDING adjustment.

    Lines carry a signed quantity_delta:
    {
        "location_id": 1,
        "reason": "Damaged",
        "lines": [{"product_id": 1, "quantity_delta": -2}]
    }
    """
    data = request.get_json(silent=True) or {}
    return _create(
        "adjustment",
        document_service.create_adjustment,
        location_id=data.get("location_id"),
        reason=data.get("reason"),
        lines=data.get("lines"),
        notes=data.get("notes"),
    )


# =============================================================================
# LIFECYCLE
# =============================================================================

@documents_bp.post(f"/<{DOCUMENT_KINDS}:kind>/<int:doc_id>/apply")
@require_acting_user
def apply_document_route(kind: str, doc_id: int):
    """
    Apply a PENDING document.

    Returns:
        200: Document applied
        404: Document not found
        409: Already applied, insufficient stock or concurrent conflict
    """
    doc_type = KIND_TO_DOC_TYPE[kind]
    try:
        doc = document_service.apply_document(doc_type, doc_id, acting_user_id=g.acting_user_id)
        return jsonify(doc.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to apply %s %s", doc_type, doc_id)
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete(f"/<{DOCUMENT_KINDS}:kind>/<int:doc_id>")
@require_acting_user
def delete_document_route(kind: str, doc_id: int):
    doc_type = KIND_TO_DOC_TYPE[kind]
    try:
        document_service.delete_document(doc_type, doc_id)
        return jsonify({"deleted": True, "id": doc_id}), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete %s %s", doc_type, doc_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@documents_bp.get(f"/<{DOCUMENT_KINDS}:kind>/<int:doc_id>")
@require_acting_user
def get_document_route(kind: str, doc_id: int):
    try:
        doc = document_service.get_document(KIND_TO_DOC_TYPE[kind], doc_id)
        return jsonify(doc.to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)


@documents_bp.get(f"/<{DOCUMENT_KINDS}:kind>")
@require_acting_user
def list_documents_route(kind: str):
    """
    List documents, newest first.

    Query params:
    - status: PENDING or APPLIED (optional)
    - page, limit
    """
    status = (request.args.get("status") or "").upper()
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)

    try:
        if status and status not in ("PENDING", "APPLIED"):
            raise ValidationError(f"Invalid status: {status}", status=status)
        applied = None if not status else status == "APPLIED"

        docs, total = document_service.list_documents(
            KIND_TO_DOC_TYPE[kind], applied=applied, page=page, limit=limit
        )
        return jsonify({
            "items": [d.to_dict(include_lines=False) for d in docs],
            "total": total,
            "page": page,
            "limit": limit,
        }), 200
    except LedgerError as e:
        return ledger_error_response(e)
