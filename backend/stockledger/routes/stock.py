# backend/stockledger/routes/stock.py
"""
Stock level and move history routes (read-only).

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- date_from / date_to filtering is inclusive.
"""
from flask import Blueprint, request, jsonify

from ..errors import LedgerError, ValidationError, ledger_error_response
from ..services import stock_service, move_history_service
from ..decorators import require_acting_user
from stockledger.time_utils import parse_iso_datetime


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


def _parse_date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", field=name)


@stock_bp.get("/stock")
@require_acting_user
def list_stock_levels_route():
    """Stock levels, optionally filtered by product_id and/or location_id."""
    levels = stock_service.list_stock_levels(
        product_id=request.args.get("product_id", type=int),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"items": [level.to_dict() for level in levels]}), 200


@stock_bp.get("/stock/products/<int:product_id>")
@require_acting_user
def get_product_stock_route(product_id: int):
    try:
        return jsonify(stock_service.get_product_stock(product_id)), 200
    except LedgerError as e:
        return ledger_error_response(e)


@stock_bp.get("/stock/low")
@require_acting_user
def list_low_stock_route():
    return jsonify({"items": stock_service.list_low_stock()}), 200


@stock_bp.get("/move-history")
@require_acting_user
def query_move_history_route():
    """
    Paginated move history, newest first.

    Query params (all optional):
    - move_type, product_id, location_id, user_id
    - reference_type, reference_id
    - date_from, date_to (ISO-8601)
    - page (default 1), limit (default 20, max 200)
    """
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)

    try:
        entries, total = move_history_service.query_moves(
            move_type=request.args.get("move_type") or None,
            product_id=request.args.get("product_id", type=int),
            location_id=request.args.get("location_id", type=int),
            user_id=request.args.get("user_id", type=int),
            reference_type=request.args.get("reference_type") or None,
            reference_id=request.args.get("reference_id", type=int),
            date_from=_parse_date_arg("date_from"),
            date_to=_parse_date_arg("date_to"),
            page=page,
            limit=limit,
        )
    except LedgerError as e:
        return ledger_error_response(e)

    return jsonify({
        "items": [entry.to_dict() for entry in entries],
        "total": total,
        "page": page,
        "limit": limit,
    }), 200
