# Overview: Flask API routes for catalog operations; products, locations and vendors.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..errors import LedgerError, ledger_error_response
from ..services import catalog_service, stock_service
from ..decorators import require_acting_user


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.post("/products")
@require_acting_user
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "sku": "WIDGET-1",
        "name": "Widget",
        "price_cents": 1299,   (optional)
        "unit": "pcs",         (optional)
        "min_stock": 5,        (optional)
        "description": "..."   (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        product = catalog_service.create_product(
            sku=data.get("sku"),
            name=data.get("name"),
            price_cents=data.get("price_cents", 0),
            unit=data.get("unit", "pcs"),
            min_stock=data.get("min_stock", 0),
            description=data.get("description"),
        )
        return jsonify(product.to_dict()), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products")
@require_acting_user
def list_products_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    products = catalog_service.list_products(active_only=active_only)
    return jsonify({"items": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/<int:product_id>")
@require_acting_user
def get_product_route(product_id: int):
    """Product with per-location stock and low-stock flag."""
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({
            "product": product.to_dict(),
            "stock": stock_service.get_product_stock(product_id),
        }), 200
    except LedgerError as e:
        return ledger_error_response(e)


@catalog_bp.patch("/products/<int:product_id>")
@require_acting_user
def update_product_route(product_id: int):
    """
    Partially update a product.

    Request body: any of sku, name, price_cents, unit, min_stock,
    description, is_active.
    """
    data = request.get_json(silent=True) or {}

    try:
        product = catalog_service.update_product(product_id, data)
        return jsonify(product.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/products/<int:product_id>")
@require_acting_user
def deactivate_product_route(product_id: int):
    """Soft-delete a product (is_active=false); history and stock are kept."""
    try:
        product = catalog_service.deactivate_product(product_id)
        current_app.logger.info(
            "Product %s deactivated by user %s", product.sku, g.acting_user_id
        )
        return jsonify(product.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LOCATIONS
# =============================================================================

@catalog_bp.post("/locations")
@require_acting_user
def create_location_route():
    data = request.get_json(silent=True) or {}

    try:
        location = catalog_service.create_location(
            code=data.get("code"),
            name=data.get("name"),
            address=data.get("address"),
        )
        return jsonify(location.to_dict()), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/locations")
@require_acting_user
def list_locations_route():
    locations = catalog_service.list_locations()
    return jsonify({"items": [loc.to_dict() for loc in locations]}), 200


@catalog_bp.patch("/locations/<int:location_id>")
@require_acting_user
def update_location_route(location_id: int):
    data = request.get_json(silent=True) or {}

    try:
        location = catalog_service.update_location(location_id, data)
        return jsonify(location.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update location")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/locations/<int:location_id>")
@require_acting_user
def deactivate_location_route(location_id: int):
    try:
        location = catalog_service.deactivate_location(location_id)
        current_app.logger.info(
            "Location %s deactivated by user %s", location.code, g.acting_user_id
        )
        return jsonify(location.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate location")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VENDORS
# =============================================================================

@catalog_bp.post("/vendors")
@require_acting_user
def create_vendor_route():
    data = request.get_json(silent=True) or {}

    try:
        vendor = catalog_service.create_vendor(
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        return jsonify(vendor.to_dict()), 201

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create vendor")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/vendors")
@require_acting_user
def list_vendors_route():
    vendors = catalog_service.list_vendors()
    return jsonify({"items": [v.to_dict() for v in vendors]}), 200


@catalog_bp.patch("/vendors/<int:vendor_id>")
@require_acting_user
def update_vendor_route(vendor_id: int):
    data = request.get_json(silent=True) or {}

    try:
        vendor = catalog_service.update_vendor(vendor_id, data)
        return jsonify(vendor.to_dict()), 200

    except LedgerError as e:
        db.session.rollback()
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update vendor")
        return jsonify({"error": "Internal server error"}), 500
