# Overview: Service-layer operations for catalog; products, locations and vendors referenced by documents.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Location, Vendor
from .concurrency import run_with_retry


def require_int(value, field: str, *, allow_negative: bool = False, allow_zero: bool = False) -> int:
    """
    Strict integer coercion for request payloads.

    Rejects bools, floats and decimal/scientific strings so "1.5" or "1e3"
    never become silent truncations.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be an integer", field=field)
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if value < 0 and not allow_negative:
        raise ValidationError(f"{field} must not be negative", field=field)
    if value == 0 and not allow_zero:
        raise ValidationError(f"{field} must not be zero", field=field)
    return value


def _require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive", product_id=product_id)
    return product


def get_location(location_id: int, *, require_active: bool = False) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found", location_id=location_id)
    if require_active and not location.is_active:
        raise ValidationError(f"Location {location_id} is inactive", location_id=location_id)
    return location


def get_vendor(vendor_id: int) -> Vendor:
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found", vendor_id=vendor_id)
    return vendor


def create_product(
    *,
    sku: str,
    name: str,
    price_cents: int = 0,
    unit: str = "pcs",
    min_stock: int = 0,
    description: str | None = None,
) -> Product:
    def _op():
        product = Product(
            sku=_require_text(sku, "sku").upper(),
            name=_require_text(name, "name"),
            price_cents=require_int(price_cents, "price_cents", allow_zero=True),
            unit=_require_text(unit or "pcs", "unit"),
            min_stock=require_int(min_stock, "min_stock", allow_zero=True),
            description=description,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"SKU {product.sku} already exists", sku=product.sku)
        db.session.commit()
        return product

    return run_with_retry(_op)


def create_location(*, code: str, name: str, address: str | None = None) -> Location:
    def _op():
        location = Location(
            code=_require_text(code, "code").upper(),
            name=_require_text(name, "name"),
            address=address,
        )
        db.session.add(location)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Location code {location.code} already exists", code=location.code)
        db.session.commit()
        return location

    return run_with_retry(_op)


def create_vendor(
    *,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Vendor:
    def _op():
        vendor = Vendor(name=_require_text(name, "name"), email=email, phone=phone, address=address)
        db.session.add(vendor)
        db.session.commit()
        return vendor

    return run_with_retry(_op)


def list_products(*, active_only: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name, Product.id).all()


def list_locations() -> list[Location]:
    return db.session.query(Location).order_by(Location.code).all()


def list_vendors() -> list[Vendor]:
    return db.session.query(Vendor).order_by(Vendor.name, Vendor.id).all()


# =============================================================================
# UPDATES AND DEACTIVATION
# =============================================================================

PRODUCT_PATCH_FIELDS = ("sku", "name", "price_cents", "unit", "min_stock", "description", "is_active")
LOCATION_PATCH_FIELDS = ("code", "name", "address", "is_active")
VENDOR_PATCH_FIELDS = ("name", "email", "phone", "address")


def _check_patch(patch, allowed: tuple[str, ...]) -> dict:
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields to update")
    unknown = sorted(set(patch) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", fields=unknown)
    if "is_active" in patch and not isinstance(patch["is_active"], bool):
        raise ValidationError("is_active must be a boolean", field="is_active")
    return patch


def update_product(product_id: int, patch: dict) -> Product:
    """
    Apply a partial update to a product.

    Setting is_active=False retires the product: existing documents and
    stock keep referencing it, new documents reject it.
    """
    patch = _check_patch(patch, PRODUCT_PATCH_FIELDS)

    def _op():
        product = get_product(product_id)
        if "sku" in patch:
            product.sku = _require_text(patch["sku"], "sku").upper()
        if "name" in patch:
            product.name = _require_text(patch["name"], "name")
        if "price_cents" in patch:
            product.price_cents = require_int(patch["price_cents"], "price_cents", allow_zero=True)
        if "unit" in patch:
            product.unit = _require_text(patch["unit"], "unit")
        if "min_stock" in patch:
            product.min_stock = require_int(patch["min_stock"], "min_stock", allow_zero=True)
        if "description" in patch:
            product.description = patch["description"]
        if "is_active" in patch:
            product.is_active = patch["is_active"]
        sku = product.sku
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"SKU {sku} already exists", sku=sku)
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft-delete: products are never removed once documents may reference them."""
    return update_product(product_id, {"is_active": False})


def update_location(location_id: int, patch: dict) -> Location:
    patch = _check_patch(patch, LOCATION_PATCH_FIELDS)

    def _op():
        location = get_location(location_id)
        if "code" in patch:
            location.code = _require_text(patch["code"], "code").upper()
        if "name" in patch:
            location.name = _require_text(patch["name"], "name")
        if "address" in patch:
            location.address = patch["address"]
        if "is_active" in patch:
            location.is_active = patch["is_active"]
        code = location.code
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Location code {code} already exists", code=code)
        db.session.commit()
        return location

    return run_with_retry(_op)


def deactivate_location(location_id: int) -> Location:
    """Soft-delete; stock already held at the location stays queryable."""
    return update_location(location_id, {"is_active": False})


def update_vendor(vendor_id: int, patch: dict) -> Vendor:
    patch = _check_patch(patch, VENDOR_PATCH_FIELDS)

    def _op():
        vendor = get_vendor(vendor_id)
        if "name" in patch:
            vendor.name = _require_text(patch["name"], "name")
        for field in ("email", "phone", "address"):
            if field in patch:
                setattr(vendor, field, patch[field])
        db.session.commit()
        return vendor

    return run_with_retry(_op)
