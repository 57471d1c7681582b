# Overview: Service-layer operations for stock levels; the single source of on-hand quantity.

"""
StockLedger Stock Invariants (authoritative)

- On-hand quantity is stored per (product, location) in StockLevel.
- A missing row means quantity 0; rows are created on the first positive delta.
- quantity >= 0 in every committed state.
- apply_delta() is the only writer and must run inside the document apply
  unit of work (document_service.apply_document); it neither commits nor
  writes move history itself.
"""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflictError, InsufficientStockError
from ..extensions import db
from ..models import Product, StockLevel
from .catalog_service import get_product
from .concurrency import lock_for_update


def get_stock_level(product_id: int, location_id: int, *, lock: bool = False) -> StockLevel | None:
    query = db.session.query(StockLevel).filter_by(product_id=product_id, location_id=location_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_quantity(product_id: int, location_id: int) -> int:
    """Current on-hand quantity, 0 when no StockLevel row exists."""
    quantity = (
        db.session.query(StockLevel.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )
    return int(quantity or 0)


def lock_stock_levels(keys) -> dict[tuple[int, int], StockLevel]:
    """
    Lock every existing StockLevel row for the given (product, location) keys.

    Rows are locked in sorted key order so two documents touching the same
    pairs in a different line order cannot deadlock each other.
    """
    locked = {}
    for product_id, location_id in sorted(set(keys)):
        level = get_stock_level(product_id, location_id, lock=True)
        if level is not None:
            locked[(product_id, location_id)] = level
    return locked


def apply_delta(product_id: int, location_id: int, delta: int) -> tuple[int, int]:
    """
    Add a signed delta to one stock level.

    Returns (quantity_before, quantity_after).

    Raises:
        InsufficientStockError: if the result would be negative
        ConcurrencyConflictError: if another transaction created the row first
    """
    level = get_stock_level(product_id, location_id, lock=True)
    before = level.quantity if level is not None else 0
    after = before + delta

    if after < 0:
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id} at location {location_id}. "
            f"Available: {before}, required: {-delta}",
            product_id=product_id,
            location_id=location_id,
            available=before,
            required=-delta,
        )

    if level is None:
        level = StockLevel(product_id=product_id, location_id=location_id, quantity=after)
        db.session.add(level)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError(
                f"Stock level for product {product_id} at location {location_id} was created concurrently",
                product_id=product_id,
                location_id=location_id,
            ) from exc
    else:
        level.quantity = after
        db.session.flush()

    return before, after


def get_product_stock(product_id: int) -> dict:
    """Per-location quantities, total and low-stock flag for one product."""
    product = get_product(product_id)

    levels = (
        db.session.query(StockLevel)
        .filter_by(product_id=product_id)
        .order_by(StockLevel.location_id)
        .all()
    )
    total = sum(level.quantity for level in levels)

    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "min_stock": product.min_stock,
        "total_quantity": total,
        "is_low_stock": total <= product.min_stock,
        "locations": [
            {"location_id": level.location_id, "quantity": level.quantity}
            for level in levels
        ],
    }


def list_stock_levels(*, product_id: int | None = None, location_id: int | None = None) -> list[StockLevel]:
    query = db.session.query(StockLevel)
    if product_id is not None:
        query = query.filter(StockLevel.product_id == product_id)
    if location_id is not None:
        query = query.filter(StockLevel.location_id == location_id)
    return query.order_by(StockLevel.product_id, StockLevel.location_id).all()


def list_low_stock() -> list[dict]:
    """
    Active products whose total on-hand quantity is at or below min_stock.

    Read-only; consumed by the external low-stock alert scanner.
    """
    totals = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            Product.min_stock,
            func.coalesce(func.sum(StockLevel.quantity), 0).label("total"),
        )
        .outerjoin(StockLevel, StockLevel.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .group_by(Product.id, Product.sku, Product.name, Product.min_stock)
        .order_by(Product.id)
        .all()
    )
    return [
        {
            "product_id": row.id,
            "sku": row.sku,
            "name": row.name,
            "min_stock": row.min_stock,
            "total_quantity": int(row.total),
        }
        for row in totals
        if int(row.total) <= row.min_stock
    ]
