# Overview: Service-layer operations for stock documents; create, apply and delete receipts, deliveries, transfers and adjustments.

"""
Document lifecycle.

LIFECYCLE (every variant):
1. PENDING: created with immutable lines, no stock effect
2. APPLIED: stock mutated and move history written, exactly once

A PENDING document may be deleted; an APPLIED one may not.

apply_document() is the only path that writes StockLevel rows. It runs as
one unit of work: lock the document, lock every touched StockLevel in
sorted order, re-check availability for the whole document, then write
quantities and history line by line and flip the document to APPLIED.
Any failure rolls back every write and the document stays PENDING.
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..errors import AlreadyAppliedError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Receipt,
    ReceiptLine,
    Delivery,
    DeliveryLine,
    Transfer,
    TransferLine,
    Adjustment,
    AdjustmentLine,
)
from . import stock_service, move_history_service
from .catalog_service import get_location, get_product, get_vendor, require_int
from .concurrency import lock_for_update, run_with_retry
from .sequence_service import (
    RECEIPT_PREFIX,
    DELIVERY_PREFIX,
    TRANSFER_PREFIX,
    ADJUSTMENT_PREFIX,
    next_document_number,
)
from stockledger.time_utils import utcnow


DOCUMENT_TYPES = {
    "receipt": Receipt,
    "delivery": Delivery,
    "transfer": Transfer,
    "adjustment": Adjustment,
}

MAX_PAGE_SIZE = 200


def document_model(doc_type: str):
    model = DOCUMENT_TYPES.get(doc_type)
    if model is None:
        raise ValidationError(f"Unknown document type: {doc_type}", doc_type=doc_type)
    return model


def _require_user(acting_user_id) -> int:
    if acting_user_id is None:
        raise ValidationError("acting_user_id is required", field="acting_user_id")
    return require_int(acting_user_id, "acting_user_id")


def _require_id(value, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    return require_int(value, field)


def _parse_lines(lines, *, quantity_field: str = "quantity", signed: bool = False) -> list[tuple[int, int]]:
    """
    Validate raw line payloads into (product_id, quantity) pairs.

    Quantities are strictly positive, or non-zero when signed. Every
    product must exist and be active. Duplicate products are allowed.
    """
    if not lines:
        raise ValidationError("At least one line is required", field="lines")
    if not isinstance(lines, (list, tuple)):
        raise ValidationError("lines must be a list", field="lines")

    parsed = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index} must be an object", field="lines", line=index)
        product_id = _require_id(line.get("product_id"), "product_id")
        raw_qty = line.get(quantity_field)
        if raw_qty is None:
            raise ValidationError(f"Line {index} is missing {quantity_field}", field=quantity_field, line=index)
        quantity = require_int(raw_qty, quantity_field, allow_negative=signed)
        get_product(product_id, require_active=True)
        parsed.append((product_id, quantity))
    return parsed


def _check_available(location_id: int, parsed: list[tuple[int, int]]) -> None:
    """Create-time availability check; cumulative per product, nothing reserved."""
    needed = defaultdict(int)
    for product_id, quantity in parsed:
        needed[product_id] += quantity

    for product_id, required in needed.items():
        available = stock_service.get_quantity(product_id, location_id)
        if available < required:
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id} at location {location_id}. "
                f"Available: {available}, required: {required}",
                product_id=product_id,
                location_id=location_id,
                available=available,
                required=required,
            )


def _finish_create(doc):
    db.session.add(doc)
    db.session.commit()
    current_app.logger.info(
        "Created %s %s (id=%s, lines=%d)", doc.doc_type, doc.document_number, doc.id, len(doc.lines)
    )
    return doc


def create_receipt(
    *,
    vendor_id: int,
    location_id: int,
    lines: list[dict],
    acting_user_id: int,
    notes: str | None = None,
) -> Receipt:
    """
    Create a PENDING receipt.

    Raises:
        ValidationError: missing vendor/location/lines or bad quantities
        NotFoundError: unknown vendor, location or product
    """
    user_id = _require_user(acting_user_id)
    vendor_id = _require_id(vendor_id, "vendor_id")
    location_id = _require_id(location_id, "location_id")

    def _op():
        get_vendor(vendor_id)
        get_location(location_id, require_active=True)
        parsed = _parse_lines(lines)

        receipt = Receipt(
            document_number=next_document_number(RECEIPT_PREFIX),
            vendor_id=vendor_id,
            location_id=location_id,
            notes=notes,
            created_by_user_id=user_id,
        )
        receipt.lines = [ReceiptLine(product_id=pid, quantity=qty) for pid, qty in parsed]
        return _finish_create(receipt)

    return run_with_retry(_op)


def create_delivery(
    *,
    location_id: int,
    lines: list[dict],
    acting_user_id: int,
    customer_name: str | None = None,
    notes: str | None = None,
) -> Delivery:
    """
    Create a PENDING delivery.

    Availability is checked now and again at apply time.
    """
    user_id = _require_user(acting_user_id)
    location_id = _require_id(location_id, "location_id")

    def _op():
        get_location(location_id, require_active=True)
        parsed = _parse_lines(lines)
        _check_available(location_id, parsed)

        delivery = Delivery(
            document_number=next_document_number(DELIVERY_PREFIX),
            location_id=location_id,
            customer_name=customer_name,
            notes=notes,
            created_by_user_id=user_id,
        )
        delivery.lines = [DeliveryLine(product_id=pid, quantity=qty) for pid, qty in parsed]
        return _finish_create(delivery)

    return run_with_retry(_op)


def create_transfer(
    *,
    from_location_id: int,
    to_location_id: int,
    lines: list[dict],
    acting_user_id: int,
    notes: str | None = None,
) -> Transfer:
    user_id = _require_user(acting_user_id)
    from_location_id = _require_id(from_location_id, "from_location_id")
    to_location_id = _require_id(to_location_id, "to_location_id")
    if from_location_id == to_location_id:
        raise ValidationError("Cannot transfer to the same location", location_id=from_location_id)

    def _op():
        get_location(from_location_id, require_active=True)
        get_location(to_location_id, require_active=True)
        parsed = _parse_lines(lines)
        _check_available(from_location_id, parsed)

        transfer = Transfer(
            document_number=next_document_number(TRANSFER_PREFIX),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            notes=notes,
            created_by_user_id=user_id,
        )
        transfer.lines = [TransferLine(product_id=pid, quantity=qty) for pid, qty in parsed]
        return _finish_create(transfer)

    return run_with_retry(_op)


def create_adjustment(
    *,
    location_id: int,
    reason: str,
    lines: list[dict],
    acting_user_id: int,
    notes: str | None = None,
) -> Adjustment:
    """
    Create a PENDING adjustment.

    Lines carry a signed quantity_delta. An adjustment whose result would
    be negative at creation time is rejected with ValidationError.
    """
    user_id = _require_user(acting_user_id)
    location_id = _require_id(location_id, "location_id")
    if reason is None or not str(reason).strip():
        raise ValidationError("reason is required", field="reason")

    def _op():
        get_location(location_id, require_active=True)
        parsed = _parse_lines(lines, quantity_field="quantity_delta", signed=True)

        net = defaultdict(int)
        for product_id, delta in parsed:
            net[product_id] += delta
        for product_id, delta in net.items():
            current = stock_service.get_quantity(product_id, location_id)
            if current + delta < 0:
                raise ValidationError(
                    f"Adjustment would make stock negative for product {product_id} "
                    f"at location {location_id}. Current: {current}, delta: {delta}",
                    product_id=product_id,
                    location_id=location_id,
                    current=current,
                    delta=delta,
                )

        adjustment = Adjustment(
            document_number=next_document_number(ADJUSTMENT_PREFIX),
            location_id=location_id,
            reason=str(reason).strip(),
            notes=notes,
            created_by_user_id=user_id,
        )
        adjustment.lines = [AdjustmentLine(product_id=pid, quantity_delta=qty) for pid, qty in parsed]
        return _finish_create(adjustment)

    return run_with_retry(_op)


def _precheck_deltas(deltas) -> None:
    """
    Walk the deltas in apply order against projected quantities.

    Raises InsufficientStockError before anything is written, so a
    document that fails on its last line leaves no partial mutation.
    """
    projected = {}
    for d in deltas:
        key = (d.product_id, d.location_id)
        if key not in projected:
            projected[key] = stock_service.get_quantity(d.product_id, d.location_id)
        if projected[key] + d.delta < 0:
            raise InsufficientStockError(
                f"Insufficient stock for product {d.product_id} at location {d.location_id}. "
                f"Available: {projected[key]}, required: {-d.delta}",
                product_id=d.product_id,
                location_id=d.location_id,
                available=projected[key],
                required=-d.delta,
            )
        projected[key] += d.delta


def apply_document(doc_type: str, doc_id: int, *, acting_user_id: int):
    """
    Apply a PENDING document: mutate stock, write move history, flip to APPLIED.

    Raises:
        NotFoundError: no such document
        AlreadyAppliedError: document was already applied
        InsufficientStockError: any decreasing line would go below zero
        ConcurrencyConflictError: conflicting writers after all retries
    """
    model = document_model(doc_type)
    user_id = _require_user(acting_user_id)

    def _op():
        doc = lock_for_update(db.session.query(model).filter_by(id=doc_id)).first()
        if doc is None:
            raise NotFoundError(f"{doc_type.capitalize()} {doc_id} not found", doc_type=doc_type, doc_id=doc_id)
        if doc.is_applied:
            raise AlreadyAppliedError(
                f"{doc_type.capitalize()} {doc.document_number} is already applied",
                doc_type=doc_type,
                doc_id=doc_id,
            )

        deltas = doc.compute_stock_deltas()
        if not deltas:
            raise ValidationError(f"{doc_type.capitalize()} {doc.document_number} has no lines")

        stock_service.lock_stock_levels((d.product_id, d.location_id) for d in deltas)
        _precheck_deltas(deltas)

        for d in deltas:
            before, after = stock_service.apply_delta(d.product_id, d.location_id, d.delta)
            move_history_service.append_move(
                move_type=d.move_type,
                product_id=d.product_id,
                location_id=d.location_id,
                user_id=user_id,
                quantity_before=before,
                quantity_after=after,
                reference_type=doc.doc_type,
                reference_id=doc.id,
                notes=d.note,
            )

        doc.is_applied = True
        doc.applied_at = utcnow()
        doc.applied_by_user_id = user_id
        db.session.commit()

        current_app.logger.info(
            "Applied %s %s (id=%s, moves=%d, user=%s)",
            doc_type, doc.document_number, doc.id, len(deltas), user_id,
        )
        return doc

    return run_with_retry(_op)


def delete_document(doc_type: str, doc_id: int) -> None:
    """Delete a PENDING document and its lines."""
    model = document_model(doc_type)

    def _op():
        doc = lock_for_update(db.session.query(model).filter_by(id=doc_id)).first()
        if doc is None:
            raise NotFoundError(f"{doc_type.capitalize()} {doc_id} not found", doc_type=doc_type, doc_id=doc_id)
        if doc.is_applied:
            raise AlreadyAppliedError(
                f"Cannot delete applied {doc_type} {doc.document_number}",
                doc_type=doc_type,
                doc_id=doc_id,
            )
        number = doc.document_number
        db.session.delete(doc)
        db.session.commit()
        current_app.logger.info("Deleted %s %s (id=%s)", doc_type, number, doc_id)

    run_with_retry(_op)


def get_document(doc_type: str, doc_id: int):
    model = document_model(doc_type)
    doc = db.session.get(model, doc_id)
    if doc is None:
        raise NotFoundError(f"{doc_type.capitalize()} {doc_id} not found", doc_type=doc_type, doc_id=doc_id)
    return doc


def list_documents(doc_type: str, *, applied: bool | None = None, page: int = 1, limit: int = 20):
    """Returns (documents, total), newest first."""
    model = document_model(doc_type)
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), MAX_PAGE_SIZE))

    query = db.session.query(model)
    if applied is not None:
        query = query.filter(model.is_applied.is_(applied))

    total = query.count()
    docs = (
        query.order_by(model.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return docs, total
