# Overview: Service-layer operations for move history; append-only audit log of stock changes.

from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import MoveHistoryEntry, VALID_MOVE_TYPES
from stockledger.time_utils import utcnow


MAX_PAGE_SIZE = 200
NOTES_MAX_LENGTH = 255


def append_move(
    *,
    move_type: str,
    product_id: int,
    location_id: int,
    user_id: int,
    quantity_before: int,
    quantity_after: int,
    reference_type: str,
    reference_id: int,
    notes: str | None = None,
) -> MoveHistoryEntry:
    """
    Record one stock change.

    Must be called in the same unit of work as the StockLevel write it
    describes; it never commits, so a failed document apply leaves no
    orphan entries behind.
    """
    if move_type not in VALID_MOVE_TYPES:
        raise ValidationError(f"Invalid move type: {move_type}", move_type=move_type)
    if user_id is None:
        raise ValidationError("user_id is required", field="user_id")

    entry = MoveHistoryEntry(
        move_type=move_type,
        product_id=product_id,
        location_id=location_id,
        user_id=user_id,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        quantity_changed=quantity_after - quantity_before,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes[:NOTES_MAX_LENGTH] if notes else notes,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def query_moves(
    *,
    move_type: str | None = None,
    product_id: int | None = None,
    location_id: int | None = None,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[MoveHistoryEntry], int]:
    """
    Filtered, paginated move history, newest first.

    Returns (entries, total) where total counts every matching entry
    regardless of pagination. date_from and date_to are inclusive.
    """
    if move_type is not None and move_type not in VALID_MOVE_TYPES:
        raise ValidationError(f"Invalid move type: {move_type}", move_type=move_type)
    if date_from is not None and date_to is not None and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), MAX_PAGE_SIZE))

    query = db.session.query(MoveHistoryEntry)
    if move_type is not None:
        query = query.filter(MoveHistoryEntry.move_type == move_type)
    if product_id is not None:
        query = query.filter(MoveHistoryEntry.product_id == product_id)
    if location_id is not None:
        query = query.filter(MoveHistoryEntry.location_id == location_id)
    if user_id is not None:
        query = query.filter(MoveHistoryEntry.user_id == user_id)
    if reference_type is not None:
        query = query.filter(MoveHistoryEntry.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(MoveHistoryEntry.reference_id == reference_id)
    if date_from is not None:
        query = query.filter(MoveHistoryEntry.created_at >= date_from)
    if date_to is not None:
        query = query.filter(MoveHistoryEntry.created_at <= date_to)

    total = query.count()
    entries = (
        query.order_by(MoveHistoryEntry.created_at.desc(), MoveHistoryEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return entries, total


def moves_for_document(reference_type: str, reference_id: int) -> list[MoveHistoryEntry]:
    """Entries written by one document, in the order they were written."""
    return (
        db.session.query(MoveHistoryEntry)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(MoveHistoryEntry.id.asc())
        .all()
    )


def purge_moves_older_than(cutoff: datetime) -> int:
    """Delete entries created strictly before cutoff. Returns the number deleted."""
    deleted = (
        db.session.query(MoveHistoryEntry)
        .filter(MoveHistoryEntry.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
