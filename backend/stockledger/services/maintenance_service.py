# Overview: Service-layer operations for maintenance; retention purges and scheduled status sweeps.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import ValidationError
from .move_history_service import purge_moves_older_than
from .invoice_service import mark_overdue_invoices
from stockledger.time_utils import utcnow


def purge_move_history(*, retention_days: int | None = None) -> int:
    """
    Delete move history entries older than retention_days.

    Stock levels are untouched; history is an audit trail, not the source
    of on-hand quantity.
    """
    if retention_days is None:
        retention_days = current_app.config.get("MOVE_HISTORY_RETENTION_DAYS", 365)
    if retention_days < 0:
        raise ValidationError("retention_days must not be negative", retention_days=retention_days)

    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = purge_moves_older_than(cutoff)
    current_app.logger.info(
        "Purged %d move history entries older than %d days", deleted, retention_days
    )
    return deleted


def mark_overdue(as_of=None) -> int:
    return mark_overdue_invoices(as_of)
