# Overview: Service-layer operations for document numbering; atomic per-prefix sequences.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflictError, ValidationError
from ..extensions import db
from ..models import DocumentSequence


RECEIPT_PREFIX = "RCP"
DELIVERY_PREFIX = "DEL"
TRANSFER_PREFIX = "TRN"
ADJUSTMENT_PREFIX = "ADJ"
INVOICE_PREFIX = "INV"
PAYMENT_PREFIX = "PAY"


def next_document_number(prefix: str, *, pad: int | None = None) -> str:
    """
    Allocate the next document number for a prefix, e.g. "RCP-000042".

    Runs inside the caller's unit of work: the number is only consumed if
    the caller commits. The UPDATE takes a row lock on the sequence, so
    two concurrent creates serialize instead of reading the same counter.
    A collision on the very first insert for a prefix is reported as
    ConcurrencyConflictError so run_with_retry re-runs the caller.
    """
    if not prefix:
        raise ValidationError("prefix is required")
    if pad is None:
        pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 6)

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.prefix == prefix)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(prefix=prefix)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(prefix=prefix, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError(
                f"Document sequence {prefix} was initialized concurrently",
                prefix=prefix,
            ) from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
