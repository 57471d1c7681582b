from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from stockledger.time_utils import to_utc_z
from .inventory import (
    MOVE_RECEIPT,
    MOVE_DELIVERY,
    MOVE_TRANSFER_OUT,
    MOVE_TRANSFER_IN,
    MOVE_ADJUSTMENT_INCREASE,
    MOVE_ADJUSTMENT_DECREASE,
)


@dataclass(frozen=True)
class StockDelta:
    """One signed quantity change a document makes when it is applied."""
    product_id: int
    location_id: int
    delta: int
    move_type: str
    note: str | None = None


def _applied_fields(doc) -> dict:
    return {
        "is_applied": doc.is_applied,
        "status": "APPLIED" if doc.is_applied else "PENDING",
        "applied_at": to_utc_z(doc.applied_at) if doc.applied_at else None,
        "applied_by_user_id": doc.applied_by_user_id,
    }


class Receipt(db.Model):
    """
    Inbound goods document (vendor -> location).

    LIFECYCLE:
    1. PENDING: created with lines, no stock effect
    2. APPLIED: stock increased at location_id, RECEIPT moves written

    Deletion is only allowed while PENDING.
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_receipts_docnum"),
        db.Index("ix_receipts_applied_created", "is_applied", "created_at"),
        {"sqlite_autoincrement": True},
    )

    doc_type = "receipt"

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "RCP-000001")
    document_number = db.Column(db.String(64), nullable=False)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    notes = db.Column(db.Text, nullable=True)

    is_applied = db.Column(db.Boolean, nullable=False, default=False)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    applied_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    vendor = db.relationship("Vendor")
    location = db.relationship("Location")
    lines = db.relationship(
        "ReceiptLine",
        backref="receipt",
        lazy=True,
        order_by="ReceiptLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def compute_stock_deltas(self) -> list[StockDelta]:
        note = f"Receipt validation: {self.document_number}"
        return [
            StockDelta(line.product_id, self.location_id, line.quantity, MOVE_RECEIPT, note)
            for line in self.lines
        ]

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "doc_type": self.doc_type,
            "document_number": self.document_number,
            "vendor_id": self.vendor_id,
            "location_id": self.location_id,
            "notes": self.notes,
            "total_items": self.total_items,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            **_applied_fields(self),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class ReceiptLine(db.Model):
    __tablename__ = "receipt_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Strictly positive
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class Delivery(db.Model):
    """
    Outbound goods document (location -> customer).

    LIFECYCLE:
    1. PENDING: created with lines; availability checked but not reserved
    2. APPLIED: stock decreased at location_id, DELIVERY moves written

    Availability is re-checked at apply time; stock may have moved since
    the delivery was created.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_deliveries_docnum"),
        db.Index("ix_deliveries_applied_created", "is_applied", "created_at"),
        {"sqlite_autoincrement": True},
    )

    doc_type = "delivery"

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    is_applied = db.Column(db.Boolean, nullable=False, default=False)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    applied_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location")
    lines = db.relationship(
        "DeliveryLine",
        backref="delivery",
        lazy=True,
        order_by="DeliveryLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def compute_stock_deltas(self) -> list[StockDelta]:
        note = f"Delivery validation: {self.document_number}"
        return [
            StockDelta(line.product_id, self.location_id, -line.quantity, MOVE_DELIVERY, note)
            for line in self.lines
        ]

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "doc_type": self.doc_type,
            "document_number": self.document_number,
            "location_id": self.location_id,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "total_items": self.total_items,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            **_applied_fields(self),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class DeliveryLine(db.Model):
    __tablename__ = "delivery_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class Transfer(db.Model):
    """
    Location-to-location stock movement.

    Applying moves every line in one step: TRANSFER_OUT at the source is
    written before the mirrored TRANSFER_IN at the destination, and the
    product's total across both locations is unchanged.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_transfers_docnum"),
        db.CheckConstraint("from_location_id <> to_location_id", name="ck_transfers_distinct_locations"),
        {"sqlite_autoincrement": True},
    )

    doc_type = "transfer"

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    notes = db.Column(db.Text, nullable=True)

    is_applied = db.Column(db.Boolean, nullable=False, default=False)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    applied_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    lines = db.relationship(
        "TransferLine",
        backref="transfer",
        lazy=True,
        order_by="TransferLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def compute_stock_deltas(self) -> list[StockDelta]:
        out_note = f"Transfer out: {self.document_number} to location {self.to_location_id}"
        in_note = f"Transfer in: {self.document_number} from location {self.from_location_id}"
        deltas = []
        for line in self.lines:
            deltas.append(
                StockDelta(line.product_id, self.from_location_id, -line.quantity, MOVE_TRANSFER_OUT, out_note)
            )
            deltas.append(
                StockDelta(line.product_id, self.to_location_id, line.quantity, MOVE_TRANSFER_IN, in_note)
            )
        return deltas

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "doc_type": self.doc_type,
            "document_number": self.document_number,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "notes": self.notes,
            "total_items": self.total_items,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            **_applied_fields(self),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class Adjustment(db.Model):
    """
    Manual stock correction at one location.

    Lines carry a signed, non-zero quantity_delta. Positive deltas write
    ADJUSTMENT_INCREASE moves, negative ones ADJUSTMENT_DECREASE.
    """
    __tablename__ = "adjustments"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_adjustments_docnum"),
        {"sqlite_autoincrement": True},
    )

    doc_type = "adjustment"

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Required: damaged, count correction, found stock, ...
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_applied = db.Column(db.Boolean, nullable=False, default=False)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    applied_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location")
    lines = db.relationship(
        "AdjustmentLine",
        backref="adjustment",
        lazy=True,
        order_by="AdjustmentLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def compute_stock_deltas(self) -> list[StockDelta]:
        note = f"Stock adjustment: {self.reason}"
        return [
            StockDelta(
                line.product_id,
                self.location_id,
                line.quantity_delta,
                MOVE_ADJUSTMENT_INCREASE if line.quantity_delta > 0 else MOVE_ADJUSTMENT_DECREASE,
                note,
            )
            for line in self.lines
        ]

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "doc_type": self.doc_type,
            "document_number": self.document_number,
            "location_id": self.location_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            **_applied_fields(self),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class AdjustmentLine(db.Model):
    __tablename__ = "adjustment_lines"
    __table_args__ = (
        db.CheckConstraint("quantity_delta <> 0", name="ck_adjustment_lines_non_zero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Signed: positive adds stock, negative removes it
    quantity_delta = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-prefix document sequences.

    WHY: Counting existing rows and adding one races under concurrent
    creates. The sequence row is incremented with a single UPDATE, and the
    unique prefix makes concurrent first inserts collide instead of
    handing out the same number twice.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", name="uq_doc_sequences_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
