from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


# Move history types (must match MoveHistoryEntry.move_type values)
MOVE_RECEIPT = "RECEIPT"
MOVE_DELIVERY = "DELIVERY"
MOVE_ADJUSTMENT_INCREASE = "ADJUSTMENT_INCREASE"
MOVE_ADJUSTMENT_DECREASE = "ADJUSTMENT_DECREASE"
MOVE_TRANSFER_OUT = "TRANSFER_OUT"
MOVE_TRANSFER_IN = "TRANSFER_IN"

VALID_MOVE_TYPES = (
    MOVE_RECEIPT,
    MOVE_DELIVERY,
    MOVE_ADJUSTMENT_INCREASE,
    MOVE_ADJUSTMENT_DECREASE,
    MOVE_TRANSFER_OUT,
    MOVE_TRANSFER_IN,
)


class StockLevel(db.Model):
    """
    Current on-hand quantity for one (product, location) pair.

    Rows are created lazily on the first inbound movement and never deleted.
    Only the document apply path writes them (see document_service).

    version_id gives optimistic conflict detection on backends that ignore
    SELECT ... FOR UPDATE (SQLite); the CHECK constraint is the last line
    behind the service-level non-negativity checks.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_levels_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_levels", lazy=True))
    location = db.relationship("Location", backref=db.backref("stock_levels", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockLevel product_id={self.product_id} "
            f"location_id={self.location_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class MoveHistoryEntry(db.Model):
    """
    Append-only record of one stock quantity change.

    quantity_after = quantity_before + quantity_changed, and quantity_after
    equals the StockLevel quantity at the commit that wrote the entry.
    Rows are never updated; retention purges delete by age only.
    """
    __tablename__ = "move_history"
    __table_args__ = (
        db.Index("ix_move_history_product_location_created", "product_id", "location_id", "created_at"),
        db.Index("ix_move_history_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    move_type = db.Column(db.String(32), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Acting user, supplied by the caller (auth lives outside the core)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    quantity_changed = db.Column(db.Integer, nullable=False)

    # Originating document (receipt, delivery, transfer, adjustment)
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "move_type": self.move_type,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "quantity_changed": self.quantity_changed,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
