from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Customer invoice.

    STATUS:
    - DRAFT: created, not yet issued
    - SENT: issued to the customer, nothing paid
    - PARTIAL: 0 < paid < total
    - PAID: balance reaches zero
    - OVERDUE: issued, unpaid balance past due_date
    - CANCELLED: voided before any payment

    paid_cents, balance_cents and status are only written by the payment
    service (record/reverse) and the explicit send/cancel/overdue transitions.
    Invariant: balance_cents = total_cents - paid_cents.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
        db.Index("ix_invoices_status_due", "status", "due_date"),
        db.CheckConstraint("paid_cents >= 0", name="ck_invoices_paid_non_negative"),
        db.CheckConstraint("balance_cents >= 0", name="ck_invoices_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-000001")
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)

    # Amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status} "
            f"paid={self.paid_cents}/{self.total_cents}>"
        )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Snapshot at invoice time; product price changes do not rewrite invoices
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class Payment(db.Model):
    """
    Money received against exactly one invoice.

    Reversing a payment deletes this row and restores the invoice balance;
    the PaymentEvent ledger keeps the history.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("payment_number", name="uq_payments_number"),
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(64), nullable=False)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    # CASH, CHECK, BANK_TRANSFER, CREDIT_CARD, DEBIT_CARD, OTHER
    method = db.Column(db.String(32), nullable=False)

    # Processor transaction id, check number, ...
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_number": self.payment_number,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentEvent(db.Model):
    """
    Append-only billing ledger.

    One RECORDED row per payment and one REVERSED row (negative amount) per
    reversal. payment_id and invoice_id are not foreign keys: the payment
    row is gone after a reversal and the invoice may later be deleted, the
    event stays.
    """
    __tablename__ = "payment_events"
    __table_args__ = (
        db.Index("ix_payment_events_invoice_created", "invoice_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(16), nullable=False, index=True)

    payment_id = db.Column(db.Integer, nullable=False, index=True)
    payment_number = db.Column(db.String(64), nullable=False)
    invoice_id = db.Column(db.Integer, nullable=False)

    # Signed: positive for RECORDED, negative for REVERSED
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)

    # Invoice state right after this event
    paid_after_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    status_after = db.Column(db.String(16), nullable=False)

    user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "payment_id": self.payment_id,
            "payment_number": self.payment_number,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "paid_after_cents": self.paid_after_cents,
            "balance_after_cents": self.balance_after_cents,
            "status_after": self.status_after,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
