# Overview: Pytest coverage for the invoice balance engine.

"""
Invoice and Payment Tests

Invariant checked throughout: balance_cents == total_cents - paid_cents,
with paid >= 0 and balance >= 0.
"""

from datetime import datetime, timedelta, timezone

import pytest

from stockledger.errors import NotFoundError, PaymentExceedsBalanceError, ValidationError
from stockledger.extensions import db
from stockledger.models import Invoice, Payment, PaymentEvent
from stockledger.services import invoice_service, payment_service
from stockledger.time_utils import utcnow

from conftest import ACTOR


def _invoice(product, total_cents=10000, **kwargs):
    return invoice_service.create_invoice(
        customer_name="Jane Buyer",
        lines=[{"product_id": product.id, "quantity": 1, "unit_price_cents": total_cents}],
        acting_user_id=ACTOR,
        **kwargs,
    )


def _assert_balanced(invoice):
    assert invoice.balance_cents == invoice.total_cents - invoice.paid_cents
    assert invoice.paid_cents >= 0
    assert invoice.balance_cents >= 0


class TestInvoiceCreation:

    def test_amounts_from_lines_tax_and_discount(self, db_session, widget, gadget):
        invoice = invoice_service.create_invoice(
            customer_name="Jane Buyer",
            lines=[
                {"product_id": widget.id, "quantity": 3},
                {"product_id": gadget.id, "quantity": 1, "unit_price_cents": 2000, "description": "Promo gadget"},
            ],
            acting_user_id=ACTOR,
            tax_rate_bps=825,
            discount_cents=100,
        )

        # 3 * 1000 + 2000 = 5000; tax 5000 * 8.25% = 412.5 -> 413
        assert invoice.subtotal_cents == 5000
        assert invoice.tax_cents == 413
        assert invoice.total_cents == 5313
        assert invoice.balance_cents == 5313
        assert invoice.paid_cents == 0
        assert invoice.status == "DRAFT"
        assert invoice.invoice_number == "INV-000001"
        assert [line.description for line in invoice.lines] == ["Widget", "Promo gadget"]
        assert invoice.lines[0].unit_price_cents == 1000

    @pytest.mark.parametrize("subtotal,bps,expected", [(100, 50, 1), (100, 49, 0), (999, 825, 82), (0, 1000, 0)])
    def test_tax_rounds_half_up(self, subtotal, bps, expected):
        assert invoice_service.compute_tax_cents(subtotal, bps) == expected

    def test_customer_name_required(self, db_session, widget):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                customer_name="",
                lines=[{"product_id": widget.id, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_lines_required(self, db_session):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(customer_name="Jane", lines=[], acting_user_id=ACTOR)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(
                customer_name="Jane",
                lines=[{"product_id": 999999, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_discount_larger_than_total_rejected(self, db_session, widget):
        with pytest.raises(ValidationError):
            _invoice(widget, total_cents=500, discount_cents=501)
        assert db.session.query(Invoice).count() == 0


class TestPayments:

    def test_two_payments_settle_invoice(self, db_session, widget):
        """40 + 60 against 100: PARTIAL then PAID with paid_at set."""
        invoice = _invoice(widget, total_cents=100)

        payment_service.record_payment(invoice.id, 40, "CASH", acting_user_id=ACTOR)
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PARTIAL"
        assert (invoice.paid_cents, invoice.balance_cents) == (40, 60)
        _assert_balanced(invoice)

        payment_service.record_payment(invoice.id, 60, "BANK_TRANSFER", acting_user_id=ACTOR)
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PAID"
        assert (invoice.paid_cents, invoice.balance_cents) == (100, 0)
        assert invoice.paid_at is not None
        _assert_balanced(invoice)

    def test_reversal_restores_balance(self, db_session, widget):
        """Reversing the 60 payment leaves PARTIAL 40/60 and clears paid_at."""
        invoice = _invoice(widget, total_cents=100)
        payment_service.record_payment(invoice.id, 40, "CASH", acting_user_id=ACTOR)
        second = payment_service.record_payment(invoice.id, 60, "CASH", acting_user_id=ACTOR)

        invoice = payment_service.reverse_payment(second.id, acting_user_id=ACTOR)

        assert invoice.status == "PARTIAL"
        assert (invoice.paid_cents, invoice.balance_cents) == (40, 60)
        assert invoice.paid_at is None
        assert db.session.get(Payment, second.id) is None
        _assert_balanced(invoice)

    def test_reversal_to_zero_returns_to_sent(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100, due_date=utcnow() + timedelta(days=10))
        payment = payment_service.record_payment(invoice.id, 100, "CASH", acting_user_id=ACTOR)

        invoice = payment_service.reverse_payment(payment.id, acting_user_id=ACTOR)

        assert invoice.status == "SENT"
        assert (invoice.paid_cents, invoice.balance_cents) == (0, 100)

    def test_reversal_to_zero_past_due_is_overdue(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100, due_date=utcnow() - timedelta(days=1))
        payment = payment_service.record_payment(invoice.id, 30, "CASH", acting_user_id=ACTOR)

        invoice = payment_service.reverse_payment(payment.id, acting_user_id=ACTOR)

        assert invoice.status == "OVERDUE"

    def test_reversal_status_with_timezone_aware_due_date(self):
        # PostgreSQL returns aware datetimes for timestamptz columns
        plus_two = timezone(timedelta(hours=2))
        past_due = Invoice(paid_cents=0, due_date=datetime.now(plus_two) - timedelta(hours=1))
        not_due = Invoice(paid_cents=0, due_date=datetime.now(plus_two) + timedelta(days=1))

        assert payment_service._status_after_reversal(past_due, utcnow()) == "OVERDUE"
        assert payment_service._status_after_reversal(not_due, utcnow()) == "SENT"

    def test_payment_exceeding_balance_rejected(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100)
        payment_service.record_payment(invoice.id, 70, "CASH", acting_user_id=ACTOR)

        with pytest.raises(PaymentExceedsBalanceError) as exc_info:
            payment_service.record_payment(invoice.id, 31, "CASH", acting_user_id=ACTOR)

        assert isinstance(exc_info.value, ValidationError)
        invoice = invoice_service.get_invoice(invoice.id)
        assert (invoice.paid_cents, invoice.balance_cents) == (70, 30)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, db_session, widget, amount):
        invoice = _invoice(widget)
        with pytest.raises(ValidationError):
            payment_service.record_payment(invoice.id, amount, "CASH", acting_user_id=ACTOR)

    def test_unknown_method_rejected(self, db_session, widget):
        invoice = _invoice(widget)
        with pytest.raises(ValidationError):
            payment_service.record_payment(invoice.id, 10, "BITCOIN", acting_user_id=ACTOR)

    def test_payment_on_missing_invoice(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(999999, 10, "CASH", acting_user_id=ACTOR)

    def test_reverse_missing_payment(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.reverse_payment(999999, acting_user_id=ACTOR)

    def test_payment_on_draft_marks_it_sent(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100)
        assert invoice.sent_at is None

        payment_service.record_payment(invoice.id, 10, "CASH", acting_user_id=ACTOR)

        assert invoice_service.get_invoice(invoice.id).sent_at is not None

    def test_payment_on_cancelled_invoice_rejected(self, db_session, widget):
        invoice = _invoice(widget)
        invoice_service.cancel_invoice(invoice.id)
        with pytest.raises(ValidationError):
            payment_service.record_payment(invoice.id, 10, "CASH", acting_user_id=ACTOR)

    def test_payment_numbers_and_events(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100)
        first = payment_service.record_payment(invoice.id, 40, "CASH", acting_user_id=ACTOR, reference="R-1")
        payment_service.reverse_payment(first.id, acting_user_id=ACTOR + 1)

        assert first.payment_number == "PAY-000001"
        events = payment_service.list_payment_events(invoice_id=invoice.id)
        assert [(e.event_type, e.amount_cents, e.paid_after_cents) for e in events] == [
            ("RECORDED", 40, 40),
            ("REVERSED", -40, 0),
        ]
        assert events[1].payment_number == "PAY-000001"
        assert events[1].user_id == ACTOR + 1
        assert db.session.query(PaymentEvent).count() == 2

    def test_invoice_payments_listing(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100)
        payment_service.record_payment(invoice.id, 25, "CHECK", acting_user_id=ACTOR)
        payment_service.record_payment(invoice.id, 25, "OTHER", acting_user_id=ACTOR)

        payments = payment_service.get_invoice_payments(invoice.id)
        assert [p.method for p in payments] == ["CHECK", "OTHER"]


class TestInvoiceTransitions:

    def test_send_only_from_draft(self, db_session, widget):
        invoice = _invoice(widget)
        invoice = invoice_service.send_invoice(invoice.id)
        assert invoice.status == "SENT"
        assert invoice.sent_at is not None

        with pytest.raises(ValidationError):
            invoice_service.send_invoice(invoice.id)

    def test_cancel_requires_nothing_paid(self, db_session, widget):
        invoice = _invoice(widget, total_cents=100)
        payment_service.record_payment(invoice.id, 10, "CASH", acting_user_id=ACTOR)

        with pytest.raises(ValidationError):
            invoice_service.cancel_invoice(invoice.id)

        other = _invoice(widget)
        other = invoice_service.cancel_invoice(other.id)
        assert other.status == "CANCELLED"
        assert other.cancelled_at is not None

    def test_mark_overdue(self, db_session, widget):
        past = utcnow() - timedelta(days=3)
        sent = invoice_service.send_invoice(_invoice(widget, due_date=past).id)
        partial = _invoice(widget, total_cents=100, due_date=past)
        payment_service.record_payment(partial.id, 10, "CASH", acting_user_id=ACTOR)
        draft = _invoice(widget, due_date=past)
        future = invoice_service.send_invoice(_invoice(widget, due_date=utcnow() + timedelta(days=3)).id)

        assert invoice_service.mark_overdue_invoices() == 2

        statuses = {inv.id: inv.status for inv in db.session.query(Invoice).all()}
        assert statuses[sent.id] == "OVERDUE"
        assert statuses[partial.id] == "OVERDUE"
        assert statuses[draft.id] == "DRAFT"
        assert statuses[future.id] == "SENT"

    def test_overdue_invoice_can_be_paid_off(self, db_session, widget):
        invoice = invoice_service.send_invoice(
            _invoice(widget, total_cents=100, due_date=utcnow() - timedelta(days=1)).id
        )
        invoice_service.mark_overdue_invoices()

        payment_service.record_payment(invoice.id, 100, "CASH", acting_user_id=ACTOR)
        assert invoice_service.get_invoice(invoice.id).status == "PAID"

    def test_delete_only_without_payments(self, db_session, widget):
        paid = _invoice(widget, total_cents=100)
        payment_service.record_payment(paid.id, 10, "CASH", acting_user_id=ACTOR)
        with pytest.raises(ValidationError):
            invoice_service.delete_invoice(paid.id)

        unpaid = _invoice(widget)
        invoice_service.delete_invoice(unpaid.id)
        with pytest.raises(NotFoundError):
            invoice_service.get_invoice(unpaid.id)

    def test_list_invoices_by_status(self, db_session, widget):
        invoice_service.send_invoice(_invoice(widget).id)
        _invoice(widget)

        invoices, total = invoice_service.list_invoices(status="DRAFT")
        assert total == 1
        _, total = invoice_service.list_invoices()
        assert total == 2

        with pytest.raises(ValidationError):
            invoice_service.list_invoices(status="BOGUS")
