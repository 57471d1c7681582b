# Overview: Pytest coverage for document lifecycle behavior.

"""
Document Lifecycle Tests

Covers create-time validation, the apply unit of work for every variant,
and the ledger properties that must hold after any sequence of applies:
- stock never negative
- transfers conserve totals
- every history entry agrees with the stock level it wrote
- apply happens at most once
- a failed apply leaves no partial writes
"""

import logging

import pytest
from sqlalchemy import func

from stockledger.errors import (
    AlreadyAppliedError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockledger.extensions import db
from stockledger.models import MoveHistoryEntry, StockLevel, Receipt, Delivery
from stockledger.services import document_service, move_history_service, stock_service

from conftest import ACTOR


def _moves(doc_type, doc_id):
    return move_history_service.moves_for_document(doc_type, doc_id)


class TestScenarios:
    """End-to-end ledger scenarios."""

    def test_receipt_from_zero(self, db_session, main, vendor, widget):
        """Receipt of 10 on an empty location: stock 10, one RECEIPT entry 0 -> 10."""
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 10}],
            acting_user_id=ACTOR,
        )
        assert receipt.is_applied is False
        assert stock_service.get_quantity(widget.id, main.id) == 0

        applied = document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        assert applied.is_applied is True
        assert applied.applied_at is not None
        assert applied.applied_by_user_id == ACTOR
        assert stock_service.get_quantity(widget.id, main.id) == 10

        moves = _moves("receipt", receipt.id)
        assert len(moves) == 1
        move = moves[0]
        assert move.move_type == "RECEIPT"
        assert (move.quantity_before, move.quantity_after, move.quantity_changed) == (0, 10, 10)
        assert move.user_id == ACTOR
        assert move.notes == f"Receipt validation: {receipt.document_number}"

    def test_delivery_over_stock_rejected(self, db_session, main, widget, receive):
        """Delivery of 15 against 10 on hand is rejected with no mutation."""
        receive(main, widget, 10)
        history_before = db.session.query(MoveHistoryEntry).count()

        with pytest.raises(InsufficientStockError):
            document_service.create_delivery(
                location_id=main.id,
                lines=[{"product_id": widget.id, "quantity": 15}],
                acting_user_id=ACTOR,
            )

        assert stock_service.get_quantity(widget.id, main.id) == 10
        assert db.session.query(MoveHistoryEntry).count() == history_before
        assert db.session.query(Delivery).count() == 0

    def test_transfer_moves_stock_between_locations(self, db_session, main, backup, widget, receive):
        """Transfer 5 of 20: source 15, destination 5, TRANSFER_OUT then TRANSFER_IN."""
        receive(main, widget, 20)

        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=backup.id,
            lines=[{"product_id": widget.id, "quantity": 5}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("transfer", transfer.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 15
        assert stock_service.get_quantity(widget.id, backup.id) == 5

        moves = _moves("transfer", transfer.id)
        assert [m.move_type for m in moves] == ["TRANSFER_OUT", "TRANSFER_IN"]
        out_move, in_move = moves
        assert (out_move.location_id, out_move.quantity_before, out_move.quantity_after) == (main.id, 20, 15)
        assert (in_move.location_id, in_move.quantity_before, in_move.quantity_after) == (backup.id, 0, 5)

    def test_adjustment_below_zero_rejected(self, db_session, main, widget, receive):
        """Adjustment of -5 on 3 on hand is rejected; stock stays 3."""
        receive(main, widget, 3)

        with pytest.raises(ValidationError):
            document_service.create_adjustment(
                location_id=main.id,
                reason="Damaged",
                lines=[{"product_id": widget.id, "quantity_delta": -5}],
                acting_user_id=ACTOR,
            )

        assert stock_service.get_quantity(widget.id, main.id) == 3

    def test_adjustment_increase_and_decrease(self, db_session, main, widget, gadget, receive):
        receive(main, widget, 3)

        adjustment = document_service.create_adjustment(
            location_id=main.id,
            reason="Cycle count",
            lines=[
                {"product_id": widget.id, "quantity_delta": -2},
                {"product_id": gadget.id, "quantity_delta": 4},
            ],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("adjustment", adjustment.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 1
        assert stock_service.get_quantity(gadget.id, main.id) == 4
        moves = _moves("adjustment", adjustment.id)
        assert [m.move_type for m in moves] == ["ADJUSTMENT_DECREASE", "ADJUSTMENT_INCREASE"]
        assert moves[0].notes == "Stock adjustment: Cycle count"


class TestCreateValidation:

    def test_receipt_requires_vendor(self, db_session, main, widget):
        with pytest.raises(ValidationError):
            document_service.create_receipt(
                vendor_id=None,
                location_id=main.id,
                lines=[{"product_id": widget.id, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_receipt_requires_lines(self, db_session, main, vendor):
        with pytest.raises(ValidationError):
            document_service.create_receipt(
                vendor_id=vendor.id, location_id=main.id, lines=[], acting_user_id=ACTOR
            )

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "2.0", "1e3", True])
    def test_receipt_rejects_non_positive_or_non_integer_quantity(self, db_session, main, vendor, widget, quantity):
        with pytest.raises(ValidationError):
            document_service.create_receipt(
                vendor_id=vendor.id,
                location_id=main.id,
                lines=[{"product_id": widget.id, "quantity": quantity}],
                acting_user_id=ACTOR,
            )

    def test_unknown_product_not_found(self, db_session, main, vendor):
        with pytest.raises(NotFoundError):
            document_service.create_receipt(
                vendor_id=vendor.id,
                location_id=main.id,
                lines=[{"product_id": 999999, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_unknown_location_not_found(self, db_session, vendor, widget):
        with pytest.raises(NotFoundError):
            document_service.create_receipt(
                vendor_id=vendor.id,
                location_id=999999,
                lines=[{"product_id": widget.id, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_transfer_to_same_location_rejected(self, db_session, main, widget, receive):
        receive(main, widget, 5)
        with pytest.raises(ValidationError):
            document_service.create_transfer(
                from_location_id=main.id,
                to_location_id=main.id,
                lines=[{"product_id": widget.id, "quantity": 1}],
                acting_user_id=ACTOR,
            )

    def test_adjustment_requires_reason(self, db_session, main, widget):
        with pytest.raises(ValidationError):
            document_service.create_adjustment(
                location_id=main.id,
                reason="  ",
                lines=[{"product_id": widget.id, "quantity_delta": 1}],
                acting_user_id=ACTOR,
            )

    def test_adjustment_rejects_zero_delta(self, db_session, main, widget):
        with pytest.raises(ValidationError):
            document_service.create_adjustment(
                location_id=main.id,
                reason="Recount",
                lines=[{"product_id": widget.id, "quantity_delta": 0}],
                acting_user_id=ACTOR,
            )

    def test_delivery_availability_is_cumulative(self, db_session, main, widget, receive):
        """Two lines of 6 for the same product need 12, not 6."""
        receive(main, widget, 10)
        with pytest.raises(InsufficientStockError):
            document_service.create_delivery(
                location_id=main.id,
                lines=[
                    {"product_id": widget.id, "quantity": 6},
                    {"product_id": widget.id, "quantity": 6},
                ],
                acting_user_id=ACTOR,
            )

    def test_missing_acting_user(self, db_session, main, vendor, widget):
        with pytest.raises(ValidationError):
            document_service.create_receipt(
                vendor_id=vendor.id,
                location_id=main.id,
                lines=[{"product_id": widget.id, "quantity": 1}],
                acting_user_id=None,
            )

    def test_failed_create_does_not_consume_number(self, db_session, main, vendor, widget):
        with pytest.raises(NotFoundError):
            document_service.create_receipt(
                vendor_id=vendor.id,
                location_id=main.id,
                lines=[{"product_id": 999999, "quantity": 1}],
                acting_user_id=ACTOR,
            )
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )
        assert receipt.document_number == "RCP-000001"


class TestApply:

    def test_apply_twice_is_rejected(self, db_session, main, vendor, widget):
        """Second apply raises AlreadyAppliedError and writes nothing."""
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 10}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        with pytest.raises(AlreadyAppliedError):
            document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 10
        assert len(_moves("receipt", receipt.id)) == 1

    def test_apply_missing_document(self, db_session):
        with pytest.raises(NotFoundError):
            document_service.apply_document("delivery", 999999, acting_user_id=ACTOR)

    def test_apply_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            document_service.apply_document("invoice", 1, acting_user_id=ACTOR)

    def test_apply_rechecks_stock(self, db_session, main, widget, receive):
        """Stock consumed between create and apply is caught at apply time."""
        receive(main, widget, 10)

        first = document_service.create_delivery(
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 8}],
            acting_user_id=ACTOR,
        )
        second = document_service.create_delivery(
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 5}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("delivery", second.id, acting_user_id=ACTOR)

        with pytest.raises(InsufficientStockError):
            document_service.apply_document("delivery", first.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 5
        assert document_service.get_document("delivery", first.id).is_applied is False
        assert _moves("delivery", first.id) == []

    def test_negative_adjustment_rechecked_at_apply(self, db_session, main, widget, receive):
        receive(main, widget, 3)
        adjustment = document_service.create_adjustment(
            location_id=main.id,
            reason="Shrink",
            lines=[{"product_id": widget.id, "quantity_delta": -3}],
            acting_user_id=ACTOR,
        )
        delivery = document_service.create_delivery(
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 2}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("delivery", delivery.id, acting_user_id=ACTOR)

        with pytest.raises(InsufficientStockError):
            document_service.apply_document("adjustment", adjustment.id, acting_user_id=ACTOR)
        assert stock_service.get_quantity(widget.id, main.id) == 1

    def test_transfer_source_rechecked_at_apply(self, db_session, main, backup, widget, receive):
        receive(main, widget, 6)
        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=backup.id,
            lines=[{"product_id": widget.id, "quantity": 6}],
            acting_user_id=ACTOR,
        )
        delivery = document_service.create_delivery(
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 4}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("delivery", delivery.id, acting_user_id=ACTOR)

        with pytest.raises(InsufficientStockError):
            document_service.apply_document("transfer", transfer.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 2
        assert stock_service.get_quantity(widget.id, backup.id) == 0
        assert document_service.get_document("transfer", transfer.id).is_applied is False
        assert _moves("transfer", transfer.id) == []

    def test_failing_last_line_leaves_no_partial_mutation(self, db_session, main, widget, gadget, receive):
        """First line fits, second does not: nothing is written."""
        receive(main, widget, 10)
        receive(main, gadget, 10)
        delivery = document_service.create_delivery(
            location_id=main.id,
            lines=[
                {"product_id": widget.id, "quantity": 4},
                {"product_id": gadget.id, "quantity": 9},
            ],
            acting_user_id=ACTOR,
        )
        other = document_service.create_delivery(
            location_id=main.id,
            lines=[{"product_id": gadget.id, "quantity": 5}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("delivery", other.id, acting_user_id=ACTOR)

        with pytest.raises(InsufficientStockError):
            document_service.apply_document("delivery", delivery.id, acting_user_id=ACTOR)

        assert stock_service.get_quantity(widget.id, main.id) == 10
        assert stock_service.get_quantity(gadget.id, main.id) == 5
        assert _moves("delivery", delivery.id) == []

    def test_history_write_failure_rolls_back_everything(self, db_session, main, vendor, widget, gadget, monkeypatch):
        """An error midway through the apply leaves stock, history and status untouched."""
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[
                {"product_id": widget.id, "quantity": 3},
                {"product_id": gadget.id, "quantity": 4},
            ],
            acting_user_id=ACTOR,
        )

        original = move_history_service.append_move
        calls = []

        def flaky_append_move(**kwargs):
            calls.append(kwargs)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return original(**kwargs)

        monkeypatch.setattr(move_history_service, "append_move", flaky_append_move)

        with pytest.raises(RuntimeError):
            document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        db.session.expire_all()
        assert stock_service.get_quantity(widget.id, main.id) == 0
        assert stock_service.get_quantity(gadget.id, main.id) == 0
        assert db.session.query(MoveHistoryEntry).count() == 0
        assert document_service.get_document("receipt", receipt.id).is_applied is False

    def test_duplicate_product_lines_accumulate(self, db_session, main, vendor, widget):
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[
                {"product_id": widget.id, "quantity": 2},
                {"product_id": widget.id, "quantity": 3},
            ],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        moves = _moves("receipt", receipt.id)
        assert [(m.quantity_before, m.quantity_after) for m in moves] == [(0, 2), (2, 5)]
        assert stock_service.get_quantity(widget.id, main.id) == 5

    def test_apply_logs_document(self, db_session, main, vendor, widget, caplog):
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )
        with caplog.at_level(logging.INFO, logger="stockledger"):
            document_service.apply_document("receipt", receipt.id, acting_user_id=ACTOR)

        assert f"Applied receipt {receipt.document_number}" in caplog.text


class TestLedgerProperties:

    def test_transfer_conserves_total(self, db_session, main, backup, widget, gadget, receive):
        receive(main, widget, 12)
        receive(main, gadget, 7)
        total_before = db.session.query(func.sum(StockLevel.quantity)).scalar()

        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=backup.id,
            lines=[
                {"product_id": widget.id, "quantity": 12},
                {"product_id": gadget.id, "quantity": 1},
            ],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("transfer", transfer.id, acting_user_id=ACTOR)

        assert db.session.query(func.sum(StockLevel.quantity)).scalar() == total_before
        assert stock_service.get_quantity(widget.id, main.id) == 0
        assert stock_service.get_quantity(widget.id, backup.id) == 12

    def test_history_replays_to_stock_levels(self, db_session, main, backup, widget, receive):
        """Summing quantity_changed per pair reproduces every stock level."""
        receive(main, widget, 9)
        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=backup.id,
            lines=[{"product_id": widget.id, "quantity": 4}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("transfer", transfer.id, acting_user_id=ACTOR)
        delivery = document_service.create_delivery(
            location_id=backup.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )
        document_service.apply_document("delivery", delivery.id, acting_user_id=ACTOR)

        entries = db.session.query(MoveHistoryEntry).order_by(MoveHistoryEntry.id).all()
        replayed = {}
        for entry in entries:
            key = (entry.product_id, entry.location_id)
            assert entry.quantity_before == replayed.get(key, 0)
            assert entry.quantity_after == entry.quantity_before + entry.quantity_changed
            replayed[key] = entry.quantity_after

        for level in db.session.query(StockLevel).all():
            assert replayed[(level.product_id, level.location_id)] == level.quantity
            assert level.quantity >= 0


class TestDeleteAndQuery:

    def test_delete_pending_document(self, db_session, main, vendor, widget):
        receipt = document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )
        document_service.delete_document("receipt", receipt.id)

        assert db.session.query(Receipt).count() == 0
        with pytest.raises(NotFoundError):
            document_service.get_document("receipt", receipt.id)

    def test_delete_applied_document_rejected(self, db_session, main, widget, receive):
        receipt = receive(main, widget, 1)
        with pytest.raises(AlreadyAppliedError):
            document_service.delete_document("receipt", receipt.id)
        assert document_service.get_document("receipt", receipt.id).is_applied is True

    def test_list_documents_by_status(self, db_session, main, vendor, widget, receive):
        receive(main, widget, 1)
        document_service.create_receipt(
            vendor_id=vendor.id,
            location_id=main.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )

        docs, total = document_service.list_documents("receipt")
        assert total == 2
        assert [d.document_number for d in docs] == ["RCP-000002", "RCP-000001"]

        pending, pending_total = document_service.list_documents("receipt", applied=False)
        assert pending_total == 1
        assert pending[0].document_number == "RCP-000002"
