# Overview: Pytest coverage for document numbering and the move history log.

from datetime import timedelta

import pytest

from stockledger.errors import ValidationError
from stockledger.extensions import db
from stockledger.models import DocumentSequence, MoveHistoryEntry, MOVE_RECEIPT, MOVE_TRANSFER_IN, VALID_MOVE_TYPES
from stockledger.services import document_service, move_history_service, stock_service
from stockledger.services.sequence_service import next_document_number
from stockledger.time_utils import utcnow

from conftest import ACTOR


class TestNumbering:

    def test_numbers_are_sequential_and_padded(self, db_session):
        assert next_document_number("RCP") == "RCP-000001"
        assert next_document_number("RCP") == "RCP-000002"
        db.session.commit()
        assert next_document_number("RCP") == "RCP-000003"

    def test_prefixes_are_independent(self, db_session):
        assert next_document_number("INV") == "INV-000001"
        assert next_document_number("PAY") == "PAY-000001"
        assert next_document_number("INV") == "INV-000002"
        assert db.session.query(DocumentSequence).count() == 2

    def test_custom_padding(self, db_session):
        assert next_document_number("TRN", pad=3) == "TRN-001"

    def test_rolled_back_number_is_reissued(self, db_session):
        """Numbers are only consumed when the caller commits."""
        next_document_number("DEL")
        db.session.commit()
        next_document_number("DEL")
        db.session.rollback()
        assert next_document_number("DEL") == "DEL-000002"

    def test_prefix_required(self, db_session):
        with pytest.raises(ValidationError):
            next_document_number("")

    def test_each_document_type_uses_its_prefix(self, db_session, main, backup, vendor, widget, receive):
        receipt = receive(main, widget, 5)
        delivery = document_service.create_delivery(
            location_id=main.id, lines=[{"product_id": widget.id, "quantity": 1}], acting_user_id=ACTOR
        )
        transfer = document_service.create_transfer(
            from_location_id=main.id,
            to_location_id=backup.id,
            lines=[{"product_id": widget.id, "quantity": 1}],
            acting_user_id=ACTOR,
        )
        adjustment = document_service.create_adjustment(
            location_id=main.id,
            reason="Found",
            lines=[{"product_id": widget.id, "quantity_delta": 1}],
            acting_user_id=ACTOR,
        )

        assert receipt.document_number == "RCP-000001"
        assert delivery.document_number == "DEL-000001"
        assert transfer.document_number == "TRN-000001"
        assert adjustment.document_number == "ADJ-000001"


class TestMoveHistory:

    def test_append_rejects_unknown_move_type(self, db_session, main, widget):
        with pytest.raises(ValidationError):
            move_history_service.append_move(
                move_type="SHRINK",
                product_id=widget.id,
                location_id=main.id,
                user_id=ACTOR,
                quantity_before=0,
                quantity_after=1,
                reference_type="adjustment",
                reference_id=1,
            )

    def test_append_accepts_every_exported_move_type(self, db_session, main, widget):
        for move_type in VALID_MOVE_TYPES:
            move_history_service.append_move(
                move_type=move_type,
                product_id=widget.id,
                location_id=main.id,
                user_id=ACTOR,
                quantity_before=0,
                quantity_after=1,
                reference_type="adjustment",
                reference_id=1,
            )
        db.session.commit()

        entries, total = move_history_service.query_moves(product_id=widget.id)
        assert total == len(VALID_MOVE_TYPES) == 6
        assert {entry.move_type for entry in entries} == set(VALID_MOVE_TYPES)
        assert MOVE_RECEIPT in VALID_MOVE_TYPES and MOVE_TRANSFER_IN in VALID_MOVE_TYPES

    def test_query_filters_and_ordering(self, db_session, main, backup, widget, gadget, receive):
        receive(main, widget, 5)
        receive(main, gadget, 2)
        receive(backup, widget, 1)

        entries, total = move_history_service.query_moves()
        assert total == 3
        assert [e.id for e in entries] == sorted((e.id for e in entries), reverse=True)

        entries, total = move_history_service.query_moves(product_id=widget.id)
        assert total == 2

        entries, total = move_history_service.query_moves(product_id=widget.id, location_id=backup.id)
        assert total == 1
        assert entries[0].quantity_after == 1

        _, total = move_history_service.query_moves(move_type="DELIVERY")
        assert total == 0

        _, total = move_history_service.query_moves(user_id=ACTOR + 1)
        assert total == 0

    def test_query_by_reference_and_dates(self, db_session, main, widget, receive):
        receipt = receive(main, widget, 5)
        receive(main, widget, 1)

        entries, total = move_history_service.query_moves(reference_id=receipt.id, reference_type="receipt")
        assert total == 1
        assert entries[0].quantity_changed == 5

        now = utcnow()
        _, total = move_history_service.query_moves(date_from=now - timedelta(minutes=5), date_to=now + timedelta(minutes=5))
        assert total == 2
        _, total = move_history_service.query_moves(date_from=now + timedelta(minutes=5))
        assert total == 0

    def test_query_pagination(self, db_session, main, widget, receive):
        for qty in range(1, 6):
            receive(main, widget, qty)

        page_one, total = move_history_service.query_moves(page=1, limit=2)
        page_three, _ = move_history_service.query_moves(page=3, limit=2)

        assert total == 5
        assert len(page_one) == 2
        assert len(page_three) == 1
        assert page_three[0].quantity_changed == 1

    def test_query_rejects_inverted_range(self, db_session):
        now = utcnow()
        with pytest.raises(ValidationError):
            move_history_service.query_moves(date_from=now, date_to=now - timedelta(days=1))

    def test_purge_deletes_old_entries_only(self, db_session, main, widget, receive):
        """Purging history never touches stock levels."""
        receive(main, widget, 4)
        receive(main, widget, 6)

        old = db.session.query(MoveHistoryEntry).order_by(MoveHistoryEntry.id).first()
        old.created_at = utcnow() - timedelta(days=400)
        db.session.commit()

        deleted = move_history_service.purge_moves_older_than(utcnow() - timedelta(days=365))

        assert deleted == 1
        assert db.session.query(MoveHistoryEntry).count() == 1
        assert stock_service.get_quantity(widget.id, main.id) == 10
