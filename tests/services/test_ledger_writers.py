"""
Tests for the warehouse registry, JournalWriter and StockMoveWriter.

Verifies:
- Only registered, active warehouse codes resolve to Warehouse endpoints
- Journal entries are balance-checked, numbered and idempotent per key
- Stock movements validate quantity and endpoints, walk draft -> approved ->
  posted, and re-check warehouses at posting time
- Items are registered with an ITEM number on first movement
"""

from datetime import date
from decimal import Decimal

import pytest

from docpost_kernel.domain.dtos import JournalDraft, JournalLineDraft
from docpost_kernel.domain.values import ExternalParty, Warehouse
from docpost_kernel.exceptions import (
    InvalidMovementError,
    InvalidWarehouseCodeError,
    UnknownWarehouseError,
)
from docpost_kernel.models.inventory import StockMoveStatus
from docpost_kernel.services.journal_writer import JournalWriter, WriteStatus
from docpost_kernel.services.stock_move_writer import StockMoveWriter


def _draft(debit="1250.00", credit="1250.00"):
    return JournalDraft(
        entry_date=date(2024, 2, 28),
        reference="INV-1001",
        memo="Acme A/S INV-1001",
        currency="DKK",
        lines=(
            JournalLineDraft(account="1400", debit=Decimal(debit)),
            JournalLineDraft(account="1000", credit=Decimal(credit)),
        ),
    )


@pytest.fixture
def journal_writer(session, sequences, deterministic_clock):
    return JournalWriter(session, sequences, deterministic_clock)


@pytest.fixture
def stock_moves(session, sequences, warehouses, deterministic_clock):
    return StockMoveWriter(session, sequences, warehouses, deterministic_clock)


class TestWarehouseRegistry:

    def test_resolve_registered(self, warehouses):
        assert warehouses.resolve("main") == Warehouse("MAIN")

    def test_unknown_code(self, warehouses):
        with pytest.raises(UnknownWarehouseError) as exc_info:
            warehouses.resolve("ACME")
        assert exc_info.value.warehouse_code == "ACME"

    def test_inactive_code(self, warehouses):
        warehouses.set_active("MAIN", False)

        with pytest.raises(UnknownWarehouseError):
            warehouses.resolve("MAIN")
        assert warehouses.list_active() == []

    def test_malformed_code(self, warehouses):
        with pytest.raises(InvalidWarehouseCodeError):
            warehouses.register("main store", "Main store")

    def test_register_is_upsert(self, warehouses):
        warehouses.register("MAIN", "Renamed")
        warehouses.register("B2", "Overflow")

        assert [(w.code, w.name) for w in warehouses.list_active()] == [
            ("B2", "Overflow"),
            ("MAIN", "Renamed"),
        ]


class TestJournalWriter:

    def test_write(self, journal_writer, test_actor_id):
        result = journal_writer.write(_draft(), idempotency_key="document:post:1", actor_id=test_actor_id)

        assert result.status == WriteStatus.WRITTEN
        assert result.entry_no == "JE-20240228-0001"
        entry = journal_writer.find_by_key("document:post:1")
        assert entry.is_balanced
        assert [line.account_code for line in entry.lines] == ["1400", "1000"]
        assert entry.actor_id == test_actor_id

    def test_same_key_returns_existing(self, journal_writer):
        first = journal_writer.write(_draft(), idempotency_key="document:post:1")
        second = journal_writer.write(_draft(), idempotency_key="document:post:1")

        assert second.status == WriteStatus.ALREADY_EXISTS
        assert second.entry_id == first.entry_id
        assert second.is_success

    def test_unbalanced_refused(self, journal_writer):
        result = journal_writer.write(_draft(credit="1249.99"), idempotency_key="document:post:2")

        assert result.status == WriteStatus.VALIDATION_FAILED
        assert result.error_code == "UNBALANCED_ENTRY"
        assert journal_writer.find_by_key("document:post:2") is None


class TestStockMoveWriter:

    def test_record_receipt(self, stock_moves, deterministic_clock):
        move = stock_moves.record(
            item_sku="X",
            qty=Decimal("50"),
            source=ExternalParty("Acme"),
            destination=Warehouse("MAIN"),
        )

        assert move.status == StockMoveStatus.POSTED.value
        assert move.seq == 1
        assert move.move_no == "MOV-20240301-0001"
        assert move.posted_at == deterministic_clock.now()
        assert move.item.item_no == "ITEM-20240301-0001"

    def test_item_registered_once(self, stock_moves):
        first = stock_moves.record(item_sku="X", qty=Decimal("1"), destination=Warehouse("MAIN"))
        second = stock_moves.record(item_sku="X", qty=Decimal("1"), source=Warehouse("MAIN"))

        assert first.item_id == second.item_id
        assert (first.seq, second.seq) == (1, 2)

    @pytest.mark.parametrize(
        "qty,source,destination",
        [
            (Decimal("0"), None, Warehouse("MAIN")),
            (Decimal("-1"), None, Warehouse("MAIN")),
            (Decimal("1"), ExternalParty("Acme"), ExternalParty("Cust1")),
            (Decimal("1"), None, None),
            (Decimal("1"), Warehouse("MAIN"), Warehouse("MAIN")),
        ],
    )
    def test_invalid_movements(self, stock_moves, qty, source, destination):
        with pytest.raises(InvalidMovementError):
            stock_moves.create_draft(item_sku="X", qty=qty, source=source, destination=destination)

    def test_posting_rechecks_warehouse(self, stock_moves, warehouses):
        """A draft routed to MAIN cannot post once MAIN is deactivated."""
        move = stock_moves.create_draft(item_sku="X", qty=Decimal("1"), destination=Warehouse("MAIN"))
        stock_moves.approve(move)
        warehouses.set_active("MAIN", False)

        with pytest.raises(UnknownWarehouseError):
            stock_moves.post(move)
        assert move.status == StockMoveStatus.APPROVED.value

    def test_unregistered_destination(self, stock_moves):
        with pytest.raises(UnknownWarehouseError):
            stock_moves.record(item_sku="X", qty=Decimal("1"), destination=Warehouse("NOWHERE"))

    def test_status_order_enforced(self, stock_moves):
        move = stock_moves.create_draft(item_sku="X", qty=Decimal("1"), destination=Warehouse("MAIN"))

        with pytest.raises(InvalidMovementError):
            stock_moves.post(move)
        stock_moves.cancel(move)
        with pytest.raises(InvalidMovementError):
            stock_moves.approve(move)
