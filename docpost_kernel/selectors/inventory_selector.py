"""
Module: docpost_kernel.selectors.inventory_selector
Responsibility: Read path for on-hand quantities.  Loads an item's posted
    stock movements and hands them to the Ledger Aggregator.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only POSTED movements are read; drafts, approved and cancelled moves
      never reach the aggregator.
    - On-hand is always derived from the movement log.  Nothing is stored.
    - ``movement_version`` changes whenever a movement for the sku is posted,
      so callers may cache an OnHandRow keyed by it.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select

from docpost_kernel.domain.onhand import OnHandRow, PostedMovement, aggregate_on_hand
from docpost_kernel.models.inventory import StockMove, StockMoveStatus
from docpost_kernel.selectors.base import BaseSelector


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InventorySelector(BaseSelector):
    """On-hand queries over the stock movement log."""

    def posted_movements(self, sku: str) -> list[PostedMovement]:
        rows = self.session.execute(
            select(StockMove)
            .where(
                StockMove.item_sku == sku,
                StockMove.status == StockMoveStatus.POSTED.value,
            )
            .order_by(StockMove.seq)
        ).scalars()
        return [
            PostedMovement(
                move_id=move.id,
                seq=move.seq,
                moved_at=_as_utc(move.moved_at),
                item_sku=move.item_sku,
                qty=move.qty,
                source=move.source,
                destination=move.destination,
            )
            for move in rows
        ]

    def movement_version(self, sku: str) -> tuple[int, int | None]:
        """(count, highest seq) of the sku's posted movements."""
        count, max_seq = self.session.execute(
            select(func.count(StockMove.id), func.max(StockMove.seq)).where(
                StockMove.item_sku == sku,
                StockMove.status == StockMoveStatus.POSTED.value,
            )
        ).one()
        return int(count), max_seq

    def on_hand(self, sku: str) -> OnHandRow:
        return aggregate_on_hand(sku, self.posted_movements(sku))
