"""
StockMoveWriter -- creates stock movements and walks them to POSTED.

Responsibility:
    The only writer of the stock_moves table.  Creates a movement as DRAFT,
    approves it, and posts it; registers the item (with its ITEM number) on
    the first movement of a sku.  Used by the posting engine for document
    movements and by the pipeline for stand-alone receipts, issues and
    transfers.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - qty is strictly positive; at least one endpoint is a Warehouse and the
      two endpoints differ.
    - Status transitions are DRAFT -> APPROVED -> POSTED; CANCELLED only
      from DRAFT or APPROVED.
    - At posting time every Warehouse endpoint is re-resolved through the
      registry: posting into an unknown or inactive warehouse fails.
    - Posted movements get a globally unique, increasing ``seq``.

Failure modes:
    - InvalidMovementError for malformed movements or wrong-status transitions.
    - UnknownWarehouseError when a Warehouse endpoint no longer resolves.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.db.types import ZERO
from docpost_kernel.domain.clock import Clock, SystemClock
from docpost_kernel.domain.values import Endpoint, is_warehouse
from docpost_kernel.exceptions import InvalidMovementError
from docpost_kernel.logging_config import get_logger
from docpost_kernel.models.inventory import Item, StockMove, StockMoveStatus
from docpost_kernel.services.base import BaseService
from docpost_kernel.services.sequence_service import SequenceService
from docpost_kernel.services.warehouse_registry import WarehouseRegistry

logger = get_logger("services.stock_move_writer")


class StockMoveWriter(BaseService[StockMove]):
    """Creates, approves, posts and cancels stock movements."""

    def __init__(
        self,
        session: Session,
        sequences: SequenceService | None = None,
        warehouses: WarehouseRegistry | None = None,
        clock: Clock | None = None,
        *,
        move_prefix: str = "MOV",
        item_prefix: str = "ITEM",
    ):
        super().__init__(session)
        self._sequences = sequences or SequenceService(session)
        self._warehouses = warehouses or WarehouseRegistry(session)
        self._clock = clock or SystemClock()
        self._move_prefix = move_prefix
        self._item_prefix = item_prefix

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def ensure_item(
        self,
        sku: str,
        *,
        description: str | None = None,
        uom: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Item:
        """Return the Item for ``sku``, registering it with a fresh ITEM number if new."""
        item = self.session.execute(select(Item).where(Item.sku == sku)).scalar_one_or_none()
        if item is not None:
            return item

        savepoint = self.session.begin_nested()
        try:
            item = Item(
                sku=sku,
                item_no=self._sequences.next_number(self._item_prefix, self._clock.today()),
                description=description,
                uom=uom,
                created_by_id=actor_id,
            )
            self.session.add(item)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            item = self.session.execute(select(Item).where(Item.sku == sku)).scalar_one()
            return item

        logger.info("item_registered", extra={"item_sku": sku, "item_no": item.item_no})
        return item

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def create_draft(
        self,
        *,
        item_sku: str,
        qty: Decimal,
        source: Endpoint | None = None,
        destination: Endpoint | None = None,
        uom: str = "pcs",
        unit_cost: Decimal = ZERO,
        moved_at: datetime | None = None,
        description: str | None = None,
        memo: str | None = None,
        source_document_id: UUID | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> StockMove:
        """
        Create a DRAFT movement.

        Raises:
            InvalidMovementError: bad sku, quantity or endpoints.
        """
        if not item_sku:
            raise InvalidMovementError("item sku is required")
        if qty is None or qty <= ZERO:
            raise InvalidMovementError(f"quantity must be positive, got {qty}", item_sku=item_sku)
        if not (is_warehouse(source) or is_warehouse(destination)):
            raise InvalidMovementError(
                "at least one endpoint must be a warehouse", item_sku=item_sku
            )
        if source is not None and source == destination:
            raise InvalidMovementError("source and destination are identical", item_sku=item_sku)
        if unit_cost is not None and unit_cost < ZERO:
            raise InvalidMovementError(f"unit cost must be non-negative, got {unit_cost}", item_sku=item_sku)

        item = self.ensure_item(item_sku, description=description, uom=uom, actor_id=actor_id)
        moved_at = moved_at or self._clock.now()

        move = StockMove(
            move_no=self._sequences.next_number(self._move_prefix, moved_at.date()),
            moved_at=moved_at,
            item_id=item.id,
            item_sku=item_sku,
            qty=qty,
            uom=uom,
            unit_cost=unit_cost if unit_cost is not None else ZERO,
            status=StockMoveStatus.DRAFT.value,
            source_document_id=source_document_id,
            memo=memo,
            created_by_id=actor_id,
        )
        move.source = source
        move.destination = destination
        self.session.add(move)
        self.session.flush()

        logger.debug(
            "stock_move_drafted",
            extra={"move_id": str(move.id), "move_no": move.move_no, "item_sku": item_sku},
        )
        return move

    def _require_status(self, move: StockMove, *allowed: StockMoveStatus) -> None:
        if move.status not in {s.value for s in allowed}:
            raise InvalidMovementError(
                f"movement is {move.status}, expected {'/'.join(s.value for s in allowed)}",
                move_id=str(move.id),
                item_sku=move.item_sku,
            )

    def approve(self, move: StockMove, *, actor_id: UUID = SYSTEM_ACTOR_ID) -> StockMove:
        self._require_status(move, StockMoveStatus.DRAFT)
        move.status = StockMoveStatus.APPROVED.value
        move.approved_at = self._clock.now()
        move.updated_by_id = actor_id
        self.session.flush()
        return move

    def post(self, move: StockMove, *, actor_id: UUID = SYSTEM_ACTOR_ID) -> StockMove:
        """
        Post an APPROVED movement.

        Raises:
            InvalidMovementError: movement is not APPROVED.
            UnknownWarehouseError: a Warehouse endpoint is unknown or inactive.
        """
        self._require_status(move, StockMoveStatus.APPROVED)
        for endpoint in (move.source, move.destination):
            if is_warehouse(endpoint):
                self._warehouses.resolve(endpoint.code)

        move.seq = self._sequences.next_value(SequenceService.STOCK_MOVE_SEQ)
        move.status = StockMoveStatus.POSTED.value
        move.posted_at = self._clock.now()
        move.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "stock_move_posted",
            extra={
                "move_id": str(move.id),
                "move_no": move.move_no,
                "item_sku": move.item_sku,
                "qty": str(move.qty),
                "source": move.source.label if move.source else None,
                "destination": move.destination.label if move.destination else None,
                "seq": move.seq,
            },
        )
        return move

    def cancel(self, move: StockMove, *, actor_id: UUID = SYSTEM_ACTOR_ID) -> StockMove:
        self._require_status(move, StockMoveStatus.DRAFT, StockMoveStatus.APPROVED)
        move.status = StockMoveStatus.CANCELLED.value
        move.updated_by_id = actor_id
        self.session.flush()
        return move

    def record(self, *, actor_id: UUID = SYSTEM_ACTOR_ID, **fields) -> StockMove:
        """Create, approve and post a movement in one step."""
        move = self.create_draft(actor_id=actor_id, **fields)
        self.approve(move, actor_id=actor_id)
        return self.post(move, actor_id=actor_id)
