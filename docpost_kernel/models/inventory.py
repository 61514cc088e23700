"""
Module: docpost_kernel.models.inventory
Responsibility: ORM persistence for the inventory ledger -- the warehouse
    registry, the item register, and the append-only stock movement log.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Warehouse.code is unique; only registered, active codes may be used as
      Warehouse endpoints when a movement is posted.
    - StockMove endpoints are stored as an explicit (kind, ref) pair.  The
      aggregator reads the kind; it never guesses from the ref's shape.
    - StockMove status moves draft -> approved -> posted (or cancelled from
      draft/approved).  Posted rows are immutable (db/immutability.py).
    - seq is unique and assigned at posting; together with moved_at it
      gives posted movements a total order.

Failure modes:
    - IntegrityError on duplicate warehouse code, sku, item_no, move_no, seq.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted movement.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docpost_kernel.db.base import TrackedBase, UUIDString
from docpost_kernel.domain.values import Endpoint, ExternalParty, Warehouse as WarehouseEndpoint

ENDPOINT_WAREHOUSE = "warehouse"
ENDPOINT_PARTY = "party"


class StockMoveStatus(str, Enum):
    """Lifecycle status of a stock movement.

    Contract: DRAFT -> APPROVED -> POSTED; CANCELLED from DRAFT or APPROVED.
    """

    DRAFT = "draft"
    APPROVED = "approved"
    POSTED = "posted"
    CANCELLED = "cancelled"


def _endpoint_columns(endpoint: Endpoint | None) -> tuple[str | None, str | None]:
    if endpoint is None:
        return None, None
    if isinstance(endpoint, WarehouseEndpoint):
        return ENDPOINT_WAREHOUSE, endpoint.code
    return ENDPOINT_PARTY, endpoint.name


def _endpoint_value(kind: str | None, ref: str | None) -> Endpoint | None:
    if kind == ENDPOINT_WAREHOUSE:
        return WarehouseEndpoint(ref)
    if kind == ENDPOINT_PARTY:
        return ExternalParty(ref)
    return None


class Warehouse(TrackedBase):
    """Registered storage location."""

    __tablename__ = "warehouses"

    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code} active={self.is_active}>"


class Item(TrackedBase):
    """Item register entry, created on the first movement of a sku."""

    __tablename__ = "items"

    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    item_no: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    uom: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<Item {self.item_no} sku={self.sku}>"


class StockMove(TrackedBase):
    """
    One atomic change to inventory.

    Contract:
        qty is a strictly positive magnitude; direction comes from which
        endpoints are warehouses.  Only POSTED rows count toward on-hand.
    """

    __tablename__ = "stock_moves"

    __table_args__ = (
        Index("idx_stock_move_sku_status", "item_sku", "status"),
        Index("idx_stock_move_document", "source_document_id"),
    )

    move_no: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    # Posting order; assigned when the move is posted
    seq: Mapped[int | None] = mapped_column(BigInteger, nullable=True, unique=True)

    moved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )
    item_sku: Mapped[str] = mapped_column(String(100), nullable=False)

    qty: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    source_kind: Mapped[str | None] = mapped_column(String(10), nullable=True)
    source_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    destination_kind: Mapped[str | None] = mapped_column(String(10), nullable=True)
    destination_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=StockMoveStatus.DRAFT.value,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    source_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=True,
    )

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    item: Mapped["Item"] = relationship()

    def __repr__(self) -> str:
        return f"<StockMove {self.move_no} {self.item_sku} x{self.qty} {self.status}>"

    @property
    def source(self) -> Endpoint | None:
        return _endpoint_value(self.source_kind, self.source_ref)

    @source.setter
    def source(self, endpoint: Endpoint | None) -> None:
        self.source_kind, self.source_ref = _endpoint_columns(endpoint)

    @property
    def destination(self) -> Endpoint | None:
        return _endpoint_value(self.destination_kind, self.destination_ref)

    @destination.setter
    def destination(self, endpoint: Endpoint | None) -> None:
        self.destination_kind, self.destination_ref = _endpoint_columns(endpoint)

    @property
    def is_posted(self) -> bool:
        return self.status == StockMoveStatus.POSTED.value
