"""
Ledger Aggregator (``docpost_kernel.domain.onhand``).

Responsibility
--------------
Reconstructs one item's on-hand position from its posted stock movements:
total quantity, quantity per warehouse, and the provenance of the freshest
contributing movement.

Architecture position
---------------------
**Kernel domain layer** -- pure function.  ZERO I/O.  The selector feeds it
posted rows; nothing here knows about the database.

Invariants enforced
-------------------
* A Warehouse destination contributes ``+qty``; a Warehouse source
  contributes ``-qty``.  ExternalParty endpoints never contribute.
* The result is independent of input order (sums are exact Decimals and the
  provenance pick is a max over ``(date, seq)``).
* Nothing is cached or accumulated between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from docpost_kernel.db.types import ZERO
from docpost_kernel.domain.values import Endpoint, ExternalParty, Warehouse, is_warehouse


@dataclass(frozen=True)
class PostedMovement:
    """The aggregator's view of one posted stock movement."""

    move_id: UUID | None
    seq: int
    moved_at: datetime
    item_sku: str
    qty: Decimal
    source: Endpoint | None = None
    destination: Endpoint | None = None

    @property
    def contributes(self) -> bool:
        return is_warehouse(self.source) or is_warehouse(self.destination)

    @property
    def counterparty(self) -> str | None:
        """External party name if any, else the originating warehouse code."""
        for endpoint in (self.source, self.destination):
            if isinstance(endpoint, ExternalParty):
                return endpoint.name
        for endpoint in (self.source, self.destination):
            if isinstance(endpoint, Warehouse):
                return endpoint.code
        return None


@dataclass(frozen=True)
class OnHandRow:
    sku: str
    total: Decimal
    by_warehouse: dict[str, Decimal] = field(default_factory=dict)
    last_movement_at: datetime | None = None
    last_counterparty: str | None = None

    def to_dict(self) -> dict:
        return {
            "sku": self.sku,
            "total": self.total,
            "byWarehouse": dict(self.by_warehouse),
            "lastMovementAt": self.last_movement_at,
            "lastCounterparty": self.last_counterparty,
        }


def aggregate_on_hand(sku: str, movements: Iterable[PostedMovement]) -> OnHandRow:
    """
    Fold posted movements for ``sku`` into an OnHandRow.

    Movements for other skus are ignored.  Warehouses whose balance nets to
    zero are omitted from ``by_warehouse``.
    """
    balances: dict[str, Decimal] = {}
    latest: PostedMovement | None = None

    for move in movements:
        if move.item_sku != sku or not move.contributes:
            continue
        if isinstance(move.destination, Warehouse):
            code = move.destination.code
            balances[code] = balances.get(code, ZERO) + move.qty
        if isinstance(move.source, Warehouse):
            code = move.source.code
            balances[code] = balances.get(code, ZERO) - move.qty
        if latest is None or (move.moved_at, move.seq) > (latest.moved_at, latest.seq):
            latest = move

    by_warehouse = {code: balances[code] for code in sorted(balances) if balances[code] != ZERO}

    return OnHandRow(
        sku=sku,
        total=sum(balances.values(), ZERO),
        by_warehouse=by_warehouse,
        last_movement_at=latest.moved_at if latest else None,
        last_counterparty=latest.counterparty if latest else None,
    )
