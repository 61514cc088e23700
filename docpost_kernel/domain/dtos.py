"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures that flow between the pure domain
    functions and the service layer: validation errors, the draft journal and
    draft stock movements that make up a document's proposal, and the links a
    posting writes back onto the document.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  Every DTO that is stored in a JSON column has a
    ``to_dict()`` / ``from_dict()`` pair; Decimals are stored as strings so
    no precision is lost in the round trip.

Invariants enforced:
    - JournalLineDraft: amounts are non-negative and exactly one side is
      non-zero.
    - StockMoveDraft: quantity is strictly positive.

Failure modes:
    - ValueError on JournalLineDraft with a negative amount or two sides.
    - ValueError on StockMoveDraft with a non-positive quantity.

Data flow:
    ExtractedDocument -> Proposal(JournalDraft, StockMoveDraft...) -> PostingLinks
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from docpost_kernel.domain.values import Endpoint, endpoint_from_dict, endpoint_to_dict

_ZERO = Decimal("0")


def _dec(value: Any) -> Decimal:
    return Decimal(str(value)) if value not in (None, "") else _ZERO


def _date_or_none(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation finding.

    Contract:
        Carries a machine-readable code, human-readable message, optional field
        path, and optional details dict.  Extraction inconsistencies and
        unbalanceable proposals are reported this way rather than raised.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationError:
        return cls(
            code=data["code"],
            message=data.get("message", ""),
            field=data.get("field"),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class JournalLineDraft:
    """One line of a draft journal.  Exactly one of debit/credit is non-zero."""

    account: str
    debit: Decimal = _ZERO
    credit: Decimal = _ZERO
    memo: str = ""

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise ValueError(
                f"Journal line amounts must be non-negative: "
                f"debit={self.debit}, credit={self.credit}"
            )
        if (self.debit != 0) == (self.credit != 0):
            raise ValueError(
                f"Journal line must have exactly one non-zero side: "
                f"debit={self.debit}, credit={self.credit}"
            )

    @property
    def is_debit(self) -> bool:
        return self.debit != 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalLineDraft:
        return cls(
            account=str(data["account"]),
            debit=_dec(data.get("debit")),
            credit=_dec(data.get("credit")),
            memo=data.get("memo") or "",
        )


@dataclass(frozen=True)
class JournalDraft:
    """Draft journal: header plus ordered lines.  Not yet balanced-checked."""

    entry_date: date | None
    reference: str
    memo: str
    currency: str
    lines: tuple[JournalLineDraft, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), _ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), _ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.entry_date.isoformat() if self.entry_date else None,
            "reference": self.reference,
            "memo": self.memo,
            "currency": self.currency,
            "lines": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalDraft:
        return cls(
            entry_date=_date_or_none(data.get("date")),
            reference=data.get("reference") or "",
            memo=data.get("memo") or "",
            currency=data.get("currency") or "",
            lines=tuple(JournalLineDraft.from_dict(l) for l in data.get("lines") or ()),
        )


@dataclass(frozen=True)
class StockMoveDraft:
    """
    Draft stock movement derived from one inventory line.

    ``destination`` stays None until a routing step assigns a warehouse.
    """

    line_index: int
    move_date: date | None
    item_sku: str
    description: str
    qty: Decimal
    uom: str
    unit_cost: Decimal
    source: Endpoint | None = None
    destination: Endpoint | None = None
    memo: str = ""

    def __post_init__(self) -> None:
        if self.qty <= 0:
            raise ValueError(f"Stock move quantity must be positive: {self.qty}")

    def with_destination(self, destination: Endpoint) -> StockMoveDraft:
        return replace(self, destination=destination)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineIndex": self.line_index,
            "date": self.move_date.isoformat() if self.move_date else None,
            "itemSku": self.item_sku,
            "description": self.description,
            "qty": str(self.qty),
            "uom": self.uom,
            "unitCost": str(self.unit_cost),
            "source": endpoint_to_dict(self.source),
            "destination": endpoint_to_dict(self.destination),
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StockMoveDraft:
        return cls(
            line_index=int(data.get("lineIndex", 0)),
            move_date=_date_or_none(data.get("date")),
            item_sku=data["itemSku"],
            description=data.get("description") or "",
            qty=_dec(data.get("qty")),
            uom=data.get("uom") or "",
            unit_cost=_dec(data.get("unitCost")),
            source=endpoint_from_dict(data.get("source")),
            destination=endpoint_from_dict(data.get("destination")),
            memo=data.get("memo") or "",
        )


@dataclass(frozen=True)
class Proposal:
    """The unposted artifacts derived from one document."""

    journal: JournalDraft
    stock_moves: tuple[StockMoveDraft, ...] = ()

    @property
    def is_routed(self) -> bool:
        """True when every stock move has a destination."""
        return all(move.destination is not None for move in self.stock_moves)

    def to_dict(self) -> dict[str, Any]:
        return {
            "journal": self.journal.to_dict(),
            "stockMoves": [move.to_dict() for move in self.stock_moves],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Proposal:
        return cls(
            journal=JournalDraft.from_dict(data["journal"]),
            stock_moves=tuple(
                StockMoveDraft.from_dict(m) for m in data.get("stockMoves") or ()
            ),
        )


@dataclass(frozen=True)
class PostingLinks:
    """Ledger artifacts linked back onto a document by posting."""

    journal_id: UUID | None = None
    stock_move_ids: tuple[UUID, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.journal_id is None and not self.stock_move_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "journalId": str(self.journal_id) if self.journal_id else None,
            "stockMoveIds": [str(i) for i in self.stock_move_ids],
        }
