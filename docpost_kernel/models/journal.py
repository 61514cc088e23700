"""
Module: docpost_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    financial side of a posted document.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - Idempotency key uniqueness (UNIQUE constraint on idempotency_key).  A
      document can therefore never produce two journal entries, whatever the
      interleaving of concurrent posting attempts.
    - Balance (checked by JournalWriter before insert; is_balanced is a
      read-side convenience).
    - Immutability from creation: entries are only ever inserted, never
      updated or deleted (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError on duplicate idempotency_key or entry_no.
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docpost_kernel.db.base import TrackedBase, UUIDString


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        Each JournalEntry is derived from exactly one source document and
        carries an idempotency_key unique across the system.  The row and its
        lines are immutable from the moment they are flushed.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_journal_idempotency"),
        Index("idx_journal_source_document", "source_document_id"),
        Index("idx_journal_entry_date", "entry_date"),
    )

    entry_no: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    reference: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    source_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=True,
    )

    # document:post:<document_id>
    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)

    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_no} {self.currency}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Check if debits equal credits (read-side convenience)."""
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    Individual line within a journal entry.

    Exactly one of debit/credit is non-zero; both are non-negative.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_code"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    line_memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.account_code} Dr {self.debit} Cr {self.credit}>"
