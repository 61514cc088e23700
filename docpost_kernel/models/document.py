"""
Module: docpost_kernel.models.document
Responsibility: ORM persistence for ingested business documents and their
    attached files.  The Document row is the single authoritative record of
    where a document is in its lifecycle and which ledger artifacts it produced.
Architecture position: Kernel > Models.  May import from db/ and domain/
    value types only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - status is authoritative only here; nothing tracks "posted" in memory.
    - journal_id and stock_move_ids are written exactly once, by the posting
      engine's conditional update (see services/posting_service.py).
    - Capture metadata (source_*) is set at ingestion and never changes.
    - DocumentFile rows are append-only.
    - Once POSTED, proposal and links are frozen (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on forbidden UPDATE/DELETE (db/immutability.py).
    - IntegrityError on duplicate document_no.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docpost_kernel.db.base import TrackedBase, UUIDString
from docpost_kernel.domain.dtos import PostingLinks, Proposal
from docpost_kernel.domain.extraction import ExtractedDocument
from docpost_kernel.domain.lifecycle import DocumentStatus


class Document(TrackedBase):
    """
    One ingested invoice, order, or delivery note.

    JSON columns are always reassigned, never mutated in place, so SQLAlchemy
    change tracking (and the immutability listeners) see every change.
    """

    __tablename__ = "documents"

    __table_args__ = (
        Index("idx_document_status", "status"),
        Index("idx_document_journal", "journal_id"),
    )

    document_no: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    doc_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DocumentStatus.RECEIVED.value,
    )

    # Capture metadata
    source_channel: Mapped[str] = mapped_column(String(50), nullable=False, default="upload")
    source_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_sender: Mapped[str | None] = mapped_column(String(255), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Collaborator input exactly as received
    raw_extraction: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Canonical normalized record and its flags
    extracted: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    extraction_flags: Mapped[list | None] = mapped_column(JSON, nullable=True)

    proposal: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Links, written once by posting.  No FK: journal entries reference
    # documents, and the cycle would block table creation on SQLite.
    journal_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    stock_move_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    review_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Append-only list of {at, by, action, meta}
    audit_log: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    files: Mapped[list["DocumentFile"]] = relationship(
        back_populates="document",
        order_by="DocumentFile.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Document {self.document_no} status={self.status}>"

    @property
    def status_enum(self) -> DocumentStatus:
        return DocumentStatus(self.status)

    @property
    def is_posted(self) -> bool:
        return self.status == DocumentStatus.POSTED.value

    @property
    def extracted_record(self) -> ExtractedDocument | None:
        return ExtractedDocument.from_dict(self.extracted) if self.extracted else None

    @property
    def proposal_record(self) -> Proposal | None:
        return Proposal.from_dict(self.proposal) if self.proposal else None

    @property
    def links(self) -> PostingLinks:
        return PostingLinks(
            journal_id=self.journal_id,
            stock_move_ids=tuple(UUID(i) for i in self.stock_move_ids or ()),
        )


class DocumentFile(TrackedBase):
    """An attached file.  Storage itself is external; only the locator is kept."""

    __tablename__ = "document_files"

    __table_args__ = (Index("idx_document_file_document", "document_id"),)

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=False,
    )

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_locator: Mapped[str] = mapped_column(String(1000), nullable=False)
    media_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    document: Mapped["Document"] = relationship(back_populates="files")

    def __repr__(self) -> str:
        return f"<DocumentFile {self.filename} ({self.media_type})>"
