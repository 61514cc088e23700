"""
PostingService -- the Posting Engine.

Responsibility:
    Turns a routed document's proposal into ledger artifacts exactly once:
    one JournalEntry, then each stock movement created and posted, then the
    document's links and status written in a single conditional update.

Architecture position:
    Kernel > Services.  Flush-only; DocumentPipeline owns the transaction
    and the per-document in-process lock.

Invariants enforced:
    - At most once: a document whose journal_id is set is never posted again;
      the call returns the existing links.  Four layers make this hold under
      concurrency: the pipeline's per-document lock, the row lock taken
      here, the UNIQUE idempotency key on journal_entries, and the
      ``journal_id IS NULL`` condition on the link update.
    - Balance: the journal is balance-checked before it is written.
    - Traceability: once the journal exists, every outcome leaves it linked
      to the document.  A failure after that point parks the document in
      NEEDS_REVIEW with the journal and every posted move recorded.

Failure modes:
    - DocumentNotFoundError, DocumentInReviewError.
    - PostingPreconditionError: not ROUTED, no proposal, unbalanced journal,
      or an unrouted stock move.  Nothing is written.
    - ConcurrentPostingError: another transaction linked the document first.
      The caller's transaction must roll back.
"""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.db.types import MONEY_DECIMAL_PLACES
from docpost_kernel.domain.balance import validate_balance
from docpost_kernel.domain.clock import Clock, SystemClock
from docpost_kernel.domain.dtos import PostingLinks, StockMoveDraft
from docpost_kernel.domain.lifecycle import DocumentStatus
from docpost_kernel.exceptions import (
    ConcurrentPostingError,
    DocpostError,
    DocumentInReviewError,
    PostingPreconditionError,
)
from docpost_kernel.logging_config import LogContext, get_logger
from docpost_kernel.models.document import Document
from docpost_kernel.models.inventory import StockMove
from docpost_kernel.services.document_service import DocumentService
from docpost_kernel.services.journal_writer import JournalWriter, WriteStatus
from docpost_kernel.services.stock_move_writer import StockMoveWriter
from docpost_kernel.utils.idempotency import posting_key

logger = get_logger("services.posting")


class PostingStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class PostingResult:
    """Outcome of posting one document."""

    status: PostingStatus
    document_id: UUID
    links: PostingLinks
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def posted(cls, document_id: UUID, links: PostingLinks) -> "PostingResult":
        return cls(status=PostingStatus.POSTED, document_id=document_id, links=links)

    @classmethod
    def already_posted(cls, document_id: UUID, links: PostingLinks) -> "PostingResult":
        return cls(status=PostingStatus.ALREADY_POSTED, document_id=document_id, links=links)

    @classmethod
    def needs_review(
        cls, document_id: UUID, links: PostingLinks, error_code: str, error_message: str
    ) -> "PostingResult":
        return cls(
            status=PostingStatus.NEEDS_REVIEW,
            document_id=document_id,
            links=links,
            error_code=error_code,
            error_message=error_message,
        )

    @property
    def is_success(self) -> bool:
        return self.status in (PostingStatus.POSTED, PostingStatus.ALREADY_POSTED)

    @property
    def journal_id(self) -> UUID | None:
        return self.links.journal_id

    @property
    def stock_move_ids(self) -> tuple[UUID, ...]:
        return self.links.stock_move_ids


class PostingService:
    """Posts routed documents."""

    def __init__(
        self,
        session: Session,
        documents: DocumentService,
        journal_writer: JournalWriter,
        stock_moves: StockMoveWriter,
        clock: Clock | None = None,
        *,
        decimal_places: int = MONEY_DECIMAL_PLACES,
    ):
        self.session = session
        self._documents = documents
        self._journal_writer = journal_writer
        self._stock_moves = stock_moves
        self._clock = clock or SystemClock()
        self._decimal_places = decimal_places

    def post(self, document_id: UUID, *, actor_id: UUID = SYSTEM_ACTOR_ID) -> PostingResult:
        """
        Post the document's proposal.

        Postconditions:
            - POSTED / ALREADY_POSTED: document.journal_id is set and the
              returned links equal the document's links.
            - NEEDS_REVIEW: the journal exists and is linked, the document is
              in NEEDS_REVIEW with the moves that did post linked.
        """
        document = self._documents.get(document_id, lock=True)

        with LogContext.bind(document_id=str(document.id), actor_id=str(actor_id)):
            if document.journal_id is not None:
                logger.info(
                    "posting_idempotent",
                    extra={"journal_entry_id": str(document.journal_id)},
                )
                return PostingResult.already_posted(document.id, document.links)

            proposal = self._check_preconditions(document)
            logger.info(
                "posting_started",
                extra={"stock_move_count": len(proposal.stock_moves)},
            )

            write = self._journal_writer.write(
                proposal.journal,
                idempotency_key=posting_key(document.id),
                source_document_id=document.id,
                actor_id=actor_id,
            )
            if write.status == WriteStatus.VALIDATION_FAILED:
                raise PostingPreconditionError(str(document.id), write.error_message or "")
            if write.status == WriteStatus.ALREADY_EXISTS:
                # Only another committed posting of this document can own the key.
                raise ConcurrentPostingError(str(document.id))

            with LogContext.bind(journal_id=str(write.entry_id)):
                posted_ids: list[UUID] = []
                failure: Exception | None = None
                for draft in proposal.stock_moves:
                    try:
                        move = self._post_move(document, draft, actor_id)
                    except (DocpostError, SQLAlchemyError) as exc:
                        failure = exc
                        logger.error(
                            "stock_move_posting_failed",
                            extra={"item_sku": draft.item_sku, "line_index": draft.line_index},
                            exc_info=True,
                        )
                        break
                    posted_ids.append(move.id)

                links = PostingLinks(journal_id=write.entry_id, stock_move_ids=tuple(posted_ids))
                if failure is None:
                    self._link(document, links, DocumentStatus.POSTED, None, actor_id)
                    logger.info(
                        "document_posted",
                        extra={
                            "entry_no": write.entry_no,
                            "stock_move_ids": [str(i) for i in posted_ids],
                        },
                    )
                    return PostingResult.posted(document.id, links)

                code = getattr(failure, "code", type(failure).__name__)
                message = str(failure)
                self._link(
                    document,
                    links,
                    DocumentStatus.NEEDS_REVIEW,
                    f"posting failed after journal {write.entry_no}: {message}",
                    actor_id,
                )
                logger.warning(
                    "posting_partial_failure",
                    extra={"error_code": code, "posted_move_count": len(posted_ids)},
                )
                return PostingResult.needs_review(document.id, links, code, message)

    def _check_preconditions(self, document: Document):
        if document.status == DocumentStatus.NEEDS_REVIEW.value:
            raise DocumentInReviewError(str(document.id), document.review_reason)
        if document.status != DocumentStatus.ROUTED.value:
            raise PostingPreconditionError(
                str(document.id), f"status is {document.status}, expected ROUTED"
            )
        proposal = document.proposal_record
        if proposal is None:
            raise PostingPreconditionError(str(document.id), "document has no proposal")
        balance = validate_balance(proposal.journal.lines, self._decimal_places)
        if not balance.is_balanced:
            raise PostingPreconditionError(
                str(document.id),
                f"journal draft is unbalanced: debits={balance.total_debits} "
                f"credits={balance.total_credits}",
            )
        if not proposal.is_routed:
            raise PostingPreconditionError(
                str(document.id), "stock moves without destination warehouse"
            )
        return proposal

    def _post_move(self, document: Document, draft: StockMoveDraft, actor_id: UUID) -> StockMove:
        """Create and post one move inside a savepoint so a failure leaves no draft behind."""
        moved_at = self._clock.now()
        if draft.move_date is not None and draft.move_date != moved_at.date():
            moved_at = moved_at.replace(
                year=draft.move_date.year, month=draft.move_date.month, day=draft.move_date.day
            )
        with self.session.begin_nested():
            return self._stock_moves.record(
                item_sku=draft.item_sku,
                qty=draft.qty,
                source=draft.source,
                destination=draft.destination,
                uom=draft.uom,
                unit_cost=draft.unit_cost,
                moved_at=moved_at,
                description=draft.description,
                memo=draft.memo or document.document_no,
                source_document_id=document.id,
                actor_id=actor_id,
            )

    def _link(
        self,
        document: Document,
        links: PostingLinks,
        status: DocumentStatus,
        review_reason: str | None,
        actor_id: UUID,
    ) -> None:
        """
        Write links and status in one conditional UPDATE.

        Raises:
            ConcurrentPostingError: journal_id was no longer NULL.
        """
        audit = self._documents.audit_entry(
            "posted" if status == DocumentStatus.POSTED else "posting_failed",
            actor_id,
            journal_id=str(links.journal_id),
            stock_move_ids=[str(i) for i in links.stock_move_ids],
            status=status.value,
        )
        result = self.session.execute(
            update(Document)
            .where(Document.id == document.id, Document.journal_id.is_(None))
            .values(
                journal_id=links.journal_id,
                stock_move_ids=[str(i) for i in links.stock_move_ids],
                status=status.value,
                review_reason=review_reason,
                audit_log=[*(document.audit_log or []), audit],
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            logger.warning("concurrent_posting_detected")
            raise ConcurrentPostingError(str(document.id))
