"""
DocumentService -- document lifecycle operations before posting.

Responsibility:
    Ingestion, file attachment, normalization, proposal building, routing,
    and the explicit entry into / exit from NEEDS_REVIEW.  Every operation
    loads the document, checks the lifecycle rule, applies one pure domain
    function, and records the transition in the document's audit log.

Architecture position:
    Kernel > Services.  Flush-only; DocumentPipeline owns the transaction.

Invariants enforced:
    - Status rank never decreases (domain/lifecycle.py).  An operation that
      would lower it raises InvalidTransitionError and changes nothing.
    - Normalization and proposal problems are recovered locally: the document
      simply does not advance.
    - The proposal of a POSTED document cannot be rebuilt.
    - Routing resolves every destination through the WarehouseRegistry.

Failure modes:
    - DocumentNotFoundError, InvalidTransitionError, DocumentInReviewError,
      ProposalImmutableError, UnknownWarehouseError, InvalidMovementError.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.domain.clock import Clock, SystemClock
from docpost_kernel.domain.dtos import Proposal, ValidationError
from docpost_kernel.domain.extraction import (
    UNRECOGNIZABLE_DOCUMENT,
    NormalizationSettings,
    normalize_extraction,
)
from docpost_kernel.domain.lifecycle import (
    DOCUMENT_LIFECYCLE,
    DocumentStatus,
    DocumentType,
    advance,
    release_target,
    require_rank,
    supported_status,
)
from docpost_kernel.domain.proposal import AccountMapping, ProposalResult, build_proposal
from docpost_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidMovementError,
    InvalidTransitionError,
    ProposalImmutableError,
)
from docpost_kernel.logging_config import get_logger
from docpost_kernel.models.document import Document, DocumentFile
from docpost_kernel.services.base import BaseService
from docpost_kernel.services.sequence_service import SequenceService
from docpost_kernel.services.warehouse_registry import WarehouseRegistry

logger = get_logger("services.document")


@dataclass(frozen=True)
class FileAttachment:
    """Metadata of a file held by external storage."""

    filename: str
    storage_locator: str
    media_type: str = "application/octet-stream"
    size_bytes: int = 0


@dataclass(frozen=True)
class DocumentSettings:
    normalization: NormalizationSettings = field(default_factory=NormalizationSettings)
    accounts: AccountMapping = field(default_factory=AccountMapping)
    number_prefix: str = "DOC"


class DocumentService(BaseService[Document]):
    """Write-side operations on documents up to ROUTED."""

    def __init__(
        self,
        session: Session,
        sequences: SequenceService | None = None,
        warehouses: WarehouseRegistry | None = None,
        clock: Clock | None = None,
        settings: DocumentSettings | None = None,
    ):
        super().__init__(session)
        self._sequences = sequences or SequenceService(session)
        self._warehouses = warehouses or WarehouseRegistry(session)
        self._clock = clock or SystemClock()
        self._settings = settings or DocumentSettings()

    # ------------------------------------------------------------------
    # Loading and audit
    # ------------------------------------------------------------------

    def get(self, document_id: UUID, *, lock: bool = False) -> Document:
        """
        Load a document.

        Raises:
            DocumentNotFoundError: no document with this id.
        """
        stmt = select(Document).where(Document.id == document_id)
        if lock:
            stmt = stmt.with_for_update()
        document = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def audit_entry(self, action: str, actor_id: UUID, **meta: Any) -> dict[str, Any]:
        return {
            "at": self._clock.now().isoformat(),
            "by": str(actor_id),
            "action": action,
            "meta": meta,
        }

    def _append_audit(self, document: Document, action: str, actor_id: UUID, **meta: Any) -> None:
        # Reassign so the JSON column registers the change
        document.audit_log = [*(document.audit_log or []), self.audit_entry(action, actor_id, **meta)]
        document.updated_by_id = actor_id

    def _set_status(self, document: Document, target: DocumentStatus, actor_id: UUID) -> None:
        previous = document.status
        new_status = advance(str(document.id), previous, target)
        if new_status.value != previous:
            document.status = new_status.value
            self._append_audit(
                document,
                "status_changed",
                actor_id,
                **{"from": previous, "to": new_status.value,
                   "trigger": DOCUMENT_LIFECYCLE.action_for(new_status)},
            )
            logger.info(
                "document_status_changed",
                extra={"from_status": previous, "to_status": new_status.value},
            )

    def _supported_status(self, document: Document) -> DocumentStatus:
        flags = {flag.get("code") for flag in document.extraction_flags or ()}
        proposal = document.proposal_record
        return supported_status(
            has_files=bool(document.files),
            has_extraction=document.extracted is not None
            and UNRECOGNIZABLE_DOCUMENT not in flags,
            has_proposal=proposal is not None,
            is_routed=proposal is not None and proposal.is_routed,
            has_journal=document.journal_id is not None,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def ingest(
        self,
        doc_type: DocumentType | str,
        *,
        channel: str = "upload",
        subject: str | None = None,
        sender: str | None = None,
        received_at: datetime | None = None,
        files: Iterable[FileAttachment] = (),
        raw_extraction: Mapping[str, Any] | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """Create a RECEIVED document; attaching files moves it to CLASSIFIED."""
        doc_type = DocumentType(doc_type)
        received_at = received_at or self._clock.now()
        document = Document(
            document_no=self._sequences.next_number(
                self._settings.number_prefix, received_at.date()
            ),
            doc_type=doc_type.value,
            status=DocumentStatus.RECEIVED.value,
            source_channel=channel,
            source_subject=subject,
            source_sender=sender,
            received_at=received_at,
            raw_extraction=dict(raw_extraction) if raw_extraction is not None else None,
            audit_log=[self.audit_entry("ingested", actor_id, channel=channel)],
            created_by_id=actor_id,
        )
        self.session.add(document)
        self.session.flush()
        logger.info(
            "document_ingested",
            extra={
                "document_id": str(document.id),
                "document_no": document.document_no,
                "doc_type": doc_type.value,
            },
        )
        files = tuple(files)
        if files:
            self.attach_files(document.id, files, actor_id=actor_id)
        return document

    def attach_files(
        self,
        document_id: UUID,
        files: Iterable[FileAttachment],
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """Append files.  The first attachment bumps RECEIVED to CLASSIFIED."""
        document = self.get(document_id)
        files = tuple(files)
        if not files:
            return document
        for attachment in files:
            self.session.add(
                DocumentFile(
                    document_id=document.id,
                    filename=attachment.filename,
                    storage_locator=attachment.storage_locator,
                    media_type=attachment.media_type,
                    size_bytes=attachment.size_bytes,
                    created_by_id=actor_id,
                )
            )
        self._append_audit(
            document, "files_attached", actor_id, filenames=[f.filename for f in files]
        )
        if document.status != DocumentStatus.NEEDS_REVIEW.value:
            self._set_status(document, DocumentStatus.CLASSIFIED, actor_id)
        self.session.flush()
        self.session.refresh(document, ["files"])
        return document

    def normalize(
        self,
        document_id: UUID,
        raw: Mapping[str, Any] | None = None,
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """
        Normalize the document's extraction and advance to at most PARSED.

        ``raw`` replaces the stored raw extraction when given.  Allowed while
        the document is at PARSED or below; later ranks would be lowered.
        """
        document = self.get(document_id)
        require_rank(
            str(document.id),
            document.status,
            minimum=DocumentStatus.RECEIVED,
            maximum=DocumentStatus.PARSED,
            action="normalize",
        )
        if raw is not None:
            document.raw_extraction = dict(raw)

        result = normalize_extraction(document.raw_extraction, self._settings.normalization)
        document.extracted = result.extracted.to_dict()
        document.extraction_flags = [flag.to_dict() for flag in result.flags]
        self._append_audit(
            document,
            "normalized",
            actor_id,
            flags=[flag.code for flag in result.flags],
            recognizable=result.recognizable,
        )

        if result.flags:
            logger.warning(
                "extraction_flagged",
                extra={"flag_codes": [flag.code for flag in result.flags]},
            )
        if result.recognizable:
            self._set_status(document, DocumentStatus.PARSED, actor_id)
        else:
            logger.warning("document_unrecognizable", extra={"status": document.status})

        self.session.flush()
        return document

    def build_proposal(
        self,
        document_id: UUID,
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> ProposalResult:
        """
        Rebuild the document's proposal from scratch and advance to READY.

        When no balanced journal can be built the document is left exactly as
        it was and the result carries the reasons.

        Raises:
            ProposalImmutableError: document is POSTED.
            InvalidTransitionError: document is below PARSED or already ROUTED.
        """
        document = self.get(document_id)
        if document.status == DocumentStatus.POSTED.value or document.journal_id is not None:
            raise ProposalImmutableError(str(document.id))
        require_rank(
            str(document.id),
            document.status,
            minimum=DocumentStatus.PARSED,
            maximum=DocumentStatus.READY,
            action="build_proposal",
        )

        extracted = document.extracted_record
        if extracted is None:
            return ProposalResult(
                proposal=None,
                errors=(ValidationError(code="NO_EXTRACTION", message="Document is not normalized"),),
            )
        result = build_proposal(
            extracted,
            self._settings.accounts,
            entry_date=document.received_at.date(),
            reference=document.document_no,
            decimal_places=self._settings.normalization.decimal_places,
        )
        if not result.is_success:
            logger.warning(
                "proposal_not_built",
                extra={"error_codes": [e.code for e in result.errors]},
            )
            return result

        document.proposal = result.proposal.to_dict()
        self._append_audit(
            document,
            "proposal_built",
            actor_id,
            stock_moves=len(result.proposal.stock_moves),
        )
        self._set_status(document, DocumentStatus.READY, actor_id)
        self.session.flush()
        logger.info(
            "proposal_built",
            extra={
                "debit_total": str(result.proposal.journal.total_debits),
                "stock_move_count": len(result.proposal.stock_moves),
            },
        )
        return result

    def route(
        self,
        document_id: UUID,
        assignments: Mapping[int | str, str] | None = None,
        *,
        default: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """
        Assign destination warehouses to the proposal's stock moves.

        ``assignments`` maps a move's line index (int) or its item sku (str)
        to a warehouse code; ``default`` covers every move not named there.
        Moves already routed keep their destination unless reassigned.
        Allowed at READY and ROUTED (re-routing before posting).

        Raises:
            InvalidMovementError: a move would be left without destination.
            UnknownWarehouseError: a code is not registered or inactive.
        """
        document = self.get(document_id)
        require_rank(
            str(document.id),
            document.status,
            minimum=DocumentStatus.READY,
            maximum=DocumentStatus.ROUTED,
            action="route",
        )
        proposal = document.proposal_record
        if proposal is None:
            raise InvalidTransitionError(
                str(document.id), document.status, DocumentStatus.ROUTED.value,
                "document has no proposal",
            )
        assignments = dict(assignments or {})

        routed = []
        for move in proposal.stock_moves:
            code = assignments.get(move.line_index, assignments.get(move.item_sku, default))
            if code is not None:
                move = move.with_destination(self._warehouses.resolve(code))
            if move.destination is None:
                raise InvalidMovementError(
                    "no destination warehouse assigned", item_sku=move.item_sku
                )
            routed.append(move)

        document.proposal = Proposal(journal=proposal.journal, stock_moves=tuple(routed)).to_dict()
        self._append_audit(
            document,
            "routed",
            actor_id,
            destinations=[m.destination.label for m in routed],
        )
        self._set_status(document, DocumentStatus.ROUTED, actor_id)
        self.session.flush()
        return document

    def flag_for_review(
        self,
        document_id: UUID,
        reason: str,
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """Park the document in NEEDS_REVIEW.  Allowed from every status."""
        document = self.get(document_id)
        previous = document.status
        document.status = DocumentStatus.NEEDS_REVIEW.value
        document.review_reason = reason
        self._append_audit(
            document, "flagged_for_review", actor_id, reason=reason, previous_status=previous
        )
        self.session.flush()
        logger.warning(
            "document_flagged_for_review",
            extra={"previous_status": previous, "reason": reason},
        )
        return document

    def release_from_review(
        self,
        document_id: UUID,
        target: DocumentStatus | str,
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Document:
        """
        Explicitly take the document out of NEEDS_REVIEW.

        The target must match what the document holds: POSTED only with a
        journal link, a pre-posting rank only without one.
        """
        document = self.get(document_id)
        target = release_target(
            str(document.id),
            document.status,
            target,
            supported=self._supported_status(document),
        )
        document.status = target.value
        document.review_reason = None
        self._append_audit(document, "released_from_review", actor_id, target=target.value)
        self.session.flush()
        logger.info("document_released_from_review", extra={"to_status": target.value})
        return document
