"""
JournalWriter -- persists balanced journal entries.

Responsibility:
    Takes a JournalDraft from a document's proposal and writes it as an
    immutable JournalEntry with its lines, exactly once per idempotency key.

Architecture position:
    Kernel > Services.  Called by PostingService.  Flush-only.

Invariants enforced:
    - Balance: the Balance Validator must accept the lines before anything is
      added to the session.  An unbalanced draft is refused, never patched.
    - Idempotency: the UNIQUE idempotency_key turns a concurrent duplicate
      insert into ALREADY_EXISTS instead of a second entry.

Failure modes:
    - VALIDATION_FAILED result for unbalanced or malformed drafts.
    - ALREADY_EXISTS result when an entry with the same key exists.
"""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.db.types import MONEY_DECIMAL_PLACES
from docpost_kernel.domain.balance import validate_balance
from docpost_kernel.domain.clock import Clock, SystemClock
from docpost_kernel.domain.dtos import JournalDraft
from docpost_kernel.logging_config import get_logger
from docpost_kernel.models.journal import JournalEntry, JournalLine
from docpost_kernel.services.base import BaseService
from docpost_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_writer")


class WriteStatus(str, Enum):
    """Status of a write operation."""

    WRITTEN = "written"
    ALREADY_EXISTS = "already_exists"
    VALIDATION_FAILED = "validation_failed"


@dataclass(frozen=True)
class JournalWriteResult:
    """Result of a JournalWriter.write() operation."""

    status: WriteStatus
    entry_id: UUID | None = None
    entry_no: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def success(cls, entry: JournalEntry) -> "JournalWriteResult":
        return cls(status=WriteStatus.WRITTEN, entry_id=entry.id, entry_no=entry.entry_no)

    @classmethod
    def already_exists(cls, entry: JournalEntry) -> "JournalWriteResult":
        """Idempotent success: the entry was written by an earlier call."""
        return cls(status=WriteStatus.ALREADY_EXISTS, entry_id=entry.id, entry_no=entry.entry_no)

    @classmethod
    def validation_failed(cls, error_code: str, message: str) -> "JournalWriteResult":
        return cls(
            status=WriteStatus.VALIDATION_FAILED,
            error_code=error_code,
            error_message=message,
        )

    @property
    def is_success(self) -> bool:
        return self.status in (WriteStatus.WRITTEN, WriteStatus.ALREADY_EXISTS)


class JournalWriter(BaseService[JournalEntry]):
    """
    Writes journal entries.

    Non-goals:
        - Does NOT commit -- the caller owns the transaction.
        - Does NOT decide accounts -- the proposal already names them.
    """

    def __init__(
        self,
        session: Session,
        sequences: SequenceService | None = None,
        clock: Clock | None = None,
        *,
        number_prefix: str = "JE",
        decimal_places: int = MONEY_DECIMAL_PLACES,
    ):
        super().__init__(session)
        self._sequences = sequences or SequenceService(session)
        self._clock = clock or SystemClock()
        self._prefix = number_prefix
        self._decimal_places = decimal_places

    def find_by_key(self, idempotency_key: str) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(JournalEntry.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def write(
        self,
        draft: JournalDraft,
        *,
        idempotency_key: str,
        source_document_id: UUID | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> JournalWriteResult:
        """
        Persist ``draft`` as a JournalEntry.

        Postconditions:
            - On WRITTEN, exactly one entry with ``idempotency_key`` exists in
              the session and its debits equal its credits.
            - On VALIDATION_FAILED, nothing was added to the session.
        """
        existing = self.find_by_key(idempotency_key)
        if existing is not None:
            logger.info(
                "journal_write_idempotent",
                extra={"idempotency_key": idempotency_key, "entry_id": str(existing.id)},
            )
            return JournalWriteResult.already_exists(existing)

        balance = validate_balance(draft.lines, self._decimal_places)
        if not balance.is_balanced:
            error = balance.errors[0]
            logger.warning(
                "unbalanced_intent",
                extra={
                    "idempotency_key": idempotency_key,
                    "debits": str(balance.total_debits),
                    "credits": str(balance.total_credits),
                    "currency": draft.currency,
                },
            )
            return JournalWriteResult.validation_failed(error.code, error.message)

        logger.debug(
            "balance_validated",
            extra={"debits": str(balance.total_debits), "currency": draft.currency},
        )

        now = self._clock.now()
        entry_date = draft.entry_date or now.date()

        savepoint = self.session.begin_nested()
        try:
            entry = JournalEntry(
                entry_no=self._sequences.next_number(self._prefix, entry_date),
                entry_date=entry_date,
                reference=draft.reference,
                memo=draft.memo or None,
                currency=draft.currency,
                source_document_id=source_document_id,
                idempotency_key=idempotency_key,
                posted_at=now,
                actor_id=actor_id,
                created_by_id=actor_id,
                lines=[
                    JournalLine(
                        line_seq=i,
                        account_code=line.account,
                        line_memo=line.memo or None,
                        debit=line.debit,
                        credit=line.credit,
                        created_by_id=actor_id,
                    )
                    for i, line in enumerate(draft.lines)
                ],
            )
            self.session.add(entry)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self.find_by_key(idempotency_key)
            if existing is None:
                raise
            logger.warning(
                "concurrent_insert_conflict",
                extra={"idempotency_key": idempotency_key, "entry_id": str(existing.id)},
            )
            return JournalWriteResult.already_exists(existing)

        logger.info(
            "journal_written",
            extra={
                "entry_id": str(entry.id),
                "entry_no": entry.entry_no,
                "line_count": len(draft.lines),
                "amount": str(balance.total_debits),
                "currency": draft.currency,
            },
        )
        return JournalWriteResult.success(entry)
