"""
ORM-level immutability enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is append-only.  A journal entry, once written, is never edited; a
correction is a new entry.  A posted stock movement is never edited; on-hand
is reconstructed from these rows on every read, so an in-place edit would
silently rewrite history.  A posted document's proposal and links are the
trail from the document to its artifacts and must not drift.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that check the rules below and raise
ImmutabilityViolationError, aborting the flush before any SQL is sent.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                 | What is frozen
----------------|--------------------------------|-------------------------------
JournalEntry    | ALWAYS (from creation)         | every column
JournalLine     | ALWAYS (from creation)         | every column
StockMove       | After status = posted          | every column
Document        | ALWAYS                         | capture metadata, document_no
Document        | Once journal_id is set         | journal_id
Document        | After status = POSTED          | proposal, stock_move_ids, extracted
DocumentFile    | ALWAYS (from creation)         | every column

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    init_engine_from_url() registers them; anything building its own engine
    calls register_immutability_listeners() once at startup (idempotent).

Tests that need to corrupt data on purpose call
unregister_immutability_listeners() and re-register afterwards.

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from docpost_kernel.exceptions import ImmutabilityViolationError
from docpost_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_DOCUMENT_CAPTURE_FIELDS = (
    "document_no",
    "source_channel",
    "source_subject",
    "source_sender",
    "received_at",
)
_DOCUMENT_POSTED_FIELDS = ("proposal", "stock_move_ids", "extracted")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target):
    """Yield keys of column attributes with pending changes, audit fields excluded."""
    state = inspect(target)
    for column_attr in state.mapper.column_attrs:
        if column_attr.key in _AUDIT_FIELDS:
            continue
        if state.attrs[column_attr.key].history.has_changes():
            yield column_attr.key


def _previous_value(target, key: str):
    """Value of ``key`` as it was loaded, before any pending change."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _check_append_only_update(mapper, connection, target):
    """JournalEntry, JournalLine and DocumentFile are never updated."""
    entity_type = type(target).__name__
    for key in _changed_fields(target):
        raise _blocked(
            entity_type,
            target.id,
            "UPDATE",
            f"{entity_type} rows are append-only; cannot modify '{key}'",
            field=key,
        )


def _check_append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    raise _blocked(entity_type, target.id, "DELETE", f"{entity_type} rows cannot be deleted")


def _check_stock_move_immutability(mapper, connection, target):
    """
    Allow the draft -> approved -> posted progression, block anything after.

    "Was posted" is judged from the value loaded from the database, so the
    flush that performs the posting itself is allowed through.
    """
    from docpost_kernel.models.inventory import StockMoveStatus

    if _previous_value(target, "status") != StockMoveStatus.POSTED.value:
        return
    for key in _changed_fields(target):
        raise _blocked(
            "StockMove",
            target.id,
            "UPDATE",
            f"Cannot modify field '{key}' on posted stock movement",
            field=key,
        )


def _check_stock_move_delete(mapper, connection, target):
    from docpost_kernel.models.inventory import StockMoveStatus

    if _previous_value(target, "status") == StockMoveStatus.POSTED.value:
        raise _blocked("StockMove", target.id, "DELETE", "Posted stock movements cannot be deleted")


def _check_document_immutability(mapper, connection, target):
    """Capture metadata always, journal link once set, proposal/links once POSTED."""
    from docpost_kernel.domain.lifecycle import DocumentStatus

    for key in _DOCUMENT_CAPTURE_FIELDS:
        if get_history(target, key).deleted:
            raise _blocked(
                "Document",
                target.id,
                "UPDATE",
                f"Capture field '{key}' is set once at ingestion",
                field=key,
            )

    journal_history = get_history(target, "journal_id")
    if journal_history.deleted and journal_history.deleted[0] is not None:
        raise _blocked(
            "Document",
            target.id,
            "UPDATE",
            "journal_id is written exactly once",
            field="journal_id",
        )

    if _previous_value(target, "status") != DocumentStatus.POSTED.value:
        return
    for key in _DOCUMENT_POSTED_FIELDS:
        if get_history(target, key).has_changes():
            raise _blocked(
                "Document",
                target.id,
                "UPDATE",
                f"Field '{key}' of a posted document is immutable",
                field=key,
            )


def _check_document_delete(mapper, connection, target):
    raise _blocked("Document", target.id, "DELETE", "Documents are never deleted by the pipeline")


def _listeners():
    from docpost_kernel.models.document import Document, DocumentFile
    from docpost_kernel.models.inventory import StockMove
    from docpost_kernel.models.journal import JournalEntry, JournalLine

    return (
        (JournalEntry, "before_update", _check_append_only_update),
        (JournalEntry, "before_delete", _check_append_only_delete),
        (JournalLine, "before_update", _check_append_only_update),
        (JournalLine, "before_delete", _check_append_only_delete),
        (DocumentFile, "before_update", _check_append_only_update),
        (DocumentFile, "before_delete", _check_append_only_delete),
        (StockMove, "before_update", _check_stock_move_immutability),
        (StockMove, "before_delete", _check_stock_move_delete),
        (Document, "before_update", _check_document_immutability),
        (Document, "before_delete", _check_document_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to write forbidden data on
    purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
