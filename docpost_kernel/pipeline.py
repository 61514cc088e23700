"""
docpost_kernel.pipeline -- DocumentPipeline, the external entry point.

Responsibility:
    Owns transactions and wiring.  Every public method opens one session,
    builds the kernel services for it (``_Services``), runs one operation,
    and commits; any exception rolls the whole operation back.

Architecture position:
    Top of the kernel.  Callers (mail intake, upload handlers, review UIs)
    talk to this facade only; it is the single place where services are
    constructed and composed.

Invariants enforced:
    - One transaction per call.  Services below only flush.
    - Operations on the same document are serialized by a per-document
      ``threading.Lock`` held across the whole transaction, so concurrent
      ``post`` calls in one process produce a single posting.  Across
      processes the row lock, the journal idempotency key and the
      conditional link update keep the same guarantee.
    - ``post`` is always safe to retry.
    - On-hand rows are rebuilt from posted movements; the cache is keyed by
      the sku's movement version so a new posting always invalidates it.

Usage:
    pipeline = DocumentPipeline(get_session_factory(), settings)
    doc = pipeline.ingest("invoice", files=[...], raw_extraction=raw)
    pipeline.normalize(doc.id)
    pipeline.build_proposal(doc.id)
    pipeline.route(doc.id, default="MAIN")
    result = pipeline.post(doc.id)
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy.orm import Session, sessionmaker

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID
from docpost_kernel.db.engine import get_session_factory, session_scope
from docpost_kernel.db.types import ZERO
from docpost_kernel.domain.clock import Clock, SystemClock
from docpost_kernel.domain.extraction import NormalizationSettings
from docpost_kernel.domain.lifecycle import DocumentStatus, DocumentType
from docpost_kernel.domain.onhand import OnHandRow
from docpost_kernel.domain.proposal import AccountMapping, ProposalResult
from docpost_kernel.domain.values import Endpoint
from docpost_kernel.exceptions import ConcurrentPostingError
from docpost_kernel.logging_config import LogContext, get_logger
from docpost_kernel.models.document import Document
from docpost_kernel.models.inventory import StockMove, Warehouse
from docpost_kernel.selectors.inventory_selector import InventorySelector
from docpost_kernel.services.document_service import (
    DocumentService,
    DocumentSettings,
    FileAttachment,
)
from docpost_kernel.services.journal_writer import JournalWriter
from docpost_kernel.services.posting_service import PostingResult, PostingService
from docpost_kernel.services.sequence_service import SequenceService
from docpost_kernel.services.stock_move_writer import StockMoveWriter
from docpost_kernel.services.warehouse_registry import WarehouseRegistry

logger = get_logger("pipeline")


@dataclass(frozen=True)
class WarehouseSeed:
    code: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class PipelineSettings:
    """Everything the pipeline needs from configuration."""

    normalization: NormalizationSettings = field(default_factory=NormalizationSettings)
    accounts: AccountMapping = field(default_factory=AccountMapping)
    document_prefix: str = "DOC"
    journal_prefix: str = "JE"
    stock_move_prefix: str = "MOV"
    item_prefix: str = "ITEM"
    warehouses: tuple[WarehouseSeed, ...] = (WarehouseSeed("MAIN", "Main warehouse"),)
    default_warehouse: str | None = "MAIN"


class _Services:
    """Kernel services sharing one session, one clock and one SequenceService."""

    def __init__(self, session: Session, settings: PipelineSettings, clock: Clock):
        self.session = session
        self.sequences = SequenceService(session)
        self.warehouses = WarehouseRegistry(session)
        self.documents = DocumentService(
            session,
            self.sequences,
            self.warehouses,
            clock,
            DocumentSettings(
                normalization=settings.normalization,
                accounts=settings.accounts,
                number_prefix=settings.document_prefix,
            ),
        )
        self.journal_writer = JournalWriter(
            session,
            self.sequences,
            clock,
            number_prefix=settings.journal_prefix,
            decimal_places=settings.normalization.decimal_places,
        )
        self.stock_moves = StockMoveWriter(
            session,
            self.sequences,
            self.warehouses,
            clock,
            move_prefix=settings.stock_move_prefix,
            item_prefix=settings.item_prefix,
        )
        self.posting = PostingService(
            session,
            self.documents,
            self.journal_writer,
            self.stock_moves,
            clock,
            decimal_places=settings.normalization.decimal_places,
        )
        self.inventory = InventorySelector(session)


class DocumentPipeline:
    """Transactional facade over the document posting kernel."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        settings: PipelineSettings | None = None,
        clock: Clock | None = None,
        *,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._settings = settings or PipelineSettings()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id

        # document id -> [lock, holders and waiters]
        self._locks: dict[UUID, list] = {}
        self._locks_guard = threading.Lock()
        self._on_hand_cache: dict[str, tuple[tuple[int, int | None], OnHandRow]] = {}
        self._cache_guard = threading.Lock()

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[_Services]:
        with session_scope(self._session_factory) as session:
            yield _Services(session, self._settings, self._clock)

    @contextmanager
    def _document_lock(self, document_id: UUID) -> Iterator[None]:
        """Hold the document's lock; its entry is dropped once no caller holds or awaits it."""
        with self._locks_guard:
            entry = self._locks.get(document_id)
            if entry is None:
                entry = self._locks[document_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[document_id]

    @contextmanager
    def _document_operation(self, document_id: UUID) -> Iterator[_Services]:
        with self._document_lock(document_id):
            with LogContext.bind(document_id=str(document_id), actor_id=str(self._actor_id)):
                with self._transaction() as services:
                    yield services

    # ------------------------------------------------------------------
    # Warehouses
    # ------------------------------------------------------------------

    def seed_warehouses(self) -> list[Warehouse]:
        """Register the configured warehouses.  Safe to call repeatedly."""
        with self._transaction() as services:
            return [
                services.warehouses.register(
                    seed.code, seed.name, active=seed.active, actor_id=self._actor_id
                )
                for seed in self._settings.warehouses
            ]

    def register_warehouse(self, code: str, name: str, *, active: bool = True) -> Warehouse:
        with self._transaction() as services:
            return services.warehouses.register(code, name, active=active, actor_id=self._actor_id)

    def deactivate_warehouse(self, code: str) -> Warehouse:
        with self._transaction() as services:
            return services.warehouses.set_active(code, False, actor_id=self._actor_id)

    def active_warehouses(self) -> list[Warehouse]:
        with self._transaction() as services:
            return services.warehouses.list_active()

    # ------------------------------------------------------------------
    # Documents
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
    ) -> Document:
        with LogContext.bind(actor_id=str(self._actor_id)):
            with self._transaction() as services:
                return services.documents.ingest(
                    doc_type,
                    channel=channel,
                    subject=subject,
                    sender=sender,
                    received_at=received_at,
                    files=files,
                    raw_extraction=raw_extraction,
                    actor_id=self._actor_id,
                )

    def get_document(self, document_id: UUID) -> Document:
        with self._transaction() as services:
            return services.documents.get(document_id)

    def attach_files(self, document_id: UUID, files: Iterable[FileAttachment]) -> Document:
        with self._document_operation(document_id) as services:
            return services.documents.attach_files(document_id, files, actor_id=self._actor_id)

    def normalize(self, document_id: UUID, raw: Mapping[str, Any] | None = None) -> Document:
        with self._document_operation(document_id) as services:
            return services.documents.normalize(document_id, raw, actor_id=self._actor_id)

    def build_proposal(self, document_id: UUID) -> ProposalResult:
        with self._document_operation(document_id) as services:
            return services.documents.build_proposal(document_id, actor_id=self._actor_id)

    def route(
        self,
        document_id: UUID,
        assignments: Mapping[int | str, str] | None = None,
        *,
        default: str | None = None,
    ) -> Document:
        """Route stock moves; ``default`` falls back to the configured default warehouse."""
        with self._document_operation(document_id) as services:
            return services.documents.route(
                document_id,
                assignments,
                default=default or self._settings.default_warehouse,
                actor_id=self._actor_id,
            )

    def flag_for_review(self, document_id: UUID, reason: str) -> Document:
        with self._document_operation(document_id) as services:
            return services.documents.flag_for_review(document_id, reason, actor_id=self._actor_id)

    def release_from_review(self, document_id: UUID, target: DocumentStatus | str) -> Document:
        with self._document_operation(document_id) as services:
            return services.documents.release_from_review(
                document_id, target, actor_id=self._actor_id
            )

    def post(self, document_id: UUID) -> PostingResult:
        """
        Post the document exactly once.

        A caller that loses a cross-process race gets the winner's links as
        ALREADY_POSTED instead of an error.
        """
        try:
            with self._document_operation(document_id) as services:
                return services.posting.post(document_id, actor_id=self._actor_id)
        except ConcurrentPostingError:
            with self._transaction() as services:
                document = services.documents.get(document_id)
                if document.journal_id is None:
                    raise
                logger.info(
                    "posting_race_lost",
                    extra={"document_id": str(document_id), "journal_id": str(document.journal_id)},
                )
                return PostingResult.already_posted(document.id, document.links)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def _endpoint(self, services: _Services, value: Endpoint | str | None) -> Endpoint | None:
        if isinstance(value, str):
            return services.warehouses.resolve(value)
        return value

    def record_movement(
        self,
        item_sku: str,
        qty: Decimal,
        *,
        source: Endpoint | str | None = None,
        destination: Endpoint | str | None = None,
        uom: str = "pcs",
        unit_cost: Decimal = ZERO,
        moved_at: datetime | None = None,
        description: str | None = None,
        memo: str | None = None,
    ) -> StockMove:
        """
        Post a stand-alone receipt, issue or transfer.

        A plain string endpoint is a warehouse code and must be registered.
        """
        with LogContext.bind(actor_id=str(self._actor_id)):
            with self._transaction() as services:
                return services.stock_moves.record(
                    item_sku=item_sku,
                    qty=qty,
                    source=self._endpoint(services, source),
                    destination=self._endpoint(services, destination),
                    uom=uom,
                    unit_cost=unit_cost,
                    moved_at=moved_at,
                    description=description,
                    memo=memo,
                    actor_id=self._actor_id,
                )

    def on_hand(self, sku: str) -> OnHandRow:
        with self._transaction() as services:
            version = services.inventory.movement_version(sku)
            with self._cache_guard:
                cached = self._on_hand_cache.get(sku)
            if cached is not None and cached[0] == version:
                return cached[1]
            row = services.inventory.on_hand(sku)
        with self._cache_guard:
            self._on_hand_cache[sku] = (version, row)
        logger.debug("on_hand_rebuilt", extra={"item_sku": sku, "movement_count": version[0]})
        return row
