"""
Pure domain layer.

Value objects and pure functions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through the Clock passed in by services.
"""

from docpost_kernel.domain.balance import BalanceResult, assert_balanced, validate_balance
from docpost_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from docpost_kernel.domain.dtos import (
    JournalDraft,
    JournalLineDraft,
    PostingLinks,
    Proposal,
    StockMoveDraft,
    ValidationError,
)
from docpost_kernel.domain.extraction import (
    ExtractedDocument,
    ExtractedLine,
    NormalizationResult,
    NormalizationSettings,
    normalize_extraction,
)
from docpost_kernel.domain.lifecycle import (
    DOCUMENT_LIFECYCLE,
    DocumentStatus,
    DocumentType,
    advance,
    release_target,
)
from docpost_kernel.domain.onhand import OnHandRow, PostedMovement, aggregate_on_hand
from docpost_kernel.domain.proposal import AccountMapping, ProposalResult, build_proposal
from docpost_kernel.domain.values import Endpoint, ExternalParty, Warehouse

__all__ = [
    "AccountMapping",
    "BalanceResult",
    "Clock",
    "DeterministicClock",
    "DOCUMENT_LIFECYCLE",
    "DocumentStatus",
    "DocumentType",
    "Endpoint",
    "ExternalParty",
    "ExtractedDocument",
    "ExtractedLine",
    "JournalDraft",
    "JournalLineDraft",
    "NormalizationResult",
    "NormalizationSettings",
    "OnHandRow",
    "PostedMovement",
    "PostingLinks",
    "Proposal",
    "ProposalResult",
    "StockMoveDraft",
    "SystemClock",
    "ValidationError",
    "Warehouse",
    "advance",
    "aggregate_on_hand",
    "assert_balanced",
    "build_proposal",
    "normalize_extraction",
    "release_target",
    "validate_balance",
]
