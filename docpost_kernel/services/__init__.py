"""Services for the document posting kernel (write side)."""

from docpost_kernel.services.document_service import (
    DocumentService,
    DocumentSettings,
    FileAttachment,
)
from docpost_kernel.services.journal_writer import JournalWriter, JournalWriteResult, WriteStatus
from docpost_kernel.services.posting_service import PostingResult, PostingService, PostingStatus
from docpost_kernel.services.sequence_service import SequenceService
from docpost_kernel.services.stock_move_writer import StockMoveWriter
from docpost_kernel.services.warehouse_registry import WarehouseRegistry

__all__ = [
    "DocumentService",
    "DocumentSettings",
    "FileAttachment",
    "JournalWriteResult",
    "JournalWriter",
    "PostingResult",
    "PostingService",
    "PostingStatus",
    "SequenceService",
    "StockMoveWriter",
    "WarehouseRegistry",
    "WriteStatus",
]
