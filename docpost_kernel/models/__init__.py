"""ORM models for the docpost kernel."""

from docpost_kernel.models.document import Document, DocumentFile
from docpost_kernel.models.inventory import Item, StockMove, StockMoveStatus, Warehouse
from docpost_kernel.models.journal import JournalEntry, JournalLine
from docpost_kernel.models.sequence import SequenceCounter

__all__ = [
    "Document",
    "DocumentFile",
    "Item",
    "JournalEntry",
    "JournalLine",
    "SequenceCounter",
    "StockMove",
    "StockMoveStatus",
    "Warehouse",
]
