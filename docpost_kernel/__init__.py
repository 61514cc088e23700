"""
Docpost Kernel - document-to-ledger posting pipeline

Turns ingested back-office documents into balanced journal entries and
stock movements with:
- Forward-only document lifecycle
- At-most-once posting per document
- Append-only inventory ledger with on-hand reconstructed from posted moves
- Durable, date-keyed numbering
"""

__version__ = "0.1.0"
