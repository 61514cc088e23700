"""
Idempotency key helpers.

Posting a document is keyed ``document:post:<document_id>``.  The key is
stored under a UNIQUE constraint on journal_entries, so whatever the
interleaving of posting attempts, a document yields at most one journal.
"""

from uuid import UUID

_SEPARATOR = ":"


def generate_idempotency_key(producer: str, action: str, entity_id: str | UUID) -> str:
    """
    Build an idempotency key.

    Raises:
        ValueError: If producer or action is empty or contains the separator.
    """
    for name, part in (("producer", producer), ("action", action)):
        if not part or _SEPARATOR in part:
            raise ValueError(f"Invalid {name} for idempotency key: {part!r}")
    return f"{producer}{_SEPARATOR}{action}{_SEPARATOR}{entity_id}"


def posting_key(document_id: str | UUID) -> str:
    """Idempotency key for posting one document."""
    return generate_idempotency_key("document", "post", document_id)


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key into (producer, action, entity_id).

    Raises:
        ValueError: If the key does not have three parts.
    """
    parts = key.split(_SEPARATOR, 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
