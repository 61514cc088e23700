"""Utility helpers."""

from docpost_kernel.utils.idempotency import (
    generate_idempotency_key,
    parse_idempotency_key,
    posting_key,
)

__all__ = ["generate_idempotency_key", "parse_idempotency_key", "posting_key"]
