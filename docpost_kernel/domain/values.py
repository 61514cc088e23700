"""
Movement endpoints (``docpost_kernel.domain.values``).

Responsibility
--------------
A stock movement's source and destination are each either a recognized
warehouse or an external party (supplier, customer).  The distinction is
made ONCE, when routing or ingestion constructs the endpoint, and carried as
a type thereafter.  Nothing downstream infers it from the shape of a string.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``Warehouse.code`` is a short uppercase alphanumeric token.  Whether the
  code is actually registered is checked by the warehouse registry, not here.
* ``ExternalParty.name`` is non-empty.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from docpost_kernel.exceptions import InvalidWarehouseCodeError

WAREHOUSE_CODE_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")


def normalize_warehouse_code(code: str) -> str:
    """Strip and uppercase a warehouse code, raising if it is not a valid token."""
    normalized = str(code or "").strip().upper()
    if not WAREHOUSE_CODE_PATTERN.match(normalized):
        raise InvalidWarehouseCodeError(str(code))
    return normalized


@dataclass(frozen=True)
class Warehouse:
    """A recognized storage location.  Contributes to on-hand balances."""

    code: str

    def __post_init__(self) -> None:
        if not WAREHOUSE_CODE_PATTERN.match(self.code or ""):
            raise InvalidWarehouseCodeError(self.code)

    @property
    def label(self) -> str:
        return self.code

    def to_dict(self) -> dict[str, str]:
        return {"kind": "warehouse", "code": self.code}


@dataclass(frozen=True)
class ExternalParty:
    """A counterparty outside the stock ledger.  Never contributes to on-hand."""

    name: str

    def __post_init__(self) -> None:
        if not (self.name or "").strip():
            raise ValueError("ExternalParty name must be non-empty")

    @property
    def label(self) -> str:
        return self.name

    def to_dict(self) -> dict[str, str]:
        return {"kind": "party", "name": self.name}


Endpoint = Union[Warehouse, ExternalParty]


def endpoint_to_dict(endpoint: Endpoint | None) -> dict[str, str] | None:
    """Serialize an endpoint for JSON storage."""
    return endpoint.to_dict() if endpoint is not None else None


def endpoint_from_dict(data: dict[str, Any] | None) -> Endpoint | None:
    """Inverse of endpoint_to_dict().

    Raises:
        ValueError: If the stored kind is not recognized.
    """
    if not data:
        return None
    kind = data.get("kind")
    if kind == "warehouse":
        return Warehouse(data["code"])
    if kind == "party":
        return ExternalParty(data["name"])
    raise ValueError(f"Unknown endpoint kind: {kind!r}")


def is_warehouse(endpoint: Endpoint | None) -> bool:
    return isinstance(endpoint, Warehouse)
