"""
Docpost configuration schema.

YAML is parsed into these frozen dataclasses by the loader.  Nothing outside
``docpost_config`` reads YAML or environment variables; the kernel receives
its settings through ``docpost_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class CurrencyDef:
    code: str = "DKK"
    decimal_places: int = 2


@dataclass(frozen=True)
class TaxDef:
    """Document defaults.  ``rate`` is a percentage."""

    mode: str = "exclusive"
    rate: Decimal = Decimal("25")
    tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class AccountsDef:
    payable: str = "1000"
    inventory: str = "1400"
    expense: str = "5500"


@dataclass(frozen=True)
class NumberingDef:
    document: str = "DOC"
    journal: str = "JE"
    stock_move: str = "MOV"
    item: str = "ITEM"


@dataclass(frozen=True)
class WarehouseDef:
    code: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class DocpostConfig:
    """The complete runtime configuration."""

    currency: CurrencyDef = field(default_factory=CurrencyDef)
    tax: TaxDef = field(default_factory=TaxDef)
    accounts: AccountsDef = field(default_factory=AccountsDef)
    numbering: NumberingDef = field(default_factory=NumberingDef)
    warehouses: tuple[WarehouseDef, ...] = ()
    default_warehouse: str | None = None
