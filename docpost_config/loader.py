"""
Configuration Loader (``docpost_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into ``docpost_config.schema`` dataclasses.
The single public entry point for runtime config is
``docpost_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Missing sections fall back to the schema defaults; present but malformed
  values raise ``ValueError``.
* Tax mode is one of ``inclusive`` / ``exclusive``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Warehouse entry without a code  -> ``KeyError`` propagates.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from docpost_config.schema import (
    AccountsDef,
    CurrencyDef,
    DocpostConfig,
    NumberingDef,
    TaxDef,
    WarehouseDef,
)

_TAX_MODES = ("inclusive", "exclusive")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a Decimal from YAML, going through str so floats keep their text form."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: cannot parse decimal from {value!r}") from None


def parse_currency(data: dict[str, Any]) -> CurrencyDef:
    default = CurrencyDef()
    return CurrencyDef(
        code=str(data.get("code", default.code)).upper(),
        decimal_places=int(data.get("decimal_places", default.decimal_places)),
    )


def parse_tax(data: dict[str, Any]) -> TaxDef:
    default = TaxDef()
    mode = str(data.get("mode", default.mode)).lower()
    if mode not in _TAX_MODES:
        raise ValueError(f"tax.mode must be one of {_TAX_MODES}, got {mode!r}")
    rate = parse_decimal(data.get("rate", default.rate), "tax.rate")
    if not rate.is_finite() or not Decimal("0") <= rate <= Decimal("100"):
        raise ValueError(f"tax.rate must be a percentage between 0 and 100, got {rate}")
    return TaxDef(
        mode=mode,
        rate=rate,
        tolerance=parse_decimal(data.get("tolerance", default.tolerance), "tax.tolerance"),
    )


def parse_accounts(data: dict[str, Any]) -> AccountsDef:
    default = AccountsDef()
    return AccountsDef(
        payable=str(data.get("payable", default.payable)),
        inventory=str(data.get("inventory", default.inventory)),
        expense=str(data.get("expense", default.expense)),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingDef:
    default = NumberingDef()
    return NumberingDef(
        document=str(data.get("document", default.document)),
        journal=str(data.get("journal", default.journal)),
        stock_move=str(data.get("stock_move", default.stock_move)),
        item=str(data.get("item", default.item)),
    )


def parse_warehouse(data: dict[str, Any]) -> WarehouseDef:
    return WarehouseDef(
        code=str(data["code"]).upper(),
        name=str(data.get("name") or data["code"]),
        active=bool(data.get("active", True)),
    )


def parse_config(data: dict[str, Any]) -> DocpostConfig:
    """Parse a whole configuration document."""
    warehouses = tuple(parse_warehouse(w) for w in data.get("warehouses") or ())
    default_warehouse = data.get("default_warehouse")
    if default_warehouse is not None:
        default_warehouse = str(default_warehouse).upper()
        if default_warehouse not in {w.code for w in warehouses}:
            raise ValueError(
                f"default_warehouse {default_warehouse!r} is not a configured warehouse"
            )
    return DocpostConfig(
        currency=parse_currency(data.get("currency") or {}),
        tax=parse_tax(data.get("tax") or {}),
        accounts=parse_accounts(data.get("accounts") or {}),
        numbering=parse_numbering(data.get("numbering") or {}),
        warehouses=warehouses,
        default_warehouse=default_warehouse,
    )


def load_config(path: Path) -> DocpostConfig:
    return parse_config(load_yaml_file(path))
