"""
Extraction Normalizer (``docpost_kernel.domain.extraction``).

Responsibility
--------------
Reconciles the free-form field structure produced by an external recognition
step (OCR, language model, manual form) into the canonical ``extracted``
record: supplier, document numbers, date, currency, tax mode and rate,
totals, and an ordered list of line items with consistent net/tax/gross.

Architecture position
---------------------
**Kernel domain layer** -- pure function.  ZERO I/O.

Invariants enforced
-------------------
* For every line: ``gross == net + tax`` and ``tax == round(net * rate)``.
  Rates are percentages (25 means 25%) between 0 and 100; anything else is
  flagged and replaced by the document or configured default.
* Missing amounts are recomputed; supplied amounts that disagree with the
  recomputation by more than the tolerance are flagged, never trusted and
  never fatal.
* ``totals.totalInc`` is authoritative over the legacy single ``total``; the
  legacy value is mirrored in only when ``totalInc`` is missing or zero.
* Amounts that cannot be read, or that would not fit the ledger columns,
  are flagged and treated as missing.
* Normalization never raises on bad input.  An unrecognizable document
  comes back with ``recognizable=False`` and whatever partial data exists.

Input shape (all keys optional)::

    {
      "supplier": {"name": ..., "vat": ...} | "supplierName": ...,
      "numbers": {"invoiceNo": ..., "orderNo": ..., "poNo": ...},
      "date": "2024-03-01" | "01.03.2024",
      "currency": "DKK",
      "tax": {"mode": "exclusive", "defaultRate": 25} | "taxMode"/"taxRate",
      "totals": {"subtotal": ..., "tax": ..., "totalInc": ...},
      "total": ...,
      "lines": [{"sku", "desc", "category", "qty", "uom", "unitPrice",
                 "unitPriceGross", "lineNet", "taxAmount", "lineTotal",
                 "taxRate", "priceMode", "includesTax"}, ...]
    }
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal, Overflow, localcontext
from typing import Any, Mapping

from docpost_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    STORAGE_PRECISION,
    ZERO,
    in_storage_range,
    round_money,
    to_decimal,
)
from docpost_kernel.domain.dtos import ValidationError

TAX_MODE_INCLUSIVE = "inclusive"
TAX_MODE_EXCLUSIVE = "exclusive"

CATEGORY_INVENTORY = "inventory"
CATEGORY_SERVICE = "service"
CATEGORY_EXPENSE = "expense"
CATEGORIES = (CATEGORY_INVENTORY, CATEGORY_SERVICE, CATEGORY_EXPENSE)

_INCLUSIVE_HINTS = frozenset({"inclusive", "gross", "incl", "inc", "brutto", "taxed"})
_EXCLUSIVE_HINTS = frozenset({"exclusive", "net", "excl", "netto"})

UNIT_PRICE_PLACES = 4
_HUNDRED = Decimal("100")
MAX_TAX_RATE = _HUNDRED

_DMY = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{2,4})$")

# Flag codes
AMOUNT_OUT_OF_RANGE = "AMOUNT_OUT_OF_RANGE"
INVALID_TAX_RATE = "INVALID_TAX_RATE"
LINE_AMOUNT_MISMATCH = "LINE_AMOUNT_MISMATCH"
TOTALS_MISMATCH = "TOTALS_MISMATCH"
UNPARSEABLE_AMOUNT = "UNPARSEABLE_AMOUNT"
UNPARSEABLE_DATE = "UNPARSEABLE_DATE"
UNRECOGNIZABLE_DOCUMENT = "UNRECOGNIZABLE_DOCUMENT"


@dataclass(frozen=True)
class NormalizationSettings:
    """Document-level defaults applied when the extraction omits them."""

    currency: str = "DKK"
    tax_mode: str = TAX_MODE_EXCLUSIVE
    tax_rate: Decimal = Decimal("25")
    tolerance: Decimal = Decimal("0.01")
    decimal_places: int = MONEY_DECIMAL_PLACES


@dataclass(frozen=True)
class ExtractedLine:
    """One canonical line item.  ``unit_price`` is always the net unit price."""

    sku: str
    description: str
    category: str
    qty: Decimal
    uom: str
    unit_price: Decimal
    net: Decimal
    tax: Decimal
    gross: Decimal
    tax_rate: Decimal
    tax_rate_override: Decimal | None = None
    includes_tax: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "desc": self.description,
            "category": self.category,
            "qty": str(self.qty),
            "uom": self.uom,
            "unitPrice": str(self.unit_price),
            "lineNet": str(self.net),
            "taxAmount": str(self.tax),
            "lineTotal": str(self.gross),
            "taxRate": str(self.tax_rate),
            "taxRateOverride": (
                str(self.tax_rate_override) if self.tax_rate_override is not None else None
            ),
            "includesTax": self.includes_tax,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExtractedLine:
        override = data.get("taxRateOverride")
        return cls(
            sku=data.get("sku") or "",
            description=data.get("desc") or "",
            category=data.get("category") or CATEGORY_EXPENSE,
            qty=Decimal(data.get("qty") or "0"),
            uom=data.get("uom") or "",
            unit_price=Decimal(data.get("unitPrice") or "0"),
            net=Decimal(data.get("lineNet") or "0"),
            tax=Decimal(data.get("taxAmount") or "0"),
            gross=Decimal(data.get("lineTotal") or "0"),
            tax_rate=Decimal(data.get("taxRate") or "0"),
            tax_rate_override=Decimal(override) if override is not None else None,
            includes_tax=bool(data.get("includesTax", False)),
        )


@dataclass(frozen=True)
class ExtractedDocument:
    """The canonical normalized record stored on a document."""

    supplier_name: str
    supplier_vat: str
    numbers: dict[str, str]
    doc_date: date | None
    currency: str
    tax_mode: str
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    total_inc: Decimal
    lines: tuple[ExtractedLine, ...] = ()

    @property
    def has_inventory(self) -> bool:
        return any(line.category == CATEGORY_INVENTORY for line in self.lines)

    @property
    def reference(self) -> str:
        """First available business number: invoice, then order, then PO."""
        for key in ("invoiceNo", "orderNo", "poNo"):
            if self.numbers.get(key):
                return self.numbers[key]
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "supplier": {"name": self.supplier_name, "vat": self.supplier_vat},
            "numbers": dict(self.numbers),
            "date": self.doc_date.isoformat() if self.doc_date else None,
            "currency": self.currency,
            "tax": {"mode": self.tax_mode, "defaultRate": str(self.tax_rate)},
            "totals": {
                "subtotal": str(self.subtotal),
                "tax": str(self.tax),
                "totalInc": str(self.total_inc),
            },
            # legacy mirror of totals.totalInc
            "total": str(self.total_inc),
            "lines": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExtractedDocument:
        supplier = data.get("supplier") or {}
        tax = data.get("tax") or {}
        totals = data.get("totals") or {}
        raw_date = data.get("date")
        return cls(
            supplier_name=supplier.get("name") or "",
            supplier_vat=supplier.get("vat") or "",
            numbers=dict(data.get("numbers") or {}),
            doc_date=date.fromisoformat(raw_date) if raw_date else None,
            currency=data.get("currency") or "",
            tax_mode=tax.get("mode") or TAX_MODE_EXCLUSIVE,
            tax_rate=Decimal(tax.get("defaultRate") or "0"),
            subtotal=Decimal(totals.get("subtotal") or "0"),
            tax=Decimal(totals.get("tax") or "0"),
            total_inc=Decimal(totals.get("totalInc") or "0"),
            lines=tuple(ExtractedLine.from_dict(l) for l in data.get("lines") or ()),
        )


@dataclass(frozen=True)
class NormalizationResult:
    extracted: ExtractedDocument
    flags: tuple[ValidationError, ...] = field(default_factory=tuple)
    recognizable: bool = True


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_date(value: Any) -> date | None:
    """Parse ISO (``2024-03-01``) and day-first (``01.03.2024``, ``1/3/24``) dates."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _text(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    match = _DMY.match(text)
    if not match:
        return None
    day, month, year = (int(g) for g in match.groups())
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_tax_mode(value: Any) -> str | None:
    """Map a free-form price/tax mode hint onto inclusive/exclusive, else None."""
    text = _text(value).lower()
    if text in _INCLUSIVE_HINTS:
        return TAX_MODE_INCLUSIVE
    if text in _EXCLUSIVE_HINTS:
        return TAX_MODE_EXCLUSIVE
    return None


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


def _amount(
    mapping: Mapping[str, Any],
    *keys: str,
    flags: list[ValidationError],
    path: str = "",
) -> Decimal | None:
    """First present amount under ``keys``; present but unreadable is flagged and None."""
    for key in keys:
        value = mapping.get(key)
        if value in (None, ""):
            continue
        parsed = to_decimal(value)
        if parsed is None:
            flags.append(
                ValidationError(
                    code=UNPARSEABLE_AMOUNT,
                    message=f"Could not read amount {value!r}",
                    field=f"{path}.{key}" if path else key,
                    details={"supplied": str(value)},
                )
            )
        return parsed
    return None


def _tax_rate(
    value: Any, fallback: Decimal, field_name: str, flags: list[ValidationError]
) -> Decimal | None:
    """
    Parse a percentage rate.

    Returns None when the value is absent, or when it is unreadable or
    outside 0..100; the latter is flagged and the caller applies ``fallback``.
    """
    if value in (None, ""):
        return None
    rate = to_decimal(value)
    if rate is not None and ZERO <= rate <= MAX_TAX_RATE:
        return rate
    flags.append(
        ValidationError(
            code=INVALID_TAX_RATE,
            message=f"Tax rate {value!r} is not a percentage between 0 and 100; using {fallback}",
            field=field_name,
            details={"supplied": str(value), "applied": str(fallback)},
        )
    )
    return None


def _fits(basis: Decimal, qty: Decimal) -> bool:
    # gross reaches twice the basis at a 100% rate; the unit price is basis / qty
    doubled = abs(basis) * 2
    if not in_storage_range(doubled):
        return False
    if qty <= 0:
        return True
    with localcontext() as ctx:
        ctx.traps[Overflow] = False
        return in_storage_range(doubled / qty)


# ---------------------------------------------------------------------------
# Line reconciliation
# ---------------------------------------------------------------------------


def _split(
    basis: Decimal, rate: Decimal, includes_tax: bool, places: int
) -> tuple[Decimal, Decimal, Decimal]:
    """Split a price basis into (net, tax, gross) at ``rate`` percent."""
    with localcontext() as ctx:
        ctx.prec = STORAGE_PRECISION
        fraction = rate / _HUNDRED
        if includes_tax:
            gross = round_money(basis, places)
            net = round_money(basis / (1 + fraction), places) if fraction else gross
            return net, gross - net, gross
        net = round_money(basis, places)
        tax = round_money(net * fraction, places)
        return net, tax, net + tax


def _normalize_line(
    index: int,
    raw: Mapping[str, Any],
    doc_mode: str,
    doc_rate: Decimal,
    settings: NormalizationSettings,
    flags: list[ValidationError],
) -> ExtractedLine:
    places = settings.decimal_places
    path = f"lines[{index}]"

    sku = _text(raw.get("sku"))
    description = _text(_first(raw, "desc", "description", "name")) or f"Line {index + 1}"

    category = _text(raw.get("category")).lower()
    if category not in CATEGORIES:
        category = CATEGORY_INVENTORY if sku else CATEGORY_EXPENSE

    qty = _amount(raw, "qty", "quantity", flags=flags, path=path) or ZERO
    if qty < 0:
        qty = ZERO
    uom = _text(_first(raw, "uom", "unit")) or ("pcs" if category == CATEGORY_INVENTORY else "ea")

    override = _tax_rate(raw.get("taxRate"), doc_rate, f"{path}.taxRate", flags)
    rate = override if override is not None else doc_rate

    if isinstance(raw.get("includesTax"), bool):
        includes_tax = raw["includesTax"]
    else:
        includes_tax = (parse_tax_mode(raw.get("priceMode")) or doc_mode) == TAX_MODE_INCLUSIVE

    supplied_net = _amount(raw, "lineNet", "net", flags=flags, path=path)
    supplied_tax = _amount(raw, "taxAmount", flags=flags, path=path)
    supplied_gross = _amount(raw, "lineTotal", "gross", flags=flags, path=path)

    unit_price = None
    if includes_tax:
        unit_price = _amount(raw, "unitPriceGross", flags=flags, path=path)
    if unit_price is None:
        unit_price = _amount(raw, "unitPrice", "price", flags=flags, path=path)
    if unit_price is not None and unit_price < 0:
        unit_price = ZERO

    basis = None
    inclusive = includes_tax
    if unit_price is not None and qty > 0:
        basis = unit_price * qty
    elif supplied_gross is not None:
        basis, inclusive, supplied_gross = supplied_gross, True, None
    elif supplied_net is not None:
        basis, inclusive, supplied_net = supplied_net, False, None
    elif supplied_tax is not None and rate > 0:
        basis, inclusive, supplied_tax = supplied_tax * _HUNDRED / rate, False, None

    if basis is not None and not _fits(basis, qty):
        flags.append(
            ValidationError(
                code=AMOUNT_OUT_OF_RANGE,
                message=f"Line amount {basis} is too large to post",
                field=path,
                details={"computed": str(basis)},
            )
        )
        basis = None

    if basis is None:
        net = tax = gross = ZERO
    else:
        net, tax, gross = _split(basis, rate, inclusive, places)

    for name, supplied, computed in (
        ("lineNet", supplied_net, net),
        ("taxAmount", supplied_tax, tax),
        ("lineTotal", supplied_gross, gross),
    ):
        if supplied is not None and abs(supplied - computed) > settings.tolerance:
            flags.append(
                ValidationError(
                    code=LINE_AMOUNT_MISMATCH,
                    message=f"Supplied {name} {supplied} differs from recomputed {computed}",
                    field=f"{path}.{name}",
                    details={"supplied": str(supplied), "computed": str(computed)},
                )
            )

    net_unit = round_money(net / qty, UNIT_PRICE_PLACES, ROUND_HALF_EVEN) if qty > 0 else ZERO

    return ExtractedLine(
        sku=sku,
        description=description,
        category=category,
        qty=qty,
        uom=uom,
        unit_price=net_unit,
        net=net,
        tax=tax,
        gross=gross,
        tax_rate=rate,
        tax_rate_override=override,
        includes_tax=includes_tax,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize_extraction(
    raw: Mapping[str, Any] | None,
    settings: NormalizationSettings | None = None,
) -> NormalizationResult:
    """
    Reconcile raw extracted fields into an ExtractedDocument.

    Never raises on malformed input: problems become flags.  Deterministic:
    the same raw input always yields the same record and flags.
    """
    settings = settings or NormalizationSettings()
    places = settings.decimal_places
    raw = raw if isinstance(raw, Mapping) else {}
    flags: list[ValidationError] = []

    supplier = raw.get("supplier")
    if isinstance(supplier, Mapping):
        supplier_name = _text(supplier.get("name"))
        supplier_vat = _text(_first(supplier, "vat", "cvr", "taxId"))
    else:
        supplier_name = _text(supplier if isinstance(supplier, str) else raw.get("supplierName"))
        supplier_vat = _text(raw.get("supplierVat"))

    numbers_in = raw.get("numbers") if isinstance(raw.get("numbers"), Mapping) else {}
    numbers = {}
    for key in ("invoiceNo", "orderNo", "poNo"):
        value = _text(numbers_in.get(key) or raw.get(key))
        if value:
            numbers[key] = value

    raw_date = _first(raw, "date", "invoiceDate")
    doc_date = parse_date(raw_date)
    if raw_date is not None and doc_date is None:
        flags.append(
            ValidationError(
                code=UNPARSEABLE_DATE,
                message=f"Could not parse document date {raw_date!r}",
                field="date",
            )
        )

    currency = _text(raw.get("currency")).upper() or settings.currency

    tax_in = raw.get("tax") if isinstance(raw.get("tax"), Mapping) else {}
    tax_mode = (
        parse_tax_mode(_first(tax_in, "mode") or raw.get("taxMode")) or settings.tax_mode
    )
    if _first(tax_in, "defaultRate", "rate") is not None:
        raw_rate, rate_field = _first(tax_in, "defaultRate", "rate"), "tax.defaultRate"
    else:
        raw_rate, rate_field = raw.get("taxRate"), "taxRate"
    tax_rate = _tax_rate(raw_rate, settings.tax_rate, rate_field, flags)
    if tax_rate is None:
        tax_rate = settings.tax_rate

    raw_lines = raw.get("lines") if isinstance(raw.get("lines"), (list, tuple)) else []
    lines = tuple(
        _normalize_line(i, line, tax_mode, tax_rate, settings, flags)
        for i, line in enumerate(raw_lines)
        if isinstance(line, Mapping)
    )

    totals_in = raw.get("totals") if isinstance(raw.get("totals"), Mapping) else {}
    header_subtotal = _amount(totals_in, "subtotal", "net", flags=flags, path="totals")
    header_tax = _amount(totals_in, "tax", "vat", flags=flags, path="totals")
    header_total = _amount(totals_in, "totalInc", "gross", flags=flags, path="totals")
    legacy_total = _amount(raw, "total", flags=flags)
    if (header_total is None or header_total == ZERO) and legacy_total:
        header_total = legacy_total

    line_gross = sum((line.gross for line in lines), ZERO)
    if lines and line_gross > ZERO:
        subtotal = sum((line.net for line in lines), ZERO)
        tax = sum((line.tax for line in lines), ZERO)
        total_inc = line_gross
        allowed = settings.tolerance * len(lines)
        if header_total is not None and abs(header_total - total_inc) > allowed:
            flags.append(
                ValidationError(
                    code=TOTALS_MISMATCH,
                    message=f"Header total {header_total} differs from line sum {total_inc}",
                    field="totals.totalInc",
                    details={"supplied": str(header_total), "computed": str(total_inc)},
                )
            )
    else:
        total_inc = round_money(header_total or ZERO, places)
        if header_subtotal is not None and header_tax is not None:
            subtotal = round_money(header_subtotal, places)
            tax = round_money(header_tax, places)
        elif header_tax is not None:
            tax = round_money(header_tax, places)
            subtotal = total_inc - tax
        elif header_subtotal is not None:
            subtotal = round_money(header_subtotal, places)
            tax = total_inc - subtotal
        else:
            subtotal, tax, _ = _split(total_inc, tax_rate, True, places)

    extracted = ExtractedDocument(
        supplier_name=supplier_name,
        supplier_vat=supplier_vat,
        numbers=numbers,
        doc_date=doc_date,
        currency=currency,
        tax_mode=tax_mode,
        tax_rate=tax_rate,
        subtotal=subtotal,
        tax=tax,
        total_inc=total_inc,
        lines=lines,
    )

    recognizable = bool(lines) or header_total is not None
    if not recognizable:
        flags.append(
            ValidationError(
                code=UNRECOGNIZABLE_DOCUMENT,
                message="Extraction contains neither line items nor a total",
            )
        )

    return NormalizationResult(
        extracted=extracted,
        flags=tuple(flags),
        recognizable=recognizable,
    )
