"""
Module: docpost_kernel.db.types
Responsibility: Annotated type aliases and the rounding helpers shared by
    models and the pure domain layer.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Amounts and quantities use Decimal.
    - round_money() is the ONLY sanctioned rounding function for monetary
      values; to_decimal() is the ONLY sanctioned way to turn loosely typed
      collaborator input into a Decimal.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Annotated, Any

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Stock quantity uses the same storage precision
Quantity = Annotated[Decimal, Numeric(38, 9)]

# ISO 4217 currency code (e.g., "DKK", "EUR")
Currency = Annotated[str, String(3)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")

# Numeric(38, 9) leaves 29 digits before the decimal point
STORAGE_PRECISION = 38
MAX_INTEGER_DIGITS = 29


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency's smallest unit.

    Preconditions: value is a Decimal within storage range (see
        in_storage_range()).
    Postconditions: Returns value quantized to ``decimal_places`` using
        ``rounding`` (ROUND_HALF_UP by default).
    """
    quantizer = Decimal(10) ** -decimal_places
    with localcontext() as ctx:
        # the default 28-digit context is narrower than the columns
        ctx.prec = STORAGE_PRECISION
        return value.quantize(quantizer, rounding=rounding)


def in_storage_range(value: Decimal) -> bool:
    """True when ``value`` fits a Numeric(38, 9) column."""
    return value.is_finite() and (value.is_zero() or value.adjusted() < MAX_INTEGER_DIGITS)


def to_decimal(value: Any) -> Decimal | None:
    """
    Convert a loosely typed amount into a Decimal.

    Accepts Decimal, int, float (via str), and strings using either ``,`` or
    ``.`` as decimal separator, with optional thousands separators and
    currency suffixes (``"1.234,50 kr"`` -> ``Decimal("1234.50")``).

    Returns:
        The Decimal, or None when the value is missing, unparseable, or too
        large to store.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if in_storage_range(value) else None
    if isinstance(value, (int, float)):
        result = Decimal(str(value))
        return result if in_storage_range(result) else None

    text = "".join(ch for ch in str(value).strip() if ch.isdigit() or ch in ",.-")
    if not text or text in ("-", ".", ","):
        return None

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma != -1 and last_dot != -1:
        decimal_sep = "," if last_comma > last_dot else "."
        thousands_sep = "." if decimal_sep == "," else ","
        text = text.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif last_comma != -1 or last_dot != -1:
        sep = "," if last_comma != -1 else "."
        head, _, tail = text.rpartition(sep)
        # "1.234" / "1,234" with exactly three trailing digits is a thousands group
        head_digits = head.replace(sep, "").lstrip("-")
        if len(tail) == 3 and head_digits.isdigit() and not head_digits.startswith("0"):
            text = text.replace(sep, "")
        else:
            text = head.replace(sep, "") + "." + tail

    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return result if in_storage_range(result) else None
