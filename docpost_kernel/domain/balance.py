"""
Balance Validator (``docpost_kernel.domain.balance``).

Responsibility
--------------
Checks that a set of journal lines nets to zero: total debits equal total
credits to the smallest currency unit.  Used by the Proposal Builder before
it returns a proposal and by the JournalWriter before it persists an entry.

Architecture position
---------------------
**Kernel domain layer** -- pure function.  ZERO I/O.

Invariants enforced
-------------------
* An entry with no lines, or with nothing on either side, is not balanced.
* Sums are compared after rounding to ``decimal_places`` so sub-unit noise
  from upstream tax arithmetic never masks a real imbalance.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from docpost_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money
from docpost_kernel.domain.dtos import JournalLineDraft, ValidationError
from docpost_kernel.exceptions import UnbalancedEntryError


@dataclass(frozen=True)
class BalanceResult:
    """Outcome of a balance check."""

    total_debits: Decimal
    total_credits: Decimal
    errors: tuple[ValidationError, ...] = ()

    @property
    def is_balanced(self) -> bool:
        return not self.errors

    @property
    def imbalance(self) -> Decimal:
        return self.total_debits - self.total_credits


def validate_balance(
    lines: Iterable[JournalLineDraft],
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> BalanceResult:
    """
    Check that ``lines`` balance.

    Returns:
        BalanceResult with rounded totals and zero or more errors
        (EMPTY_ENTRY, ZERO_ENTRY, UNBALANCED_ENTRY).
    """
    lines = tuple(lines)
    debits = round_money(sum((l.debit for l in lines), ZERO), decimal_places)
    credits = round_money(sum((l.credit for l in lines), ZERO), decimal_places)

    if not lines:
        return BalanceResult(
            debits,
            credits,
            (ValidationError(code="EMPTY_ENTRY", message="Journal has no lines"),),
        )
    if debits == ZERO and credits == ZERO:
        return BalanceResult(
            debits,
            credits,
            (ValidationError(code="ZERO_ENTRY", message="Journal lines total zero"),),
        )
    if debits != credits:
        return BalanceResult(
            debits,
            credits,
            (
                ValidationError(
                    code="UNBALANCED_ENTRY",
                    message=f"Debits {debits} != credits {credits}",
                    details={"debits": str(debits), "credits": str(credits)},
                ),
            ),
        )
    return BalanceResult(debits, credits)


def assert_balanced(
    lines: Iterable[JournalLineDraft],
    currency: str,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> BalanceResult:
    """validate_balance() that raises UnbalancedEntryError instead of returning errors."""
    result = validate_balance(lines, decimal_places)
    if not result.is_balanced:
        raise UnbalancedEntryError(
            debits=str(result.total_debits),
            credits=str(result.total_credits),
            currency=currency,
        )
    return result
