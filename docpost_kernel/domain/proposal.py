"""
Proposal Builder (``docpost_kernel.domain.proposal``).

Responsibility
--------------
Turns a normalized document into its proposal: a draft journal and, when any
line is inventory, one draft stock movement per inventory line.

Journal shape::

    Dr  inventory account (any inventory line) | expense account   totalInc
        Cr  payable account                                        totalInc

Architecture position
---------------------
**Kernel domain layer** -- pure function.  ZERO I/O.

Invariants enforced
-------------------
* A proposal is only returned after the Balance Validator accepts its journal.
  A document whose gross total is zero or negative yields no proposal; no
  balancing line is ever fabricated.
* The builder never chooses warehouses: every draft move leaves
  ``destination`` unset for the routing step.
* Pure and total: the same input always produces the same proposal, so a
  rebuild replaces the previous proposal rather than appending to it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from docpost_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money
from docpost_kernel.domain.balance import validate_balance
from docpost_kernel.domain.dtos import (
    JournalDraft,
    JournalLineDraft,
    Proposal,
    StockMoveDraft,
    ValidationError,
)
from docpost_kernel.domain.extraction import CATEGORY_INVENTORY, ExtractedDocument
from docpost_kernel.domain.values import ExternalParty

_SKU_UNSAFE = re.compile(r"[^A-Z0-9]+")


@dataclass(frozen=True)
class AccountMapping:
    """Account codes the builder posts to."""

    payable: str = "1000"
    inventory: str = "1400"
    expense: str = "5500"


@dataclass(frozen=True)
class ProposalResult:
    proposal: Proposal | None
    errors: tuple[ValidationError, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.proposal is not None


def sku_for_line(sku: str, description: str, index: int) -> str:
    """Use the line's sku, else derive a stable one from its description."""
    if sku:
        return sku
    stem = _SKU_UNSAFE.sub("-", description.upper()).strip("-")[:20].strip("-")
    return stem or f"LINE-{index + 1}"


def build_proposal(
    extracted: ExtractedDocument,
    accounts: AccountMapping | None = None,
    *,
    entry_date: date | None = None,
    reference: str = "",
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> ProposalResult:
    """
    Build the proposal for a normalized document.

    Args:
        extracted: Normalized record.
        accounts: Account codes; defaults to 1000/1400/5500.
        entry_date: Used when the document carries no date of its own.
        reference: Used when the document carries no business number.

    Returns:
        ProposalResult with a proposal, or with errors and no proposal.
    """
    accounts = accounts or AccountMapping()
    gross = round_money(extracted.total_inc, decimal_places)

    if gross <= ZERO:
        return ProposalResult(
            proposal=None,
            errors=(
                ValidationError(
                    code="NON_POSITIVE_TOTAL",
                    message=f"Gross total {gross} cannot be posted",
                    field="totals.totalInc",
                ),
            ),
        )

    journal_date = extracted.doc_date or entry_date
    ref = extracted.reference or reference
    supplier = extracted.supplier_name

    if extracted.has_inventory:
        debit_account, debit_memo = accounts.inventory, "Inventory receipt"
    else:
        debit_account, debit_memo = accounts.expense, "Expense"

    lines = (
        JournalLineDraft(account=debit_account, debit=gross, memo=debit_memo),
        JournalLineDraft(account=accounts.payable, credit=gross, memo="Accounts payable"),
    )

    balance = validate_balance(lines, decimal_places)
    if not balance.is_balanced:
        return ProposalResult(proposal=None, errors=balance.errors)

    journal = JournalDraft(
        entry_date=journal_date,
        reference=ref,
        memo=f"{supplier} {ref}".strip() or "Document posting",
        currency=extracted.currency,
        lines=lines,
    )

    source = ExternalParty(supplier) if supplier else None
    moves = tuple(
        StockMoveDraft(
            line_index=i,
            move_date=journal_date,
            item_sku=sku_for_line(line.sku, line.description, i),
            description=line.description,
            qty=line.qty,
            uom=line.uom,
            unit_cost=line.unit_price,
            source=source,
            memo=ref,
        )
        for i, line in enumerate(extracted.lines)
        if line.category == CATEGORY_INVENTORY and line.qty > 0
    )

    return ProposalResult(proposal=Proposal(journal=journal, stock_moves=moves))
