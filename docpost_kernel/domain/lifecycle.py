"""
Document lifecycle (``docpost_kernel.domain.lifecycle``).

Responsibility
--------------
Owns the document status ordering and the forward-only transition rule that
every other component goes through:

    RECEIVED -> CLASSIFIED -> PARSED -> READY -> ROUTED -> POSTED

NEEDS_REVIEW is entered from any rank when extraction or posting hits an
inconsistency it cannot resolve.  Leaving it is an explicit external action
(``release``), never an automatic one.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``advance()`` never returns a status with lower rank than its input.
* Requests that would lower the rank raise InvalidTransitionError and leave
  the caller's status untouched.
* A document in NEEDS_REVIEW does not advance until released.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from docpost_kernel.exceptions import DocumentInReviewError, InvalidTransitionError


class DocumentStatus(str, Enum):
    RECEIVED = "RECEIVED"
    CLASSIFIED = "CLASSIFIED"
    PARSED = "PARSED"
    READY = "READY"
    ROUTED = "ROUTED"
    POSTED = "POSTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class DocumentType(str, Enum):
    INVOICE = "invoice"
    ORDER = "order"
    DELIVERY = "delivery"


STATUS_RANK: dict[DocumentStatus, int] = {
    DocumentStatus.RECEIVED: 0,
    DocumentStatus.CLASSIFIED: 1,
    DocumentStatus.PARSED: 2,
    DocumentStatus.READY: 3,
    DocumentStatus.ROUTED: 4,
    DocumentStatus.POSTED: 5,
}


def rank(status: DocumentStatus | str) -> int | None:
    """Rank of a status in the forward ordering.  None for NEEDS_REVIEW."""
    return STATUS_RANK.get(DocumentStatus(status))


@dataclass(frozen=True)
class Transition:
    """A forward edge of the lifecycle, triggered by ``action``."""

    from_state: DocumentStatus
    to_state: DocumentStatus
    action: str


@dataclass(frozen=True)
class Lifecycle:
    """State machine definition for documents."""

    name: str
    initial_state: DocumentStatus
    states: tuple[DocumentStatus, ...]
    transitions: tuple[Transition, ...]
    review_state: DocumentStatus

    def action_for(self, target: DocumentStatus) -> str | None:
        for transition in self.transitions:
            if transition.to_state == target:
                return transition.action
        return None


DOCUMENT_LIFECYCLE = Lifecycle(
    name="document",
    initial_state=DocumentStatus.RECEIVED,
    states=tuple(DocumentStatus),
    transitions=(
        Transition(DocumentStatus.RECEIVED, DocumentStatus.CLASSIFIED, "attach_files"),
        Transition(DocumentStatus.CLASSIFIED, DocumentStatus.PARSED, "normalize"),
        Transition(DocumentStatus.PARSED, DocumentStatus.READY, "build_proposal"),
        Transition(DocumentStatus.READY, DocumentStatus.ROUTED, "route"),
        Transition(DocumentStatus.ROUTED, DocumentStatus.POSTED, "post"),
    ),
    review_state=DocumentStatus.NEEDS_REVIEW,
)


def advance(
    document_id: str,
    current: DocumentStatus | str,
    target: DocumentStatus | str,
) -> DocumentStatus:
    """
    Resolve the status a document moves to when ``target`` is reached.

    Returns the higher-ranked of ``current`` and ``target``: reaching a rank
    the document has already passed is a no-op, not a downgrade.  This is how
    ``normalize`` on a CLASSIFIED document yields PARSED while re-normalizing a
    RECEIVED one also yields PARSED.

    Raises:
        DocumentInReviewError: current is NEEDS_REVIEW.
        InvalidTransitionError: target is NEEDS_REVIEW (use ``flag``).
    """
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    if current == DocumentStatus.NEEDS_REVIEW:
        raise DocumentInReviewError(document_id)
    if target == DocumentStatus.NEEDS_REVIEW:
        raise InvalidTransitionError(
            document_id, current.value, target.value, "use flag_for_review"
        )
    return target if STATUS_RANK[target] > STATUS_RANK[current] else current


def require_rank(
    document_id: str,
    current: DocumentStatus | str,
    *,
    minimum: DocumentStatus,
    maximum: DocumentStatus,
    action: str,
) -> DocumentStatus:
    """
    Guard for operations allowed only within a rank window.

    An operation whose effect belongs to a rank the document has already left
    behind would lower the status if it were applied.  Instead the status is
    left as is and InvalidTransitionError is raised.

    Raises:
        DocumentInReviewError: current is NEEDS_REVIEW.
        InvalidTransitionError: current rank is outside [minimum, maximum].
    """
    current = DocumentStatus(current)
    if current == DocumentStatus.NEEDS_REVIEW:
        raise DocumentInReviewError(document_id)
    current_rank = STATUS_RANK[current]
    if current_rank < STATUS_RANK[minimum]:
        raise InvalidTransitionError(
            document_id, current.value, maximum.value,
            f"{action} requires status {minimum.value} or later",
        )
    if current_rank > STATUS_RANK[maximum]:
        raise InvalidTransitionError(
            document_id, current.value, maximum.value,
            f"{action} would lower the status rank",
        )
    return current


def release_target(
    document_id: str,
    current: DocumentStatus | str,
    target: DocumentStatus | str,
    *,
    supported: DocumentStatus,
) -> DocumentStatus:
    """
    Validate an explicit exit from NEEDS_REVIEW.

    ``supported`` is the highest status the document's own data backs (see
    ``supported_status``).  A document with a posted journal may only return
    to POSTED; any other document to a rank no higher than ``supported``.

    Raises:
        InvalidTransitionError: the document is not in review, or the target
            does not match what the document's data supports.
    """
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    if current != DocumentStatus.NEEDS_REVIEW:
        raise InvalidTransitionError(
            document_id, current.value, target.value, "document is not in review"
        )
    if target == DocumentStatus.NEEDS_REVIEW:
        raise InvalidTransitionError(
            document_id, current.value, target.value, "release target must be a ranked status"
        )
    if supported == DocumentStatus.POSTED and target != DocumentStatus.POSTED:
        raise InvalidTransitionError(
            document_id, current.value, target.value,
            "document already has a posted journal",
        )
    if STATUS_RANK[target] > STATUS_RANK[supported]:
        raise InvalidTransitionError(
            document_id, current.value, target.value,
            f"document data only supports {supported.value}",
        )
    return target


def supported_status(
    *,
    has_files: bool,
    has_extraction: bool,
    has_proposal: bool,
    is_routed: bool,
    has_journal: bool,
) -> DocumentStatus:
    """Highest status a document's stored data justifies."""
    if has_journal:
        return DocumentStatus.POSTED
    if has_proposal:
        return DocumentStatus.ROUTED if is_routed else DocumentStatus.READY
    if has_extraction:
        return DocumentStatus.PARSED
    if has_files:
        return DocumentStatus.CLASSIFIED
    return DocumentStatus.RECEIVED
