"""
Typed Exception Hierarchy for the Docpost Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to react to a posting failure without parsing message
strings.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes -- always including the document id
     when a document is involved, so the affected document stays findable.

Example:
    try:
        pipeline.build_proposal(document_id)
    except InvalidTransitionError as e:
        api_response(code=e.code, document=e.document_id, status=e.current)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DocpostError (base)
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- InvalidTransitionError
    |   +-- DocumentInReviewError
    |
    +-- ProposalError
    |   +-- ProposalImmutableError
    |
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- PostingPreconditionError
    |
    +-- InventoryError
    |   +-- InvalidWarehouseCodeError
    |   +-- UnknownWarehouseError
    |   +-- InvalidMovementError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentPostingError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Document id doesn't exist
                | INVALID_TRANSITION          | Operation would lower the status rank
                | DOCUMENT_IN_REVIEW          | Document is parked in NEEDS_REVIEW
----------------|-----------------------------|-----------------------------------------
Proposal        | PROPOSAL_IMMUTABLE          | Proposal of a posted document touched
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Debits != Credits
                | POSTING_PRECONDITION        | Not routed / incomplete proposal
----------------|-----------------------------|-----------------------------------------
Inventory       | INVALID_WAREHOUSE_CODE      | Code is not a short uppercase token
                | UNKNOWN_WAREHOUSE           | Code not in the warehouse registry
                | INVALID_MOVEMENT            | Bad quantity / endpoints / status
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_POSTING          | Another poster linked the document first
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an immutable record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConcurrentPostingError is not a failure: the document already carries
   links.  Re-read them and return them (DocumentPipeline.post answers
   PostingStatus.ALREADY_POSTED).

2. Extraction inconsistencies are NOT exceptions.  They are recorded as
   ``ValidationError`` values on the document (see domain/dtos.py).

3. ImmutabilityViolationError indicates a programming error or tampering.
   Log and investigate.

===============================================================================
"""


class DocpostError(Exception):
    """
    Base exception for all docpost kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "DOCPOST_ERROR"


# Document-related exceptions


class DocumentError(DocpostError):
    """Base exception for document lifecycle errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class InvalidTransitionError(DocumentError):
    """Requested operation is not allowed from the document's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, document_id: str, current: str, target: str, reason: str = ""):
        self.document_id = document_id
        self.current = current
        self.target = target
        self.reason = reason
        message = f"Document {document_id} cannot move from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DocumentInReviewError(DocumentError):
    """Document is in NEEDS_REVIEW and requires an explicit release."""

    code: str = "DOCUMENT_IN_REVIEW"

    def __init__(self, document_id: str, reason: str | None = None):
        self.document_id = document_id
        self.review_reason = reason
        super().__init__(
            f"Document {document_id} needs review"
            + (f": {reason}" if reason else "")
        )


# Proposal-related exceptions


class ProposalError(DocpostError):
    """Base exception for proposal errors."""

    code: str = "PROPOSAL_ERROR"


class ProposalImmutableError(ProposalError):
    """The proposal of a posted document cannot be rebuilt."""

    code: str = "PROPOSAL_IMMUTABLE"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Proposal of posted document {document_id} is immutable")


# Posting-related exceptions


class PostingError(DocpostError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class PostingPreconditionError(PostingError):
    """Document is not in a postable state."""

    code: str = "POSTING_PRECONDITION"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Document {document_id} cannot be posted: {reason}")


# Inventory-related exceptions


class InventoryError(DocpostError):
    """Base exception for inventory ledger errors."""

    code: str = "INVENTORY_ERROR"


class InvalidWarehouseCodeError(InventoryError):
    """Warehouse code is not a short uppercase alphanumeric token."""

    code: str = "INVALID_WAREHOUSE_CODE"

    def __init__(self, warehouse_code: str):
        self.warehouse_code = warehouse_code
        super().__init__(f"Invalid warehouse code: {warehouse_code!r}")


class UnknownWarehouseError(InventoryError):
    """Warehouse code is not registered or is inactive."""

    code: str = "UNKNOWN_WAREHOUSE"

    def __init__(self, warehouse_code: str):
        self.warehouse_code = warehouse_code
        super().__init__(f"Unknown or inactive warehouse: {warehouse_code}")


class InvalidMovementError(InventoryError):
    """Stock movement is malformed or in the wrong status."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str, move_id: str | None = None, item_sku: str | None = None):
        self.reason = reason
        self.move_id = move_id
        self.item_sku = item_sku
        super().__init__(f"Invalid stock movement: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(DocpostError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentPostingError(ConcurrencyError):
    """Another transaction linked ledger artifacts to the document first."""

    code: str = "CONCURRENT_POSTING"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(
            f"Document {document_id} was linked by a concurrent posting"
        )


# Immutability-related exceptions


class ImmutabilityError(DocpostError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    JournalEntry and JournalLine are immutable from creation; StockMove once
    posted; a Document's proposal and links once the document is POSTED.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
