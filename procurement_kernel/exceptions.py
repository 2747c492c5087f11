"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the engine can report is a distinct class with a static,
machine-readable ``code`` and structured attributes.  The API layer maps
codes to user-facing messages; nothing downstream parses message text.

Example:
    try:
        coordinator.accept_proposal(actor, proposal_id)
    except InvalidTransitionError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementKernelError:

    ProcurementKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyScopeError
    |   +-- InvalidAmountError
    |   +-- InvalidQuantityError
    |   +-- MissingRejectionReasonError
    |   +-- InvalidMaterialRowError
    |   +-- InvalidProposalItemError
    |
    +-- ForbiddenError
    |
    +-- InvalidTransitionError
    |   +-- RevisionLimitExceededError
    |   +-- MaterialRequestImmutableError
    |
    +-- ConflictError
    |   +-- DuplicateProposalError
    |
    +-- PreconditionFailedError
    |   +-- QuoteRequestNotSentError
    |   +-- ProposalNotAcceptedError
    |   +-- ContractAlreadyExistsError
    |   +-- MaterialRequestNotApprovedError
    |   +-- SignaturesIncompleteError
    |   +-- PaymentRequiredError
    |
    +-- NotFoundError
    |   +-- ProjectNotFoundError
    |   +-- QuoteRequestNotFoundError
    |   +-- ProposalNotFoundError
    |   +-- ContractNotFoundError
    |   +-- SupervisorContractNotFoundError
    |   +-- MaterialRequestNotFoundError
    |   +-- MaterialNotFoundError
    |
    +-- TransactionFailedError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-------------------------------------
Validation      | EMPTY_SCOPE                   | Quote request scope is blank
                | INVALID_AMOUNT                | Money amount <= 0 where disallowed
                | INVALID_QUANTITY              | Negative or malformed quantity
                | MISSING_REJECTION_REASON      | Reject without a reason
                | INVALID_MATERIAL_ROW          | Imported row fails validation
                | INVALID_PROPOSAL_ITEM         | Proposal line item fails validation
----------------|-------------------------------|-------------------------------------
Forbidden       | FORBIDDEN                     | Actor lacks role or relation
----------------|-------------------------------|-------------------------------------
Transition      | INVALID_TRANSITION            | Action not reachable from status
                | REVISION_LIMIT_EXCEEDED       | Revision cap reached
                | MATERIAL_REQUEST_IMMUTABLE    | Mutating an Approved request
----------------|-------------------------------|-------------------------------------
Conflict        | DUPLICATE_PROPOSAL            | Active proposal already exists
----------------|-------------------------------|-------------------------------------
Precondition    | QUOTE_REQUEST_NOT_SENT        | Proposal against a non-Sent quote
                | PROPOSAL_NOT_ACCEPTED         | Contract from non-Accepted proposal
                | CONTRACT_ALREADY_EXISTS       | Second contract for a proposal
                | MATERIAL_REQUEST_NOT_APPROVED | Actuals on a non-Approved request
                | SIGNATURES_INCOMPLETE         | Activation without both signatures
                | PAYMENT_REQUIRED              | Signing before the party's payment
----------------|-------------------------------|-------------------------------------
Not found       | *_NOT_FOUND                   | Entity id does not exist
----------------|-------------------------------|-------------------------------------
Transaction     | TRANSACTION_FAILED            | Multi-entity unit rolled back
----------------|-------------------------------|-------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT      | Concurrent modification detected

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Duplicate payment references are NOT errors.  ``EscrowService.credit``
   returns a ``CreditResult`` with ``applied=False``.

2. ``TransactionFailedError`` guarantees nothing from the failed unit was
   persisted.  ``cause_code`` carries the code of the underlying failure
   when it was a kernel error.

===============================================================================
"""


class ProcurementKernelError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "PROCUREMENT_KERNEL_ERROR"


# Validation


class ValidationError(ProcurementKernelError):
    """Malformed input."""

    code: str = "VALIDATION_ERROR"


class EmptyScopeError(ValidationError):
    """Quote request scope is empty or whitespace."""

    code: str = "EMPTY_SCOPE"

    def __init__(self):
        super().__init__("Quote request scope must not be empty")


class InvalidAmountError(ValidationError):
    """A monetary amount is outside its allowed range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field_name: str, amount: str, reason: str):
        self.field_name = field_name
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid {field_name} {amount}: {reason}")


class InvalidQuantityError(ValidationError):
    """A quantity is negative or otherwise unusable."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field_name: str, quantity: str, reason: str):
        self.field_name = field_name
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid {field_name} {quantity}: {reason}")


class MissingRejectionReasonError(ValidationError):
    """Rejection requires a non-empty reason."""

    code: str = "MISSING_REJECTION_REASON"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Rejection of {entity_id} requires a reason")


class InvalidMaterialRowError(ValidationError):
    """An imported material row failed validation."""

    code: str = "INVALID_MATERIAL_ROW"

    def __init__(self, row_index: int, reason: str):
        self.row_index = row_index
        self.reason = reason
        super().__init__(f"Material row {row_index} is invalid: {reason}")


class InvalidProposalItemError(ValidationError):
    """A proposal line item failed validation."""

    code: str = "INVALID_PROPOSAL_ITEM"

    def __init__(self, item_index: int, reason: str):
        self.item_index = item_index
        self.reason = reason
        super().__init__(f"Proposal item {item_index} is invalid: {reason}")


# Authorization


class ForbiddenError(ProcurementKernelError):
    """Actor lacks the role or relation required for the action."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, role: str, action: str, entity_type: str, reason: str):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} ({role}) may not {action} {entity_type}: {reason}"
        )


# Transitions


class InvalidTransitionError(ProcurementKernelError):
    """Requested transition is not reachable from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current_status: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        )


class RevisionLimitExceededError(InvalidTransitionError):
    """The proposal has used up its allowed revision cycles."""

    code: str = "REVISION_LIMIT_EXCEEDED"

    def __init__(self, proposal_id: str, current_status: str, revision_count: int, limit: int):
        self.revision_count = revision_count
        self.limit = limit
        super().__init__("Proposal", proposal_id, current_status, "request_revision")
        self.args = (
            f"Proposal {proposal_id} reached the revision limit "
            f"({revision_count}/{limit})",
        )


class MaterialRequestImmutableError(InvalidTransitionError):
    """Approved material requests cannot be modified."""

    code: str = "MATERIAL_REQUEST_IMMUTABLE"

    def __init__(self, request_id: str, current_status: str, action: str):
        super().__init__("MaterialRequest", request_id, current_status, action)


# Conflicts


class ConflictError(ProcurementKernelError):
    """Request conflicts with existing state."""

    code: str = "CONFLICT"


class DuplicateProposalError(ConflictError):
    """Contractor already has a non-rejected proposal for the quote."""

    code: str = "DUPLICATE_PROPOSAL"

    def __init__(self, quote_request_id: str, contractor_id: str, existing_proposal_id: str):
        self.quote_request_id = quote_request_id
        self.contractor_id = contractor_id
        self.existing_proposal_id = existing_proposal_id
        super().__init__(
            f"Contractor {contractor_id} already has proposal "
            f"{existing_proposal_id} for quote request {quote_request_id}"
        )


# Preconditions


class PreconditionFailedError(ProcurementKernelError):
    """A dependent entity is not in the required state."""

    code: str = "PRECONDITION_FAILED"


class QuoteRequestNotSentError(PreconditionFailedError):
    """Quote request must be Sent for this operation."""

    code: str = "QUOTE_REQUEST_NOT_SENT"

    def __init__(self, quote_request_id: str, current_status: str):
        self.quote_request_id = quote_request_id
        self.current_status = current_status
        super().__init__(
            f"Quote request {quote_request_id} is {current_status}, expected sent"
        )


class ProposalNotAcceptedError(PreconditionFailedError):
    """Contracts can only be formed from Accepted proposals."""

    code: str = "PROPOSAL_NOT_ACCEPTED"

    def __init__(self, proposal_id: str, current_status: str):
        self.proposal_id = proposal_id
        self.current_status = current_status
        super().__init__(
            f"Proposal {proposal_id} is {current_status}, expected accepted"
        )


class ContractAlreadyExistsError(PreconditionFailedError):
    """A proposal can yield at most one contract."""

    code: str = "CONTRACT_ALREADY_EXISTS"

    def __init__(self, proposal_id: str, contract_id: str):
        self.proposal_id = proposal_id
        self.contract_id = contract_id
        super().__init__(
            f"Proposal {proposal_id} already has contract {contract_id}"
        )


class MaterialRequestNotApprovedError(PreconditionFailedError):
    """Actual quantities are only recorded on Approved requests."""

    code: str = "MATERIAL_REQUEST_NOT_APPROVED"

    def __init__(self, request_id: str, current_status: str):
        self.request_id = request_id
        self.current_status = current_status
        super().__init__(
            f"Material request {request_id} is {current_status}, expected approved"
        )


class SignaturesIncompleteError(PreconditionFailedError):
    """A contract becomes Active only through both signatures."""

    code: str = "SIGNATURES_INCOMPLETE"

    def __init__(self, contract_id: str, missing_parties: list[str]):
        self.contract_id = contract_id
        self.missing_parties = missing_parties
        super().__init__(
            f"Contract {contract_id} is missing signatures: {', '.join(missing_parties)}"
        )


class PaymentRequiredError(PreconditionFailedError):
    """A party must settle its payment before signing."""

    code: str = "PAYMENT_REQUIRED"

    def __init__(self, contract_id: str, party: str, purpose: str, amount_due: str):
        self.contract_id = contract_id
        self.party = party
        self.purpose = purpose
        self.amount_due = amount_due
        super().__init__(
            f"Contract {contract_id}: {party} must pay the {purpose} ({amount_due}) before signing"
        )


# Not found


class NotFoundError(ProcurementKernelError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"
    entity_type: str = "Project"


class QuoteRequestNotFoundError(NotFoundError):
    code: str = "QUOTE_REQUEST_NOT_FOUND"
    entity_type: str = "QuoteRequest"


class ProposalNotFoundError(NotFoundError):
    code: str = "PROPOSAL_NOT_FOUND"
    entity_type: str = "Proposal"


class ContractNotFoundError(NotFoundError):
    code: str = "CONTRACT_NOT_FOUND"
    entity_type: str = "Contract"


class SupervisorContractNotFoundError(NotFoundError):
    code: str = "SUPERVISOR_CONTRACT_NOT_FOUND"
    entity_type: str = "SupervisorContract"


class MaterialRequestNotFoundError(NotFoundError):
    code: str = "MATERIAL_REQUEST_NOT_FOUND"
    entity_type: str = "MaterialRequest"


class MaterialNotFoundError(NotFoundError):
    code: str = "MATERIAL_NOT_FOUND"
    entity_type: str = "Material"


# Transactions


class TransactionFailedError(ProcurementKernelError):
    """
    A multi-entity unit failed and was rolled back in full.

    Raised by the coordinator; nothing from the unit was persisted.
    """

    code: str = "TRANSACTION_FAILED"

    def __init__(self, operation: str, entity_id: str, reason: str, cause_code: str | None = None):
        self.operation = operation
        self.entity_id = entity_id
        self.reason = reason
        self.cause_code = cause_code
        super().__init__(f"{operation} on {entity_id} failed and was rolled back: {reason}")


# Concurrency


class ConcurrencyError(ProcurementKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Concurrent modification detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}"
        )
