"""
Lifecycle definitions.

State machines for quote requests, proposals, contracts, supervisor
contracts and material requests, declared as data.
"""

from procurement_kernel.domain.dtos import (
    ContractStatus,
    MaterialRequestStatus,
    ProposalStatus,
    QuoteRequestStatus,
)
from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PROPOSAL_ACCEPTED = Guard(
    name="proposal_accepted",
    description="A proposal on this quote request has been accepted",
)

QUOTE_REQUEST_SENT = Guard(
    name="quote_request_sent",
    description="Parent quote request is Sent",
)

REVISION_BUDGET_AVAILABLE = Guard(
    name="revision_budget_available",
    description="Proposal has revision cycles left under the configured cap",
)

BOTH_SIGNATURES_PRESENT = Guard(
    name="both_signatures_present",
    description="Both contract parties have signed",
)

BOTH_APPROVALS_PRESENT = Guard(
    name="both_approvals_present",
    description="Homeowner and supervisor have both approved",
)


# -----------------------------------------------------------------------------
# Quote Request Workflow
# -----------------------------------------------------------------------------

_Q = QuoteRequestStatus

QUOTE_REQUEST_WORKFLOW = Workflow(
    name="quote_request",
    entity_type="QuoteRequest",
    description="Homeowner solicitation lifecycle",
    initial_state=_Q.DRAFT.value,
    states=tuple(s.value for s in _Q),
    transitions=(
        Transition(_Q.DRAFT.value, _Q.DRAFT.value, action="invite"),
        Transition(_Q.SENT.value, _Q.SENT.value, action="invite"),
        Transition(_Q.DRAFT.value, _Q.SENT.value, action="send"),
        Transition(_Q.SENT.value, _Q.CLOSED.value, action="close", guard=PROPOSAL_ACCEPTED),
        Transition(_Q.DRAFT.value, _Q.CANCELLED.value, action="cancel"),
        Transition(_Q.SENT.value, _Q.CANCELLED.value, action="cancel"),
    ),
    terminal_states=(_Q.CLOSED.value, _Q.CANCELLED.value),
)


# -----------------------------------------------------------------------------
# Proposal Workflow
# -----------------------------------------------------------------------------

_P = ProposalStatus

PROPOSAL_WORKFLOW = Workflow(
    name="proposal",
    entity_type="Proposal",
    description="Contractor proposal with revision cycle",
    initial_state=_P.DRAFT.value,
    states=tuple(s.value for s in _P),
    transitions=(
        Transition(_P.DRAFT.value, _P.SUBMITTED.value, action="submit", guard=QUOTE_REQUEST_SENT),
        Transition(
            _P.SUBMITTED.value, _P.REVISION_REQUESTED.value,
            action="request_revision", guard=REVISION_BUDGET_AVAILABLE,
        ),
        Transition(
            _P.RESUBMITTED.value, _P.REVISION_REQUESTED.value,
            action="request_revision", guard=REVISION_BUDGET_AVAILABLE,
        ),
        Transition(_P.REVISION_REQUESTED.value, _P.RESUBMITTED.value, action="resubmit"),
        Transition(_P.SUBMITTED.value, _P.ACCEPTED.value, action="accept", guard=QUOTE_REQUEST_SENT),
        Transition(_P.RESUBMITTED.value, _P.ACCEPTED.value, action="accept", guard=QUOTE_REQUEST_SENT),
        Transition(_P.DRAFT.value, _P.REJECTED.value, action="reject"),
        Transition(_P.SUBMITTED.value, _P.REJECTED.value, action="reject"),
        Transition(_P.REVISION_REQUESTED.value, _P.REJECTED.value, action="reject"),
        Transition(_P.RESUBMITTED.value, _P.REJECTED.value, action="reject"),
    ),
    terminal_states=(_P.ACCEPTED.value, _P.REJECTED.value),
)


# -----------------------------------------------------------------------------
# Contract Workflows
# -----------------------------------------------------------------------------

_C = ContractStatus


def _signature_workflow(name: str, entity_type: str, description: str) -> Workflow:
    return Workflow(
        name=name,
        entity_type=entity_type,
        description=description,
        initial_state=_C.PENDING_SIGNATURES.value,
        states=tuple(s.value for s in _C),
        transitions=(
            Transition(_C.DRAFT.value, _C.PENDING_SIGNATURES.value, action="open_for_signature"),
            Transition(_C.PENDING_SIGNATURES.value, _C.PENDING_SIGNATURES.value, action="sign"),
            Transition(
                _C.PENDING_SIGNATURES.value, _C.ACTIVE.value,
                action="activate", guard=BOTH_SIGNATURES_PRESENT,
            ),
            Transition(_C.ACTIVE.value, _C.COMPLETED.value, action="complete"),
            Transition(_C.DRAFT.value, _C.CANCELLED.value, action="cancel"),
            Transition(_C.PENDING_SIGNATURES.value, _C.CANCELLED.value, action="cancel"),
            Transition(_C.ACTIVE.value, _C.CANCELLED.value, action="cancel"),
        ),
        terminal_states=(_C.COMPLETED.value, _C.CANCELLED.value),
    )


CONTRACT_WORKFLOW = _signature_workflow(
    "contract", "Contract", "Homeowner/contractor agreement signing lifecycle",
)

SUPERVISOR_CONTRACT_WORKFLOW = _signature_workflow(
    "supervisor_contract", "SupervisorContract",
    "Homeowner/supervisor registration agreement signing lifecycle",
)


# -----------------------------------------------------------------------------
# Material Request Workflow
# -----------------------------------------------------------------------------

_M = MaterialRequestStatus

MATERIAL_REQUEST_WORKFLOW = Workflow(
    name="material_request",
    entity_type="MaterialRequest",
    description="Contractor material list with dual homeowner/supervisor approval",
    initial_state=_M.PENDING.value,
    states=tuple(s.value for s in _M),
    transitions=(
        Transition(_M.PENDING.value, _M.PENDING.value, action="import_materials"),
        Transition(_M.REJECTED.value, _M.PENDING.value, action="import_materials"),
        Transition(_M.PENDING.value, _M.PENDING.value, action="clear_materials"),
        Transition(_M.REJECTED.value, _M.REJECTED.value, action="clear_materials"),
        Transition(_M.PENDING.value, _M.PARTIALLY_APPROVED.value, action="approve"),
        Transition(
            _M.PARTIALLY_APPROVED.value, _M.APPROVED.value,
            action="approve", guard=BOTH_APPROVALS_PRESENT,
        ),
        Transition(_M.PENDING.value, _M.REJECTED.value, action="reject"),
        Transition(_M.PARTIALLY_APPROVED.value, _M.REJECTED.value, action="reject"),
    ),
    # Approved has no outgoing status edges; actuals are recorded on its
    # materials without changing the request status.
    terminal_states=(_M.APPROVED.value,),
)


ALL_WORKFLOWS: tuple[Workflow, ...] = (
    QUOTE_REQUEST_WORKFLOW,
    PROPOSAL_WORKFLOW,
    CONTRACT_WORKFLOW,
    SUPERVISOR_CONTRACT_WORKFLOW,
    MATERIAL_REQUEST_WORKFLOW,
)

logger.debug(
    "lifecycle_workflows_registered",
    extra={
        "workflows": [w.name for w in ALL_WORKFLOWS],
        "transition_count": sum(len(w.transitions) for w in ALL_WORKFLOWS),
    },
)
