"""ORM models for the procurement kernel."""

from procurement_kernel.models.contract import (
    Contract,
    ContractLineItem,
    ContractSignature,
    SupervisorContract,
    SupervisorContractSignature,
)
from procurement_kernel.models.escrow import EscrowAccount, EscrowCredit, ProcessedPayment
from procurement_kernel.models.material_request import (
    Material,
    MaterialApprovalRecord,
    MaterialPayment,
    MaterialQuantityChange,
    MaterialRequest,
)
from procurement_kernel.models.project import Project
from procurement_kernel.models.proposal import Proposal, ProposalLineItem
from procurement_kernel.models.quote_request import QuoteInvitee, QuoteRequest

__all__ = [
    "Project",
    "QuoteRequest",
    "QuoteInvitee",
    "Proposal",
    "ProposalLineItem",
    "Contract",
    "ContractLineItem",
    "ContractSignature",
    "SupervisorContract",
    "SupervisorContractSignature",
    "EscrowAccount",
    "EscrowCredit",
    "ProcessedPayment",
    "MaterialRequest",
    "Material",
    "MaterialApprovalRecord",
    "MaterialPayment",
    "MaterialQuantityChange",
]
