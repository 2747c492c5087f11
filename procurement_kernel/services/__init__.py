"""Kernel services -- flush-only, one per aggregate."""

from procurement_kernel.services.contract_service import (
    ContractService,
    SupervisorContractService,
)
from procurement_kernel.services.escrow_service import EscrowService
from procurement_kernel.services.material_request_service import MaterialRequestService
from procurement_kernel.services.payment_ledger_service import PaymentLedgerService
from procurement_kernel.services.project_service import ProjectService
from procurement_kernel.services.proposal_service import ProposalService
from procurement_kernel.services.quote_request_service import QuoteRequestService

__all__ = [
    "ContractService",
    "SupervisorContractService",
    "EscrowService",
    "MaterialRequestService",
    "PaymentLedgerService",
    "ProjectService",
    "ProposalService",
    "QuoteRequestService",
]
