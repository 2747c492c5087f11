"""
Domain DTOs (``procurement_kernel.domain.dtos``).

Responsibility
--------------
Status enumerations and frozen data transfer objects exchanged between the
kernel services, the workflow coordinator and callers.  Services never leak
ORM instances; every public read or write returns one of these.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from procurement_kernel.domain.variance import VarianceDirection, variance_direction

# =========================================================================
# Statuses
# =========================================================================


class QuoteRequestStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVISION_REQUESTED = "revision_requested"
    RESUBMITTED = "resubmitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ContractStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SIGNATURES = "pending_signatures"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaterialRequestStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_APPROVED = "partially_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverRole(str, Enum):
    HOMEOWNER = "homeowner"
    SUPERVISOR = "supervisor"


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class SignatoryParty(str, Enum):
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    SUPERVISOR = "supervisor"


class PaymentPurpose(str, Enum):
    ESCROW = "escrow"
    COMMISSION = "commission"
    SUPERVISOR_FEE = "supervisor-fee"


# =========================================================================
# Projects and quotes
# =========================================================================


@dataclass(frozen=True)
class ProjectInfo:
    id: UUID
    title: str
    homeowner_id: UUID
    supervisor_id: UUID | None = None


@dataclass(frozen=True)
class QuoteRequestInfo:
    id: UUID
    project_id: UUID
    homeowner_id: UUID
    scope: str
    status: QuoteRequestStatus
    invitee_ids: tuple[UUID, ...] = ()
    due_date: date | None = None
    sent_at: datetime | None = None
    closed_at: datetime | None = None


# =========================================================================
# Proposals
# =========================================================================


@dataclass(frozen=True)
class ProposalItem:
    """One priced line of a proposal (also the input shape for submit/resubmit)."""

    name: str
    price: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class ProposalInfo:
    id: UUID
    quote_request_id: UUID
    contractor_id: UUID
    total_price: Decimal
    currency: str
    duration_days: int
    status: ProposalStatus
    items: tuple[ProposalItem, ...] = ()
    terms_summary: str | None = None
    source_artifact: str | None = None
    revision_count: int = 0
    submitted_at: datetime | None = None
    resubmitted_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProposalStatus.ACCEPTED, ProposalStatus.REJECTED)


# =========================================================================
# Contracts
# =========================================================================


@dataclass(frozen=True)
class ContractItem:
    line_number: int
    name: str
    price: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class SignatureInfo:
    party: SignatoryParty
    signer_id: UUID
    signature_digest: str
    signed_at: datetime


@dataclass(frozen=True)
class ContractInfo:
    id: UUID
    proposal_id: UUID
    project_id: UUID
    homeowner_id: UUID
    contractor_id: UUID
    total_price: Decimal
    currency: str
    duration_days: int
    status: ContractStatus
    commission_due: Decimal = Decimal("0")
    commission_paid: bool = False
    terms: str | None = None
    items: tuple[ContractItem, ...] = ()
    signatures: tuple[SignatureInfo, ...] = ()

    def signed_by(self, party: SignatoryParty) -> bool:
        return any(s.party == party for s in self.signatures)

    @property
    def is_fully_signed(self) -> bool:
        return self.signed_by(SignatoryParty.HOMEOWNER) and self.signed_by(
            SignatoryParty.CONTRACTOR
        )


@dataclass(frozen=True)
class SupervisorContractInfo:
    id: UUID
    project_id: UUID
    homeowner_id: UUID
    supervisor_id: UUID
    registration_fee: Decimal
    currency: str
    status: ContractStatus
    fee_paid: bool = False
    terms: str | None = None
    signatures: tuple[SignatureInfo, ...] = ()

    def signed_by(self, party: SignatoryParty) -> bool:
        return any(s.party == party for s in self.signatures)


# =========================================================================
# Escrow
# =========================================================================


@dataclass(frozen=True)
class EscrowCreditInfo:
    id: UUID
    contract_id: UUID
    amount: Decimal
    currency: str
    payment_reference: str
    credited_at: datetime


@dataclass(frozen=True)
class CreditResult:
    """
    Outcome of an escrow credit.

    ``applied`` is False when the payment reference had already been
    processed; the balance is then unchanged.
    """

    contract_id: UUID
    payment_reference: str
    applied: bool
    balance: Decimal
    currency: str


@dataclass(frozen=True)
class PaymentOutcome:
    """Outcome of handling one payment-gateway notification."""

    payment_reference: str
    purpose: PaymentPurpose | None
    succeeded: bool
    applied: bool
    contract_id: UUID | None = None
    reason: str = ""


# =========================================================================
# Materials
# =========================================================================


@dataclass(frozen=True)
class MaterialRow:
    """A parsed spreadsheet row handed over by the importer."""

    code: str
    name: str
    unit: str
    unit_price: Decimal
    contract_quantity: Decimal


@dataclass(frozen=True)
class MaterialInfo:
    id: UUID
    material_request_id: UUID
    project_id: UUID
    line_number: int
    code: str
    name: str
    unit: str
    unit_price: Decimal
    contract_quantity: Decimal
    contract_amount: Decimal
    actual_quantity: Decimal | None = None
    actual_amount: Decimal | None = None
    variance: Decimal | None = None
    variance_amount: Decimal | None = None
    paid_amount: Decimal = Decimal("0")

    @property
    def variance_direction(self) -> VarianceDirection:
        return variance_direction(self.variance)

    @property
    def payable_amount(self) -> Decimal:
        """Actual amount once recorded, the contracted amount before that."""
        return self.actual_amount if self.actual_amount is not None else self.contract_amount

    @property
    def remaining_amount(self) -> Decimal:
        return self.payable_amount - self.paid_amount


@dataclass(frozen=True)
class ApprovalRecordInfo:
    id: UUID
    material_request_id: UUID
    approver_role: ApproverRole
    approver_id: UUID
    decision: ApprovalDecision
    notes: str | None
    decided_at: datetime


@dataclass(frozen=True)
class QuantityChangeInfo:
    id: UUID
    material_id: UUID
    old_quantity: Decimal | None
    new_quantity: Decimal
    changed_by: UUID
    changed_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class MaterialPaymentInfo:
    """One payment against a material, with the running totals after it."""

    id: UUID
    material_id: UUID
    project_id: UUID
    amount: Decimal
    paid_quantity: Decimal
    paid_amount: Decimal
    remaining_quantity: Decimal
    remaining_amount: Decimal
    paid_by: UUID
    paid_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class MaterialRequestInfo:
    id: UUID
    project_id: UUID
    contractor_id: UUID
    status: MaterialRequestStatus
    homeowner_approved: bool = False
    homeowner_approved_by: UUID | None = None
    homeowner_approved_at: datetime | None = None
    supervisor_approved: bool = False
    supervisor_approved_by: UUID | None = None
    supervisor_approved_at: datetime | None = None
    rejection_reason: str | None = None
    rejected_by_role: ApproverRole | None = None
    rejected_at: datetime | None = None
    materials: tuple[MaterialInfo, ...] = field(default_factory=tuple)

    @property
    def material_count(self) -> int:
        return len(self.materials)
