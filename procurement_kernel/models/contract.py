"""
Module: procurement_kernel.models.contract
Responsibility: ORM persistence for homeowner/contractor contracts formed
    from accepted proposals, their copied line items and party signatures,
    and for homeowner/supervisor registration contracts.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - One contract per proposal (uq_contract_proposal).
    - One signature per party per contract (uq_contract_signature,
      uq_supervisor_contract_signature).
    - Contract line items are a copy taken at formation; later proposal
      edits never reach them.
    - The contractor signs only once commission_paid is set; the homeowner
      signs a supervisor contract only once fee_paid is set (service layer).
    - status becomes ACTIVE only through both signatures (service layer).

Failure modes:
    - IntegrityError on a second contract for the same proposal; the service
      checks first and raises ContractAlreadyExistsError.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.dtos import (
    ContractInfo,
    ContractItem,
    ContractStatus,
    SignatoryParty,
    SignatureInfo,
    SupervisorContractInfo,
)


class Contract(TrackedBase):
    """
    Binding homeowner/contractor agreement derived from an accepted proposal.

    Guarantees:
        - proposal_id is unique.
        - total_price, duration_days and items mirror the proposal at the
          moment of acceptance.
        - status lifecycle: PENDING_SIGNATURES -> ACTIVE -> COMPLETED, with
          CANCELLED reachable from any non-terminal status.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        UniqueConstraint("proposal_id", name="uq_contract_proposal"),
        Index("idx_contract_project", "project_id"),
        Index("idx_contract_status", "status"),
    )

    proposal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("proposals.id"),
        nullable=False,
    )

    quote_request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quote_requests.id"),
        nullable=False,
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    homeowner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ContractStatus.PENDING_SIGNATURES.value,
    )

    commission_due: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
        doc="Platform commission the contractor pays before signing",
    )
    commission_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    commission_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    commission_payment_reference: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )

    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[ContractLineItem]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContractLineItem.line_number",
    )

    signatures: Mapped[list[ContractSignature]] = relationship(
        back_populates="contract",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ContractSignature.signed_at",
    )

    def signature_for(self, party: SignatoryParty) -> ContractSignature | None:
        for sig in self.signatures:
            if sig.party == party.value:
                return sig
        return None

    def to_dto(self) -> ContractInfo:
        return ContractInfo(
            id=self.id,
            proposal_id=self.proposal_id,
            project_id=self.project_id,
            homeowner_id=self.homeowner_id,
            contractor_id=self.contractor_id,
            total_price=self.total_price,
            currency=self.currency,
            duration_days=self.duration_days,
            status=ContractStatus(self.status),
            commission_due=self.commission_due,
            commission_paid=self.commission_paid,
            terms=self.terms,
            items=tuple(i.to_dto() for i in self.items),
            signatures=tuple(s.to_dto() for s in self.signatures),
        )

    def __repr__(self) -> str:
        return f"<Contract {self.id} ({self.status}) proposal={self.proposal_id}>"


class ContractLineItem(Base):
    """Line item copied from the accepted proposal."""

    __tablename__ = "contract_line_items"

    __table_args__ = (
        UniqueConstraint("contract_id", "line_number", name="uq_contract_line"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    contract: Mapped[Contract] = relationship(back_populates="items")

    def to_dto(self) -> ContractItem:
        return ContractItem(
            line_number=self.line_number,
            name=self.name,
            price=self.price,
            notes=self.notes,
        )


class ContractSignature(Base):
    """A party's signature on a contract. Append-only."""

    __tablename__ = "contract_signatures"

    __table_args__ = (
        UniqueConstraint("contract_id", "party", name="uq_contract_signature"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    party: Mapped[str] = mapped_column(String(20), nullable=False)
    signer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    signature_digest: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 of the signature payload; the image itself is stored elsewhere",
    )

    signed_at: Mapped[datetime] = mapped_column(nullable=False)

    contract: Mapped[Contract] = relationship(back_populates="signatures")

    def to_dto(self) -> SignatureInfo:
        return SignatureInfo(
            party=SignatoryParty(self.party),
            signer_id=self.signer_id,
            signature_digest=self.signature_digest,
            signed_at=self.signed_at,
        )


class SupervisorContract(TrackedBase):
    """
    Homeowner/supervisor registration agreement for a project.

    Guarantees:
        - created in PENDING_SIGNATURES; ACTIVE only through both signatures.
        - fee_paid is set once by a successful registration-fee payment.
    """

    __tablename__ = "supervisor_contracts"

    __table_args__ = (
        Index("idx_supervisor_contract_project", "project_id"),
        Index("idx_supervisor_contract_supervisor", "supervisor_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    homeowner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    supervisor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    registration_fee: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ContractStatus.PENDING_SIGNATURES.value,
    )

    fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fee_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    fee_payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    signatures: Mapped[list[SupervisorContractSignature]] = relationship(
        back_populates="supervisor_contract",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SupervisorContractSignature.signed_at",
    )

    def signature_for(self, party: SignatoryParty) -> SupervisorContractSignature | None:
        for sig in self.signatures:
            if sig.party == party.value:
                return sig
        return None

    def to_dto(self) -> SupervisorContractInfo:
        return SupervisorContractInfo(
            id=self.id,
            project_id=self.project_id,
            homeowner_id=self.homeowner_id,
            supervisor_id=self.supervisor_id,
            registration_fee=self.registration_fee,
            currency=self.currency,
            status=ContractStatus(self.status),
            fee_paid=self.fee_paid,
            terms=self.terms,
            signatures=tuple(s.to_dto() for s in self.signatures),
        )

    def __repr__(self) -> str:
        return f"<SupervisorContract {self.id} ({self.status})>"


class SupervisorContractSignature(Base):
    """A party's signature on a supervisor contract. Append-only."""

    __tablename__ = "supervisor_contract_signatures"

    __table_args__ = (
        UniqueConstraint(
            "supervisor_contract_id", "party", name="uq_supervisor_contract_signature",
        ),
    )

    supervisor_contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("supervisor_contracts.id"),
        nullable=False,
    )

    party: Mapped[str] = mapped_column(String(20), nullable=False)
    signer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    signature_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    signed_at: Mapped[datetime] = mapped_column(nullable=False)

    supervisor_contract: Mapped[SupervisorContract] = relationship(
        back_populates="signatures",
    )

    def to_dto(self) -> SignatureInfo:
        return SignatureInfo(
            party=SignatoryParty(self.party),
            signer_id=self.signer_id,
            signature_digest=self.signature_digest,
            signed_at=self.signed_at,
        )
