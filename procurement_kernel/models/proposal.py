"""
Module: procurement_kernel.models.proposal
Responsibility: ORM persistence for contractor proposals and their priced
    line items.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - At most one non-rejected proposal per (quote_request_id, contractor_id)
      (uq_active_proposal, a partial unique index on both backends).
    - revision_count only grows; ProposalService enforces the configured cap.
    - Line items of an Accepted proposal are never modified.

Failure modes:
    - IntegrityError on a second active proposal if the service-level check
      was bypassed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.dtos import ProposalInfo, ProposalItem, ProposalStatus

_ACTIVE_PROPOSAL = text("status <> 'rejected'")


class Proposal(TrackedBase):
    """
    A contractor's priced bid against a quote request.

    Guarantees:
        - total_price > 0 and duration_days > 0 (validated by the service).
        - items are ordered by line_number.
    """

    __tablename__ = "proposals"

    __table_args__ = (
        Index("idx_proposal_quote_request", "quote_request_id"),
        Index("idx_proposal_contractor", "contractor_id"),
        Index(
            "uq_active_proposal",
            "quote_request_id",
            "contractor_id",
            unique=True,
            sqlite_where=_ACTIVE_PROPOSAL,
            postgresql_where=_ACTIVE_PROPOSAL,
        ),
    )

    quote_request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quote_requests.id"),
        nullable=False,
    )

    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    terms_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    source_artifact: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="File name of the spreadsheet the proposal was imported from, if any",
    )

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ProposalStatus.SUBMITTED.value,
    )

    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resubmitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list[ProposalLineItem]] = relationship(
        back_populates="proposal",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProposalLineItem.line_number",
    )

    def to_dto(self) -> ProposalInfo:
        return ProposalInfo(
            id=self.id,
            quote_request_id=self.quote_request_id,
            contractor_id=self.contractor_id,
            total_price=self.total_price,
            currency=self.currency,
            duration_days=self.duration_days,
            status=ProposalStatus(self.status),
            items=tuple(i.to_dto() for i in self.items),
            terms_summary=self.terms_summary,
            source_artifact=self.source_artifact,
            revision_count=self.revision_count,
            submitted_at=self.submitted_at,
            resubmitted_at=self.resubmitted_at,
        )

    def __repr__(self) -> str:
        return f"<Proposal {self.id} ({self.status}) {self.total_price} {self.currency}>"


class ProposalLineItem(Base):
    """One priced line of a proposal."""

    __tablename__ = "proposal_line_items"

    __table_args__ = (
        UniqueConstraint("proposal_id", "line_number", name="uq_proposal_line"),
    )

    proposal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("proposals.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    price: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    proposal: Mapped[Proposal] = relationship(back_populates="items")

    def to_dto(self) -> ProposalItem:
        return ProposalItem(name=self.name, price=self.price, notes=self.notes)
