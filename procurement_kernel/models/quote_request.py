"""
Module: procurement_kernel.models.quote_request
Responsibility: ORM persistence for quote requests and their invited
    contractors.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - A contractor is invited to a quote request at most once
      (uq_quote_invitee).
    - status values come from QuoteRequestStatus; transitions are validated
      by QuoteRequestService against QUOTE_REQUEST_WORKFLOW.

Failure modes:
    - IntegrityError on duplicate invitation (callers check first).
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.dtos import QuoteRequestInfo, QuoteRequestStatus


class QuoteRequest(TrackedBase):
    """
    A homeowner's solicitation for bids on a project scope.

    Guarantees:
        - status lifecycle: DRAFT -> SENT -> CLOSED, with CANCELLED reachable
          from DRAFT and SENT.
        - accepted_proposal_id is set exactly when the request is CLOSED.
    """

    __tablename__ = "quote_requests"

    __table_args__ = (
        Index("idx_quote_request_project", "project_id"),
        Index("idx_quote_request_status", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    homeowner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    scope: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=QuoteRequestStatus.DRAFT.value,
    )

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    accepted_proposal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    invitees: Mapped[list[QuoteInvitee]] = relationship(
        back_populates="quote_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QuoteInvitee.position",
    )

    @property
    def invitee_ids(self) -> tuple[UUID, ...]:
        return tuple(i.contractor_id for i in self.invitees)

    def to_dto(self) -> QuoteRequestInfo:
        return QuoteRequestInfo(
            id=self.id,
            project_id=self.project_id,
            homeowner_id=self.homeowner_id,
            scope=self.scope,
            status=QuoteRequestStatus(self.status),
            invitee_ids=self.invitee_ids,
            due_date=self.due_date,
            sent_at=self.sent_at,
            closed_at=self.closed_at,
        )

    def __repr__(self) -> str:
        return f"<QuoteRequest {self.id} ({self.status})>"


class QuoteInvitee(Base):
    """A contractor invited to bid on a quote request. Append-only."""

    __tablename__ = "quote_invitees"

    __table_args__ = (
        UniqueConstraint("quote_request_id", "contractor_id", name="uq_quote_invitee"),
    )

    quote_request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quote_requests.id"),
        nullable=False,
    )

    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # 1-based invitation order within the request.
    position: Mapped[int] = mapped_column(nullable=False)

    invited_at: Mapped[datetime] = mapped_column(nullable=False)

    quote_request: Mapped[QuoteRequest] = relationship(back_populates="invitees")
