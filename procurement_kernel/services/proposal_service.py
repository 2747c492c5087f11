"""
ProposalService -- contractor proposals and the revision cycle.

Responsibility:
    Submission, revision requests, resubmission, acceptance and rejection
    of proposals, following PROPOSAL_WORKFLOW.  Acceptance here only moves
    the proposal; contract formation and quote closing are sequenced by the
    WorkflowCoordinator inside the same transaction.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - At most one non-rejected proposal per (quote request, contractor).
    - Proposals are only submitted against Sent quote requests.
    - revision_count never exceeds the configured cap.
    - Accepted and Rejected proposals are never modified again.
    - Lock order is quote request, then proposal.

Failure modes:
    - InvalidAmountError / InvalidProposalItemError / ValidationError on
      malformed input.
    - QuoteRequestNotSentError when the parent request is not Sent.
    - DuplicateProposalError when the contractor already has an active
      proposal.
    - ForbiddenError, InvalidTransitionError, RevisionLimitExceededError.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.capabilities import Actor, Relation, authorize
from procurement_kernel.domain.dtos import ProposalInfo, ProposalItem, ProposalStatus
from procurement_kernel.domain.lifecycles import PROPOSAL_WORKFLOW
from procurement_kernel.domain.values import to_decimal
from procurement_kernel.domain.workflow import require_transition
from procurement_kernel.exceptions import (
    DuplicateProposalError,
    InvalidAmountError,
    InvalidProposalItemError,
    ProposalNotFoundError,
    QuoteRequestNotSentError,
    RevisionLimitExceededError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.proposal import Proposal, ProposalLineItem
from procurement_kernel.models.quote_request import QuoteRequest
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.quote_request_service import (
    QuoteRequestService,
    quote_relations,
)

logger = get_logger("services.proposal")


def proposal_relations(proposal: Proposal, quote: QuoteRequest) -> dict[Relation, UUID]:
    return {
        Relation.QUOTE_OWNER: quote.homeowner_id,
        Relation.PROPOSAL_CONTRACTOR: proposal.contractor_id,
    }


def _validate_terms(
    total_price: Decimal | int | str,
    duration_days: int,
    items: Sequence[ProposalItem],
) -> tuple[Decimal, list[ProposalItem]]:
    try:
        total = to_decimal(total_price, "total_price")
    except ValueError as e:
        raise InvalidAmountError("total_price", str(total_price), str(e)) from e
    if total <= 0:
        raise InvalidAmountError("total_price", str(total), "must be positive")

    if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days <= 0:
        raise ValidationError(f"duration_days must be a positive integer, got {duration_days!r}")

    cleaned: list[ProposalItem] = []
    for index, item in enumerate(items):
        if not item.name or not item.name.strip():
            raise InvalidProposalItemError(index, "name must not be empty")
        try:
            price = to_decimal(item.price, "price")
        except ValueError as e:
            raise InvalidProposalItemError(index, str(e)) from e
        if price < 0:
            raise InvalidProposalItemError(index, f"price {price} is negative")
        cleaned.append(ProposalItem(name=item.name.strip(), price=price, notes=item.notes))
    return total, cleaned


class ProposalService(BaseService[Proposal]):
    """Proposal lifecycle with a bounded revision cycle."""

    model = Proposal
    not_found_error = ProposalNotFoundError

    def __init__(
        self,
        session,
        clock=None,
        currency: str = "VND",
        max_revision_cycles: int | None = 5,
    ):
        super().__init__(session, clock)
        self.currency = currency
        self.max_revision_cycles = max_revision_cycles
        self._quotes = QuoteRequestService(session, self.clock)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        actor: Actor,
        quote_request_id: UUID,
        total_price: Decimal | int | str,
        duration_days: int,
        items: Sequence[ProposalItem] = (),
        terms_summary: str | None = None,
        source_artifact: str | None = None,
    ) -> ProposalInfo:
        total, cleaned = _validate_terms(total_price, duration_days, items)

        quote = self._quotes.lock(quote_request_id)
        authorize(actor, "Proposal", "submit", quote_relations(quote))
        if not self._quotes.is_sent(quote):
            raise QuoteRequestNotSentError(str(quote.id), quote.status)

        existing = self.session.execute(
            select(Proposal)
            .where(Proposal.quote_request_id == quote.id)
            .where(Proposal.contractor_id == actor.actor_id)
            .where(Proposal.status != ProposalStatus.REJECTED.value)
        ).scalars().first()
        if existing is not None:
            raise DuplicateProposalError(str(quote.id), str(actor.actor_id), str(existing.id))

        transition = require_transition(
            PROPOSAL_WORKFLOW, "new", PROPOSAL_WORKFLOW.initial_state, "submit",
        )
        proposal = Proposal(
            quote_request_id=quote.id,
            contractor_id=actor.actor_id,
            total_price=total,
            currency=self.currency,
            duration_days=duration_days,
            terms_summary=terms_summary,
            source_artifact=source_artifact,
            status=transition.to_state,
            revision_count=0,
            submitted_at=self.clock.now(),
            created_by_id=actor.actor_id,
        )
        proposal.items = self._line_items(cleaned)
        self.session.add(proposal)
        self.session.flush()

        self._record_transition(
            "Proposal", proposal.id, "submit",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "proposal_submitted",
            extra={
                "proposal_id": str(proposal.id),
                "quote_request_id": str(quote.id),
                "contractor_id": str(actor.actor_id),
                "total_price": str(total),
                "item_count": len(cleaned),
            },
        )
        return proposal.to_dto()

    # ------------------------------------------------------------------
    # Revision cycle
    # ------------------------------------------------------------------

    def request_revision(self, actor: Actor, proposal_id: UUID) -> ProposalInfo:
        quote, proposal = self._lock_with_quote(proposal_id)
        authorize(actor, "Proposal", "request_revision", quote_relations(quote))
        transition = require_transition(
            PROPOSAL_WORKFLOW, proposal.id, proposal.status, "request_revision",
        )
        if (
            self.max_revision_cycles is not None
            and proposal.revision_count >= self.max_revision_cycles
        ):
            raise RevisionLimitExceededError(
                str(proposal.id), proposal.status,
                proposal.revision_count, self.max_revision_cycles,
            )

        proposal.status = transition.to_state
        proposal.revision_count += 1
        proposal.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "Proposal", proposal.id, "request_revision",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "proposal_revision_requested",
            extra={
                "proposal_id": str(proposal.id),
                "revision_count": proposal.revision_count,
            },
        )
        return proposal.to_dto()

    def resubmit(
        self,
        actor: Actor,
        proposal_id: UUID,
        items: Sequence[ProposalItem],
        total_price: Decimal | int | str,
        duration_days: int | None = None,
        terms_summary: str | None = None,
    ) -> ProposalInfo:
        quote, proposal = self._lock_with_quote(proposal_id)
        authorize(actor, "Proposal", "resubmit", proposal_relations(proposal, quote))
        transition = require_transition(
            PROPOSAL_WORKFLOW, proposal.id, proposal.status, "resubmit",
        )
        total, cleaned = _validate_terms(
            total_price,
            proposal.duration_days if duration_days is None else duration_days,
            items,
        )

        # Flush the deletes before re-inserting the same line numbers.
        proposal.items.clear()
        self.session.flush()
        proposal.items = self._line_items(cleaned)

        proposal.total_price = total
        if duration_days is not None:
            proposal.duration_days = duration_days
        if terms_summary is not None:
            proposal.terms_summary = terms_summary
        proposal.status = transition.to_state
        proposal.resubmitted_at = self.clock.now()
        proposal.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "Proposal", proposal.id, "resubmit",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "proposal_resubmitted",
            extra={
                "proposal_id": str(proposal.id),
                "total_price": str(total),
                "revision_count": proposal.revision_count,
            },
        )
        return proposal.to_dto()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def accept(self, actor: Actor, proposal_id: UUID) -> ProposalInfo:
        """
        Mark a proposal Accepted.

        Postconditions:
            The proposal is Accepted in the current transaction.  The caller
            must create the contract and close the quote request before
            committing.
        """
        quote, proposal = self._lock_with_quote(proposal_id)
        authorize(actor, "Proposal", "accept", quote_relations(quote))
        transition = require_transition(PROPOSAL_WORKFLOW, proposal.id, proposal.status, "accept")
        if not self._quotes.is_sent(quote):
            raise QuoteRequestNotSentError(str(quote.id), quote.status)

        proposal.status = transition.to_state
        proposal.decided_at = self.clock.now()
        proposal.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "Proposal", proposal.id, "accept",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "proposal_accepted",
            extra={
                "proposal_id": str(proposal.id),
                "quote_request_id": str(quote.id),
                "total_price": str(proposal.total_price),
            },
        )
        return proposal.to_dto()

    def reject(self, actor: Actor, proposal_id: UUID, reason: str | None = None) -> ProposalInfo:
        quote, proposal = self._lock_with_quote(proposal_id)
        authorize(actor, "Proposal", "reject", proposal_relations(proposal, quote))
        transition = require_transition(PROPOSAL_WORKFLOW, proposal.id, proposal.status, "reject")

        proposal.status = transition.to_state
        proposal.decided_at = self.clock.now()
        proposal.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "Proposal", proposal.id, "reject",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "proposal_rejected",
            extra={"proposal_id": str(proposal.id), "reason": reason},
        )
        return proposal.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, proposal_id: UUID) -> ProposalInfo:
        return self._load(proposal_id).to_dto()

    def get_model(self, proposal_id: UUID) -> Proposal:
        return self._load(proposal_id)

    def list_by_quote(self, quote_request_id: UUID) -> list[ProposalInfo]:
        self._quotes.get_model(quote_request_id)
        proposals = self.session.execute(
            select(Proposal)
            .where(Proposal.quote_request_id == quote_request_id)
            .order_by(Proposal.submitted_at, Proposal.id)
        ).scalars().all()
        return [p.to_dto() for p in proposals]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_with_quote(self, proposal_id: UUID) -> tuple[QuoteRequest, Proposal]:
        quote_request_id = self._load(proposal_id).quote_request_id
        quote = self._quotes.lock(quote_request_id)
        return quote, self._load_for_update(proposal_id)

    @staticmethod
    def _line_items(items: Sequence[ProposalItem]) -> list[ProposalLineItem]:
        return [
            ProposalLineItem(line_number=n, name=i.name, price=i.price, notes=i.notes)
            for n, i in enumerate(items, start=1)
        ]
