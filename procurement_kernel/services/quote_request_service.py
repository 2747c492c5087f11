"""
QuoteRequestService -- quote request lifecycle.

Responsibility:
    Creates quote requests, manages the invitee set and drives the
    Draft -> Sent -> {Closed, Cancelled} lifecycle declared in
    QUOTE_REQUEST_WORKFLOW.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Scope is non-empty.
    - The invitee set is append-only and each contractor appears once;
      re-inviting is a no-op.
    - close() is reachable only from Sent and records the accepted proposal.

Failure modes:
    - EmptyScopeError on blank scope.
    - ProjectNotFoundError / QuoteRequestNotFoundError on unknown ids.
    - ForbiddenError when the actor does not own the project/request.
    - InvalidTransitionError when the action is not reachable.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from procurement_kernel.domain.capabilities import Actor, Relation, authorize
from procurement_kernel.domain.dtos import QuoteRequestInfo, QuoteRequestStatus
from procurement_kernel.domain.lifecycles import QUOTE_REQUEST_WORKFLOW
from procurement_kernel.domain.workflow import require_transition
from procurement_kernel.exceptions import EmptyScopeError, QuoteRequestNotFoundError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.project import Project
from procurement_kernel.models.quote_request import QuoteInvitee, QuoteRequest
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.project_service import ProjectService, project_relations

logger = get_logger("services.quote_request")


def quote_relations(quote: QuoteRequest) -> dict[Relation, UUID | tuple[UUID, ...]]:
    return {
        Relation.QUOTE_OWNER: quote.homeowner_id,
        Relation.QUOTE_INVITEE: quote.invitee_ids,
    }


class QuoteRequestService(BaseService[QuoteRequest]):
    """Quote request lifecycle."""

    model = QuoteRequest
    not_found_error = QuoteRequestNotFoundError

    def create(
        self,
        actor: Actor,
        project_id: UUID,
        scope: str,
        due_date: date | None = None,
        invitee_ids: Iterable[UUID] = (),
    ) -> QuoteRequestInfo:
        if scope is None or not scope.strip():
            raise EmptyScopeError()

        project: Project = ProjectService(self.session, self.clock).get_model(project_id)
        authorize(actor, "QuoteRequest", "create", project_relations(project))

        quote = QuoteRequest(
            project_id=project_id,
            homeowner_id=project.homeowner_id,
            scope=scope.strip(),
            status=QUOTE_REQUEST_WORKFLOW.initial_state,
            due_date=due_date,
            created_by_id=actor.actor_id,
        )
        now = self.clock.now()
        seen: set[UUID] = set()
        for contractor_id in invitee_ids:
            if contractor_id in seen:
                continue
            seen.add(contractor_id)
            quote.invitees.append(
                QuoteInvitee(
                    contractor_id=contractor_id,
                    position=len(seen),
                    invited_at=now,
                )
            )
        self.session.add(quote)
        self.session.flush()

        logger.info(
            "quote_request_created",
            extra={
                "quote_request_id": str(quote.id),
                "project_id": str(project_id),
                "invitee_count": len(seen),
            },
        )
        return quote.to_dto()

    def invite(self, actor: Actor, quote_request_id: UUID, contractor_id: UUID) -> QuoteRequestInfo:
        """Add a contractor to the invitee set. Inviting twice is a no-op."""
        quote = self._load_for_update(quote_request_id)
        authorize(actor, "QuoteRequest", "invite", quote_relations(quote))
        require_transition(QUOTE_REQUEST_WORKFLOW, quote.id, quote.status, "invite")

        if contractor_id in quote.invitee_ids:
            logger.debug(
                "quote_request_invite_noop",
                extra={
                    "quote_request_id": str(quote.id),
                    "contractor_id": str(contractor_id),
                },
            )
            return quote.to_dto()

        quote.invitees.append(
            QuoteInvitee(
                contractor_id=contractor_id,
                position=len(quote.invitees) + 1,
                invited_at=self.clock.now(),
            )
        )
        quote.updated_by_id = actor.actor_id
        self.session.flush()

        logger.info(
            "contractor_invited",
            extra={
                "quote_request_id": str(quote.id),
                "contractor_id": str(contractor_id),
            },
        )
        return quote.to_dto()

    def send(self, actor: Actor, quote_request_id: UUID) -> QuoteRequestInfo:
        quote = self._load_for_update(quote_request_id)
        authorize(actor, "QuoteRequest", "send", quote_relations(quote))
        transition = require_transition(QUOTE_REQUEST_WORKFLOW, quote.id, quote.status, "send")

        quote.status = transition.to_state
        quote.sent_at = self.clock.now()
        quote.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "QuoteRequest", quote.id, "send",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "quote_request_sent",
            extra={
                "quote_request_id": str(quote.id),
                "invitee_count": len(quote.invitees),
            },
        )
        return quote.to_dto()

    def close(
        self,
        quote: QuoteRequest,
        accepted_proposal_id: UUID,
        actor_id: UUID,
    ) -> QuoteRequestInfo:
        """
        Close a Sent request on proposal acceptance.

        Preconditions:
            ``quote`` was loaded under lock by the caller in this transaction.
        """
        transition = require_transition(QUOTE_REQUEST_WORKFLOW, quote.id, quote.status, "close")
        quote.status = transition.to_state
        quote.closed_at = self.clock.now()
        quote.accepted_proposal_id = accepted_proposal_id
        quote.updated_by_id = actor_id
        self.session.flush()

        self._record_transition(
            "QuoteRequest", quote.id, "close",
            transition.from_state, transition.to_state, actor_id,
        )
        logger.info(
            "quote_request_closed",
            extra={
                "quote_request_id": str(quote.id),
                "accepted_proposal_id": str(accepted_proposal_id),
            },
        )
        return quote.to_dto()

    def cancel(self, actor: Actor, quote_request_id: UUID) -> QuoteRequestInfo:
        quote = self._load_for_update(quote_request_id)
        authorize(actor, "QuoteRequest", "cancel", quote_relations(quote))
        transition = require_transition(QUOTE_REQUEST_WORKFLOW, quote.id, quote.status, "cancel")

        quote.status = transition.to_state
        quote.cancelled_at = self.clock.now()
        quote.updated_by_id = actor.actor_id
        self.session.flush()

        self._record_transition(
            "QuoteRequest", quote.id, "cancel",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info("quote_request_cancelled", extra={"quote_request_id": str(quote.id)})
        return quote.to_dto()

    def get(self, quote_request_id: UUID) -> QuoteRequestInfo:
        return self._load(quote_request_id).to_dto()

    def get_model(self, quote_request_id: UUID) -> QuoteRequest:
        return self._load(quote_request_id)

    def lock(self, quote_request_id: UUID) -> QuoteRequest:
        return self._load_for_update(quote_request_id)

    def is_sent(self, quote: QuoteRequest) -> bool:
        return quote.status == QuoteRequestStatus.SENT.value
