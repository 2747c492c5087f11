"""
WorkflowCoordinator -- the engine's request/response boundary.

Responsibility:
    Runs each externally requested operation as exactly one database
    transaction: opens a session, calls the flush-only kernel services,
    commits on success and rolls back on any failure.  After a successful
    commit it dispatches the notifications collected during the operation.

Architecture position:
    Services layer.  Sits above procurement_kernel and procurement_config;
    the only layer that calls ``session.commit()``.

Invariants enforced:
    - One operation, one transaction.  Nothing a failed operation did is
      persisted.
    - Proposal acceptance, contract formation and quote closure commit
      together or not at all.
    - Notifications go out only after commit; their failure never undoes
      the transition.

Failure modes:
    - Typed ProcurementKernelError subclasses from the kernel are re-raised
      unchanged after rollback.
    - TransactionFailedError when acceptance fails after the proposal was
      already moved to Accepted within the transaction.
    - OptimisticLockError when a concurrent writer bumped a row version.

Audit relevance:
    Every operation emits a ``workflow_transition`` trace with the entity,
    action, from/to state, outcome and duration.
"""

from __future__ import annotations

import time
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from procurement_config import get_active_config
from procurement_config.schema import EngineConfig
from procurement_kernel.domain.capabilities import Actor
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.dtos import (
    ApprovalRecordInfo,
    ContractInfo,
    ContractStatus,
    CreditResult,
    EscrowCreditInfo,
    MaterialInfo,
    MaterialPaymentInfo,
    MaterialRequestInfo,
    MaterialRow,
    PaymentOutcome,
    PaymentPurpose,
    ProjectInfo,
    ProposalInfo,
    ProposalItem,
    QuantityChangeInfo,
    QuoteRequestInfo,
    QuoteRequestStatus,
    SupervisorContractInfo,
)
from procurement_kernel.exceptions import (
    ContractNotFoundError,
    OptimisticLockError,
    ProcurementKernelError,
    TransactionFailedError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models import (
    Contract,
    MaterialRequest,
    Proposal,
    QuoteRequest,
    SupervisorContract,
)
from procurement_kernel.services import (
    ContractService,
    EscrowService,
    MaterialRequestService,
    ProjectService,
    ProposalService,
    QuoteRequestService,
    SupervisorContractService,
)
from procurement_services.notifications import (
    LoggingNotifier,
    NotificationOutbox,
    Notifier,
    NullNotifier,
)
from procurement_services.payment_webhook import (
    PAYMENT_GATEWAY_ACTOR,
    PaymentNotification,
    apply_payment_notification,
)

logger = get_logger("services.coordinator")

T = TypeVar("T")

_STATUS_MODELS: dict[str, type] = {
    "QuoteRequest": QuoteRequest,
    "Proposal": Proposal,
    "Contract": Contract,
    "SupervisorContract": SupervisorContract,
    "MaterialRequest": MaterialRequest,
}

_PAYMENT_ENTITY_TYPES = {
    PaymentPurpose.ESCROW: "Escrow",
    PaymentPurpose.COMMISSION: "Contract",
    PaymentPurpose.SUPERVISOR_FEE: "SupervisorContract",
}


def _emit_workflow_trace(
    *,
    operation: str,
    entity_type: str,
    entity_id: UUID | None,
    from_state: str | None,
    to_state: str | None,
    outcome: str,
    duration_ms: float,
    reason: str | None = None,
) -> None:
    trace: dict[str, Any] = {
        "trace_type": "WORKFLOW_TRANSITION",
        "action": operation,
        "entity_type": entity_type,
        "traced_entity_id": str(entity_id) if entity_id else None,
        "from_state": from_state,
        "to_state": to_state,
        "outcome": outcome,
        "duration_ms": round(duration_ms, 3),
    }
    if reason:
        trace["reason"] = reason
    logger.info("workflow_transition", extra=trace)


class _UnitOfWork:
    """Kernel services bound to one session, plus the notification outbox."""

    def __init__(self, session: Session, clock: Clock, config: EngineConfig):
        self.session = session
        self.config = config
        self.outbox = NotificationOutbox()
        self.projects = ProjectService(session, clock)
        self.quotes = QuoteRequestService(session, clock)
        self.proposals = ProposalService(
            session,
            clock,
            currency=config.currency,
            max_revision_cycles=config.max_revision_cycles,
        )
        self.contracts = ContractService(
            session,
            clock,
            commission_rate=config.payment.commission_rate,
            commission_step=config.payment.commission_step,
        )
        self.supervisor_contracts = SupervisorContractService(
            session, clock, currency=config.currency,
        )
        self.escrow = EscrowService(session, clock)
        self.materials = MaterialRequestService(session, clock)
        self.clock = clock

    def current_status(self, entity_type: str, entity_id: UUID | None) -> str | None:
        model = _STATUS_MODELS.get(entity_type)
        if model is None or entity_id is None:
            return None
        entity = self.session.get(model, entity_id)
        return entity.status if entity is not None else None


class WorkflowCoordinator:
    """
    Transaction-owning facade over the kernel services.

    Every write method takes the calling ``Actor`` first and returns a frozen
    DTO.  Read methods open a short read-only session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        if not self._config.notifications.enabled:
            self._notifier: Notifier = NullNotifier()
        else:
            self._notifier = notifier or LoggingNotifier()

    @property
    def config(self) -> EngineConfig:
        return self._config

    # =====================================================================
    # Transaction plumbing
    # =====================================================================

    def _execute(
        self,
        operation: str,
        actor: Actor,
        entity_type: str,
        entity_id: UUID | None,
        work: Callable[[_UnitOfWork], T],
        *,
        all_or_nothing: bool = False,
        payment_reference: str | None = None,
    ) -> T:
        start = time.monotonic()
        session = self._session_factory()
        unit = _UnitOfWork(session, self._clock, self._config)
        from_state: str | None = None

        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.actor_id),
            actor_role=actor.role.value,
            entity_id=str(entity_id) if entity_id else None,
            payment_reference=payment_reference,
        ):
            try:
                from_state = unit.current_status(entity_type, entity_id)
                result = work(unit)
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                unit.outbox.discard()
                self._trace_failure(
                    operation, entity_type, entity_id, from_state, start, "conflict", str(exc),
                )
                raise OptimisticLockError(entity_type, str(entity_id)) from exc
            except ProcurementKernelError as exc:
                session.rollback()
                unit.outbox.discard()
                self._trace_failure(
                    operation, entity_type, entity_id, from_state, start, "rejected", exc.code,
                )
                raise
            except Exception as exc:
                session.rollback()
                unit.outbox.discard()
                self._trace_failure(
                    operation, entity_type, entity_id, from_state, start, "failed", type(exc).__name__,
                )
                if all_or_nothing:
                    raise TransactionFailedError(
                        operation, str(entity_id), str(exc),
                    ) from exc
                raise
            finally:
                session.close()

            status = getattr(result, "status", None)
            _emit_workflow_trace(
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id or getattr(result, "id", None),
                from_state=from_state,
                to_state=status.value if status is not None else None,
                outcome="committed",
                duration_ms=(time.monotonic() - start) * 1000,
            )
            unit.outbox.dispatch(self._notifier)
            return result

    @staticmethod
    def _trace_failure(
        operation: str,
        entity_type: str,
        entity_id: UUID | None,
        from_state: str | None,
        start: float,
        outcome: str,
        reason: str,
    ) -> None:
        _emit_workflow_trace(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=None,
            outcome=outcome,
            duration_ms=(time.monotonic() - start) * 1000,
            reason=reason,
        )

    def _read(self, work: Callable[[_UnitOfWork], T]) -> T:
        session = self._session_factory()
        try:
            return work(_UnitOfWork(session, self._clock, self._config))
        finally:
            session.rollback()
            session.close()

    # =====================================================================
    # Projects
    # =====================================================================

    def register_project(
        self, actor: Actor, project_id: UUID, homeowner_id: UUID, title: str,
    ) -> ProjectInfo:
        return self._execute(
            "register_project", actor, "Project", project_id,
            lambda u: u.projects.register(actor, project_id, homeowner_id, title),
        )

    def get_project(self, project_id: UUID) -> ProjectInfo:
        return self._read(lambda u: u.projects.get(project_id))

    # =====================================================================
    # Quote requests
    # =====================================================================

    def create_quote_request(
        self,
        actor: Actor,
        project_id: UUID,
        scope: str,
        due_date: date | None = None,
        invitee_ids: Iterable[UUID] = (),
    ) -> QuoteRequestInfo:
        invitees = tuple(invitee_ids)

        def work(u: _UnitOfWork) -> QuoteRequestInfo:
            return u.quotes.create(actor, project_id, scope, due_date, invitees)

        return self._execute("create_quote_request", actor, "QuoteRequest", None, work)

    def invite_contractor(
        self, actor: Actor, quote_request_id: UUID, contractor_id: UUID,
    ) -> QuoteRequestInfo:
        def work(u: _UnitOfWork) -> QuoteRequestInfo:
            before = u.quotes.get(quote_request_id)
            quote = u.quotes.invite(actor, quote_request_id, contractor_id)
            if contractor_id not in before.invitee_ids and quote.status == QuoteRequestStatus.SENT:
                u.outbox.add(
                    "quote_request.invited", quote.id, [contractor_id],
                    scope=quote.scope,
                )
            return quote

        return self._execute("invite_contractor", actor, "QuoteRequest", quote_request_id, work)

    def send_quote_request(self, actor: Actor, quote_request_id: UUID) -> QuoteRequestInfo:
        def work(u: _UnitOfWork) -> QuoteRequestInfo:
            quote = u.quotes.send(actor, quote_request_id)
            u.outbox.add(
                "quote_request.sent", quote.id, list(quote.invitee_ids),
                scope=quote.scope,
                due_date=quote.due_date.isoformat() if quote.due_date else None,
            )
            return quote

        return self._execute("send_quote_request", actor, "QuoteRequest", quote_request_id, work)

    def cancel_quote_request(self, actor: Actor, quote_request_id: UUID) -> QuoteRequestInfo:
        def work(u: _UnitOfWork) -> QuoteRequestInfo:
            quote = u.quotes.cancel(actor, quote_request_id)
            u.outbox.add("quote_request.cancelled", quote.id, list(quote.invitee_ids))
            return quote

        return self._execute("cancel_quote_request", actor, "QuoteRequest", quote_request_id, work)

    def get_quote_request(self, quote_request_id: UUID) -> QuoteRequestInfo:
        return self._read(lambda u: u.quotes.get(quote_request_id))

    # =====================================================================
    # Proposals
    # =====================================================================

    def submit_proposal(
        self,
        actor: Actor,
        quote_request_id: UUID,
        total_price: Decimal | int | str,
        duration_days: int,
        items: Sequence[ProposalItem] = (),
        terms_summary: str | None = None,
        source_artifact: str | None = None,
    ) -> ProposalInfo:
        def work(u: _UnitOfWork) -> ProposalInfo:
            proposal = u.proposals.submit(
                actor, quote_request_id, total_price, duration_days,
                items, terms_summary, source_artifact,
            )
            quote = u.quotes.get(quote_request_id)
            u.outbox.add(
                "proposal.submitted", proposal.id, [quote.homeowner_id],
                quote_request_id=str(quote.id),
                contractor_id=str(proposal.contractor_id),
                total_price=str(proposal.total_price),
            )
            return proposal

        return self._execute("submit_proposal", actor, "Proposal", None, work)

    def request_revision(self, actor: Actor, proposal_id: UUID) -> ProposalInfo:
        def work(u: _UnitOfWork) -> ProposalInfo:
            proposal = u.proposals.request_revision(actor, proposal_id)
            u.outbox.add(
                "proposal.revision_requested", proposal.id, [proposal.contractor_id],
                revision_count=proposal.revision_count,
            )
            return proposal

        return self._execute("request_revision", actor, "Proposal", proposal_id, work)

    def resubmit_proposal(
        self,
        actor: Actor,
        proposal_id: UUID,
        items: Sequence[ProposalItem],
        total_price: Decimal | int | str,
        duration_days: int | None = None,
        terms_summary: str | None = None,
    ) -> ProposalInfo:
        def work(u: _UnitOfWork) -> ProposalInfo:
            proposal = u.proposals.resubmit(
                actor, proposal_id, items, total_price, duration_days, terms_summary,
            )
            quote = u.quotes.get(proposal.quote_request_id)
            u.outbox.add(
                "proposal.resubmitted", proposal.id, [quote.homeowner_id],
                total_price=str(proposal.total_price),
            )
            return proposal

        return self._execute("resubmit_proposal", actor, "Proposal", proposal_id, work)

    def accept_proposal(self, actor: Actor, proposal_id: UUID) -> ContractInfo:
        """
        Accept a proposal, form its contract and close its quote request.

        The three changes commit together.  Failures raised by the accept
        step itself (forbidden, wrong state, quote not sent) surface as
        their typed errors; any failure after the proposal has been marked
        Accepted surfaces as TransactionFailedError.  Either way nothing is
        persisted.
        """

        def work(u: _UnitOfWork) -> ContractInfo:
            proposal = u.proposals.accept(actor, proposal_id)
            try:
                contract = u.contracts.create_from_proposal(proposal.id, actor.actor_id)
                u.quotes.close(
                    u.quotes.lock(proposal.quote_request_id), proposal.id, actor.actor_id,
                )
            except ProcurementKernelError as exc:
                raise TransactionFailedError(
                    "accept_proposal", str(proposal_id), str(exc), cause_code=exc.code,
                ) from exc
            u.outbox.add(
                "proposal.accepted", proposal.id, [proposal.contractor_id],
                contract_id=str(contract.id),
            )
            u.outbox.add(
                "contract.created", contract.id,
                [contract.homeowner_id, contract.contractor_id],
                total_price=str(contract.total_price),
            )
            return contract

        return self._execute(
            "accept_proposal", actor, "Proposal", proposal_id, work, all_or_nothing=True,
        )

    def reject_proposal(
        self, actor: Actor, proposal_id: UUID, reason: str | None = None,
    ) -> ProposalInfo:
        def work(u: _UnitOfWork) -> ProposalInfo:
            proposal = u.proposals.reject(actor, proposal_id, reason)
            quote = u.quotes.get(proposal.quote_request_id)
            u.outbox.add(
                "proposal.rejected", proposal.id,
                [proposal.contractor_id, quote.homeowner_id],
                reason=reason,
            )
            return proposal

        return self._execute("reject_proposal", actor, "Proposal", proposal_id, work)

    def get_proposal(self, proposal_id: UUID) -> ProposalInfo:
        return self._read(lambda u: u.proposals.get(proposal_id))

    def list_proposals(self, quote_request_id: UUID) -> list[ProposalInfo]:
        return self._read(lambda u: u.proposals.list_by_quote(quote_request_id))

    # =====================================================================
    # Contracts
    # =====================================================================

    def sign_contract(
        self, actor: Actor, contract_id: UUID, signature: str | bytes,
    ) -> ContractInfo:
        def work(u: _UnitOfWork) -> ContractInfo:
            before = u.contracts.lock(contract_id).to_dto()
            contract = u.contracts.sign(actor, contract_id, signature)
            recipients = [contract.homeowner_id, contract.contractor_id]
            if len(contract.signatures) > len(before.signatures):
                u.outbox.add("contract.signed", contract.id, recipients, party=actor.role.value)
            if contract.status != before.status and contract.status == ContractStatus.ACTIVE:
                u.outbox.add("contract.activated", contract.id, recipients)
            return contract

        return self._execute("sign_contract", actor, "Contract", contract_id, work)

    def update_contract_status(
        self, actor: Actor, contract_id: UUID, new_status: ContractStatus,
    ) -> ContractInfo:
        def work(u: _UnitOfWork) -> ContractInfo:
            contract = u.contracts.update_status(actor, contract_id, new_status)
            u.outbox.add(
                f"contract.{contract.status.value}", contract.id,
                [contract.homeowner_id, contract.contractor_id],
            )
            return contract

        return self._execute("update_contract_status", actor, "Contract", contract_id, work)

    def get_contract(self, contract_id: UUID) -> ContractInfo:
        return self._read(lambda u: u.contracts.get(contract_id))

    def get_contract_for_proposal(self, proposal_id: UUID) -> ContractInfo:
        def work(u: _UnitOfWork) -> ContractInfo:
            contract = u.contracts.get_by_proposal(proposal_id)
            if contract is None:
                raise ContractNotFoundError(str(proposal_id))
            return contract.to_dto()

        return self._read(work)

    # =====================================================================
    # Supervisor contracts
    # =====================================================================

    def create_supervisor_contract(
        self,
        actor: Actor,
        project_id: UUID,
        supervisor_id: UUID,
        registration_fee: Decimal | int | str,
        terms: str | None = None,
    ) -> SupervisorContractInfo:
        def work(u: _UnitOfWork) -> SupervisorContractInfo:
            contract = u.supervisor_contracts.create(
                actor, project_id, supervisor_id, registration_fee, terms,
            )
            u.outbox.add(
                "supervisor_contract.created", contract.id, [contract.supervisor_id],
                registration_fee=str(contract.registration_fee),
            )
            return contract

        return self._execute(
            "create_supervisor_contract", actor, "SupervisorContract", None, work,
        )

    def sign_supervisor_contract(
        self, actor: Actor, contract_id: UUID, signature: str | bytes,
    ) -> SupervisorContractInfo:
        def work(u: _UnitOfWork) -> SupervisorContractInfo:
            before = u.supervisor_contracts.lock(contract_id).to_dto()
            contract = u.supervisor_contracts.sign(actor, contract_id, signature)
            recipients = [contract.homeowner_id, contract.supervisor_id]
            if len(contract.signatures) > len(before.signatures):
                u.outbox.add(
                    "supervisor_contract.signed", contract.id, recipients,
                    party=actor.role.value,
                )
            if contract.status != before.status and contract.status == ContractStatus.ACTIVE:
                u.outbox.add("supervisor_contract.activated", contract.id, recipients)
            return contract

        return self._execute(
            "sign_supervisor_contract", actor, "SupervisorContract", contract_id, work,
        )

    def update_supervisor_contract_status(
        self, actor: Actor, contract_id: UUID, new_status: ContractStatus,
    ) -> SupervisorContractInfo:
        def work(u: _UnitOfWork) -> SupervisorContractInfo:
            contract = u.supervisor_contracts.update_status(actor, contract_id, new_status)
            u.outbox.add(
                f"supervisor_contract.{contract.status.value}", contract.id,
                [contract.homeowner_id, contract.supervisor_id],
            )
            return contract

        return self._execute(
            "update_supervisor_contract_status", actor, "SupervisorContract",
            contract_id, work,
        )

    def get_supervisor_contract(self, contract_id: UUID) -> SupervisorContractInfo:
        return self._read(lambda u: u.supervisor_contracts.get(contract_id))

    # =====================================================================
    # Escrow and payments
    # =====================================================================

    def credit_escrow(
        self,
        actor: Actor,
        contract_id: UUID,
        amount: Decimal | int | str,
        payment_reference: str,
        currency: str | None = None,
    ) -> CreditResult:
        def work(u: _UnitOfWork) -> CreditResult:
            result = u.escrow.credit(actor, contract_id, amount, payment_reference, currency)
            if result.applied:
                contract = u.contracts.get(contract_id)
                u.outbox.add(
                    "escrow.credited", contract_id,
                    [contract.homeowner_id, contract.contractor_id],
                    payment_reference=payment_reference,
                    balance=str(result.balance),
                )
            return result

        return self._execute(
            "credit_escrow", actor, "Escrow", contract_id, work,
            payment_reference=payment_reference,
        )

    def get_escrow_balance(self, contract_id: UUID) -> Decimal:
        return self._read(lambda u: u.escrow.get_balance(contract_id))

    def list_escrow_credits(self, contract_id: UUID) -> list[EscrowCreditInfo]:
        return self._read(lambda u: u.escrow.list_credits(contract_id))

    def handle_payment_notification(self, payload: Mapping[str, Any]) -> PaymentOutcome:
        """
        Apply a payment gateway notification.

        Safe to call any number of times for the same notification; only the
        first successful delivery changes state.

        Raises:
            ValidationError: if the payload is malformed.
        """
        notification = PaymentNotification.parse(payload)

        def work(u: _UnitOfWork) -> PaymentOutcome:
            outcome = apply_payment_notification(
                u.session, u.clock, notification, u.config.payment,
            )
            if not outcome.applied:
                return outcome
            if notification.purpose == PaymentPurpose.SUPERVISOR_FEE:
                sc = u.supervisor_contracts.get(notification.target_id)
                u.outbox.add(
                    "supervisor_contract.fee_paid", sc.id,
                    [sc.homeowner_id, sc.supervisor_id],
                    payment_reference=notification.payment_reference,
                )
                return outcome
            contract = u.contracts.get(notification.target_id)
            kind = (
                "escrow.credited"
                if notification.purpose == PaymentPurpose.ESCROW
                else "contract.commission_paid"
            )
            u.outbox.add(
                kind, contract.id,
                [contract.homeowner_id, contract.contractor_id],
                payment_reference=notification.payment_reference,
            )
            return outcome

        return self._execute(
            "handle_payment_notification",
            PAYMENT_GATEWAY_ACTOR,
            _PAYMENT_ENTITY_TYPES[notification.purpose],
            notification.target_id,
            work,
            payment_reference=notification.payment_reference,
        )

    # =====================================================================
    # Material requests
    # =====================================================================

    def create_material_request(self, actor: Actor, project_id: UUID) -> MaterialRequestInfo:
        return self._execute(
            "create_material_request", actor, "MaterialRequest", None,
            lambda u: u.materials.create(actor, project_id),
        )

    def _reviewers(self, u: _UnitOfWork, project_id: UUID) -> list[UUID | None]:
        project = u.projects.get(project_id)
        return [project.homeowner_id, project.supervisor_id]

    def import_materials(
        self, actor: Actor, request_id: UUID, rows: Sequence[MaterialRow],
    ) -> MaterialRequestInfo:
        def work(u: _UnitOfWork) -> MaterialRequestInfo:
            request = u.materials.import_materials(actor, request_id, rows)
            u.outbox.add(
                "material_request.imported", request.id,
                self._reviewers(u, request.project_id),
                material_count=request.material_count,
            )
            return request

        return self._execute("import_materials", actor, "MaterialRequest", request_id, work)

    def clear_imported_materials(self, actor: Actor, request_id: UUID) -> MaterialRequestInfo:
        return self._execute(
            "clear_imported_materials", actor, "MaterialRequest", request_id,
            lambda u: u.materials.clear_materials(actor, request_id),
        )

    def delete_material_request(self, actor: Actor, request_id: UUID) -> MaterialRequestInfo:
        """Withdraw a request that is not yet Approved; returns its last state."""
        def work(u: _UnitOfWork) -> MaterialRequestInfo:
            request = u.materials.delete_request(actor, request_id)
            u.outbox.add(
                "material_request.deleted", request.id,
                self._reviewers(u, request.project_id),
            )
            return request

        return self._execute(
            "delete_material_request", actor, "MaterialRequest", request_id, work,
        )

    def approve_material_request(
        self, actor: Actor, request_id: UUID, notes: str | None = None,
    ) -> MaterialRequestInfo:
        def work(u: _UnitOfWork) -> MaterialRequestInfo:
            before = u.materials.lock(request_id).to_dto()
            request = u.materials.approve(actor, request_id, notes)
            if request.status != before.status:
                u.outbox.add(
                    f"material_request.{request.status.value}", request.id,
                    [request.contractor_id, *self._reviewers(u, request.project_id)],
                    approver_role=actor.role.value,
                )
            return request

        return self._execute(
            "approve_material_request", actor, "MaterialRequest", request_id, work,
        )

    def reject_material_request(
        self, actor: Actor, request_id: UUID, reason: str,
    ) -> MaterialRequestInfo:
        def work(u: _UnitOfWork) -> MaterialRequestInfo:
            request = u.materials.reject(actor, request_id, reason)
            u.outbox.add(
                "material_request.rejected", request.id, [request.contractor_id],
                reason=request.rejection_reason,
                rejected_by_role=actor.role.value,
            )
            return request

        return self._execute(
            "reject_material_request", actor, "MaterialRequest", request_id, work,
        )

    def record_actual_quantity(
        self,
        actor: Actor,
        material_id: UUID,
        quantity: Decimal | int | str,
        notes: str | None = None,
    ) -> MaterialInfo:
        return self._execute(
            "record_actual_quantity", actor, "Material", material_id,
            lambda u: u.materials.record_actual_quantity(actor, material_id, quantity, notes),
        )

    def record_material_payment(
        self,
        actor: Actor,
        material_id: UUID,
        amount: Decimal | int | str,
        notes: str | None = None,
    ) -> MaterialPaymentInfo:
        def work(u: _UnitOfWork) -> MaterialPaymentInfo:
            payment = u.materials.record_payment(actor, material_id, amount, notes)
            request = u.materials.get(u.materials.get_material(material_id).material_request_id)
            u.outbox.add(
                "material.payment_recorded", material_id, [request.contractor_id],
                amount=str(payment.amount),
                remaining_amount=str(payment.remaining_amount),
            )
            return payment

        return self._execute("record_material_payment", actor, "Material", material_id, work)

    def get_material_request(self, request_id: UUID) -> MaterialRequestInfo:
        return self._read(lambda u: u.materials.get(request_id))

    def list_material_requests(self, project_id: UUID) -> list[MaterialRequestInfo]:
        return self._read(lambda u: u.materials.list_by_project(project_id))

    def get_material(self, material_id: UUID) -> MaterialInfo:
        return self._read(lambda u: u.materials.get_material(material_id))

    def authoritative_materials(self, project_id: UUID) -> list[MaterialInfo]:
        return self._read(lambda u: u.materials.authoritative_materials(project_id))

    def approval_history(self, request_id: UUID) -> list[ApprovalRecordInfo]:
        return self._read(lambda u: u.materials.approval_history(request_id))

    def quantity_history(self, material_id: UUID) -> list[QuantityChangeInfo]:
        return self._read(lambda u: u.materials.quantity_history(material_id))

    def list_material_payments(self, material_id: UUID) -> list[MaterialPaymentInfo]:
        return self._read(lambda u: u.materials.list_payments(material_id))

    def list_project_material_payments(self, project_id: UUID) -> list[MaterialPaymentInfo]:
        return self._read(lambda u: u.materials.list_project_payments(project_id))
