"""
ContractService / SupervisorContractService -- contract formation and signing.

Responsibility:
    Forms a contract from an accepted proposal (deep-copying its terms),
    records party signatures and drives the signing lifecycle declared in
    CONTRACT_WORKFLOW / SUPERVISOR_CONTRACT_WORKFLOW.  Supervisor
    registration contracts share the signature/status shape and are keyed
    to a registration fee instead of a proposal.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - A contract exists only for an Accepted proposal, at most once.
    - Contract line items are copied values; no row is shared with the
      proposal.
    - A party signs only for its own role; re-signing is a no-op.
    - The contractor signs only after the commission is paid; on supervisor
      contracts the homeowner signs only after the registration fee is paid.
    - PendingSignatures -> Active happens exactly when both parties have
      signed, and never through update_status.

Failure modes:
    - ProposalNotAcceptedError / ContractAlreadyExistsError on formation.
    - ForbiddenError when a non-party signs or changes status.
    - PaymentRequiredError when a party signs before its payment settled.
    - InvalidTransitionError for unreachable status changes.
    - SignaturesIncompleteError when activation is requested without both
      signatures.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.capabilities import Actor, Relation, authorize
from procurement_kernel.domain.dtos import (
    ContractInfo,
    ContractStatus,
    PaymentPurpose,
    ProposalStatus,
    SignatoryParty,
    SupervisorContractInfo,
)
from procurement_kernel.domain.lifecycles import (
    BOTH_SIGNATURES_PRESENT,
    CONTRACT_WORKFLOW,
    SUPERVISOR_CONTRACT_WORKFLOW,
)
from procurement_kernel.domain.values import commission_due, to_decimal
from procurement_kernel.domain.workflow import Workflow, require_transition
from procurement_kernel.exceptions import (
    ContractAlreadyExistsError,
    ContractNotFoundError,
    InvalidAmountError,
    InvalidTransitionError,
    PaymentRequiredError,
    ProposalNotAcceptedError,
    ProposalNotFoundError,
    SignaturesIncompleteError,
    SupervisorContractNotFoundError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.contract import (
    Contract,
    ContractLineItem,
    ContractSignature,
    SupervisorContract,
    SupervisorContractSignature,
)
from procurement_kernel.models.proposal import Proposal
from procurement_kernel.models.quote_request import QuoteRequest
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.project_service import ProjectService, project_relations
from procurement_kernel.utils.hashing import hash_signature

logger = get_logger("services.contract")

_TIMESTAMP_FIELDS = {
    ContractStatus.ACTIVE.value: "activated_at",
    ContractStatus.COMPLETED.value: "completed_at",
    ContractStatus.CANCELLED.value: "cancelled_at",
}


class _SignedAgreementService(BaseService):
    """Signing and status handling shared by both contract kinds."""

    workflow: Workflow
    entity_type: str
    parties: tuple[SignatoryParty, SignatoryParty]

    def _relations(self, entity) -> dict[Relation, UUID]:
        raise NotImplementedError

    def _signature_row(self, entity, party: SignatoryParty, signer_id: UUID, digest: str):
        raise NotImplementedError

    def _require_payment(self, entity, party: SignatoryParty) -> None:
        """Raise PaymentRequiredError if ``party`` still owes a payment."""

    def _on_activated(self, entity, actor_id: UUID) -> None:
        """Hook for side effects of activation."""

    def _sign(self, actor: Actor, entity_id: UUID, signature: str | bytes):
        entity = self._load_for_update(entity_id)
        authorize(actor, self.entity_type, "sign", self._relations(entity))
        party = SignatoryParty(actor.role.value)

        if entity.signature_for(party) is not None:
            logger.debug(
                "contract_sign_noop",
                extra={
                    "entity_type": self.entity_type,
                    "contract_id": str(entity.id),
                    "party": party.value,
                },
            )
            return entity

        require_transition(self.workflow, entity.id, entity.status, "sign")
        self._require_payment(entity, party)
        if not signature:
            raise ValidationError("Signature payload must not be empty")

        digest = hash_signature(signature)
        entity.signatures.append(
            self._signature_row(entity, party, actor.actor_id, digest)
        )
        entity.updated_by_id = actor.actor_id
        self.session.flush()

        logger.info(
            "contract_signed",
            extra={
                "entity_type": self.entity_type,
                "contract_id": str(entity.id),
                "party": party.value,
                "signature_digest": digest,
            },
        )

        if all(entity.signature_for(p) is not None for p in self.parties):
            self._apply_status(entity, "activate", actor.actor_id)
        return entity

    def _update_status(self, actor: Actor, entity_id: UUID, new_status: ContractStatus):
        entity = self._load_for_update(entity_id)
        authorize(actor, self.entity_type, "update_status", self._relations(entity))

        transition = self.workflow.transition_to(entity.status, new_status.value)
        if transition is None or transition.from_state == transition.to_state:
            raise InvalidTransitionError(
                self.entity_type, str(entity.id), entity.status, f"move to {new_status.value}",
            )
        if transition.guard == BOTH_SIGNATURES_PRESENT:
            missing = [p.value for p in self.parties if entity.signature_for(p) is None]
            if missing:
                raise SignaturesIncompleteError(str(entity.id), missing)

        self._apply_status(entity, transition.action, actor.actor_id)
        return entity

    def _apply_status(self, entity, action: str, actor_id: UUID) -> None:
        transition = require_transition(self.workflow, entity.id, entity.status, action)
        entity.status = transition.to_state
        stamp = _TIMESTAMP_FIELDS.get(transition.to_state)
        if stamp:
            setattr(entity, stamp, self.clock.now())
        entity.updated_by_id = actor_id
        self.session.flush()

        self._record_transition(
            self.entity_type, entity.id, action,
            transition.from_state, transition.to_state, actor_id,
        )
        logger.info(
            f"{self.workflow.name}_{transition.to_state}",
            extra={"contract_id": str(entity.id), "from_state": transition.from_state},
        )
        if transition.to_state == ContractStatus.ACTIVE.value:
            self._on_activated(entity, actor_id)


class ContractService(_SignedAgreementService):
    """Homeowner/contractor contracts formed from accepted proposals."""

    model = Contract
    not_found_error = ContractNotFoundError
    workflow = CONTRACT_WORKFLOW
    entity_type = "Contract"
    parties = (SignatoryParty.HOMEOWNER, SignatoryParty.CONTRACTOR)

    def __init__(
        self,
        session,
        clock=None,
        commission_rate: Decimal = Decimal("0.01"),
        commission_step: Decimal = Decimal("1000"),
    ):
        super().__init__(session, clock)
        self.commission_rate = commission_rate
        self.commission_step = commission_step

    def _relations(self, entity: Contract) -> dict[Relation, UUID]:
        return {
            Relation.CONTRACT_HOMEOWNER: entity.homeowner_id,
            Relation.CONTRACT_CONTRACTOR: entity.contractor_id,
        }

    def _require_payment(self, entity: Contract, party: SignatoryParty) -> None:
        if party == SignatoryParty.CONTRACTOR and not entity.commission_paid:
            raise PaymentRequiredError(
                str(entity.id), party.value,
                PaymentPurpose.COMMISSION.value, str(entity.commission_due),
            )

    def _signature_row(self, entity, party, signer_id, digest) -> ContractSignature:
        return ContractSignature(
            party=party.value,
            signer_id=signer_id,
            signature_digest=digest,
            signed_at=self.clock.now(),
        )

    def create_from_proposal(self, proposal_id: UUID, actor_id: UUID) -> ContractInfo:
        """
        Form the contract for an accepted proposal.

        Price, duration and items are copied by value at this instant.

        Raises:
            ProposalNotFoundError: Unknown proposal.
            ProposalNotAcceptedError: Proposal is not Accepted.
            ContractAlreadyExistsError: The proposal already has a contract.
        """
        proposal = self.session.get(Proposal, proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(str(proposal_id))
        if proposal.status != ProposalStatus.ACCEPTED.value:
            raise ProposalNotAcceptedError(str(proposal_id), proposal.status)

        existing = self.get_by_proposal(proposal_id)
        if existing is not None:
            raise ContractAlreadyExistsError(str(proposal_id), str(existing.id))

        quote = self.session.get(QuoteRequest, proposal.quote_request_id)
        contract = Contract(
            proposal_id=proposal.id,
            quote_request_id=quote.id,
            project_id=quote.project_id,
            homeowner_id=quote.homeowner_id,
            contractor_id=proposal.contractor_id,
            total_price=proposal.total_price,
            currency=proposal.currency,
            duration_days=proposal.duration_days,
            terms=proposal.terms_summary,
            status=CONTRACT_WORKFLOW.initial_state,
            commission_due=commission_due(
                proposal.total_price, self.commission_rate, self.commission_step,
            ),
            commission_paid=False,
            created_by_id=actor_id,
        )
        contract.items = [
            ContractLineItem(
                line_number=item.line_number,
                name=item.name,
                price=item.price,
                notes=item.notes,
            )
            for item in proposal.items
        ]
        self.session.add(contract)
        self.session.flush()

        logger.info(
            "contract_created",
            extra={
                "contract_id": str(contract.id),
                "proposal_id": str(proposal.id),
                "total_price": str(contract.total_price),
                "commission_due": str(contract.commission_due),
                "item_count": len(contract.items),
            },
        )
        return contract.to_dto()

    def sign(self, actor: Actor, contract_id: UUID, signature: str | bytes) -> ContractInfo:
        return self._sign(actor, contract_id, signature).to_dto()

    def update_status(
        self, actor: Actor, contract_id: UUID, new_status: ContractStatus,
    ) -> ContractInfo:
        return self._update_status(actor, contract_id, new_status).to_dto()

    def mark_commission_paid(
        self,
        contract_id: UUID,
        payment_reference: str,
        amount: Decimal,
        actor_id: UUID,
    ) -> ContractInfo:
        """
        Record the contractor's commission as paid.

        Preconditions:
            The caller has already claimed ``payment_reference`` in the
            processed-payment table within this transaction.
        """
        contract = self._load_for_update(contract_id)
        if contract.commission_paid:
            return contract.to_dto()
        if amount != contract.commission_due:
            logger.warning(
                "commission_amount_mismatch",
                extra={
                    "contract_id": str(contract.id),
                    "expected": str(contract.commission_due),
                    "received": str(amount),
                },
            )
        contract.commission_paid = True
        contract.commission_paid_at = self.clock.now()
        contract.commission_payment_reference = payment_reference
        contract.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "commission_paid",
            extra={"contract_id": str(contract.id), "payment_reference": payment_reference},
        )
        return contract.to_dto()

    def get(self, contract_id: UUID) -> ContractInfo:
        return self._load(contract_id).to_dto()

    def lock(self, contract_id: UUID) -> Contract:
        return self._load_for_update(contract_id)

    def get_by_proposal(self, proposal_id: UUID) -> Contract | None:
        return self.session.execute(
            select(Contract).where(Contract.proposal_id == proposal_id)
        ).scalar_one_or_none()


class SupervisorContractService(_SignedAgreementService):
    """Homeowner/supervisor registration contracts."""

    model = SupervisorContract
    not_found_error = SupervisorContractNotFoundError
    workflow = SUPERVISOR_CONTRACT_WORKFLOW
    entity_type = "SupervisorContract"
    parties = (SignatoryParty.HOMEOWNER, SignatoryParty.SUPERVISOR)

    def __init__(self, session, clock=None, currency: str = "VND"):
        super().__init__(session, clock)
        self.currency = currency

    def _relations(self, entity: SupervisorContract) -> dict[Relation, UUID]:
        return {
            Relation.CONTRACT_HOMEOWNER: entity.homeowner_id,
            Relation.CONTRACT_SUPERVISOR: entity.supervisor_id,
        }

    def _signature_row(self, entity, party, signer_id, digest) -> SupervisorContractSignature:
        return SupervisorContractSignature(
            party=party.value,
            signer_id=signer_id,
            signature_digest=digest,
            signed_at=self.clock.now(),
        )

    def _require_payment(self, entity: SupervisorContract, party: SignatoryParty) -> None:
        if party == SignatoryParty.HOMEOWNER and not entity.fee_paid:
            raise PaymentRequiredError(
                str(entity.id), party.value,
                PaymentPurpose.SUPERVISOR_FEE.value, str(entity.registration_fee),
            )

    def _on_activated(self, entity: SupervisorContract, actor_id: UUID) -> None:
        ProjectService(self.session, self.clock).assign_supervisor(
            entity.project_id, entity.supervisor_id, actor_id,
        )

    def create(
        self,
        actor: Actor,
        project_id: UUID,
        supervisor_id: UUID,
        registration_fee: Decimal | int | str,
        terms: str | None = None,
    ) -> SupervisorContractInfo:
        try:
            fee = to_decimal(registration_fee, "registration_fee")
        except ValueError as e:
            raise InvalidAmountError("registration_fee", str(registration_fee), str(e)) from e
        if fee <= 0:
            raise InvalidAmountError("registration_fee", str(fee), "must be positive")

        project = ProjectService(self.session, self.clock).get_model(project_id)
        authorize(actor, "SupervisorContract", "create", project_relations(project))

        contract = SupervisorContract(
            project_id=project.id,
            homeowner_id=project.homeowner_id,
            supervisor_id=supervisor_id,
            registration_fee=fee,
            currency=self.currency,
            terms=terms,
            status=SUPERVISOR_CONTRACT_WORKFLOW.initial_state,
            fee_paid=False,
            created_by_id=actor.actor_id,
        )
        self.session.add(contract)
        self.session.flush()

        logger.info(
            "supervisor_contract_created",
            extra={
                "supervisor_contract_id": str(contract.id),
                "project_id": str(project.id),
                "supervisor_id": str(supervisor_id),
                "registration_fee": str(fee),
            },
        )
        return contract.to_dto()

    def sign(
        self, actor: Actor, contract_id: UUID, signature: str | bytes,
    ) -> SupervisorContractInfo:
        return self._sign(actor, contract_id, signature).to_dto()

    def update_status(
        self, actor: Actor, contract_id: UUID, new_status: ContractStatus,
    ) -> SupervisorContractInfo:
        return self._update_status(actor, contract_id, new_status).to_dto()

    def mark_fee_paid(
        self,
        contract_id: UUID,
        payment_reference: str,
        amount: Decimal,
        actor_id: UUID,
    ) -> SupervisorContractInfo:
        """
        Record the registration fee as paid.

        Preconditions:
            The caller has already claimed ``payment_reference`` in the
            processed-payment table within this transaction.
        """
        contract = self._load_for_update(contract_id)
        if contract.fee_paid:
            return contract.to_dto()
        if amount != contract.registration_fee:
            logger.warning(
                "supervisor_fee_amount_mismatch",
                extra={
                    "supervisor_contract_id": str(contract.id),
                    "expected": str(contract.registration_fee),
                    "received": str(amount),
                },
            )
        contract.fee_paid = True
        contract.fee_paid_at = self.clock.now()
        contract.fee_payment_reference = payment_reference
        contract.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "supervisor_fee_paid",
            extra={
                "supervisor_contract_id": str(contract.id),
                "payment_reference": payment_reference,
            },
        )
        return contract.to_dto()

    def get(self, contract_id: UUID) -> SupervisorContractInfo:
        return self._load(contract_id).to_dto()

    def lock(self, contract_id: UUID) -> SupervisorContract:
        return self._load_for_update(contract_id)
