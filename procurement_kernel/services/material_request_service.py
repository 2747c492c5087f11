"""
MaterialRequestService -- dual-approval engine for contractor material lists.

Responsibility:
    Creates material requests, imports/clears their material lines, records
    independent homeowner and supervisor approvals (or a rejection), and
    records actual quantities with variance against the contracted
    quantity once the request is Approved.  Also keeps the per-material
    payment ledger.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Approval is order independent: each role sets only its own flag, on
      a row loaded under lock, so concurrent approvers converge to the same
      state.  Approved iff both flags are set.
    - Re-approval by a role whose flag is already set is a no-op and adds
      no history row.
    - Rejection requires a reason and wins regardless of the other flag.
    - Approved requests are immutable: no import, clear, reject or delete.
    - Actual quantities are recorded only on Approved requests; variance
      is None when the contracted quantity is zero.
    - Only materials of Approved requests are authoritative for a project.
    - Payments are recorded only against materials of Approved requests
      and never exceed the material's payable amount.

Failure modes:
    - InvalidMaterialRowError on a malformed imported row.
    - MissingRejectionReasonError on a blank reason.
    - MaterialRequestImmutableError on mutating an Approved request.
    - InvalidTransitionError for other unreachable actions.
    - MaterialRequestNotApprovedError when recording actuals too early.
    - InvalidQuantityError for a negative or malformed actual quantity.
    - InvalidAmountError for a non-positive payment or an overpayment.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.db.types import round_quantity
from procurement_kernel.domain.capabilities import Actor, Relation, authorize
from procurement_kernel.domain.dtos import (
    ApprovalDecision,
    ApprovalRecordInfo,
    ApproverRole,
    MaterialInfo,
    MaterialPaymentInfo,
    MaterialRequestInfo,
    MaterialRequestStatus,
    MaterialRow,
    QuantityChangeInfo,
)
from procurement_kernel.domain.lifecycles import MATERIAL_REQUEST_WORKFLOW
from procurement_kernel.domain.values import to_decimal
from procurement_kernel.domain.variance import compute_variance
from procurement_kernel.domain.workflow import require_transition
from procurement_kernel.exceptions import (
    InvalidAmountError,
    InvalidMaterialRowError,
    InvalidQuantityError,
    MaterialNotFoundError,
    MaterialRequestImmutableError,
    MaterialRequestNotApprovedError,
    MaterialRequestNotFoundError,
    MissingRejectionReasonError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.material_request import (
    Material,
    MaterialApprovalRecord,
    MaterialPayment,
    MaterialQuantityChange,
    MaterialRequest,
)
from procurement_kernel.models.project import Project
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.project_service import ProjectService, project_relations

logger = get_logger("services.material_request")

_APPROVED = MaterialRequestStatus.APPROVED.value


def _validate_rows(rows: Sequence[MaterialRow]) -> list[MaterialRow]:
    cleaned: list[MaterialRow] = []
    for index, row in enumerate(rows):
        for field_name in ("code", "name", "unit"):
            value = getattr(row, field_name)
            if not value or not str(value).strip():
                raise InvalidMaterialRowError(index, f"{field_name} must not be empty")
        try:
            unit_price = to_decimal(row.unit_price, "unit_price")
            quantity = to_decimal(row.contract_quantity, "contract_quantity")
        except ValueError as e:
            raise InvalidMaterialRowError(index, str(e)) from e
        if unit_price < 0:
            raise InvalidMaterialRowError(index, f"unit_price {unit_price} is negative")
        if quantity < 0:
            raise InvalidMaterialRowError(index, f"contract_quantity {quantity} is negative")
        cleaned.append(
            MaterialRow(
                code=str(row.code).strip(),
                name=str(row.name).strip(),
                unit=str(row.unit).strip(),
                unit_price=unit_price,
                contract_quantity=quantity,
            )
        )
    return cleaned


class MaterialRequestService(BaseService[MaterialRequest]):
    """Material requests with homeowner + supervisor dual approval."""

    model = MaterialRequest
    not_found_error = MaterialRequestNotFoundError

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._projects = ProjectService(session, self.clock)

    # ------------------------------------------------------------------
    # Contractor side
    # ------------------------------------------------------------------

    def create(self, actor: Actor, project_id: UUID) -> MaterialRequestInfo:
        authorize(actor, "MaterialRequest", "create")
        project = self._projects.get_model(project_id)

        request = MaterialRequest(
            project_id=project.id,
            contractor_id=actor.actor_id,
            status=MATERIAL_REQUEST_WORKFLOW.initial_state,
            homeowner_approved=False,
            supervisor_approved=False,
            created_by_id=actor.actor_id,
        )
        self.session.add(request)
        self.session.flush()

        logger.info(
            "material_request_created",
            extra={
                "material_request_id": str(request.id),
                "project_id": str(project.id),
                "contractor_id": str(actor.actor_id),
            },
        )
        return request.to_dto()

    def import_materials(
        self,
        actor: Actor,
        request_id: UUID,
        rows: Sequence[MaterialRow],
    ) -> MaterialRequestInfo:
        """
        Replace the request's material list wholesale.

        Importing into a Rejected request starts a fresh review round:
        status returns to Pending and both approval flags and the rejection
        are cleared.
        """
        cleaned = _validate_rows(rows)
        request = self._load_for_update(request_id)
        authorize(actor, "MaterialRequest", "import_materials", self._relations(request))
        transition = self._require_mutable(request, "import_materials")

        # Flush the deletes before re-inserting the same line numbers.
        request.materials.clear()
        self.session.flush()
        request.materials = [
            Material(
                project_id=request.project_id,
                line_number=n,
                code=row.code,
                name=row.name,
                unit=row.unit,
                unit_price=row.unit_price,
                contract_quantity=row.contract_quantity,
                contract_amount=row.unit_price * row.contract_quantity,
                paid_amount=Decimal("0"),
                created_by_id=actor.actor_id,
            )
            for n, row in enumerate(cleaned, start=1)
        ]
        if transition.from_state != transition.to_state:
            request.reset_approvals()
        request.status = transition.to_state
        request.updated_by_id = actor.actor_id
        self.session.flush()

        if transition.from_state != transition.to_state:
            self._record_transition(
                "MaterialRequest", request.id, "import_materials",
                transition.from_state, transition.to_state, actor.actor_id,
            )
        logger.info(
            "materials_imported",
            extra={
                "material_request_id": str(request.id),
                "material_count": len(cleaned),
                "status": request.status,
            },
        )
        return request.to_dto()

    def clear_materials(self, actor: Actor, request_id: UUID) -> MaterialRequestInfo:
        """Empty the material list, keeping the request (and its status)."""
        request = self._load_for_update(request_id)
        authorize(actor, "MaterialRequest", "clear_materials", self._relations(request))
        self._require_mutable(request, "clear_materials")

        removed = len(request.materials)
        request.materials.clear()
        request.updated_by_id = actor.actor_id
        self.session.flush()

        logger.info(
            "materials_cleared",
            extra={
                "material_request_id": str(request.id),
                "removed_count": removed,
                "status": request.status,
            },
        )
        return request.to_dto()

    def delete_request(self, actor: Actor, request_id: UUID) -> MaterialRequestInfo:
        """
        Withdraw a request that has not been Approved.

        The request goes together with its materials and approval records.

        Returns:
            The request as it was just before deletion.
        """
        request = self._load_for_update(request_id)
        authorize(actor, "MaterialRequest", "delete", self._relations(request))
        if request.status == _APPROVED:
            raise MaterialRequestImmutableError(str(request.id), request.status, "delete")

        snapshot = request.to_dto()
        self.session.delete(request)
        self.session.flush()

        self._record_transition(
            "MaterialRequest", snapshot.id, "delete",
            snapshot.status.value, "deleted", actor.actor_id,
        )
        logger.info(
            "material_request_deleted",
            extra={
                "material_request_id": str(snapshot.id),
                "material_count": len(snapshot.materials),
                "status": snapshot.status.value,
            },
        )
        return snapshot

    # ------------------------------------------------------------------
    # Reviewer side
    # ------------------------------------------------------------------

    def approve(
        self,
        actor: Actor,
        request_id: UUID,
        notes: str | None = None,
    ) -> MaterialRequestInfo:
        request = self._load_for_update(request_id)
        project = self._projects.get_model(request.project_id)
        authorize(actor, "MaterialRequest", "approve", project_relations(project))
        role = ApproverRole(actor.role.value)

        if self._flag(request, role) and request.status in (
            MaterialRequestStatus.PARTIALLY_APPROVED.value,
            _APPROVED,
        ):
            logger.debug(
                "material_request_approve_noop",
                extra={"material_request_id": str(request.id), "approver_role": role.value},
            )
            return request.to_dto()

        transition = require_transition(
            MATERIAL_REQUEST_WORKFLOW, request.id, request.status, "approve",
        )
        now = self.clock.now()
        if role == ApproverRole.HOMEOWNER:
            request.homeowner_approved = True
            request.homeowner_approved_by = actor.actor_id
            request.homeowner_approved_at = now
        else:
            request.supervisor_approved = True
            request.supervisor_approved_by = actor.actor_id
            request.supervisor_approved_at = now

        both = request.homeowner_approved and request.supervisor_approved
        request.status = _APPROVED if both else MaterialRequestStatus.PARTIALLY_APPROVED.value
        request.updated_by_id = actor.actor_id
        self.session.add(
            MaterialApprovalRecord(
                material_request_id=request.id,
                approver_role=role.value,
                approver_id=actor.actor_id,
                decision=ApprovalDecision.APPROVE.value,
                notes=notes,
                decided_at=now,
            )
        )
        self.session.flush()

        self._record_transition(
            "MaterialRequest", request.id, "approve",
            transition.from_state, request.status, actor.actor_id,
        )
        logger.info(
            "material_request_approved" if both else "material_request_partially_approved",
            extra={
                "material_request_id": str(request.id),
                "approver_role": role.value,
                "status": request.status,
            },
        )
        return request.to_dto()

    def reject(
        self,
        actor: Actor,
        request_id: UUID,
        reason: str,
    ) -> MaterialRequestInfo:
        if reason is None or not reason.strip():
            raise MissingRejectionReasonError(str(request_id))

        request = self._load_for_update(request_id)
        project = self._projects.get_model(request.project_id)
        authorize(actor, "MaterialRequest", "reject", project_relations(project))
        role = ApproverRole(actor.role.value)
        if request.status == _APPROVED:
            raise MaterialRequestImmutableError(str(request.id), request.status, "reject")
        transition = require_transition(
            MATERIAL_REQUEST_WORKFLOW, request.id, request.status, "reject",
        )

        now = self.clock.now()
        request.status = transition.to_state
        request.rejection_reason = reason.strip()
        request.rejected_by_role = role.value
        request.rejected_by = actor.actor_id
        request.rejected_at = now
        request.updated_by_id = actor.actor_id
        self.session.add(
            MaterialApprovalRecord(
                material_request_id=request.id,
                approver_role=role.value,
                approver_id=actor.actor_id,
                decision=ApprovalDecision.REJECT.value,
                notes=reason.strip(),
                decided_at=now,
            )
        )
        self.session.flush()

        self._record_transition(
            "MaterialRequest", request.id, "reject",
            transition.from_state, transition.to_state, actor.actor_id,
        )
        logger.info(
            "material_request_rejected",
            extra={
                "material_request_id": str(request.id),
                "rejected_by_role": role.value,
                "reason": request.rejection_reason,
            },
        )
        return request.to_dto()

    # ------------------------------------------------------------------
    # Actuals
    # ------------------------------------------------------------------

    def record_actual_quantity(
        self,
        actor: Actor,
        material_id: UUID,
        quantity: Decimal | int | str,
        notes: str | None = None,
    ) -> MaterialInfo:
        try:
            actual = to_decimal(quantity, "actual_quantity")
        except ValueError as e:
            raise InvalidQuantityError("actual_quantity", str(quantity), str(e)) from e
        if actual < 0:
            raise InvalidQuantityError("actual_quantity", str(actual), "must not be negative")

        material = self._material_for_update(material_id)
        request = self._load(material.material_request_id)
        project: Project = self._projects.get_model(request.project_id)
        authorize(
            actor, "Material", "record_actual",
            {
                Relation.REQUEST_CONTRACTOR: request.contractor_id,
                Relation.PROJECT_SUPERVISOR: project.supervisor_id,
            },
        )
        if request.status != _APPROVED:
            raise MaterialRequestNotApprovedError(str(request.id), request.status)

        previous = material.actual_quantity
        variance = compute_variance(material.unit_price, material.contract_quantity, actual)
        material.actual_quantity = actual
        material.actual_amount = material.unit_price * actual
        material.variance = variance.percent
        material.variance_amount = variance.amount
        material.updated_by_id = actor.actor_id
        material.quantity_changes.append(
            MaterialQuantityChange(
                old_quantity=previous,
                new_quantity=actual,
                changed_by=actor.actor_id,
                changed_at=self.clock.now(),
                notes=notes,
            )
        )
        self.session.flush()

        logger.info(
            "material_actual_recorded",
            extra={
                "material_id": str(material.id),
                "material_request_id": str(request.id),
                "old_quantity": str(previous) if previous is not None else None,
                "new_quantity": str(actual),
                "variance": str(variance.percent) if variance.percent is not None else None,
                "variance_direction": variance.direction.value,
            },
        )
        return material.to_dto()

    def record_payment(
        self,
        actor: Actor,
        material_id: UUID,
        amount: Decimal | int | str,
        notes: str | None = None,
    ) -> MaterialPaymentInfo:
        """
        Record a homeowner payment against an approved material.

        The payable amount is the actual amount once recorded, otherwise
        the contracted amount.  Paid quantity is the paid amount at the
        material's unit price.

        Raises:
            InvalidAmountError: amount <= 0 or above the remaining amount.
            MaterialRequestNotApprovedError: the request is not Approved.
        """
        try:
            value = to_decimal(amount, "amount")
        except ValueError as e:
            raise InvalidAmountError("amount", str(amount), str(e)) from e
        if value <= 0:
            raise InvalidAmountError("amount", str(value), "must be positive")

        material = self._material_for_update(material_id)
        request = self._load(material.material_request_id)
        project = self._projects.get_model(request.project_id)
        authorize(actor, "Material", "record_payment", project_relations(project))
        if request.status != _APPROVED:
            raise MaterialRequestNotApprovedError(str(request.id), request.status)

        info = material.to_dto()
        if value > info.remaining_amount:
            raise InvalidAmountError(
                "amount", str(value), f"exceeds the remaining {info.remaining_amount}",
            )

        paid_amount = material.paid_amount + value
        payable_quantity = (
            material.actual_quantity
            if material.actual_quantity is not None
            else material.contract_quantity
        )
        paid_quantity = (
            round_quantity(paid_amount / material.unit_price)
            if material.unit_price
            else Decimal("0")
        )
        material.paid_amount = paid_amount
        material.updated_by_id = actor.actor_id
        payment = MaterialPayment(
            project_id=material.project_id,
            amount=value,
            paid_quantity=paid_quantity,
            paid_amount=paid_amount,
            remaining_quantity=payable_quantity - paid_quantity,
            remaining_amount=info.payable_amount - paid_amount,
            paid_by=actor.actor_id,
            paid_at=self.clock.now(),
            notes=notes,
        )
        material.payments.append(payment)
        self.session.flush()

        logger.info(
            "material_payment_recorded",
            extra={
                "material_id": str(material.id),
                "amount": str(value),
                "paid_amount": str(paid_amount),
                "remaining_amount": str(payment.remaining_amount),
            },
        )
        return payment.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: UUID) -> MaterialRequestInfo:
        return self._load(request_id).to_dto()

    def lock(self, request_id: UUID) -> MaterialRequest:
        return self._load_for_update(request_id)

    def list_by_project(self, project_id: UUID) -> list[MaterialRequestInfo]:
        self._projects.get_model(project_id)
        requests = self.session.execute(
            select(MaterialRequest)
            .where(MaterialRequest.project_id == project_id)
            .order_by(MaterialRequest.created_at, MaterialRequest.id)
        ).scalars().all()
        return [r.to_dto() for r in requests]

    def get_material(self, material_id: UUID) -> MaterialInfo:
        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material.to_dto()

    def approval_history(self, request_id: UUID) -> list[ApprovalRecordInfo]:
        self._load(request_id)
        records = self.session.execute(
            select(MaterialApprovalRecord)
            .where(MaterialApprovalRecord.material_request_id == request_id)
            .order_by(MaterialApprovalRecord.decided_at, MaterialApprovalRecord.id)
        ).scalars().all()
        return [r.to_dto() for r in records]

    def quantity_history(self, material_id: UUID) -> list[QuantityChangeInfo]:
        if self.session.get(Material, material_id) is None:
            raise MaterialNotFoundError(str(material_id))
        changes = self.session.execute(
            select(MaterialQuantityChange)
            .where(MaterialQuantityChange.material_id == material_id)
            .order_by(MaterialQuantityChange.changed_at, MaterialQuantityChange.id)
        ).scalars().all()
        return [c.to_dto() for c in changes]

    def list_payments(self, material_id: UUID) -> list[MaterialPaymentInfo]:
        if self.session.get(Material, material_id) is None:
            raise MaterialNotFoundError(str(material_id))
        payments = self.session.execute(
            select(MaterialPayment)
            .where(MaterialPayment.material_id == material_id)
            .order_by(MaterialPayment.paid_at, MaterialPayment.id)
        ).scalars().all()
        return [p.to_dto() for p in payments]

    def list_project_payments(self, project_id: UUID) -> list[MaterialPaymentInfo]:
        self._projects.get_model(project_id)
        payments = self.session.execute(
            select(MaterialPayment)
            .where(MaterialPayment.project_id == project_id)
            .order_by(MaterialPayment.paid_at, MaterialPayment.id)
        ).scalars().all()
        return [p.to_dto() for p in payments]

    def authoritative_materials(self, project_id: UUID) -> list[MaterialInfo]:
        """Materials of the project's Approved requests only."""
        materials = self.session.execute(
            select(Material)
            .join(MaterialRequest, Material.material_request_id == MaterialRequest.id)
            .where(MaterialRequest.project_id == project_id)
            .where(MaterialRequest.status == _APPROVED)
            .order_by(MaterialRequest.created_at, MaterialRequest.id, Material.line_number)
        ).scalars().all()
        return [m.to_dto() for m in materials]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _relations(request: MaterialRequest) -> dict[Relation, UUID]:
        return {Relation.REQUEST_CONTRACTOR: request.contractor_id}

    @staticmethod
    def _flag(request: MaterialRequest, role: ApproverRole) -> bool:
        if role == ApproverRole.HOMEOWNER:
            return request.homeowner_approved
        return request.supervisor_approved

    def _require_mutable(self, request: MaterialRequest, action: str):
        if request.status == _APPROVED:
            raise MaterialRequestImmutableError(str(request.id), request.status, action)
        return require_transition(MATERIAL_REQUEST_WORKFLOW, request.id, request.status, action)

    def _material_for_update(self, material_id: UUID) -> Material:
        material = self.session.execute(
            select(Material)
            .where(Material.id == material_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material
