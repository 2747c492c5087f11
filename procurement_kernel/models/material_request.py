"""
Module: procurement_kernel.models.material_request
Responsibility: ORM persistence for contractor material requests, their
    material lines, the approval/rejection history, the actual-quantity
    change history and the per-material payment ledger.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - status APPROVED iff homeowner_approved and supervisor_approved
      (service layer; both flags are written under a row lock).
    - Material lines of an APPROVED request are never deleted or replaced.
    - History and payment rows are append-only.
    - A request that is not APPROVED may be deleted together with its
      materials and approval records.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.dtos import (
    ApprovalDecision,
    ApprovalRecordInfo,
    ApproverRole,
    MaterialInfo,
    MaterialPaymentInfo,
    MaterialRequestInfo,
    MaterialRequestStatus,
    QuantityChangeInfo,
)


class MaterialRequest(TrackedBase):
    """
    A contractor's list of materials for a project awaiting dual approval.

    Guarantees:
        - status lifecycle: PENDING -> PARTIALLY_APPROVED -> APPROVED, with
          REJECTED reachable from PENDING and PARTIALLY_APPROVED and
          PENDING reachable again from REJECTED by re-import.
        - rejection_reason is non-empty whenever status is REJECTED.
    """

    __tablename__ = "material_requests"

    __table_args__ = (
        Index("idx_material_request_project", "project_id"),
        Index("idx_material_request_status", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )

    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=MaterialRequestStatus.PENDING.value,
    )

    homeowner_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    homeowner_approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    homeowner_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    supervisor_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supervisor_approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supervisor_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)

    materials: Mapped[list[Material]] = relationship(
        back_populates="material_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Material.line_number",
    )

    approval_records: Mapped[list[MaterialApprovalRecord]] = relationship(
        back_populates="material_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MaterialApprovalRecord.decided_at",
    )

    def reset_approvals(self) -> None:
        self.homeowner_approved = False
        self.homeowner_approved_by = None
        self.homeowner_approved_at = None
        self.supervisor_approved = False
        self.supervisor_approved_by = None
        self.supervisor_approved_at = None
        self.rejection_reason = None
        self.rejected_by_role = None
        self.rejected_by = None
        self.rejected_at = None

    def to_dto(self) -> MaterialRequestInfo:
        return MaterialRequestInfo(
            id=self.id,
            project_id=self.project_id,
            contractor_id=self.contractor_id,
            status=MaterialRequestStatus(self.status),
            homeowner_approved=self.homeowner_approved,
            homeowner_approved_by=self.homeowner_approved_by,
            homeowner_approved_at=self.homeowner_approved_at,
            supervisor_approved=self.supervisor_approved,
            supervisor_approved_by=self.supervisor_approved_by,
            supervisor_approved_at=self.supervisor_approved_at,
            rejection_reason=self.rejection_reason,
            rejected_by_role=(
                ApproverRole(self.rejected_by_role) if self.rejected_by_role else None
            ),
            rejected_at=self.rejected_at,
            materials=tuple(m.to_dto() for m in self.materials),
        )

    def __repr__(self) -> str:
        return f"<MaterialRequest {self.id} ({self.status})>"


class Material(TrackedBase):
    """
    One material line of a request.

    contract_amount = unit_price * contract_quantity, fixed at import.
    actual_amount, variance and variance_amount are derived whenever an
    actual quantity is recorded.
    """

    __tablename__ = "materials"

    __table_args__ = (
        Index("idx_material_request", "material_request_id"),
        Index("idx_material_project", "project_id"),
    )

    material_request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("material_requests.id"),
        nullable=False,
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    contract_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    contract_amount: Mapped[Decimal] = mapped_column(nullable=False)

    actual_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    actual_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    paid_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
        doc="Sum of MaterialPayment.amount for this material",
    )

    material_request: Mapped[MaterialRequest] = relationship(back_populates="materials")

    quantity_changes: Mapped[list[MaterialQuantityChange]] = relationship(
        back_populates="material",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MaterialQuantityChange.changed_at",
    )

    payments: Mapped[list[MaterialPayment]] = relationship(
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="MaterialPayment.paid_at",
    )

    def to_dto(self) -> MaterialInfo:
        return MaterialInfo(
            id=self.id,
            material_request_id=self.material_request_id,
            project_id=self.project_id,
            line_number=self.line_number,
            code=self.code,
            name=self.name,
            unit=self.unit,
            unit_price=self.unit_price,
            contract_quantity=self.contract_quantity,
            contract_amount=self.contract_amount,
            actual_quantity=self.actual_quantity,
            actual_amount=self.actual_amount,
            variance=self.variance,
            variance_amount=self.variance_amount,
            paid_amount=self.paid_amount,
        )


class MaterialApprovalRecord(Base):
    """One approve/reject decision on a material request. Append-only."""

    __tablename__ = "material_approval_records"

    __table_args__ = (
        Index("idx_material_approval_request", "material_request_id"),
    )

    material_request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("material_requests.id"),
        nullable=False,
    )

    approver_role: Mapped[str] = mapped_column(String(20), nullable=False)
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(10), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    material_request: Mapped[MaterialRequest] = relationship(
        back_populates="approval_records",
    )

    def to_dto(self) -> ApprovalRecordInfo:
        return ApprovalRecordInfo(
            id=self.id,
            material_request_id=self.material_request_id,
            approver_role=ApproverRole(self.approver_role),
            approver_id=self.approver_id,
            decision=ApprovalDecision(self.decision),
            notes=self.notes,
            decided_at=self.decided_at,
        )


class MaterialQuantityChange(Base):
    """One change of a material's actual quantity. Append-only."""

    __tablename__ = "material_quantity_changes"

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    old_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    changed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    material: Mapped[Material] = relationship(back_populates="quantity_changes")

    def to_dto(self) -> QuantityChangeInfo:
        return QuantityChangeInfo(
            id=self.id,
            material_id=self.material_id,
            old_quantity=self.old_quantity,
            new_quantity=self.new_quantity,
            changed_by=self.changed_by,
            changed_at=self.changed_at,
            notes=self.notes,
        )


class MaterialPayment(Base):
    """
    One payment against an approved material. Append-only.

    paid_* and remaining_* are the material's running totals right after
    this payment, measured against its payable amount at that moment.
    """

    __tablename__ = "material_payments"

    __table_args__ = (
        Index("idx_material_payment_material", "material_id"),
        Index("idx_material_payment_project", "project_id"),
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(nullable=False)

    paid_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    material: Mapped[Material] = relationship(back_populates="payments")

    def to_dto(self) -> MaterialPaymentInfo:
        return MaterialPaymentInfo(
            id=self.id,
            material_id=self.material_id,
            project_id=self.project_id,
            amount=self.amount,
            paid_quantity=self.paid_quantity,
            paid_amount=self.paid_amount,
            remaining_quantity=self.remaining_quantity,
            remaining_amount=self.remaining_amount,
            paid_by=self.paid_by,
            paid_at=self.paid_at,
            notes=self.notes,
        )
