"""
Module: procurement_kernel.models.escrow
Responsibility: ORM persistence for per-contract escrow balances, the
    credits that built them, and the durable record of processed payment
    references.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - One escrow account per contract (uq_escrow_contract).
    - balance >= 0 (ck_escrow_balance_non_negative).
    - Each credit carries a payment reference unique across all credits
      (uq_escrow_credit_reference).
    - Each payment idempotency key is processed exactly once
      (uq_processed_payment_key).  This is the durable replacement for any
      client-side "already handled" marker.

Failure modes:
    - IntegrityError on uq_processed_payment_key when two deliveries of the
      same payment race; EscrowService treats the loser as a duplicate.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.domain.dtos import EscrowCreditInfo


class EscrowAccount(TrackedBase):
    """Running escrow balance held against one contract."""

    __tablename__ = "escrow_accounts"

    __table_args__ = (
        UniqueConstraint("contract_id", name="uq_escrow_contract"),
        CheckConstraint("balance >= 0", name="ck_escrow_balance_non_negative"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credits: Mapped[list[EscrowCredit]] = relationship(
        back_populates="account",
        lazy="selectin",
        order_by="EscrowCredit.credited_at",
    )

    def __repr__(self) -> str:
        return f"<EscrowAccount contract={self.contract_id} {self.balance} {self.currency}>"


class EscrowCredit(Base):
    """A single credit into an escrow account. Append-only."""

    __tablename__ = "escrow_credits"

    __table_args__ = (
        UniqueConstraint("payment_reference", name="uq_escrow_credit_reference"),
        Index("idx_escrow_credit_contract", "contract_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("escrow_accounts.id"),
        nullable=False,
    )

    contract_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    credited_at: Mapped[datetime] = mapped_column(nullable=False)

    account: Mapped[EscrowAccount] = relationship(back_populates="credits")

    def to_dto(self) -> EscrowCreditInfo:
        return EscrowCreditInfo(
            id=self.id,
            contract_id=self.contract_id,
            amount=self.amount,
            currency=self.currency,
            payment_reference=self.payment_reference,
            credited_at=self.credited_at,
        )


class ProcessedPayment(Base):
    """
    Durable marker that a payment notification has been applied.

    Contract:
        Rows are inserted in the same transaction as the effect they guard
        (escrow credit or fee-paid flag).  If that transaction rolls back,
        the marker disappears with it and a redelivery is processed normally.
    """

    __tablename__ = "processed_payments"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_processed_payment_key"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    purpose: Mapped[str] = mapped_column(String(30), nullable=False)
    target_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(nullable=False)
