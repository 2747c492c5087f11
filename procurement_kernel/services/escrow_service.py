"""
EscrowService -- per-contract escrow ledger.

Responsibility:
    Credits escrow accounts from payment notifications and reports
    balances and credit history.  Accounts are created lazily on the first
    credit.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Crediting is idempotent on the payment reference via the durable
      processed-payment table; a duplicate is a successful no-op.
    - balance only grows through credits and never goes below zero.
    - Credits for one contract are serialized by locking the contract row.

Failure modes:
    - InvalidAmountError for amount <= 0.
    - ContractNotFoundError for an unknown contract.
    - PreconditionFailedError when the contract is not Active or
      PendingSignatures.
    - ForbiddenError when the caller is not a trusted payment channel.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.capabilities import Actor, authorize
from procurement_kernel.domain.dtos import (
    ContractStatus,
    CreditResult,
    EscrowCreditInfo,
    PaymentPurpose,
)
from procurement_kernel.db.types import InvalidCurrencyError
from procurement_kernel.domain.values import Money, to_decimal
from procurement_kernel.exceptions import (
    ContractNotFoundError,
    InvalidAmountError,
    PreconditionFailedError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.contract import Contract
from procurement_kernel.models.escrow import EscrowAccount, EscrowCredit
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.contract_service import ContractService
from procurement_kernel.services.payment_ledger_service import PaymentLedgerService
from procurement_kernel.utils.idempotency import payment_idempotency_key

logger = get_logger("services.escrow")

ESCROW_CREDIT_EVENT = "escrow.credit"

_CREDITABLE_STATUSES = frozenset({
    ContractStatus.PENDING_SIGNATURES.value,
    ContractStatus.ACTIVE.value,
})


class EscrowService(BaseService[EscrowAccount]):
    """Escrow balances and credits."""

    model = EscrowAccount

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._contracts = ContractService(session, self.clock)
        self._payments = PaymentLedgerService(session, self.clock)

    def credit(
        self,
        actor: Actor,
        contract_id: UUID,
        amount: Decimal | int | str,
        payment_reference: str,
        currency: str | None = None,
    ) -> CreditResult:
        """
        Credit ``amount`` to the contract's escrow.

        Returns:
            CreditResult with ``applied=False`` if ``payment_reference`` was
            already processed; the balance is then unchanged.
        """
        authorize(actor, "Escrow", "credit")
        try:
            value = to_decimal(amount, "amount")
        except ValueError as e:
            raise InvalidAmountError("amount", str(amount), str(e)) from e
        if value <= 0:
            raise InvalidAmountError("amount", str(value), "must be positive")
        if not payment_reference or not payment_reference.strip():
            raise ValidationError("payment_reference must not be empty")

        contract = self._contracts.lock(contract_id)
        try:
            payment = Money(value, currency or contract.currency)
        except InvalidCurrencyError as e:
            raise ValidationError(str(e)) from e
        if payment.currency != contract.currency:
            raise ValidationError(
                f"Payment currency {payment.currency} does not match contract currency {contract.currency}"
            )

        key = payment_idempotency_key(ESCROW_CREDIT_EVENT, payment_reference)
        if self._payments.is_processed(key):
            return self._duplicate(contract, payment_reference)

        if contract.status not in _CREDITABLE_STATUSES:
            raise PreconditionFailedError(
                f"Contract {contract.id} is {contract.status}; escrow accepts credits "
                f"only while pending signatures or active"
            )

        if not self._payments.claim(
            key, payment_reference, PaymentPurpose.ESCROW, contract.id, value, contract.currency,
        ):
            return self._duplicate(contract, payment_reference)

        account = self._account_for_update(contract.id)
        if account is None:
            account = EscrowAccount(
                contract_id=contract.id,
                currency=contract.currency,
                balance=Decimal("0"),
                created_by_id=actor.actor_id,
            )
            self.session.add(account)
            self.session.flush()

        account.balance = (Money(account.balance, account.currency) + payment).amount
        account.updated_by_id = actor.actor_id
        self.session.add(
            EscrowCredit(
                account_id=account.id,
                contract_id=contract.id,
                amount=value,
                currency=contract.currency,
                payment_reference=payment_reference,
                credited_at=self.clock.now(),
            )
        )
        self.session.flush()

        logger.info(
            "escrow_credited",
            extra={
                "contract_id": str(contract.id),
                "payment_reference": payment_reference,
                "amount": str(value),
                "balance": str(account.balance),
            },
        )
        return CreditResult(
            contract_id=contract.id,
            payment_reference=payment_reference,
            applied=True,
            balance=account.balance,
            currency=contract.currency,
        )

    def get_balance(self, contract_id: UUID) -> Decimal:
        """Current balance; zero when the contract has no escrow account yet."""
        if self.session.get(Contract, contract_id) is None:
            raise ContractNotFoundError(str(contract_id))
        account = self._account(contract_id)
        return account.balance if account is not None else Decimal("0")

    def list_credits(self, contract_id: UUID) -> list[EscrowCreditInfo]:
        if self.session.get(Contract, contract_id) is None:
            raise ContractNotFoundError(str(contract_id))
        credits = self.session.execute(
            select(EscrowCredit)
            .where(EscrowCredit.contract_id == contract_id)
            .order_by(EscrowCredit.credited_at, EscrowCredit.id)
        ).scalars().all()
        return [c.to_dto() for c in credits]

    def _duplicate(self, contract: Contract, payment_reference: str) -> CreditResult:
        account = self._account(contract.id)
        balance = account.balance if account is not None else Decimal("0")
        logger.info(
            "escrow_credit_duplicate",
            extra={
                "contract_id": str(contract.id),
                "payment_reference": payment_reference,
                "balance": str(balance),
            },
        )
        return CreditResult(
            contract_id=contract.id,
            payment_reference=payment_reference,
            applied=False,
            balance=balance,
            currency=contract.currency,
        )

    def _account(self, contract_id: UUID) -> EscrowAccount | None:
        return self.session.execute(
            select(EscrowAccount)
            .where(EscrowAccount.contract_id == contract_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _account_for_update(self, contract_id: UUID) -> EscrowAccount | None:
        return self.session.execute(
            select(EscrowAccount)
            .where(EscrowAccount.contract_id == contract_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
