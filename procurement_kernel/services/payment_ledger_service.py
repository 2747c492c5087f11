"""
PaymentLedgerService -- durable payment idempotency.

Responsibility:
    Records each processed payment reference in ``processed_payments``
    under a unique idempotency key, in the same transaction as the effect
    it guards.  A second delivery of the same reference finds the row (or
    loses the insert race) and is reported as already processed.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Each idempotency key is claimed at most once, across processes and
      restarts (unique constraint, not in-memory state).
    - A losing concurrent claim is rolled back to a savepoint only; the
      surrounding transaction stays usable.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from procurement_kernel.domain.dtos import PaymentPurpose
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.escrow import ProcessedPayment
from procurement_kernel.services.base import BaseService

logger = get_logger("services.payment_ledger")


class PaymentLedgerService(BaseService[ProcessedPayment]):
    """Claims payment idempotency keys."""

    model = ProcessedPayment

    def find(self, idempotency_key: str) -> ProcessedPayment | None:
        return self.session.execute(
            select(ProcessedPayment).where(ProcessedPayment.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def is_processed(self, idempotency_key: str) -> bool:
        return self.find(idempotency_key) is not None

    def claim(
        self,
        idempotency_key: str,
        payment_reference: str,
        purpose: PaymentPurpose,
        target_id: UUID,
        amount: Decimal,
        currency: str,
    ) -> bool:
        """
        Claim ``idempotency_key`` for this transaction.

        Returns:
            True if this call claimed the key, False if it was already
            processed (now or by a concurrent transaction).
        """
        if self.is_processed(idempotency_key):
            return False

        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                ProcessedPayment(
                    idempotency_key=idempotency_key,
                    payment_reference=payment_reference,
                    purpose=purpose.value,
                    target_id=target_id,
                    amount=amount,
                    currency=currency,
                    processed_at=self.clock.now(),
                )
            )
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "payment_claim_race_lost",
                extra={
                    "idempotency_key": idempotency_key,
                    "payment_reference": payment_reference,
                },
            )
            return False

        logger.debug(
            "payment_claimed",
            extra={
                "idempotency_key": idempotency_key,
                "purpose": purpose.value,
                "target_id": str(target_id),
            },
        )
        return True
