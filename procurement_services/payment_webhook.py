"""
procurement_services.payment_webhook -- payment gateway notification adapter.

Responsibility:
    Parses the gateway's asynchronous payment notification (MoMo IPN
    shape) into a typed ``PaymentNotification`` and applies it.  Escrow
    payments credit the contract's escrow.  Commission payments unlock the
    contractor's signature and supervisor-fee payments unlock the
    homeowner's signature on the registration contract.  Non-success result
    codes are a logged no-op.

Architecture position:
    Services layer.  Transport concerns (HTTP, signature verification) are
    the caller's; this module receives the decoded JSON body.

Invariants enforced:
    - The gateway's ``orderId`` is the payment reference; each reference is
      applied at most once through the durable processed-payment table.
    - Redelivery of an already applied notification returns an outcome
      with ``applied=False``, never an error.

Failure modes:
    - ValidationError on a malformed payload (missing keys, bad amount,
      undecodable ``extraData``, unknown purpose).
    - NotFoundError subclasses for unknown target contracts.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from procurement_config.schema import PaymentSettings
from procurement_kernel.domain.capabilities import Actor, Role
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.dtos import PaymentOutcome, PaymentPurpose
from procurement_kernel.domain.values import to_decimal
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.services.contract_service import (
    ContractService,
    SupervisorContractService,
)
from procurement_kernel.services.escrow_service import EscrowService
from procurement_kernel.services.payment_ledger_service import PaymentLedgerService
from procurement_kernel.utils.idempotency import payment_idempotency_key

logger = get_logger("services.payment_webhook")

COMMISSION_EVENT = "contract.commission"
SUPERVISOR_FEE_EVENT = "supervisor.fee"

# Identity recorded as created_by/updated_by for gateway-driven changes.
PAYMENT_GATEWAY_ACTOR = Actor(
    actor_id=UUID("00000000-0000-0000-0000-00000000a11e"),
    role=Role.SYSTEM,
)

_PURPOSES = {
    "escrow": PaymentPurpose.ESCROW,
    "commission": PaymentPurpose.COMMISSION,
    "supervisor-fee": PaymentPurpose.SUPERVISOR_FEE,
    # Tags used by older clients for the supervisor registration payment.
    "supervisor": PaymentPurpose.SUPERVISOR_FEE,
    "supervisor-features": PaymentPurpose.SUPERVISOR_FEE,
}


def _require(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Payment notification is missing {key!r}")
    return value


def _parse_amount(value: Any) -> Decimal:
    """
    Gateway amounts are whole minor units.  JSON decoders may hand them over
    as floats (``1000.0``); those are accepted only when integral.
    """
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Invalid payment amount: {value!r} is not a whole amount")
        return Decimal(int(value))
    try:
        return to_decimal(value, "amount")
    except ValueError as e:
        raise ValidationError(f"Invalid payment amount: {e}") from e


def decode_extra_data(extra_data: str) -> dict[str, Any]:
    """Decode the base64 JSON ``extraData`` field."""
    try:
        decoded = base64.b64decode(extra_data, validate=True).decode("utf-8")
        data = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"extraData is not base64-encoded JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("extraData must decode to a JSON object")
    return data


def encode_extra_data(data: Mapping[str, Any]) -> str:
    """Inverse of ``decode_extra_data``; used when creating payment orders."""
    return base64.b64encode(json.dumps(dict(data)).encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class PaymentNotification:
    """A decoded gateway payment notification."""

    order_id: str
    request_id: str
    amount: Decimal
    result_code: int
    message: str
    purpose: PaymentPurpose
    target_id: UUID
    trans_id: str | None = None

    @property
    def payment_reference(self) -> str:
        return self.order_id

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> PaymentNotification:
        """
        Build a notification from the gateway's JSON body.

        Raises:
            ValidationError: if the payload is malformed.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Payment notification must be a JSON object")

        order_id = str(_require(payload, "orderId")).strip()
        request_id = str(payload.get("requestId") or order_id)

        amount = _parse_amount(_require(payload, "amount"))

        raw_code = _require(payload, "resultCode")
        try:
            if isinstance(raw_code, bool):
                raise ValueError(raw_code)
            result_code = int(raw_code)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid resultCode {raw_code!r}") from e

        extra = decode_extra_data(str(_require(payload, "extraData")))
        purpose_name = str(extra.get("purpose", "")).strip().lower()
        purpose = _PURPOSES.get(purpose_name)
        if purpose is None:
            raise ValidationError(f"Unknown payment purpose {purpose_name!r}")
        try:
            target_id = UUID(str(extra.get("contractId")))
        except ValueError as e:
            raise ValidationError(f"Invalid contractId in extraData: {extra.get('contractId')!r}") from e

        trans_id = payload.get("transId")
        return cls(
            order_id=order_id,
            request_id=request_id,
            amount=amount,
            result_code=result_code,
            message=str(payload.get("message") or ""),
            purpose=purpose,
            target_id=target_id,
            trans_id=str(trans_id) if trans_id is not None else None,
        )


def apply_payment_notification(
    session: Session,
    clock: Clock,
    notification: PaymentNotification,
    settings: PaymentSettings,
) -> PaymentOutcome:
    """
    Apply a parsed notification within the caller's transaction.

    Returns:
        PaymentOutcome describing whether the payment succeeded and whether
        this delivery changed any state.
    """
    if not settings.is_success(notification.result_code):
        logger.info(
            "payment_not_successful",
            extra={
                "payment_reference": notification.payment_reference,
                "result_code": notification.result_code,
                "gateway_message": notification.message,
                "purpose": notification.purpose.value,
            },
        )
        return PaymentOutcome(
            payment_reference=notification.payment_reference,
            purpose=notification.purpose,
            succeeded=False,
            applied=False,
            contract_id=notification.target_id,
            reason=notification.message or f"result code {notification.result_code}",
        )

    if notification.purpose == PaymentPurpose.ESCROW:
        result = EscrowService(session, clock).credit(
            PAYMENT_GATEWAY_ACTOR,
            notification.target_id,
            notification.amount,
            notification.payment_reference,
        )
        return PaymentOutcome(
            payment_reference=notification.payment_reference,
            purpose=notification.purpose,
            succeeded=True,
            applied=result.applied,
            contract_id=result.contract_id,
            reason="" if result.applied else "duplicate payment reference",
        )

    if notification.purpose == PaymentPurpose.COMMISSION:
        service = ContractService(session, clock)
        event, mark_paid = COMMISSION_EVENT, service.mark_commission_paid
    else:
        service = SupervisorContractService(session, clock)
        event, mark_paid = SUPERVISOR_FEE_EVENT, service.mark_fee_paid

    contract = service.lock(notification.target_id)
    claimed = PaymentLedgerService(session, clock).claim(
        payment_idempotency_key(event, notification.payment_reference),
        notification.payment_reference,
        notification.purpose,
        contract.id,
        notification.amount,
        contract.currency,
    )
    if claimed:
        mark_paid(
            contract.id,
            notification.payment_reference,
            notification.amount,
            PAYMENT_GATEWAY_ACTOR.actor_id,
        )
    else:
        logger.info(
            "payment_duplicate",
            extra={
                "purpose": notification.purpose.value,
                "contract_id": str(contract.id),
                "payment_reference": notification.payment_reference,
            },
        )
    return PaymentOutcome(
        payment_reference=notification.payment_reference,
        purpose=notification.purpose,
        succeeded=True,
        applied=claimed,
        contract_id=contract.id,
        reason="" if claimed else "duplicate payment reference",
    )
