"""Tests for parsing payment gateway notifications."""

import base64
from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_kernel.domain.dtos import PaymentPurpose
from procurement_kernel.exceptions import ValidationError
from procurement_services.payment_webhook import (
    PaymentNotification,
    decode_extra_data,
    encode_extra_data,
)
from tests.factories import momo_payload


class TestParse:
    def test_escrow_payload(self):
        contract_id = uuid4()
        notification = PaymentNotification.parse(momo_payload("ORDER-1", contract_id))

        assert notification.payment_reference == "ORDER-1"
        assert notification.request_id == "req-ORDER-1"
        assert notification.amount == Decimal("10000000")
        assert notification.result_code == 0
        assert notification.purpose == PaymentPurpose.ESCROW
        assert notification.target_id == contract_id
        assert notification.trans_id == "4088878653"

    @pytest.mark.parametrize("purpose", [
        "supervisor-fee", "supervisor-features", "supervisor", "Supervisor-Fee",
    ])
    def test_supervisor_fee_purposes(self, purpose):
        notification = PaymentNotification.parse(momo_payload("ORDER-2", uuid4(), purpose=purpose))
        assert notification.purpose == PaymentPurpose.SUPERVISOR_FEE

    def test_commission_purpose(self):
        notification = PaymentNotification.parse(momo_payload("ORDER-2", uuid4(), purpose="commission"))
        assert notification.purpose == PaymentPurpose.COMMISSION

    @pytest.mark.parametrize("amount", [10000000.0, 1e7])
    def test_integral_float_amount(self, amount):
        payload = momo_payload("ORDER-3", uuid4())
        payload["amount"] = amount
        notification = PaymentNotification.parse(payload)
        assert notification.amount == Decimal("10000000")
        assert isinstance(notification.amount, Decimal)

    def test_string_fields_are_accepted(self):
        payload = momo_payload("ORDER-3", uuid4())
        payload["amount"] = "2500000"
        payload["resultCode"] = "1006"
        notification = PaymentNotification.parse(payload)
        assert notification.amount == Decimal("2500000")
        assert notification.result_code == 1006

    def test_request_id_defaults_to_order_id(self):
        payload = momo_payload("ORDER-4", uuid4())
        del payload["requestId"]
        del payload["transId"]
        notification = PaymentNotification.parse(payload)
        assert notification.request_id == "ORDER-4"
        assert notification.trans_id is None

    @pytest.mark.parametrize("key", ["orderId", "amount", "resultCode", "extraData"])
    def test_missing_required_key(self, key):
        payload = momo_payload("ORDER-5", uuid4())
        del payload[key]
        with pytest.raises(ValidationError):
            PaymentNotification.parse(payload)

    @pytest.mark.parametrize("field,value", [
        ("orderId", "   "),
        ("amount", 10.5),
        ("amount", float("nan")),
        ("amount", True),
        ("amount", "lots"),
        ("resultCode", True),
        ("resultCode", "ok"),
        ("extraData", "not base64!"),
        ("extraData", base64.b64encode(b"[1, 2]").decode()),
    ])
    def test_malformed_fields(self, field, value):
        payload = momo_payload("ORDER-6", uuid4())
        payload[field] = value
        with pytest.raises(ValidationError):
            PaymentNotification.parse(payload)

    def test_unknown_purpose(self):
        with pytest.raises(ValidationError, match="purpose"):
            PaymentNotification.parse(momo_payload("ORDER-7", uuid4(), purpose="tip"))

    def test_bad_contract_id(self):
        payload = momo_payload("ORDER-8", uuid4())
        payload["extraData"] = encode_extra_data({"purpose": "escrow", "contractId": "abc"})
        with pytest.raises(ValidationError, match="contractId"):
            PaymentNotification.parse(payload)

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            PaymentNotification.parse(["orderId", "ORDER-9"])


def test_extra_data_decodes_to_dict():
    encoded = encode_extra_data({"purpose": "escrow", "contractId": "x"})
    assert decode_extra_data(encoded) == {"purpose": "escrow", "contractId": "x"}
