"""Tests for dinnernight.gateway (Paystack over a mocked transport, MockPay
over the SQL payment session store)."""

import base64
import hashlib
import hmac
import json

import httpx
import pytest

from dinnernight.gateway import (
    GatewayError, MockPay, PaystackAdapter, TransactionStatus,
)
from dinnernight.model.paymentsession import new_store

SECRET = "sk_test_123"


def _paystack(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PaystackAdapter(SECRET, "https://api.paystack.test", http,
                           timeout=1.0, callback_url="https://x.test/cb")


def _verify_body(status, metadata):
    return {
        "status": True,
        "message": "Verification successful",
        "data": {"reference": "ps_ref", "status": status, "amount": 500000,
                 "metadata": metadata},
    }


# ------------------------------------------------------------------ #
#  Paystack                                                            #
# ------------------------------------------------------------------ #


class TestPaystack:
    async def test_initialize(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "data": {"reference": "ps_ref",
                         "authorization_url": "https://checkout.test/abc"},
            })

        adapter = _paystack(handler)
        tx = await adapter.initialize_transaction(
            "ada@example.com", 500000, {"order_id": "o1"}
        )
        assert tx == {"reference": "ps_ref",
                      "redirect_url": "https://checkout.test/abc"}
        assert seen["url"] == \
            "https://api.paystack.test/transaction/initialize"
        assert seen["auth"] == f"Bearer {SECRET}"
        assert seen["body"] == {
            "email": "ada@example.com", "amount": 500000,
            "metadata": {"order_id": "o1"},
            "callback_url": "https://x.test/cb",
        }

    @pytest.mark.parametrize("raw,expected", [
        ("success", TransactionStatus.SUCCESS),
        ("failed", TransactionStatus.FAILED),
        ("abandoned", TransactionStatus.FAILED),
        ("ongoing", TransactionStatus.PENDING),
    ])
    async def test_verify_status_mapping(self, raw, expected):
        adapter = _paystack(lambda r: httpx.Response(
            200, json=_verify_body(raw, {"order_id": "o1"})
        ))
        tx = await adapter.verify_transaction("ps_ref")
        assert tx.status == expected
        assert tx.amount == 500000
        assert tx.metadata == {"order_id": "o1"}

    async def test_verify_metadata_as_string(self):
        adapter = _paystack(lambda r: httpx.Response(
            200, json=_verify_body("success", '{"order_id": "o2"}')
        ))
        tx = await adapter.verify_transaction("ps_ref")
        assert tx.metadata == {"order_id": "o2"}

    async def test_api_error_raises(self):
        adapter = _paystack(lambda r: httpx.Response(
            404, json={"status": False, "message": "Transaction not found"}
        ))
        with pytest.raises(GatewayError, match="Transaction not found"):
            await adapter.verify_transaction("nope")

    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GatewayError, match="timeout"):
            await _paystack(handler).verify_transaction("ps_ref")

    def test_webhook_signature(self):
        adapter = _paystack(lambda r: httpx.Response(200))
        raw = b'{"event":"charge.success","data":{"reference":"ps_ref"}}'
        good = hmac.new(SECRET.encode(), raw, hashlib.sha512).hexdigest()
        assert adapter.verify_webhook_signature(raw, good)
        assert not adapter.verify_webhook_signature(raw + b" ", good)
        assert not adapter.verify_webhook_signature(raw, None)
        assert not adapter.verify_webhook_signature(raw, "0" * 128)

    def test_webhook_reference(self):
        adapter = _paystack(lambda r: httpx.Response(200))
        assert adapter.webhook_reference(
            {"event": "charge.success", "data": {"reference": "r1"}}
        ) == "r1"
        assert adapter.webhook_reference(
            {"event": "transfer.success", "data": {"reference": "r1"}}
        ) is None
        assert adapter.webhook_reference({"event": "charge.success"}) is None


# ------------------------------------------------------------------ #
#  MockPay                                                             #
# ------------------------------------------------------------------ #


@pytest.fixture
def mockpay(SessionAsync, gated):
    store = new_store(sessionmaker=SessionAsync, gated=gated,
                      ttl_seconds=3600)
    return MockPay(store, "supersecret", "http://localhost/payments/webhook")


class TestMockPay:
    async def test_initialize_then_verify_pending(self, mockpay):
        tx = await mockpay.initialize_transaction(
            "ada@example.com", 800000, {"order_id": "o1"}
        )
        assert tx["reference"].startswith("mock_")
        assert tx["redirect_url"] == f"/mockpay/{tx['reference']}"

        verified = await mockpay.verify_transaction(tx["reference"])
        assert verified.status == TransactionStatus.PENDING
        assert verified.amount == 800000
        assert verified.metadata == {"order_id": "o1"}

    async def test_complete_success_signs_event(self, mockpay):
        tx = await mockpay.initialize_transaction(
            "ada@example.com", 800000, {"order_id": "o1"}
        )
        raw, signature = await mockpay.complete(tx["reference"], "success")

        expected = base64.b64encode(
            hmac.new(b"supersecret", raw, hashlib.sha256).digest()
        ).decode()
        assert signature == expected
        assert mockpay.verify_webhook_signature(raw, signature)

        event = json.loads(raw)
        assert mockpay.webhook_reference(event) == tx["reference"]
        assert event["data"]["metadata"] == {"order_id": "o1"}
        verified = await mockpay.verify_transaction(tx["reference"])
        assert verified.status == TransactionStatus.SUCCESS

    async def test_complete_failed(self, mockpay):
        tx = await mockpay.initialize_transaction(
            "ada@example.com", 800000, {"order_id": "o1"}
        )
        raw, _ = await mockpay.complete(tx["reference"], "failed")
        assert mockpay.webhook_reference(json.loads(raw)) is None
        verified = await mockpay.verify_transaction(tx["reference"])
        assert verified.status == TransactionStatus.FAILED

    async def test_unknown_reference(self, mockpay):
        assert await mockpay.complete("mock_nope", "success") is None
        with pytest.raises(GatewayError):
            await mockpay.verify_transaction("mock_nope")

    async def test_invalid_outcome(self, mockpay):
        with pytest.raises(ValueError):
            await mockpay.complete("mock_nope", "maybe")

    async def test_pending_index(self, mockpay):
        a = await mockpay.initialize_transaction("a@example.com", 100, {
            "order_id": "oa"})
        b = await mockpay.initialize_transaction("b@example.com", 200, {
            "order_id": "ob"})
        total, items = await mockpay.store.get_recent_payment_sessions()
        assert total == 2
        assert {i["reference"] for i in items} == {a["reference"],
                                                   b["reference"]}

        await mockpay.complete(a["reference"], "success")
        total, items = await mockpay.store.get_recent_payment_sessions()
        assert total == 1
        assert items[0]["order_id"] == "ob"
        assert items[0]["status"] == "pending"
