from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, TypedDict
import base64
import hashlib
import hmac
import json
import logging
import uuid

import httpx

from .helpers import now_ts
from .infra.timings import timeit
from .model.paymentsession import PS_FAILED, PS_PENDING, PS_SUCCESS

logger = logging.getLogger(__name__)

EVENT_CHARGE_SUCCESS = "charge.success"
EVENT_CHARGE_FAILED = "charge.failed"


class GatewayError(Exception):
    """Gateway unreachable, timed out or answered with an error."""


class TransactionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class InitializedTransaction(TypedDict):
    reference: str
    redirect_url: str


@dataclass
class VerifiedTransaction:
    reference: str
    status: TransactionStatus
    amount: int
    metadata: Dict[str, Any] = field(default_factory=dict)


# ----------------------------
# Payment Adapter Interface
# ----------------------------
class PaymentAdapter(ABC):
    # name of the header carrying the webhook signature
    signature_header: str = ""

    @abstractmethod
    async def initialize_transaction(
            self, email: str, amount: int, metadata: dict
    ) -> InitializedTransaction: ...

    @abstractmethod
    async def verify_transaction(
            self, reference: str
    ) -> VerifiedTransaction: ...

    @abstractmethod
    def verify_webhook_signature(
            self, raw: bytes, signature: Optional[str]
    ) -> bool: ...

    def webhook_reference(self, event: dict) -> Optional[str]:
        """Reference of a successful-charge event, None for anything else."""
        if event.get("event") != EVENT_CHARGE_SUCCESS:
            return None
        data = event.get("data") or {}
        ref = data.get("reference")
        return str(ref) if ref else None


def _metadata(raw: Any) -> Dict[str, Any]:
    # Paystack echoes metadata back either as an object or a JSON string
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}
    return {}


# ----------------------------
# Paystack implementation
# ----------------------------
class PaystackAdapter(PaymentAdapter):
    signature_header = "x-paystack-signature"

    def __init__(self, secret_key: str, base_url: str,
                 http: httpx.AsyncClient, timeout: float = 10.0,
                 callback_url: str = "") -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.http = http
        self.timeout = timeout
        self.callback_url = callback_url

    async def _request(self, method: str, path: str,
                       payload: Optional[dict] = None) -> dict:
        try:
            resp = await self.http.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise GatewayError(f"paystack timeout on {path}") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"paystack unreachable: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError(
                f"paystack answered {resp.status_code} without JSON"
            ) from e
        if resp.status_code >= 400 or not body.get("status", False):
            raise GatewayError(
                f"paystack error {resp.status_code}: "
                f"{body.get('message') or 'Unknown error'}"
            )
        return body.get("data") or {}

    async def initialize_transaction(
            self, email: str, amount: int, metadata: dict
    ) -> InitializedTransaction:
        payload = {"email": email, "amount": int(amount),
                   "metadata": metadata}
        if self.callback_url:
            payload["callback_url"] = self.callback_url
        async with timeit("gateway.initialize"):
            data = await self._request("POST", "/transaction/initialize",
                                       payload)
        return {
            "reference": data["reference"],
            "redirect_url": data["authorization_url"],
        }

    async def verify_transaction(
            self, reference: str
    ) -> VerifiedTransaction:
        async with timeit("gateway.verify"):
            data = await self._request(
                "GET", f"/transaction/verify/{reference}"
            )
        raw_status = str(data.get("status", "")).lower()
        if raw_status == "success":
            status = TransactionStatus.SUCCESS
        elif raw_status in ("failed", "abandoned", "reversed"):
            status = TransactionStatus.FAILED
        else:
            status = TransactionStatus.PENDING
        return VerifiedTransaction(
            reference=str(data.get("reference") or reference),
            status=status,
            amount=int(data.get("amount") or 0),
            metadata=_metadata(data.get("metadata")),
        )

    def verify_webhook_signature(
            self, raw: bytes, signature: Optional[str]
    ) -> bool:
        if not signature:
            return False
        expected = hmac.new(
            self.secret_key.encode(), raw, hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(expected, signature)


# ----------------------------
# MockPay implementation
# ----------------------------
class MockPay(PaymentAdapter):
    """
    Local stand-in for a hosted gateway. Transactions live in the payment
    session store; `complete` settles one and returns the signed webhook
    the real gateway would send.
    """
    signature_header = "x-mockpay-signature"

    def __init__(self, store, secret: str, webhook_url: str = "") -> None:
        self.store = store
        self.secret = secret
        self.webhook_url = webhook_url

    def sign(self, raw: bytes) -> str:
        mac = hmac.new(self.secret.encode(), raw, hashlib.sha256).digest()
        return base64.b64encode(mac).decode()

    async def initialize_transaction(
            self, email: str, amount: int, metadata: dict
    ) -> InitializedTransaction:
        reference = f"mock_{uuid.uuid4().hex}"
        async with timeit("paymentsession.save"):
            await self.store.save_payment_session(reference, {
                "email": email,
                "amount": int(amount),
                "currency": "ngn",
                "metadata": metadata,
                "status": PS_PENDING,
                "created_at": now_ts(),
            })
        return {"reference": reference,
                "redirect_url": f"/mockpay/{reference}"}

    async def verify_transaction(
            self, reference: str
    ) -> VerifiedTransaction:
        async with timeit("paymentsession.get"):
            ps = await self.store.get_payment_session(reference)
        if not ps:
            raise GatewayError(f"unknown transaction {reference}")
        return VerifiedTransaction(
            reference=reference,
            status=TransactionStatus(ps["status"]),
            amount=int(ps["amount"]),
            metadata=_metadata(ps.get("metadata")),
        )

    def verify_webhook_signature(
            self, raw: bytes, signature: Optional[str]
    ) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(raw), signature)

    async def complete(self, reference: str,
                       kind: str) -> Optional[Tuple[bytes, str]]:
        """
        Settle a pending transaction as `success` or `failed`.
        Returns (raw webhook body, signature), None for unknown references.
        """
        if kind not in (PS_SUCCESS, PS_FAILED):
            raise ValueError(f"invalid outcome {kind!r}")
        ps = await self.store.get_payment_session(reference)
        if not ps:
            return None
        await self.store.set_status(reference, kind)
        await self.store.remove_pending(reference)

        event = {
            "event": (EVENT_CHARGE_SUCCESS if kind == PS_SUCCESS
                      else EVENT_CHARGE_FAILED),
            "data": {
                "reference": reference,
                "amount": int(ps["amount"]),
                "currency": ps.get("currency", "ngn"),
                "metadata": ps.get("metadata") or {},
            },
        }
        raw = json.dumps(event).encode()
        return raw, self.sign(raw)
