"""Shared fixtures: a throwaway SQLite database per test plus in-memory
doubles for the gateway, the notifier and the PDF renderer."""

from __future__ import annotations

import hashlib
import hmac
from typing import Dict, List, Optional

import pytest

from dinnernight.confirmation import ConfirmationEngine
from dinnernight.gateway import (
    GatewayError, PaymentAdapter, TransactionStatus, VerifiedTransaction,
)
from dinnernight.infra.sql import make_async_engine
from dinnernight.model import orders, pool
from dinnernight.model.db import Base
from dinnernight.model.paymentsession._sql import create_schema
from dinnernight.notify import Notifier
from dinnernight.tickets import TicketRenderer


# ------------------------------------------------------------------ #
#  Doubles                                                             #
# ------------------------------------------------------------------ #


class FakeGateway(PaymentAdapter):
    signature_header = "x-test-signature"

    def __init__(self, secret: str = "test-secret"):
        self.secret = secret
        self.transactions: Dict[str, VerifiedTransaction] = {}
        self.verify_calls: List[str] = []
        self.fail_init = False
        self.fail_verify = False

    def add(self, reference: str, *, order_id: Optional[str], amount: int,
            status: TransactionStatus = TransactionStatus.SUCCESS,
            **metadata) -> str:
        if order_id is not None:
            metadata["order_id"] = order_id
        self.transactions[reference] = VerifiedTransaction(
            reference=reference, status=status, amount=amount,
            metadata=metadata,
        )
        return reference

    def pay(self, reference: str) -> None:
        self.transactions[reference].status = TransactionStatus.SUCCESS

    def sign(self, raw: bytes) -> str:
        return hmac.new(self.secret.encode(), raw, hashlib.sha256).hexdigest()

    async def initialize_transaction(self, email, amount, metadata):
        if self.fail_init:
            raise GatewayError("gateway down")
        reference = f"test_{len(self.transactions) + 1}"
        self.transactions[reference] = VerifiedTransaction(
            reference=reference, status=TransactionStatus.PENDING,
            amount=int(amount), metadata=dict(metadata),
        )
        return {"reference": reference,
                "redirect_url": f"https://pay.test/{reference}"}

    async def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        if self.fail_verify:
            raise GatewayError("timed out")
        tx = self.transactions.get(reference)
        if tx is None:
            raise GatewayError(f"unknown transaction {reference}")
        return tx

    def verify_webhook_signature(self, raw, signature):
        if not signature:
            return False
        return hmac.compare_digest(self.sign(raw), signature)


class RecordingNotifier(Notifier):
    def __init__(self, fail: tuple = ()):
        self.fail = set(fail)
        self.tickets: List[tuple] = []
        self.admin: List[object] = []
        self.approvals: List[tuple] = []

    async def send_ticket_email(self, recipient, summary, pdf):
        if "ticket" in self.fail:
            raise RuntimeError("smtp down")
        self.tickets.append((recipient, summary, pdf))

    async def send_admin_notification(self, summary):
        if "admin" in self.fail:
            raise RuntimeError("smtp down")
        self.admin.append(summary)

    async def send_approval_notice(self, artist_email, artist_name):
        if "approval" in self.fail:
            raise RuntimeError("smtp down")
        self.approvals.append((artist_email, artist_name))


class StubRenderer(TicketRenderer):
    def __init__(self):
        self.calls: List[list] = []

    def render_ticket_pdf(self, entries, holder):
        self.calls.append(list(entries))
        codes = ",".join(str(e.code) for e in entries)
        return f"%PDF-stub {holder.name} {codes}".encode()


# ------------------------------------------------------------------ #
#  Fixtures                                                            #
# ------------------------------------------------------------------ #


@pytest.fixture
async def sql(tmp_path):
    """(SessionAsync, gated) bound to a fresh SQLite file."""
    engine, SessionAsync, _, gated = make_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await create_schema(conn)
    yield SessionAsync, gated
    await engine.dispose()


@pytest.fixture
def SessionAsync(sql):
    return sql[0]


@pytest.fixture
def gated(sql):
    return sql[1]


@pytest.fixture
async def db(SessionAsync):
    async with SessionAsync() as session:
        yield session


@pytest.fixture
async def seeded(SessionAsync):
    """Pool with codes 501..520."""
    async with SessionAsync() as s:
        async with s.begin():
            await pool.seed_if_empty(s, 501, 520)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def renderer():
    return StubRenderer()


@pytest.fixture
def engine(SessionAsync, gated, gateway, notifier, renderer):
    return ConfirmationEngine(
        sessionmaker=SessionAsync,
        gated=gated,
        gateway=gateway,
        notifier=notifier,
        renderer=renderer,
        threshold=5,
    )


@pytest.fixture
def place_order(SessionAsync, gateway):
    """Commit a pending order and register a paid transaction for it.
    Returns (order_id, reference)."""
    counter = {"n": 0}

    async def _place(items, *, referral_tag=None, email="ada@example.com",
                     paid=True, amount=None):
        async with SessionAsync() as s:
            async with s.begin():
                order, _ = await orders.create_order(
                    s,
                    customer_name="Ada Obi",
                    customer_email=email,
                    customer_phone="08012345678",
                    items=items,
                    referral_tag=referral_tag,
                )
        counter["n"] += 1
        reference = f"ref_{counter['n']}"
        gateway.add(
            reference, order_id=order.id,
            amount=order.total_amount if amount is None else amount,
            status=(TransactionStatus.SUCCESS if paid
                    else TransactionStatus.PENDING),
        )
        return order.id, reference

    return _place
