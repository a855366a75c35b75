import time

import pytest

from dinnernight.model.paymentsession import new_store
from dinnernight.model.paymentsession._common import pending_item


@pytest.fixture
def store(SessionAsync, gated):
    return new_store(sessionmaker=SessionAsync, gated=gated, ttl_seconds=60)


SESSION = {"email": "ada@example.com", "amount": 500000,
           "metadata": {"order_id": "o1"}}


async def test_save_and_get(store):
    await store.save_payment_session("mock_a", SESSION)
    ps = await store.get_payment_session("mock_a")
    assert ps["status"] == "pending"
    assert ps["currency"] == "ngn"
    assert ps["metadata"] == {"order_id": "o1"}


async def test_expired_session_is_gone(store):
    await store.save_payment_session(
        "mock_old", dict(SESSION, created_at=time.time() - 120)
    )
    assert await store.get_payment_session("mock_old") is None


async def test_save_is_an_upsert(store):
    await store.save_payment_session("mock_a", SESSION)
    await store.save_payment_session("mock_a", dict(SESSION, amount=1))
    assert (await store.get_payment_session("mock_a"))["amount"] == 1
    total, _ = await store.get_recent_payment_sessions()
    assert total == 1


async def test_set_status_unknown(store):
    assert await store.set_status("mock_nope", "success") is False


def test_pending_item_from_redis_strings():
    row = {"email": "ada@example.com", "amount": "500000", "currency": "ngn",
           "metadata": '{"order_id": "o1"}', "status": "pending",
           "created_at": "100.0"}
    item = pending_item("mock_a", row, now=101.5)
    assert item == {
        "reference": "mock_a", "created_at": 100.0, "age_ms": 1500,
        "order_id": "o1", "email": "ada@example.com", "amount": 500000,
        "currency": "ngn", "status": "pending",
    }
