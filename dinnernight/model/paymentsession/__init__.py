"""Where MockPay keeps its transactions: SQL tables or Redis hashes,
chosen once at import by ``PAYSESSION_BACKEND``."""
from typing import AsyncContextManager, Callable, Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...config import PAYSESSION_BACKEND

Gated = Callable[[], AsyncContextManager[None]]

BACKEND = PAYSESSION_BACKEND.lower()  # 'sql' | 'redis'

if BACKEND == "redis":
    from ._redis import PaymentSessionStore
else:
    from ._sql import PaymentSessionStore

# statuses of a MockPay transaction
PS_PENDING = "pending"
PS_SUCCESS = "success"
PS_FAILED = "failed"


def new_store(*, sessionmaker: Optional[async_sessionmaker] = None,
              r: Optional[redis.Redis] = None,
              ttl_seconds: int = 24 * 3600,
              gated: Optional[Gated] = None):
    if BACKEND == "redis":
        if r is None:
            raise RuntimeError("redis payment sessions need r=redis.Redis")
        return PaymentSessionStore(r=r, ttl_seconds=ttl_seconds)
    if sessionmaker is None or gated is None:
        raise RuntimeError(
            "sql payment sessions need sessionmaker= and gated="
        )
    return PaymentSessionStore(sessionmaker=sessionmaker,
                               ttl_seconds=ttl_seconds, gated=gated)


__all__ = [
    "PaymentSessionStore", "new_store", "BACKEND",
    "PS_PENDING", "PS_SUCCESS", "PS_FAILED",
]
