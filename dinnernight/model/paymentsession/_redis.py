from __future__ import annotations
import time
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis

from ._common import decode, encode, pending_item


# ---- keys
def k_ps(reference: str) -> str: return f"ps:{reference}"


PENDING_INDEX = "pendings"


class PaymentSessionStore:
    """One hash per session (expires with the TTL) plus a sorted set of
    pending references scored by creation time."""

    def __init__(self, r: redis.Redis, ttl_seconds: int) -> None:
        self.r = r
        self.ttl = ttl_seconds

    async def save_payment_session(
            self, reference: str, mapping: Dict[str, Any]) -> None:
        created_at = float(mapping.get("created_at") or time.time())
        # values must be strings for decode_responses=True
        h = {k: str(v) for k, v in
             encode(reference, mapping, created_at).items()}
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(k_ps(reference), mapping=h)
        pipe.expire(k_ps(reference), self.ttl)
        pipe.zadd(PENDING_INDEX, {reference: created_at})
        await pipe.execute()

    async def get_payment_session(
            self, reference: str
    ) -> Optional[Dict[str, Any]]:
        h = await self.r.hgetall(k_ps(reference))
        return decode(h) if h else None

    async def set_status(self, reference: str, status: str) -> bool:
        # hset would resurrect an expired hash without a TTL
        if not await self.r.exists(k_ps(reference)):
            return False
        await self.r.hset(k_ps(reference), "status", status)
        return True

    async def remove_pending(self, reference: str) -> None:
        # the hash expires on its own
        await self.r.zrem(PENDING_INDEX, reference)

    async def get_recent_payment_sessions(
            self, limit: int = 200
    ) -> Tuple[int, List[Dict[str, Any]]]:
        total = await self.r.zcard(PENDING_INDEX)
        refs = await self.r.zrevrange(PENDING_INDEX, 0, max(0, limit - 1))
        pipe = self.r.pipeline()
        for ref in refs:
            pipe.hgetall(k_ps(ref))
        rows = await pipe.execute()

        now = time.time()
        items = []
        stale = []
        for ref, h in zip(refs, rows):
            if h:
                items.append(pending_item(ref, h, now))
            else:
                stale.append(ref)
        # expired hash, index entry left behind
        if stale:
            await self.r.zrem(PENDING_INDEX, *stale)
            total -= len(stale)
        return total, items
