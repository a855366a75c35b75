from __future__ import annotations
import time
from contextlib import asynccontextmanager
from typing import (
    Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional,
    Tuple,
)

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection, AsyncSession, async_sessionmaker,
)

from ._common import decode, encode, pending_item


# ------------------------------------------------------------------------------
# DDL (idempotent); plain SQL that PostgreSQL and SQLite both accept
# ------------------------------------------------------------------------------
SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS payment_sessions (
      reference    TEXT PRIMARY KEY,
      email        TEXT NOT NULL,
      amount       INTEGER NOT NULL,
      currency     TEXT NOT NULL,
      metadata     TEXT NOT NULL,
      status       TEXT NOT NULL,
      created_at   DOUBLE PRECISION NOT NULL,
      expires_at   DOUBLE PRECISION NOT NULL
    )
    """,
    # live "pending" index for the admin view
    """
    CREATE TABLE IF NOT EXISTS payment_sessions_pending (
      reference  TEXT PRIMARY KEY,
      created_at DOUBLE PRECISION NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_ps_created_at
      ON payment_sessions (created_at DESC)
    """,
)

UPSERT_SESSION = text("""
    INSERT INTO payment_sessions (
      reference, email, amount, currency, metadata, status,
      created_at, expires_at
    ) VALUES (
      :reference, :email, :amount, :currency, :metadata, :status,
      :created_at, :expires_at
    )
    ON CONFLICT (reference) DO UPDATE SET
      email = excluded.email, amount = excluded.amount,
      currency = excluded.currency, metadata = excluded.metadata,
      status = excluded.status, created_at = excluded.created_at,
      expires_at = excluded.expires_at
""")

UPSERT_PENDING = text("""
    INSERT INTO payment_sessions_pending (reference, created_at)
    VALUES (:reference, :created_at)
    ON CONFLICT (reference) DO UPDATE SET created_at = excluded.created_at
""")

SELECT_LIVE_SESSION = text("""
    SELECT reference, email, amount, currency, metadata, status, created_at
    FROM payment_sessions
    WHERE reference = :reference AND expires_at > :now
""")

SELECT_PENDING = text("""
    SELECT p.reference, s.email, s.amount, s.currency, s.metadata,
           s.status, s.created_at
    FROM payment_sessions_pending AS p
    JOIN payment_sessions AS s ON s.reference = p.reference
    ORDER BY p.created_at DESC
    LIMIT :lim
""")


async def create_schema(conn: AsyncSession | AsyncConnection) -> None:
    for ddl in SCHEMA:
        await conn.execute(text(ddl))


class PaymentSessionStore:
    """MockPay transactions in two plain tables next to the app's own.

    A session is visible until ``expires_at``; the pending index only feeds
    the admin view and is pruned when a payment completes.
    """

    def __init__(
        self, *, sessionmaker: async_sessionmaker, ttl_seconds: int,
        gated: Callable[[], AsyncContextManager[None]]
    ) -> None:
        self.sessionmaker = sessionmaker
        self.ttl = ttl_seconds
        self.gated = gated

    @asynccontextmanager
    async def _tx(self) -> AsyncIterator[AsyncSession]:
        async with self.gated():
            async with self.sessionmaker() as db:
                async with db.begin():
                    yield db

    async def save_payment_session(
            self, reference: str, mapping: Dict[str, Any]
    ) -> None:
        created_at = float(mapping.get("created_at") or time.time())
        row = encode(reference, mapping, created_at)
        row["expires_at"] = created_at + self.ttl
        async with self._tx() as db:
            await db.execute(UPSERT_SESSION, row)
            await db.execute(UPSERT_PENDING, {"reference": reference,
                                              "created_at": created_at})

    async def get_payment_session(
            self, reference: str
    ) -> Optional[Dict[str, Any]]:
        async with self._tx() as db:
            row = (await db.execute(SELECT_LIVE_SESSION, {
                "reference": reference, "now": time.time(),
            })).mappings().first()
        return decode(row) if row else None

    async def set_status(self, reference: str, status: str) -> bool:
        async with self._tx() as db:
            result = await db.execute(
                text("UPDATE payment_sessions SET status = :status "
                     "WHERE reference = :reference"),
                {"reference": reference, "status": status},
            )
        return result.rowcount == 1

    async def remove_pending(self, reference: str) -> None:
        async with self._tx() as db:
            await db.execute(
                text("DELETE FROM payment_sessions_pending "
                     "WHERE reference = :reference"),
                {"reference": reference},
            )

    async def get_recent_payment_sessions(
        self, limit: int = 200
    ) -> Tuple[int, List[Dict[str, Any]]]:
        async with self._tx() as db:
            total = (await db.execute(
                text("SELECT COUNT(*) FROM payment_sessions_pending")
            )).scalar_one()
            rows = (await db.execute(
                SELECT_PENDING, {"lim": int(limit)}
            )).mappings().all()

        now = time.time()
        return int(total), [pending_item(r["reference"], r, now)
                            for r in rows]
