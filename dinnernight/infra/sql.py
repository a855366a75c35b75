from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable, NamedTuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from .. import config

_DRIVERS = (
    ("sqlite://", "sqlite+aiosqlite://"),
    ("postgresql://", "postgresql+asyncpg://"),
    ("postgres://", "postgresql+asyncpg://"),
)


class Database(NamedTuple):
    """Everything a request handler needs to talk to the database.

    Unpacks as ``engine, SessionAsync, gate, gated``.
    """
    engine: AsyncEngine
    SessionAsync: async_sessionmaker
    gate: asyncio.Semaphore
    gated: Callable[[], AsyncContextManager[None]]


def async_url(url: str) -> str:
    for plain, driver in _DRIVERS:
        if url.startswith(plain):
            return driver + url[len(plain):]
    return url


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite+aiosqlite://")


# DB-GATE
# bounds concurrent database work to what the connection pool can serve
@asynccontextmanager
async def _gated(sem: asyncio.Semaphore):
    await sem.acquire()
    try:
        yield
    finally:
        sem.release()


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _pragmas(dbapi_connection, _):
        # we emit BEGIN ourselves, see _begin_immediate
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA busy_timeout=5000;")
        cur.execute("PRAGMA synchronous=NORMAL;")
        cur.close()

    # SQLite has no row locks: take the write lock up front so that
    # ticket reservation and order confirmation are single-writer.
    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_async_engine(database_url: str) -> Database:
    db_url = async_url(database_url)

    if is_sqlite(db_url):
        engine = create_async_engine(db_url, pool_pre_ping=True)
        _install_sqlite_hooks(engine)
        gate_limit = config.DB_GATE_LIMIT or 10
    else:
        engine = create_async_engine(
            db_url,
            pool_pre_ping=True,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_timeout=config.DB_POOL_TIMEOUT,
        )
        gate_limit = config.DB_GATE_LIMIT or config.DB_POOL_SIZE

    SessionAsync = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    gate = asyncio.Semaphore(max(1, gate_limit))

    def gated():
        return _gated(gate)

    return Database(engine, SessionAsync, gate, gated)
