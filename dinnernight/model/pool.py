# model/pool.py
"""
Ticket code pool: a fixed range of integer codes, each assigned to at most
one order, once.

- seed_if_empty: idempotent creation of every code in the range
- reserve: lock the lowest free codes for the current transaction
- assign: stamp reserved codes with their order (same transaction)

Exclusivity: on PostgreSQL `reserve` takes row locks
(FOR UPDATE SKIP LOCKED) that live until commit/rollback; on SQLite the
engine opens every transaction with BEGIN IMMEDIATE (single writer). In both
cases `assign` only flips rows that are still free and fails loudly if any
were taken, so a code can never end up on two orders.
"""

from __future__ import annotations
import logging
from typing import List

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AllocationConflict, InsufficientInventory
from ..helpers import now_ts
from .db import TicketCode

logger = logging.getLogger(__name__)

SEED_BATCH_SIZE = 50

SQL_INSERT_CODE = r"""
INSERT INTO ticket_codes (code, is_assigned)
VALUES (:code, false)
ON CONFLICT (code) DO NOTHING
"""


async def seed_if_empty(db: AsyncSession, start: int, end: int) -> int:
    """
    Make sure every code in [start, end] exists. Codes already present are
    left untouched. Returns the number of codes added.
    """
    if end < start:
        raise ValueError(f"empty code range {start}..{end}")

    in_range = TicketCode.code.between(start, end)
    before = (await db.execute(
        select(func.count()).select_from(TicketCode).where(in_range)
    )).scalar_one()
    if before == end - start + 1:
        return 0

    codes = list(range(start, end + 1))
    # batches keep each statement small
    for i in range(0, len(codes), SEED_BATCH_SIZE):
        batch = codes[i:i + SEED_BATCH_SIZE]
        await db.execute(text(SQL_INSERT_CODE), [{"code": c} for c in batch])

    after = (await db.execute(
        select(func.count()).select_from(TicketCode).where(in_range)
    )).scalar_one()
    added = int(after) - int(before)
    logger.info("ticket pool seeded: %d codes added (%d..%d)",
                added, start, end)
    return added


def shortfall(requested: int, locked: List[int], free: int):
    """
    Error for a reserve that locked fewer codes than requested. Free codes
    we could not lock are held by a concurrent transaction that may still
    roll back, so that case is a retryable conflict, not a sell-out.
    """
    if free >= requested:
        return AllocationConflict(locked)
    return InsufficientInventory(requested=requested, available=free)


async def reserve(db: AsyncSession, quantity: int) -> List[int]:
    """
    Select `quantity` free codes in ascending order and lock them until the
    surrounding transaction ends. Raises InsufficientInventory (or
    AllocationConflict, see `shortfall`) instead of returning a short list.
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    rows = await db.execute(
        select(TicketCode.code)
        .where(TicketCode.is_assigned.is_(False))
        .order_by(TicketCode.code)
        .limit(quantity)
        .with_for_update(skip_locked=True)
    )
    codes = [int(c) for c in rows.scalars()]
    if len(codes) < quantity:
        raise shortfall(quantity, codes, await remaining(db))
    return codes


async def assign(db: AsyncSession, codes: List[int], order_id: str) -> None:
    """Mark reserved codes as assigned to `order_id`."""
    if not codes:
        return
    result = await db.execute(
        update(TicketCode)
        .where(
            TicketCode.code.in_(codes),
            TicketCode.is_assigned.is_(False),
        )
        .values(is_assigned=True, order_id=order_id, assigned_at=now_ts())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(codes):
        raise AllocationConflict(codes)


async def remaining(db: AsyncSession) -> int:
    n = (await db.execute(
        select(func.count())
        .select_from(TicketCode)
        .where(TicketCode.is_assigned.is_(False))
    )).scalar_one()
    return int(n)


async def codes_for_order(db: AsyncSession, order_id: str) -> List[int]:
    rows = await db.execute(
        select(TicketCode.code)
        .where(TicketCode.order_id == order_id)
        .order_by(TicketCode.code)
    )
    return [int(c) for c in rows.scalars()]
