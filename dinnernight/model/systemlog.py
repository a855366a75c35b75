from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..helpers import now_ts, to_iso
from .db import SystemLog

# log types
LOG_PAYMENT_INIT = "payment_init"
LOG_PAYMENT_VERIFY = "payment_verify"
LOG_WEBHOOK = "webhook"
LOG_NOTIFICATION = "notification"
LOG_POOL_SEED = "pool_seed"


async def append_log(
    db: AsyncSession, type_: str, payload: Dict[str, Any], success: bool
) -> None:
    db.add(SystemLog(
        type=type_,
        payload=payload,
        success=bool(success),
        created_at=now_ts(),
    ))
    await db.flush()


async def list_logs(
    db: AsyncSession, type_: Optional[str] = None, limit: int = 100
) -> List[Dict[str, Any]]:
    stmt = select(SystemLog)
    if type_:
        stmt = stmt.where(SystemLog.type == type_)
    stmt = stmt.order_by(SystemLog.created_at.desc(), SystemLog.id.desc())
    rows = (await db.execute(stmt.limit(limit))).scalars()
    return [
        {
            "id": r.id,
            "type": r.type,
            "payload": r.payload,
            "success": r.success,
            "created_at": to_iso(r.created_at),
        }
        for r in rows
    ]
