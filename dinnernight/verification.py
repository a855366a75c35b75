from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple
import json

from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InvalidPayload
from .model import orders
from .model.db import STATUS_CONFIRMED

REASON_ORDER_NOT_FOUND = "order_not_found"
REASON_CODE_NOT_FOUND = "code_not_found"
REASON_ORDER_NOT_CONFIRMED = "order_not_confirmed"


@dataclass
class TicketCheck:
    valid: bool
    reason: Optional[str] = None
    code: Optional[int] = None
    order_id: Optional[str] = None
    category: Optional[str] = None
    holder: Optional[str] = None
    status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def find_ticket(db: AsyncSession, order_id: str,
                      code: int) -> TicketCheck:
    """Read-only lookup of a presented ticket. Never calls the gateway."""
    order = await orders.get_order(db, order_id)
    if order is None:
        return TicketCheck(valid=False, reason=REASON_ORDER_NOT_FOUND,
                           code=code, order_id=order_id)

    for item in await orders.get_items(db, order_id):
        if code in (item.ticket_codes or []):
            if order.status != STATUS_CONFIRMED:
                return TicketCheck(
                    valid=False, reason=REASON_ORDER_NOT_CONFIRMED,
                    code=code, order_id=order_id, status=order.status,
                )
            return TicketCheck(
                valid=True, code=code, order_id=order_id,
                category=item.category, holder=order.customer_name,
                status=order.status,
            )

    return TicketCheck(valid=False, reason=REASON_CODE_NOT_FOUND,
                       code=code, order_id=order_id, status=order.status)


def parse_qr_payload(raw: str) -> Tuple[str, int]:
    """Decode `{"orderId", "code", "category"}` from a scanned QR code."""
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        raise InvalidPayload("Invalid QR code format")
    if not isinstance(data, dict):
        raise InvalidPayload("Invalid QR code format")

    order_id = data.get("orderId")
    code = data.get("code")
    if not order_id or code is None or isinstance(code, bool):
        raise InvalidPayload("QR code is missing orderId or code")
    try:
        return str(order_id), int(code)
    except (TypeError, ValueError):
        raise InvalidPayload("QR code carries a non-numeric code")
