# model/orders.py
"""
Order aggregate: header + line items, owning the order status machine.

    pending --> confirmed   (payment verified, codes allocated; terminal)
    pending --> cancelled   (payment could not be initialized)

Prices are taken from the ticket catalog when the order is created; the
amount later reported by the gateway is only checked against the total.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..errors import (
    EmptyOrder, InvalidCategory, InvalidEmail, InvalidQuantity,
    InvalidTransition, MissingField,
)
from ..helpers import ct_equal, is_valid_email, new_id, now_ts, to_iso
from .db import (
    Order, OrderItem, STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_PENDING,
)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def validate_items(
    items: Iterable[Any],
    catalog: Mapping[str, Mapping[str, Any]] = config.TICKET_CATEGORIES,
) -> List[Tuple[str, int, int]]:
    """
    Check requested line items against the catalog.
    Returns (category, quantity, unit_price) per item, in submission order.
    """
    out = []
    for item in items or ():
        category = _field(item, "category")
        quantity = _field(item, "quantity")
        if category not in catalog:
            raise InvalidCategory(str(category))
        # bool is an int subclass; reject it explicitly
        if (not isinstance(quantity, int) or isinstance(quantity, bool)
                or quantity <= 0):
            raise InvalidQuantity(category, quantity)
        out.append((category, quantity, int(catalog[category]["price"])))
    if not out:
        raise EmptyOrder()
    return out


def total_requested_quantity(items: Iterable[Any]) -> int:
    return sum(int(_field(i, "quantity")) for i in items)


async def create_order(
    db: AsyncSession,
    *,
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    items: Iterable[Any],
    referral_tag: Optional[str] = None,
    catalog: Mapping[str, Mapping[str, Any]] = config.TICKET_CATEGORIES,
) -> Tuple[Order, List[OrderItem]]:
    """Validate and stage a pending order; the caller commits."""
    for name, value in (("customer_name", customer_name),
                        ("customer_email", customer_email),
                        ("customer_phone", customer_phone)):
        if not value or not str(value).strip():
            raise MissingField(name)
    if not is_valid_email(customer_email):
        raise InvalidEmail()

    lines = validate_items(items, catalog)

    order = Order(
        id=new_id(),
        customer_name=customer_name.strip(),
        customer_email=customer_email.strip().lower(),
        customer_phone=customer_phone.strip(),
        total_amount=sum(q * price for _, q, price in lines),
        currency=config.CURRENCY,
        status=STATUS_PENDING,
        referral_tag=(referral_tag or "").strip() or None,
        created_at=now_ts(),
    )
    order_items = [
        OrderItem(
            id=new_id(),
            order_id=order.id,
            position=pos,
            category=category,
            quantity=quantity,
            unit_price=price,
            ticket_codes=[],
        )
        for pos, (category, quantity, price) in enumerate(lines)
    ]
    db.add(order)
    # the items reference the order row
    await db.flush()
    db.add_all(order_items)
    await db.flush()
    return order, order_items


async def get_order(
    db: AsyncSession, order_id: str, *, for_update: bool = False
) -> Optional[Order]:
    stmt = select(Order).where(Order.id == order_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_items(db: AsyncSession, order_id: str) -> List[OrderItem]:
    rows = await db.execute(
        select(OrderItem)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.position)
    )
    return list(rows.scalars())


async def mark_confirmed(
    db: AsyncSession, order: Order, reference: str
) -> bool:
    """
    pending -> confirmed, storing the payment reference.

    Returns True when this call made the transition and False when the
    order was already confirmed (not an error; callers skip side effects).
    """
    if order.status == STATUS_CONFIRMED:
        return False
    if order.status != STATUS_PENDING:
        raise InvalidTransition(order.status, STATUS_CONFIRMED)

    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == STATUS_PENDING)
        .values(
            status=STATUS_CONFIRMED,
            payment_reference=reference,
            confirmed_at=now_ts(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(order)
    return True


async def mark_cancelled(db: AsyncSession, order: Order) -> bool:
    if order.status == STATUS_CANCELLED:
        return False
    if order.status != STATUS_PENDING:
        raise InvalidTransition(order.status, STATUS_CANCELLED)
    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == STATUS_PENDING)
        .values(status=STATUS_CANCELLED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(order)
    return True


# ----------------------------
# Read models
# ----------------------------
async def list_orders(
    db: AsyncSession, limit: int = 50, offset: int = 0
) -> List[Tuple[Order, List[OrderItem]]]:
    orders = list((await db.execute(
        select(Order)
        .order_by(Order.created_at.desc())
        .limit(limit)
        .offset(offset)
    )).scalars())
    if not orders:
        return []

    items: Dict[str, List[OrderItem]] = {o.id: [] for o in orders}
    rows = await db.execute(
        select(OrderItem)
        .where(OrderItem.order_id.in_(list(items)))
        .order_by(OrderItem.order_id, OrderItem.position)
    )
    for item in rows.scalars():
        items[item.order_id].append(item)
    return [(o, items[o.id]) for o in orders]


async def count_orders(db: AsyncSession, status: Optional[str] = None) -> int:
    stmt = select(func.count()).select_from(Order)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    return int((await db.execute(stmt)).scalar_one())


async def total_revenue(db: AsyncSession) -> int:
    total = (await db.execute(
        select(func.coalesce(func.sum(Order.total_amount), 0))
        .where(Order.status == STATUS_CONFIRMED)
    )).scalar_one()
    return int(total)


async def sales_by_category(db: AsyncSession) -> List[Dict[str, Any]]:
    rows = (await db.execute(
        select(
            OrderItem.category,
            func.sum(OrderItem.quantity),
            func.sum(OrderItem.quantity * OrderItem.unit_price),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.status == STATUS_CONFIRMED)
        .group_by(OrderItem.category)
        .order_by(OrderItem.category)
    )).all()
    return [
        {"category": cat, "count": int(qty or 0), "revenue": int(rev or 0)}
        for cat, qty, rev in rows
    ]


def order_to_dict(order: Order, items: List[OrderItem],
                  *, with_codes: bool = True) -> Dict[str, Any]:
    return {
        "id": order.id,
        "status": order.status,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "total_amount": order.total_amount,
        "currency": order.currency,
        "payment_reference": order.payment_reference or "",
        "referral_tag": order.referral_tag or "",
        "created_at": to_iso(order.created_at),
        "confirmed_at": to_iso(order.confirmed_at),
        "items": [
            {
                "category": i.category,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "ticket_codes": list(i.ticket_codes or []) if with_codes
                else [],
            }
            for i in items
        ],
    }


def order_status_dict(order: Order, items: List[OrderItem],
                      reference: Optional[str] = None) -> Dict[str, Any]:
    """
    What an anonymous poller may see. Contact details never leave; codes
    only for the caller holding the payment reference of the order.
    """
    owner = bool(reference) and order.payment_reference is not None \
        and ct_equal(reference, order.payment_reference)
    return {
        "id": order.id,
        "status": order.status,
        "total_amount": order.total_amount,
        "currency": order.currency,
        "items": [
            {
                "category": i.category,
                "quantity": i.quantity,
                "ticket_codes": list(i.ticket_codes or []) if owner else [],
            }
            for i in items
        ],
    }
