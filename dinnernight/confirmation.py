# dinnernight/confirmation.py
"""
Payment confirmation: the only place where ticket codes leave the pool.

confirm_payment(reference) may be invoked any number of times, from the
gateway webhook and from the client polling /api/payments/verify, in any
order and concurrently. Each call

  1. re-verifies the transaction with the gateway (a webhook body is never
     trusted on its own),
  2. locks the order row and, if it is still pending, reserves and assigns
     codes for every line item, flips the order to confirmed and credits
     the referring artist, all in one transaction,
  3. after commit renders the PDF and sends the emails, inline or through
     the caller's `schedule`.

Business outcomes come back as a ConfirmResult; only programming and
infrastructure errors raise.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, AsyncContextManager, Dict, List, Optional
import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from . import config
from .errors import AllocationConflict, InsufficientInventory
from .gateway import GatewayError, PaymentAdapter, TransactionStatus
from .infra.timings import timeit
from .model import artists, orders, pool
from .model.artists import ReferralCredit
from .model.db import STATUS_CANCELLED, STATUS_CONFIRMED
from .model.systemlog import (
    LOG_NOTIFICATION, LOG_PAYMENT_VERIFY, LOG_WEBHOOK, append_log,
)
from .notify import Notifier, order_summary
from .tickets import TicketHolder, TicketRenderer, ticket_entries

logger = logging.getLogger(__name__)

Gated = Callable[[], AsyncContextManager[None]]
Schedule = Callable[..., Any]


class ConfirmStatus(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    # retryable: the payment may still go through
    PAYMENT_NOT_SUCCESSFUL = "payment_not_successful"
    # integrity: paid, but the order cannot be fulfilled as is
    MISSING_ORDER_METADATA = "missing_order_metadata"
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_CANCELLED = "order_cancelled"
    AMOUNT_MISMATCH = "amount_mismatch"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    # retryable: lost a race for codes
    ALLOCATION_CONFLICT = "allocation_conflict"

    @property
    def ok(self) -> bool:
        return self in (ConfirmStatus.CONFIRMED,
                        ConfirmStatus.ALREADY_CONFIRMED)

    @property
    def retryable(self) -> bool:
        return self in (ConfirmStatus.PAYMENT_NOT_SUCCESSFUL,
                        ConfirmStatus.ALLOCATION_CONFLICT)


@dataclass
class Allocation:
    category: str
    codes: List[int]


@dataclass
class ConfirmResult:
    status: ConfirmStatus
    reference: str
    order_id: Optional[str] = None
    allocations: List[Allocation] = field(default_factory=list)
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status.ok

    @property
    def retryable(self) -> bool:
        return self.status.retryable

    @property
    def codes(self) -> List[int]:
        return [c for a in self.allocations for c in a.codes]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "ok": self.ok,
            "retryable": self.retryable,
            "reference": self.reference,
            "order_id": self.order_id,
            "allocations": [
                {"category": a.category, "ticket_codes": a.codes}
                for a in self.allocations
            ],
            "detail": self.detail,
        }


def _allocations(items) -> List[Allocation]:
    return [Allocation(i.category, list(i.ticket_codes or []))
            for i in items]


class _Superseded(Exception):
    """The conditional status update found the order no longer pending."""


class ConfirmationEngine:
    def __init__(self, sessionmaker: async_sessionmaker, gated: Gated,
                 gateway: PaymentAdapter, notifier: Notifier,
                 renderer: TicketRenderer,
                 threshold: int = config.REFERRAL_APPROVAL_THRESHOLD) -> None:
        self.sessionmaker = sessionmaker
        self.gated = gated
        self.gateway = gateway
        self.notifier = notifier
        self.renderer = renderer
        self.threshold = threshold

    # ------------------------------------------------------------------
    async def confirm_payment(self, reference: str, source: str = "verify",
                              schedule: Optional[Schedule] = None
                              ) -> ConfirmResult:
        """
        With `schedule` (e.g. BackgroundTasks.add_task) the post-commit
        work is handed over instead of awaited, so the caller can answer
        the gateway as soon as the allocation is committed.
        """
        log_type = LOG_WEBHOOK if source == "webhook" else LOG_PAYMENT_VERIFY

        try:
            tx = await self.gateway.verify_transaction(reference)
        except GatewayError as e:
            logger.warning("verify %s failed: %s", reference, e)
            result = ConfirmResult(ConfirmStatus.PAYMENT_NOT_SUCCESSFUL,
                                   reference, detail=str(e))
            await self._audit(log_type, result)
            return result

        if tx.status != TransactionStatus.SUCCESS:
            result = ConfirmResult(
                ConfirmStatus.PAYMENT_NOT_SUCCESSFUL, reference,
                order_id=tx.metadata.get("order_id"),
                detail=f"gateway status {tx.status.value}",
            )
            await self._audit(log_type, result)
            return result

        order_id = tx.metadata.get("order_id")
        if not order_id:
            result = ConfirmResult(ConfirmStatus.MISSING_ORDER_METADATA,
                                   reference,
                                   detail="transaction carries no order_id")
            logger.error("paid transaction %s has no order_id", reference)
            await self._audit(log_type, result)
            return result

        async with timeit("confirm.allocate"):
            result, order, items, credit = await self._allocate(
                reference, str(order_id), tx.amount
            )
        if not result.ok:
            logger.warning("confirm %s for order %s: %s %s", reference,
                           order_id, result.status.value, result.detail)
        await self._audit(log_type, result)

        if result.status == ConfirmStatus.CONFIRMED:
            logger.info("order %s confirmed, codes %s", order_id,
                        result.codes)
            if schedule is not None:
                schedule(self._after_commit, order, items, credit)
            else:
                await self._after_commit(order, items, credit)
        return result

    async def _allocate(self, reference: str, order_id: str, amount: int):
        """Steps 3 to 8, one transaction. Returns (result, order, items,
        referral credit)."""
        credit: Optional[ReferralCredit] = None
        try:
            async with self.gated():
                async with self.sessionmaker() as db:
                    async with db.begin():
                        order = await orders.get_order(db, order_id,
                                                       for_update=True)
                        if order is None:
                            return (ConfirmResult(
                                ConfirmStatus.ORDER_NOT_FOUND, reference,
                                order_id=order_id,
                            ), None, [], None)

                        items = await orders.get_items(db, order.id)
                        if order.status == STATUS_CONFIRMED:
                            return (ConfirmResult(
                                ConfirmStatus.ALREADY_CONFIRMED, reference,
                                order_id=order.id,
                                allocations=_allocations(items),
                            ), order, items, None)
                        if order.status == STATUS_CANCELLED:
                            return (ConfirmResult(
                                ConfirmStatus.ORDER_CANCELLED, reference,
                                order_id=order.id,
                            ), order, items, None)
                        if amount < order.total_amount:
                            return (ConfirmResult(
                                ConfirmStatus.AMOUNT_MISMATCH, reference,
                                order_id=order.id,
                                detail=(f"paid {amount}, "
                                        f"expected {order.total_amount}"),
                            ), order, items, None)

                        for item in items:
                            codes = await pool.reserve(db, item.quantity)
                            await pool.assign(db, codes, order.id)
                            item.ticket_codes = codes
                        await db.flush()

                        if not await orders.mark_confirmed(db, order,
                                                           reference):
                            raise _Superseded()

                        if order.referral_tag:
                            credit = await artists.credit_referral(
                                db, order.referral_tag,
                                orders.total_requested_quantity(items),
                                self.threshold,
                            )
        except InsufficientInventory as e:
            return (ConfirmResult(
                ConfirmStatus.INSUFFICIENT_INVENTORY, reference,
                order_id=order_id, detail=e.message,
            ), None, [], None)
        except AllocationConflict as e:
            return (ConfirmResult(
                ConfirmStatus.ALLOCATION_CONFLICT, reference,
                order_id=order_id, detail=e.message,
            ), None, [], None)
        except _Superseded:
            return await self._persisted(reference, order_id), None, [], None

        return (ConfirmResult(
            ConfirmStatus.CONFIRMED, reference, order_id=order.id,
            allocations=_allocations(items),
        ), order, items, credit)

    async def _persisted(self, reference: str,
                         order_id: str) -> ConfirmResult:
        async with self.gated():
            async with self.sessionmaker() as db:
                async with db.begin():
                    items = await orders.get_items(db, order_id)
        return ConfirmResult(ConfirmStatus.ALREADY_CONFIRMED, reference,
                             order_id=order_id,
                             allocations=_allocations(items))

    # ------------------------------------------------------------------
    async def _render(self, order, items) -> bytes:
        holder = TicketHolder(name=order.customer_name,
                              email=order.customer_email,
                              total_amount=int(order.total_amount))
        async with timeit("tickets.render"):
            return await asyncio.to_thread(
                self.renderer.render_ticket_pdf,
                ticket_entries(order.id, items), holder,
            )

    async def _after_commit(self, order, items,
                            credit: Optional[ReferralCredit]) -> None:
        """Artifacts and emails. Failures are recorded, never undone."""
        summary = order_summary(order, items)

        pdf = None
        try:
            pdf = await self._render(order, items)
        except Exception as e:
            logger.exception("ticket PDF for order %s failed", order.id)
            await self._audit_notification("ticket_pdf", order.id, e)

        await self._notify("ticket_email", order.id,
                           self.notifier.send_ticket_email,
                           order.customer_email, summary, pdf)
        await self._notify("admin_notification", order.id,
                           self.notifier.send_admin_notification, summary)
        if credit is not None and credit.approved_now:
            logger.info("artist %s approved after %d referred sales",
                        credit.artist_id, credit.new)
            await self._notify("approval_notice", order.id,
                               self.notifier.send_approval_notice,
                               credit.artist_email, credit.artist_name)

    async def _notify(self, kind: str, order_id: str, send, *args) -> bool:
        try:
            async with timeit(f"notify.{kind}"):
                await send(*args)
        except Exception as e:
            logger.exception("%s for order %s failed", kind, order_id)
            await self._audit_notification(kind, order_id, e)
            return False
        await self._audit_notification(kind, order_id, None)
        return True

    async def resend_tickets(self, order_id: str) -> bool:
        """Re-render and re-send the ticket email of a confirmed order."""
        async with self.gated():
            async with self.sessionmaker() as db:
                async with db.begin():
                    order = await orders.get_order(db, order_id)
                    if order is None or order.status != STATUS_CONFIRMED:
                        return False
                    items = await orders.get_items(db, order_id)

        pdf = await self._render(order, items)
        await self.notifier.send_ticket_email(
            order.customer_email, order_summary(order, items), pdf
        )
        await self._audit_notification("ticket_resend", order_id, None)
        return True

    # ------------------------------------------------------------------
    async def _write_log(self, type_: str, payload: dict,
                         success: bool) -> None:
        try:
            async with self.gated():
                async with self.sessionmaker() as db:
                    async with db.begin():
                        await append_log(db, type_, payload, success)
        except Exception:
            logger.exception("could not write %s system log", type_)

    async def _audit(self, type_: str, result: ConfirmResult) -> None:
        await self._write_log(type_, {
            "reference": result.reference,
            "order_id": result.order_id,
            "status": result.status.value,
            "codes": result.codes,
            "detail": result.detail,
        }, result.ok)

    async def _audit_notification(self, kind: str, order_id: str,
                                  error: Optional[Exception]) -> None:
        payload = {"kind": kind, "order_id": order_id}
        if error is not None:
            payload["error"] = str(error)
        await self._write_log(LOG_NOTIFICATION, payload, error is None)
