from __future__ import annotations
import json
import logging
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, ORJSONResponse
from jinja2 import DictLoader, Environment, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .confirmation import ConfirmationEngine, ConfirmStatus
from .errors import (
    DomainError, ErrorCode, InsufficientInventory, InvalidPayload,
    InvalidSignature, MissingField, NotFound,
)
from .gateway import GatewayError, MockPay, PaymentAdapter, PaystackAdapter
from .helpers import ct_equal, naira, now_ts, to_iso
from .infra.sql import make_async_engine
from .infra.timings import snapshot, timeit
from .model import artists, engagement, orders, pool
from .model.db import STATUS_CONFIRMED, STATUS_PENDING, Base
from .model.paymentsession import (
    PS_FAILED, PS_SUCCESS, BACKEND as PAYSESSION_BACKEND, new_store,
)
from .model.systemlog import (
    LOG_NOTIFICATION, LOG_PAYMENT_INIT, LOG_POOL_SEED, LOG_WEBHOOK,
    append_log, list_logs,
)
from .notify import SmtpNotifier
from .schemas import (
    AdminLogin, AwardCreate, AwardeeCreate, ArtistRegistration,
    ContestRegistration, CreateOrderRequest, ShortlistUpdate,
    VerifyPaymentRequest, VerifyTicketRequest, VoteRequest,
)
from .tickets import ReportlabTicketRenderer
from .verification import find_ticket, parse_qr_payload

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dinner Night",
    default_response_class=ORJSONResponse,
)
app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET)


# DB-GATE
def gated():
    return app.state.gated()


async def get_db() -> AsyncSession:
    async with app.state.SessionAsync() as session:
        yield session


def get_gateway() -> PaymentAdapter:
    gateway = getattr(app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("payment gateway not initialized")
    return gateway


def confirmation_engine() -> ConfirmationEngine:
    return ConfirmationEngine(
        sessionmaker=app.state.SessionAsync,
        gated=app.state.gated,
        gateway=get_gateway(),
        notifier=app.state.notifier,
        renderer=app.state.renderer,
        threshold=config.REFERRAL_APPROVAL_THRESHOLD,
    )


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _db_init():
    engine, SessionAsync, _, gated_ = make_async_engine(config.DATABASE_URL)
    app.state.engine = engine
    app.state.SessionAsync = SessionAsync
    app.state.gated = gated_

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if PAYSESSION_BACKEND == "sql":
            from .model.paymentsession._sql import create_schema
            await create_schema(conn)

    async with gated_():
        async with SessionAsync() as db:
            async with db.begin():
                added = await pool.seed_if_empty(
                    db, config.POOL_RANGE_START, config.POOL_RANGE_END
                )
                await append_log(db, LOG_POOL_SEED, {
                    "start": config.POOL_RANGE_START,
                    "end": config.POOL_RANGE_END,
                    "added": added,
                }, True)


@app.on_event("startup")
async def _http_client_start():
    app.state.http = httpx.AsyncClient(
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
        limits=httpx.Limits(
            max_connections=256, max_keepalive_connections=256
        ),
    )


@app.on_event("startup")
async def _redis_start():
    app.state.redis = None
    if PAYSESSION_BACKEND == "redis":
        app.state.redis = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            retry_on_timeout=True,
        )


@app.on_event("startup")
async def _services_start():
    app.state.paysessions = None
    if config.PAYMENT_GATEWAY == "paystack":
        app.state.gateway = PaystackAdapter(
            config.PAYSTACK_SECRET_KEY,
            config.PAYSTACK_BASE_URL,
            app.state.http,
            timeout=config.GATEWAY_TIMEOUT_SECONDS,
            callback_url=config.PAYSTACK_CALLBACK_URL,
        )
    else:
        app.state.paysessions = new_store(
            sessionmaker=app.state.SessionAsync,
            gated=app.state.gated,
            r=app.state.redis,
            ttl_seconds=config.PAYSESSION_TTL_SECONDS,
        )
        app.state.gateway = MockPay(app.state.paysessions,
                                    config.MOCK_SECRET,
                                    config.MOCK_WEBHOOK_URL)

    app.state.notifier = SmtpNotifier(
        host=config.SMTP_HOST, port=config.SMTP_PORT,
        user=config.SMTP_USER, password=config.SMTP_PASS,
        sender=config.SMTP_FROM, admin_email=config.ADMIN_EMAIL,
    )
    app.state.renderer = ReportlabTicketRenderer()
    logger.info(
        "Dinner Night starting: gateway=%s, payment sessions=%s, "
        "codes %d..%d",
        config.PAYMENT_GATEWAY, PAYSESSION_BACKEND,
        config.POOL_RANGE_START, config.POOL_RANGE_END,
    )


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


@app.on_event("shutdown")
async def _redis_stop():
    r = getattr(app.state, "redis", None)
    if r is not None:
        await r.close()
        app.state.redis = None


@app.on_event("shutdown")
async def _db_stop():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()
        app.state.engine = None


# ----------------------------
# Errors
# ----------------------------
ERROR_STATUS = {
    ErrorCode.EMPTY_ORDER: 400,
    ErrorCode.INVALID_CATEGORY: 400,
    ErrorCode.INVALID_QUANTITY: 400,
    ErrorCode.MISSING_FIELD: 400,
    ErrorCode.INVALID_EMAIL: 400,
    ErrorCode.INVALID_SIGNATURE: 400,
    ErrorCode.INVALID_PAYLOAD: 400,
    ErrorCode.INSUFFICIENT_INVENTORY: 409,
    ErrorCode.ALLOCATION_CONFLICT: 409,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.DUPLICATE_REGISTRATION: 409,
    ErrorCode.ALREADY_VOTED: 409,
    ErrorCode.NOT_FOUND: 404,
}

VERIFY_STATUS = {
    ConfirmStatus.CONFIRMED: 200,
    ConfirmStatus.ALREADY_CONFIRMED: 200,
    ConfirmStatus.PAYMENT_NOT_SUCCESSFUL: 402,
    ConfirmStatus.ORDER_NOT_FOUND: 404,
    ConfirmStatus.ORDER_CANCELLED: 409,
    ConfirmStatus.INSUFFICIENT_INVENTORY: 409,
    ConfirmStatus.ALLOCATION_CONFLICT: 409,
    ConfirmStatus.MISSING_ORDER_METADATA: 422,
    ConfirmStatus.AMOUNT_MISMATCH: 422,
}


@app.exception_handler(DomainError)
async def _domain_error(request: Request, exc: DomainError):
    return ORJSONResponse(
        {"code": exc.code.value, "message": exc.message},
        status_code=ERROR_STATUS.get(exc.code, 400),
    )


async def _system_log(type_: str, payload: dict, success: bool) -> None:
    async with gated():
        async with app.state.SessionAsync() as db:
            async with db.begin():
                await append_log(db, type_, payload, success)


# ----------------------------
# Helpers
# ----------------------------
def is_admin(request: Request) -> bool:
    return bool(request.session.get("admin_user"))


def require_admin(request: Request) -> None:
    if not is_admin(request):
        raise HTTPException(status_code=401, detail="Not authenticated")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# ----------------------------
# API: public
# ----------------------------
@app.get("/api/health")
async def health():
    return {"ok": True, "time": to_iso(now_ts())}


@app.get("/api/tickets/categories")
async def ticket_categories(db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            left = await pool.remaining(db)
    return {
        "categories": [
            {"id": key, "name": c["name"], "price": c["price"],
             "price_display": naira(c["price"]),
             "description": c["description"]}
            for key, c in config.TICKET_CATEGORIES.items()
        ],
        "remaining": left,
        "currency": config.CURRENCY,
        "event": config.EVENT_DETAILS,
    }


@app.post("/api/orders")
async def create_order(
    payload: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentAdapter = Depends(get_gateway),
):
    async with timeit("db.create_order"):
        async with gated():
            async with db.begin():
                order, items = await orders.create_order(
                    db,
                    customer_name=payload.customer_name,
                    customer_email=payload.customer_email,
                    customer_phone=payload.customer_phone,
                    items=payload.items,
                    referral_tag=payload.referral_tag,
                )
                # fail fast; confirmation checks again under lock
                wanted = orders.total_requested_quantity(items)
                left = await pool.remaining(db)
                if wanted > left:
                    raise InsufficientInventory(requested=wanted,
                                                available=left)

    metadata = {"order_id": order.id,
                "referral_tag": order.referral_tag or ""}
    try:
        tx = await gateway.initialize_transaction(
            order.customer_email, order.total_amount, metadata
        )
    except GatewayError as e:
        logger.warning("payment init for order %s failed: %s", order.id, e)
        async with gated():
            async with db.begin():
                locked = await orders.get_order(db, order.id, for_update=True)
                await orders.mark_cancelled(db, locked)
                await append_log(db, LOG_PAYMENT_INIT, {
                    "order_id": order.id, "error": str(e),
                }, False)
        raise HTTPException(502, detail="Payment initialization failed")

    await _system_log(LOG_PAYMENT_INIT, {
        "order_id": order.id,
        "reference": tx["reference"],
        "amount": order.total_amount,
    }, True)
    return {
        "order_id": order.id,
        "reference": tx["reference"],
        "redirect_url": tx["redirect_url"],
        "amount": order.total_amount,
        "currency": order.currency,
    }


# ----------------------------
# API: Order status (polled by success page)
# ----------------------------
@app.get("/api/orders/{order_id}")
async def get_order(order_id: str, reference: Optional[str] = None,
                    db: AsyncSession = Depends(get_db)):
    # order ids are printed in every ticket QR: no contact data here
    async with timeit("db.get_order"):
        async with gated():
            async with db.begin():
                order = await orders.get_order(db, order_id)
                items = (await orders.get_items(db, order_id)
                         if order else [])
    if order is None:
        raise HTTPException(404, detail="order not found")
    return orders.order_status_dict(order, items, reference)


@app.post("/api/payments/verify")
async def verify_payment(
    payload: VerifyPaymentRequest,
    background: BackgroundTasks,
    engine: ConfirmationEngine = Depends(confirmation_engine),
):
    result = await engine.confirm_payment(payload.reference, source="verify",
                                          schedule=background.add_task)
    return ORJSONResponse(result.as_dict(),
                          status_code=VERIFY_STATUS[result.status])


# ----------------------------
# Webhook endpoint (shared for MockPay/Paystack)
# ----------------------------
@app.post("/payments/webhook")
async def payments_webhook(
    request: Request,
    background: BackgroundTasks,
    gateway: PaymentAdapter = Depends(get_gateway),
    engine: ConfirmationEngine = Depends(confirmation_engine),
):
    raw = await request.body()
    signature = request.headers.get(gateway.signature_header)
    if not gateway.verify_webhook_signature(raw, signature):
        logger.warning("webhook with invalid signature rejected")
        await _system_log(LOG_WEBHOOK, {"error": "invalid signature"}, False)
        raise InvalidSignature()

    try:
        event = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidPayload("Invalid JSON")
    if not isinstance(event, dict):
        raise InvalidPayload("Invalid JSON")

    reference = gateway.webhook_reference(event)
    if reference is None:
        return {"ok": True, "ignored": event.get("event")}

    try:
        # emails go out after the ack
        result = await engine.confirm_payment(reference, source="webhook",
                                              schedule=background.add_task)
    except Exception:
        # the gateway only needs the ack; verify polling retries for us
        logger.exception("webhook processing of %s failed", reference)
        return {"ok": True, "processed": False}
    return {"ok": True, "processed": True, "status": result.status.value}


@app.post("/api/tickets/verify")
async def verify_ticket(
    payload: VerifyTicketRequest,
    db: AsyncSession = Depends(get_db),
):
    if payload.qr_data:
        order_id, code = parse_qr_payload(payload.qr_data)
    elif payload.order_id and payload.code is not None:
        order_id, code = payload.order_id, payload.code
    else:
        raise MissingField("qr_data")

    async with gated():
        async with db.begin():
            check = await find_ticket(db, order_id, code)
    if not check.valid:
        return ORJSONResponse(check.as_dict(), status_code=404)
    return check.as_dict()


# ----------------------------
# API: awards, artists, contest
# ----------------------------
@app.get("/api/awards")
async def list_awards(db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            return {"awards": await engagement.list_active_awards(db)}


@app.get("/api/awardees/{slug}")
async def get_awardee(slug: str, db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            awardee = await engagement.get_awardee_by_slug(db, slug)
    if awardee is None:
        raise NotFound("Awardee")
    return awardee


@app.post("/api/votes")
async def cast_vote(
    payload: VoteRequest, request: Request,
    db: AsyncSession = Depends(get_db),
):
    async with gated():
        async with db.begin():
            vote = await engagement.cast_vote(
                db,
                award_id=payload.award_id,
                awardee_id=payload.awardee_id,
                email=payload.email,
                voter_ip=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
    return {"ok": True, "vote_id": vote.id}


@app.post("/api/artists")
async def register_artist(
    payload: ArtistRegistration,
    db: AsyncSession = Depends(get_db),
):
    async with gated():
        async with db.begin():
            artist = await artists.register_artist(
                db,
                name=payload.name,
                email=payload.email,
                phone=payload.phone,
                act_type=payload.act_type,
                social_link=payload.social_link,
            )
    return {
        "id": artist.id,
        "referral_code": artist.referral_code,
        "referral_link": artists.referral_link(artist.referral_code),
        "status": artist.status,
    }


@app.post("/api/contest")
async def register_contest_entry(
    payload: ContestRegistration,
    db: AsyncSession = Depends(get_db),
):
    async with gated():
        async with db.begin():
            entry = await engagement.register_contest_entry(
                db, **payload.model_dump()
            )
    return {"id": entry.id, "ok": True}


# ----------------------------
# MockPay (simple page with 2 buttons)
# ----------------------------
MOCKPAY_PAGE = """<!doctype html>
<html><head><title>MockPay</title></head>
<body style="font-family: sans-serif; max-width: 480px; margin: 40px auto;">
  <h1>MockPay</h1>
  <p>Reference: <code>{{ reference }}</code></p>
  <p>Order: <code>{{ order_id }}</code></p>
  <p>Amount: <strong>{{ amount }}</strong></p>
  <p>Webhook: <code>{{ webhook_url }}</code></p>
  <form method="post" action="/mockpay/{{ reference }}/emit">
    <button name="t" value="success">Pay</button>
    <button name="t" value="failed">Fail</button>
  </form>
</body></html>
"""

_pages = Environment(loader=DictLoader({"mockpay.html": MOCKPAY_PAGE}),
                     autoescape=select_autoescape(["html"]))


def get_mockpay() -> MockPay:
    gateway = get_gateway()
    if not isinstance(gateway, MockPay):
        raise HTTPException(404, detail="MockPay is disabled")
    return gateway


@app.get("/mockpay/{reference}", response_class=HTMLResponse)
async def mockpay_screen(reference: str,
                         mockpay: MockPay = Depends(get_mockpay)):
    async with timeit("paymentsession.get"):
        ps = await mockpay.store.get_payment_session(reference)
    if not ps:
        raise HTTPException(404, "payment session not found")
    return HTMLResponse(_pages.get_template("mockpay.html").render(
        reference=reference,
        order_id=ps["metadata"].get("order_id", ""),
        amount=naira(int(ps["amount"])),
        webhook_url=mockpay.webhook_url,
    ))


@app.post("/mockpay/{reference}/emit")
async def mockpay_emit(reference: str, request: Request,
                       mockpay: MockPay = Depends(get_mockpay)):
    form = await request.form()
    kind = form.get("t")
    if kind not in {PS_SUCCESS, PS_FAILED}:
        raise HTTPException(400, detail="invalid kind")

    signed = await mockpay.complete(reference, kind)
    if signed is None:
        raise HTTPException(404, "payment session not found")
    raw, signature = signed

    delivered = False
    client_http: httpx.AsyncClient = app.state.http
    try:
        resp = await client_http.post(
            mockpay.webhook_url,
            content=raw,
            headers={
                mockpay.signature_header: signature,
                "content-type": "application/json",
            },
        )
        delivered = resp.status_code < 300
    except httpx.HTTPError as e:
        # the client can still confirm through /api/payments/verify
        logger.warning("Webhook delivery for %s failed: %s", reference, e)

    event = json.loads(raw)
    return {
        "ok": True,
        "reference": reference,
        "status": kind,
        "order_id": event["data"]["metadata"].get("order_id", ""),
        "delivered": delivered,
    }


# ----------------------------
# Admin API
# ----------------------------
@app.post("/api/admin/login")
async def admin_login(payload: AdminLogin, request: Request):
    ok_user = ct_equal(payload.username.strip(), config.ADMIN_USERNAME)
    ok_pass = ct_equal(payload.password, config.ADMIN_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(401, detail="Invalid credentials")
    request.session["admin_user"] = payload.username.strip()
    return {"ok": True}


@app.post("/api/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return {"ok": True}


@app.get("/api/admin/dashboard", dependencies=[Depends(require_admin)])
async def admin_dashboard(db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            total = await orders.count_orders(db)
            confirmed = await orders.count_orders(db, STATUS_CONFIRMED)
            pending = await orders.count_orders(db, STATUS_PENDING)
            revenue = await orders.total_revenue(db)
            by_category = await orders.sales_by_category(db)
            left = await pool.remaining(db)
            all_artists = await artists.list_artists(db)
            entries = await engagement.list_contest_entries(db)
    return {
        "orders": {"total": total, "confirmed": confirmed,
                   "pending": pending},
        "revenue": revenue,
        "revenue_display": naira(revenue),
        "tickets_sold": sum(c["count"] for c in by_category),
        "tickets_remaining": left,
        "sales_by_category": by_category,
        "artists": {
            "total": len(all_artists),
            "approved": sum(1 for a in all_artists
                            if a.status == "approved"),
        },
        "contest_entries": len(entries),
    }


@app.get("/api/admin/orders", dependencies=[Depends(require_admin)])
async def admin_orders(limit: int = 50, offset: int = 0,
                       db: AsyncSession = Depends(get_db)):
    limit = max(1, min(limit, 500))
    async with gated():
        async with db.begin():
            rows = await orders.list_orders(db, limit=limit,
                                            offset=max(0, offset))
            total = await orders.count_orders(db)
    return {
        "items": [orders.order_to_dict(o, items) for o, items in rows],
        "limit": limit,
        "total": total,
    }


@app.get("/api/admin/orders/{order_id}", dependencies=[Depends(require_admin)])
async def admin_order(order_id: str, db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            order = await orders.get_order(db, order_id)
            items = (await orders.get_items(db, order_id)
                     if order else [])
    if order is None:
        raise HTTPException(404, detail="order not found")
    return orders.order_to_dict(order, items)


@app.post("/api/admin/orders/{order_id}/resend",
          dependencies=[Depends(require_admin)])
async def admin_resend(
    order_id: str,
    engine: ConfirmationEngine = Depends(confirmation_engine),
):
    try:
        sent = await engine.resend_tickets(order_id)
    except Exception:
        logger.exception("resending tickets of %s failed", order_id)
        raise HTTPException(502, detail="Could not resend tickets")
    if not sent:
        raise HTTPException(404, detail="no confirmed order with that id")
    return {"ok": True}


@app.get("/api/admin/artists", dependencies=[Depends(require_admin)])
async def admin_artists(db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            rows = await artists.list_artists(db)
    return {"items": [artists.artist_to_dict(a) for a in rows]}


@app.post("/api/admin/artists/{artist_id}/approve",
          dependencies=[Depends(require_admin)])
async def admin_approve_artist(artist_id: str,
                               db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            artist = await artists.approve_artist(db, artist_id)
            if artist is None and await artists.get_artist(
                    db, artist_id) is None:
                raise NotFound("Artist")
    if artist is None:
        return {"ok": True, "approved": False}

    try:
        await app.state.notifier.send_approval_notice(artist.email,
                                                      artist.name)
        ok, error = True, None
    except Exception as e:
        logger.exception("approval notice for %s failed", artist_id)
        ok, error = False, str(e)
    payload = {"kind": "approval_notice", "artist_id": artist_id}
    if error:
        payload["error"] = error
    await _system_log(LOG_NOTIFICATION, payload, ok)
    return {"ok": True, "approved": True}


@app.get("/api/admin/contest-entries", dependencies=[Depends(require_admin)])
async def admin_contest_entries(db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            rows = await engagement.list_contest_entries(db)
    return {"items": [engagement.contest_entry_to_dict(e) for e in rows]}


@app.post("/api/admin/contest-entries/{entry_id}/shortlist",
          dependencies=[Depends(require_admin)])
async def admin_shortlist(entry_id: str, payload: ShortlistUpdate,
                          db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            await engagement.set_shortlisted(db, entry_id,
                                             payload.is_shortlisted)
    return {"ok": True, "is_shortlisted": payload.is_shortlisted}


@app.post("/api/admin/awards", dependencies=[Depends(require_admin)])
async def admin_create_award(payload: AwardCreate,
                             db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            award = await engagement.create_award(
                db,
                title=payload.title,
                description=payload.description,
                show_public_counts=payload.show_public_counts,
            )
    return {"id": award.id, "title": award.title}


@app.post("/api/admin/awards/{award_id}/awardees",
          dependencies=[Depends(require_admin)])
async def admin_add_awardee(award_id: str, payload: AwardeeCreate,
                            db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            awardee = await engagement.add_awardee(
                db, award_id,
                name=payload.name, slug=payload.slug,
                bio=payload.bio, photo_url=payload.photo_url,
            )
    return engagement.awardee_to_dict(awardee)


@app.get("/api/admin/awards/{award_id}/votes",
         dependencies=[Depends(require_admin)])
async def admin_vote_tally(award_id: str,
                           db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            tally = await engagement.vote_tally(db, award_id)
    return {"award_id": award_id, "items": tally}


@app.get("/api/admin/logs", dependencies=[Depends(require_admin)])
async def admin_logs(type: Optional[str] = None, limit: int = 100,
                     db: AsyncSession = Depends(get_db)):
    async with gated():
        async with db.begin():
            items = await list_logs(db, type_=type,
                                    limit=max(1, min(limit, 500)))
    return {"items": items}


@app.get("/api/admin/pending", dependencies=[Depends(require_admin)])
async def admin_pending(limit: int = 100):
    store = app.state.paysessions
    if store is None:
        return {"items": [], "enabled": False, "limit": limit, "total": 0}
    total, items = await store.get_recent_payment_sessions(limit=limit)
    return {"items": items, "enabled": True, "limit": limit, "total": total}


@app.get("/api/admin/timings", dependencies=[Depends(require_admin)])
async def admin_timings():
    return {"items": snapshot()}
