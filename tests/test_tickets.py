"""Tests for dinnernight.tickets and dinnernight.verification."""

import json
import re
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from dinnernight.errors import InvalidPayload
from dinnernight.model.db import OrderItem
from dinnernight.tickets import (
    ReportlabTicketRenderer, TicketEntry, TicketHolder, qr_png,
    ticket_entries,
)
from dinnernight.verification import (
    REASON_CODE_NOT_FOUND, REASON_ORDER_NOT_CONFIRMED, REASON_ORDER_NOT_FOUND,
    find_ticket, parse_qr_payload,
)

HOLDER = TicketHolder(name="Ada Obi", email="ada@example.com",
                      total_amount=1300000)


def _item(position, category, codes):
    return SimpleNamespace(position=position, category=category,
                           ticket_codes=codes)


# ------------------------------------------------------------------ #
#  entries and QR payloads                                             #
# ------------------------------------------------------------------ #


class TestEntries:
    def test_position_then_code_order(self):
        items = [_item(1, "regular", [507, 505]), _item(0, "vip", [510])]
        entries = ticket_entries("o1", items)
        assert [(e.category, e.code) for e in entries] == [
            ("vip", 510), ("regular", 505), ("regular", 507),
        ]

    def test_qr_payload_is_canonical_json(self):
        entry = TicketEntry(order_id="o1", code=501, category="regular")
        assert entry.qr_payload() == \
            '{"category":"regular","code":501,"orderId":"o1"}'

    def test_qr_round_trip_through_parser(self):
        entry = TicketEntry(order_id="o1", code=501, category="regular")
        assert parse_qr_payload(entry.qr_payload()) == ("o1", 501)

    def test_qr_png(self):
        assert qr_png("hello").startswith(b"\x89PNG")

    @pytest.mark.parametrize("raw", [
        "not json", "[1, 2]", json.dumps({"code": 501}),
        json.dumps({"orderId": "o1"}),
        json.dumps({"orderId": "o1", "code": "abc"}),
        json.dumps({"orderId": "o1", "code": True}),
    ])
    def test_bad_qr_payloads(self, raw):
        with pytest.raises(InvalidPayload):
            parse_qr_payload(raw)


# ------------------------------------------------------------------ #
#  PDF rendering                                                       #
# ------------------------------------------------------------------ #


class TestRenderer:
    def test_pdf_is_deterministic(self):
        entries = ticket_entries("o1", [_item(0, "regular", [501, 502])])
        renderer = ReportlabTicketRenderer()
        first = renderer.render_ticket_pdf(entries, HOLDER)
        second = renderer.render_ticket_pdf(entries, HOLDER)
        assert first.startswith(b"%PDF")
        assert first == second

    def test_different_codes_different_pdf(self):
        renderer = ReportlabTicketRenderer()
        a = renderer.render_ticket_pdf(
            ticket_entries("o1", [_item(0, "regular", [501])]), HOLDER)
        b = renderer.render_ticket_pdf(
            ticket_entries("o1", [_item(0, "regular", [502])]), HOLDER)
        assert a != b

    def test_many_tickets_span_pages(self):
        entries = ticket_entries(
            "o1", [_item(0, "vip", list(range(501, 511)))]
        )
        pdf = ReportlabTicketRenderer().render_ticket_pdf(entries, HOLDER)
        counts = [int(n) for n in re.findall(rb"/Count (\d+)", pdf)]
        assert max(counts) >= 2


# ------------------------------------------------------------------ #
#  verification query                                                  #
# ------------------------------------------------------------------ #


class TestFindTicket:
    async def test_valid_ticket(self, SessionAsync, db, seeded, engine,
                                place_order):
        order_id, ref = await place_order([{"category": "couples",
                                            "quantity": 2}])
        await engine.confirm_payment(ref)
        async with db.begin():
            check = await find_ticket(db, order_id, 502)
        assert check.valid
        assert check.as_dict() == {
            "valid": True, "reason": None, "code": 502,
            "order_id": order_id, "category": "couples",
            "holder": "Ada Obi", "status": "confirmed",
        }

    async def test_unknown_order(self, db):
        async with db.begin():
            check = await find_ticket(db, "nope", 501)
        assert not check.valid
        assert check.reason == REASON_ORDER_NOT_FOUND

    async def test_code_not_on_order(self, db, seeded, engine, place_order):
        order_id, ref = await place_order([{"category": "regular",
                                            "quantity": 1}])
        await engine.confirm_payment(ref)
        async with db.begin():
            check = await find_ticket(db, order_id, 999)
        assert check.reason == REASON_CODE_NOT_FOUND
        assert check.holder is None

    async def test_order_not_confirmed(self, db, seeded, place_order):
        order_id, _ = await place_order([{"category": "regular",
                                          "quantity": 1}])
        async with db.begin():
            await db.execute(
                update(OrderItem).where(OrderItem.order_id == order_id)
                .values(ticket_codes=[501])
            )
        async with db.begin():
            check = await find_ticket(db, order_id, 501)
        assert not check.valid
        assert check.reason == REASON_ORDER_NOT_CONFIRMED
        assert check.status == "pending"
        assert check.holder is None
