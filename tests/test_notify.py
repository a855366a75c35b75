"""Tests for dinnernight.notify; SMTP itself is replaced by a recorder."""

from types import SimpleNamespace

import pytest

from dinnernight.notify import SmtpNotifier, order_summary


@pytest.fixture
def summary():
    order = SimpleNamespace(
        id="o1", customer_name="Ada <Obi>", customer_email="ada@example.com",
        customer_phone="0801", total_amount=1300000,
    )
    items = [
        SimpleNamespace(position=1, category="couples", quantity=1,
                        ticket_codes=[503]),
        SimpleNamespace(position=0, category="regular", quantity=2,
                        ticket_codes=[502, 501]),
    ]
    return order_summary(order, items)


@pytest.fixture
def sent(monkeypatch):
    out = []
    monkeypatch.setattr(SmtpNotifier, "_send",
                        lambda self, msg, to: out.append((to, msg)))
    return out


def _notifier(**kw):
    args = dict(host="smtp.test", port=2525, user="u", password="p",
                sender="noreply@test", admin_email="admin@test")
    args.update(kw)
    return SmtpNotifier(**args)


def test_summary_orders_items_and_codes(summary):
    assert [(i["label"], i["ticket_codes"]) for i in summary.items] == [
        ("Regular", [501, 502]), ("Couples Table", [503]),
    ]


async def test_ticket_email_carries_pdf(summary, sent):
    await _notifier().send_ticket_email("ada@example.com", summary,
                                        b"%PDF-1.4 stub")
    (to, msg), = sent
    assert to == "ada@example.com"
    parts = msg.get_payload()
    html = parts[0].get_payload(decode=True).decode()
    assert "501, 502" in html
    assert "NGN 13,000.00" in html
    # customer input is escaped
    assert "Ada &lt;Obi&gt;" in html
    assert parts[1].get_filename() == "Dinner-Ticket-o1.pdf"
    assert parts[1].get_payload(decode=True) == b"%PDF-1.4 stub"


async def test_admin_notification_goes_to_admin(summary, sent):
    await _notifier().send_admin_notification(summary)
    assert sent[0][0] == "admin@test"
    assert sent[0][1]["Subject"].startswith("New Ticket Sale")


async def test_unconfigured_smtp_skips(summary, sent):
    notifier = _notifier(user="", password="")
    assert not notifier.configured
    await notifier.send_approval_notice("kemi@example.com", "Kemi")
    assert sent == []


async def test_approval_notice_is_sent(sent):
    await _notifier().send_approval_notice("kemi@example.com", "Kemi")
    (to, msg), = sent
    assert to == "kemi@example.com"
    assert msg["Subject"].startswith("Artist Application Approved")
    html = msg.get_payload()[0].get_payload(decode=True).decode()
    assert "Congratulations, Kemi!" in html
