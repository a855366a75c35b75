from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional
import asyncio
import logging
import smtplib

from jinja2 import DictLoader, Environment, select_autoescape

from . import config
from .helpers import naira

logger = logging.getLogger(__name__)


@dataclass
class OrderSummary:
    order_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    total_amount: int
    # [{"category", "label", "quantity", "ticket_codes"}]
    items: List[dict] = field(default_factory=list)


def order_summary(order, items) -> OrderSummary:
    return OrderSummary(
        order_id=order.id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        total_amount=int(order.total_amount),
        items=[
            {
                "category": i.category,
                "label": config.TICKET_CATEGORIES.get(i.category, {}).get(
                    "name", i.category
                ),
                "quantity": i.quantity,
                "ticket_codes": sorted(i.ticket_codes or []),
            }
            for i in sorted(items, key=lambda i: i.position)
        ],
    )


class Notifier(ABC):
    @abstractmethod
    async def send_ticket_email(self, recipient: str, summary: OrderSummary,
                                pdf: Optional[bytes]) -> None: ...

    @abstractmethod
    async def send_admin_notification(self, summary: OrderSummary) -> None:
        ...

    @abstractmethod
    async def send_approval_notice(self, artist_email: str,
                                   artist_name: str) -> None: ...


# ----------------------------
# Templates
# ----------------------------
TEMPLATES = {
    "ticket.html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #0F1B3C; color: white; padding: 30px; text-align: center;">
    <h1 style="margin: 0;">{{ event.name }}</h1>
    <p style="margin: 10px 0 0 0; color: #FBBF24;">{{ event.tagline }}</p>
  </div>
  <div style="padding: 30px;">
    <h2>Thank you for your purchase, {{ s.customer_name }}!</h2>
    <p>Your ticket(s) have been confirmed. The PDF attached to this email
       holds one QR code per ticket.</p>
    <p><strong>Order ID:</strong> {{ s.order_id }}<br>
       <strong>Total Amount:</strong> {{ total }}</p>
    {% for item in s.items %}
    <p><strong>{{ item.label }}</strong> &times; {{ item.quantity }}<br>
       <small>Ticket Codes: {{ item.ticket_codes | join(', ') }}</small></p>
    {% endfor %}
    <p><strong>Important:</strong> each ticket code is unique and valid for
       one admission only.</p>
    <p>{{ event.date }}, {{ event.time }}<br>{{ event.venue }}</p>
  </div>
  <div style="padding: 20px; text-align: center; color: #666;">
    For support, contact {{ admin_email }}
  </div>
</div>
""",
    "admin.html": """
<h2>New Ticket Sale</h2>
<p><strong>Order ID:</strong> {{ s.order_id }}</p>
<p><strong>Customer:</strong> {{ s.customer_name }} ({{ s.customer_email }})</p>
<p><strong>Phone:</strong> {{ s.customer_phone }}</p>
<p><strong>Total Amount:</strong> {{ total }}</p>
<ul>
{% for item in s.items %}
  <li>{{ item.label }} &times; {{ item.quantity }} - Codes: {{ item.ticket_codes | join(', ') }}</li>
{% endfor %}
</ul>
""",
    "approval.html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1>Congratulations, {{ name }}!</h1>
  <p>Your application to perform at the {{ event.name }} has been approved.</p>
  <ul>
    <li>You'll receive a free dinner ticket</li>
    <li>Performance details will be shared soon</li>
  </ul>
</div>
""",
}

env = Environment(loader=DictLoader(TEMPLATES),
                  autoescape=select_autoescape(["html"]))


def render(template: str, **ctx) -> str:
    return env.get_template(template).render(
        event=config.EVENT_DETAILS, admin_email=config.ADMIN_EMAIL, **ctx
    )


# ----------------------------
# SMTP implementation
# ----------------------------
class SmtpNotifier(Notifier):
    def __init__(self, host: str = config.SMTP_HOST,
                 port: int = config.SMTP_PORT,
                 user: str = config.SMTP_USER,
                 password: str = config.SMTP_PASS,
                 sender: str = config.SMTP_FROM,
                 admin_email: str = config.ADMIN_EMAIL) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.admin_email = admin_email

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def _send(self, msg: MIMEMultipart, to: str) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.ehlo()
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(msg["From"], [to], msg.as_string())

    async def _deliver(self, to: str, subject: str, html: str,
                       attachment: Optional[tuple] = None) -> None:
        if not self.configured:
            logger.info(
                "Email not configured (SMTP_USER/SMTP_PASS not set), "
                "skipping '%s' to %s", subject, to
            )
            return

        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(html, "html", "utf-8"))
        if attachment is not None:
            filename, content = attachment
            part = MIMEApplication(content, _subtype="pdf")
            part.add_header("Content-Disposition", "attachment",
                            filename=filename)
            msg.attach(part)

        # smtplib blocks
        await asyncio.to_thread(self._send, msg, to)
        logger.info("email '%s' sent to %s", subject, to)

    async def send_ticket_email(self, recipient: str, summary: OrderSummary,
                                pdf: Optional[bytes]) -> None:
        html = render("ticket.html", s=summary,
                      total=naira(summary.total_amount))
        attachment = None
        if pdf:
            attachment = (f"Dinner-Ticket-{summary.order_id}.pdf", pdf)
        await self._deliver(
            recipient,
            f"Your {config.EVENT_DETAILS['name']} Ticket(s)",
            html, attachment,
        )

    async def send_admin_notification(self, summary: OrderSummary) -> None:
        html = render("admin.html", s=summary,
                      total=naira(summary.total_amount))
        await self._deliver(
            self.admin_email,
            f"New Ticket Sale - {config.EVENT_DETAILS['name']}",
            html,
        )

    async def send_approval_notice(self, artist_email: str,
                                   artist_name: str) -> None:
        html = render("approval.html", name=artist_name)
        await self._deliver(
            artist_email,
            f"Artist Application Approved - {config.EVENT_DETAILS['name']}",
            html,
        )
