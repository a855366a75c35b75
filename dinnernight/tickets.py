# dinnernight/tickets.py
"""
Ticket artifacts: one entry per assigned code, a QR payload per entry and
the PDF that bundles them.

The PDF is rendered in ReportLab's invariant mode, so the same entries and
holder always produce the same bytes.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, List
import json

import qrcode
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from . import config
from .helpers import naira


@dataclass(frozen=True)
class TicketEntry:
    order_id: str
    code: int
    category: str

    def qr_payload(self) -> str:
        # canonical form: sorted keys, no whitespace
        return json.dumps(
            {"orderId": self.order_id, "code": self.code,
             "category": self.category},
            sort_keys=True, separators=(",", ":"),
        )


@dataclass(frozen=True)
class TicketHolder:
    name: str
    email: str
    total_amount: int = 0


def ticket_entries(order_id: str, items: Iterable) -> List[TicketEntry]:
    """Entries in line-item position order, codes ascending within a line."""
    ordered = sorted(items, key=lambda i: i.position)
    return [
        TicketEntry(order_id=order_id, code=int(code), category=i.category)
        for i in ordered
        for code in sorted(i.ticket_codes or [])
    ]


def qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    buf = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buf)
    return buf.getvalue()


class TicketRenderer(ABC):
    @abstractmethod
    def render_ticket_pdf(self, entries: List[TicketEntry],
                          holder: TicketHolder) -> bytes: ...


class ReportlabTicketRenderer(TicketRenderer):
    BLOCK_HEIGHT = 70 * mm
    MARGIN = 18 * mm
    QR_SIZE = 50 * mm

    def __init__(self, event: dict = config.EVENT_DETAILS,
                 catalog: dict = config.TICKET_CATEGORIES) -> None:
        self.event = event
        self.catalog = catalog

    def _header(self, c: canvas.Canvas, holder: TicketHolder,
                top: float) -> float:
        width, _ = A4
        c.setFont("Helvetica-Bold", 20)
        c.drawCentredString(width / 2, top, self.event["name"])
        c.setFont("Helvetica", 11)
        c.drawCentredString(width / 2, top - 16, self.event["tagline"])
        c.drawCentredString(
            width / 2, top - 32,
            f"{self.event['date']}  |  {self.event['time']}  |  "
            f"{self.event['venue']}",
        )
        c.setFont("Helvetica", 10)
        line = f"Holder: {holder.name} <{holder.email}>"
        if holder.total_amount:
            line += f"   Paid: {naira(holder.total_amount)}"
        c.drawString(self.MARGIN, top - 54, line)
        return top - 66

    def _block(self, c: canvas.Canvas, entry: TicketEntry,
               top: float) -> None:
        width, _ = A4
        x = self.MARGIN
        c.setLineWidth(1)
        c.roundRect(x, top - self.BLOCK_HEIGHT, width - 2 * self.MARGIN,
                    self.BLOCK_HEIGHT - 4 * mm, 4 * mm)

        qr = ImageReader(BytesIO(qr_png(entry.qr_payload())))
        c.drawImage(qr, x + 6 * mm, top - self.BLOCK_HEIGHT + 6 * mm,
                    width=self.QR_SIZE, height=self.QR_SIZE)

        label = self.catalog.get(entry.category, {}).get(
            "name", entry.category
        )
        tx = x + self.QR_SIZE + 14 * mm
        c.setFont("Helvetica-Bold", 26)
        c.drawString(tx, top - 22 * mm, f"#{entry.code}")
        c.setFont("Helvetica", 13)
        c.drawString(tx, top - 32 * mm, label)
        c.setFont("Helvetica", 8)
        c.drawString(tx, top - 42 * mm, f"Order {entry.order_id}")
        c.drawString(tx, top - 50 * mm,
                     "Valid for one admission. Present at the entrance.")

    def render_ticket_pdf(self, entries: List[TicketEntry],
                          holder: TicketHolder) -> bytes:
        buf = BytesIO()
        c = canvas.Canvas(buf, pagesize=A4, invariant=1)
        c.setTitle(f"{self.event['name']} Tickets")
        c.setAuthor(self.event["name"])

        _, height = A4
        top = self._header(c, holder, height - self.MARGIN)
        for entry in entries:
            if top - self.BLOCK_HEIGHT < self.MARGIN:
                c.showPage()
                top = height - self.MARGIN
            self._block(c, entry, top)
            top -= self.BLOCK_HEIGHT
        c.showPage()
        c.save()
        return buf.getvalue()
