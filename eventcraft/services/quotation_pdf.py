from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from eventcraft.config import get_settings
from eventcraft.utils.formatters import money, short_id

PRIMARY = colors.Color(234 / 255, 88 / 255, 51 / 255)
DISCLAIMER = "This is a quotation estimate. Final prices may vary based on actual event requirements."
# keeps body text clear of the footer lines
BOTTOM_MARGIN = 60


def quotation_filename(inquiry_id: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"quotation-{str(inquiry_id)[:8]}-{when.strftime('%Y%m%d')}.pdf"


def _format_event_date(value: str) -> str:
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").strftime("%d %b %Y")
    except ValueError:
        return value


def _new_page(c: canvas.Canvas, h: float) -> float:
    c.showPage()
    return h - 50


def generate_quotation_pdf(inquiry: Dict[str, Any], out_dir: Optional[str] = None) -> str:
    """Render an inquiry (as returned by ``db.get_inquiry``) to a PDF file."""
    s = get_settings()
    out_dir = out_dir or s.export_dir
    os.makedirs(out_dir, exist_ok=True)

    now = datetime.now()
    path = os.path.join(out_dir, quotation_filename(inquiry["id"], now))

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    # header
    y = h - 60
    c.setFillColor(PRIMARY)
    c.setFont("Helvetica-Bold", 22)
    c.drawCentredString(w / 2, y, s.company_name)
    y -= 20
    c.setFillColor(colors.grey)
    c.setFont("Helvetica", 11)
    c.drawCentredString(w / 2, y, "Event Services Quotation")
    y -= 34

    c.setFillColor(colors.black)
    c.setFont("Helvetica", 10)
    c.drawString(40, y, f"Quotation ID: {short_id(inquiry['id'])}")
    y -= 14
    c.drawString(40, y, f"Generated: {now.strftime('%d %b %Y, %H:%M')}")
    y -= 26

    # customer
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, y, "Customer Information")
    y -= 16
    c.setFont("Helvetica", 10)
    c.drawString(40, y, f"Name: {inquiry['customer_name']}")
    y -= 14
    if inquiry.get("email"):
        c.drawString(40, y, f"Email: {inquiry['email']}")
        y -= 14
    if inquiry.get("phone"):
        c.drawString(40, y, f"Phone: {inquiry['phone']}")
        y -= 14
    if inquiry.get("event_date"):
        c.drawString(40, y, f"Event Date: {_format_event_date(str(inquiry['event_date']))}")
        y -= 14
    if inquiry.get("event_location"):
        c.drawString(40, y, f"Event Location: {inquiry['event_location']}")
        y -= 14
    y -= 14

    # items
    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, y, "Quotation Items")
    y -= 18

    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "#")
    c.drawString(65, y, "Item")
    c.drawString(315, y, "Qty")
    c.drawRightString(440, y, "Unit Price")
    c.drawRightString(555, y, "Subtotal")
    y -= 8
    c.setStrokeColor(PRIMARY)
    c.line(40, y, 555, y)
    y -= 14

    c.setFont("Helvetica", 9)
    for n, it in enumerate(inquiry.get("items") or [], start=1):
        qty = int(it["quantity"])
        price = int(it["price_at_time"])
        c.drawString(40, y, str(n))
        c.drawString(65, y, str(it["item_name"])[:45])
        c.drawString(315, y, str(qty))
        c.drawRightString(440, y, money(price))
        c.drawRightString(555, y, money(price * qty))
        y -= 14
        if y < 90:
            y = _new_page(c, h)
            c.setFont("Helvetica", 9)

    y -= 6
    c.line(40, y, 555, y)
    y -= 20
    if y < BOTTOM_MARGIN:
        y = _new_page(c, h)
    c.setFont("Helvetica-Bold", 12)
    c.setFillColor(colors.black)
    c.drawString(340, y, "Grand Total:")
    c.setFillColor(PRIMARY)
    c.drawRightString(555, y, money(int(inquiry["total"])))
    c.setFillColor(colors.black)

    if inquiry.get("notes"):
        y -= 30
        if y < BOTTOM_MARGIN:
            y = _new_page(c, h)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(40, y, "Notes:")
        c.setFont("Helvetica", 9)
        for line in str(inquiry["notes"]).splitlines():
            y -= 14
            if y < BOTTOM_MARGIN:
                y = _new_page(c, h)
                c.setFont("Helvetica", 9)
            c.drawString(40, y, line[:110])

    # footer
    c.setFont("Helvetica", 8)
    c.setFillColor(colors.grey)
    c.drawCentredString(w / 2, 40, DISCLAIMER)
    c.drawCentredString(w / 2, 28, f"(c) {s.company_name}")

    c.save()
    return path
