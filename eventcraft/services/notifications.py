from __future__ import annotations

import logging
import smtplib
from html import escape
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, List, Optional

from aiogram import Bot
from aiogram.enums import ParseMode
from jinja2 import Environment, FileSystemLoader, select_autoescape

from eventcraft.config import Settings, get_settings
from eventcraft.utils.formatters import money, short_id

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)
env.filters["money"] = money
env.filters["short_id"] = short_id


def render_customer_email(inquiry: Dict[str, Any]) -> str:
    return env.get_template("customer_email.html").render(
        inquiry=inquiry, company_name=get_settings().company_name
    )


def render_vendor_email(inquiry: Dict[str, Any]) -> str:
    return env.get_template("vendor_email.html").render(inquiry=inquiry)


def send_email(to: str, subject: str, html: str, s: Optional[Settings] = None) -> None:
    s = s or get_settings()
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{s.email_from_name} <{s.email_user}>"
    msg["To"] = to
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(s.email_host, s.email_port, timeout=15) as smtp:
        smtp.starttls()
        smtp.login(s.email_user, s.email_password)
        smtp.send_message(msg)


def send_inquiry_emails(inquiry: Dict[str, Any]) -> List[str]:
    """
    Customer confirmation + vendor alert.
    Returns the list of recipients actually mailed; failures are logged.
    """
    s = get_settings()
    if not s.email_configured:
        return []

    sid = short_id(inquiry["id"])
    outgoing = []
    if inquiry.get("email"):
        outgoing.append(
            (inquiry["email"], f"Inquiry Confirmation #{sid} - {s.company_name}", render_customer_email(inquiry))
        )
    if s.vendor_email:
        outgoing.append(
            (s.vendor_email, f"New Inquiry #{sid} from {inquiry['customer_name']}", render_vendor_email(inquiry))
        )

    sent: List[str] = []
    for to, subject, html in outgoing:
        try:
            send_email(to, subject, html, s)
            sent.append(to)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("email to %s not sent: %s", to, e)
    return sent


def admin_inquiry_text(inquiry: Dict[str, Any]) -> str:
    lines = [
        f"<b>New inquiry #{short_id(inquiry['id'])}</b>",
        f"Customer: {escape(inquiry['customer_name'])}",
    ]
    if inquiry.get("phone"):
        lines.append(f"Phone: {escape(inquiry['phone'])}")
    if inquiry.get("email"):
        lines.append(f"Email: {escape(inquiry['email'])}")
    if inquiry.get("event_date"):
        lines.append(f"Event date: {escape(str(inquiry['event_date']))}")
    lines.append("")
    for it in inquiry.get("items") or []:
        lines.append(f"  • {escape(it['item_name'])} x{it['quantity']} | {money(it['price_at_time'] * it['quantity'])}")
    lines.append("")
    lines.append(f"<b>Total: {money(inquiry['total'])}</b>")
    return "\n".join(lines)


async def notify_admin_chat(inquiry: Dict[str, Any], bot: Optional[Bot] = None) -> bool:
    s = get_settings()
    if not s.bot_configured:
        return False
    own_bot = bot is None
    bot = bot or Bot(token=s.bot_token)
    try:
        await bot.send_message(s.admin_id, admin_inquiry_text(inquiry), parse_mode=ParseMode.HTML)
        return True
    except Exception as e:
        logger.warning("admin chat notification failed: %s", e)
        return False
    finally:
        if own_bot:
            await bot.session.close()
