import logging
from html import escape
from typing import Any, Dict, List

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from eventcraft.bot.keyboards import main_kb, status_kb
from eventcraft.bot.states import PriceEdit
from eventcraft.config import get_settings
from eventcraft.constants import INQUIRY_STATUSES
from eventcraft.db.sqlite import (
    dashboard_stats,
    find_inquiry_by_prefix,
    find_items,
    get_status_history,
    init_db,
    list_inquiries,
    update_inquiry_status,
    update_item,
)
from eventcraft.services.export_csv import export_inquiries_csv
from eventcraft.services.quotation_pdf import generate_quotation_pdf
from eventcraft.utils.formatters import money, short_id

logger = logging.getLogger(__name__)

router = Router()

LIST_LIMIT = 20


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(get_settings().admin_id)
    except (AttributeError, TypeError, ValueError):
        return False


def _parse_price(text: str) -> int:
    # "1.500.000", "1,500,000" and "1500000" are all the same price
    digits = text.strip().replace(".", "").replace(",", "").replace(" ", "")
    if not digits.isdigit():
        raise ValueError("price must be a whole number")
    return int(digits)


# ---------------- text builders ----------------

def inquiries_text(rows: List[Dict[str, Any]], status: str | None = None) -> str:
    title = f"<b>Inquiries ({status})</b>" if status else "<b>Inquiries</b>"
    if not rows:
        return f"{title}\n  (empty)"
    lines = [title]
    for r in rows[:LIST_LIMIT]:
        lines.append(
            f"  • <code>{short_id(r['id'])}</code> {escape(r['customer_name'])} | "
            f"{money(r['total'])} | {r['status']}"
        )
    if len(rows) > LIST_LIMIT:
        lines.append(f"  … and {len(rows) - LIST_LIMIT} more")
    return "\n".join(lines)


def inquiry_text(inq: Dict[str, Any], history: List[Dict[str, Any]]) -> str:
    lines = [
        f"<b>Inquiry {short_id(inq['id'])}</b> — {inq['status']}",
        f"Customer: {escape(inq['customer_name'])}",
        f"Email: {escape(inq.get('email') or '-')}",
        f"Phone: {escape(inq.get('phone') or '-')}",
        f"Event date: {escape(str(inq.get('event_date') or '-'))}",
        f"Location: {escape(inq.get('event_location') or '-')}",
        f"Created: {inq['created_at']}",
        "",
    ]
    for it in inq.get("items") or []:
        lines.append(
            f"  • {escape(it['item_name'])} x{it['quantity']} | {money(it['price_at_time'] * it['quantity'])}"
        )
    lines.append(f"<b>Total: {money(inq['total'])}</b>")
    if inq.get("notes"):
        lines.append(f"\nNotes: {escape(inq['notes'])}")
    if history:
        lines.append("\n<b>History</b>")
        for h in history:
            lines.append(f"  {h['changed_at']}: {h['old_status'] or '—'} → {h['new_status']}")
    return "\n".join(lines)


def stats_text(stats: Dict[str, Any]) -> str:
    lines = [
        "<b>Dashboard</b>",
        f"Inquiries: {stats['inquiries']}",
        f"Total value: {money(stats['total_value'])}",
        "",
    ]
    for status, label in INQUIRY_STATUSES.items():
        lines.append(f"  {label}: {stats['by_status'].get(status, 0)}")
    if stats["top_items"]:
        lines.append("\n<b>Top items</b>")
        for it in stats["top_items"]:
            lines.append(f"  • {escape(it['item_name'])} — {it['inquiries']} inq., qty {it['quantity']}")
    return "\n".join(lines)


# ---------------- commands ----------------

@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    init_db()
    await message.answer("✅ EventCraft admin bot is running", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>EventCraft — commands</b>\n\n"
        "/start — start\n"
        "/cancel — cancel input\n"
        "/ping — check\n\n"
        "<b>Inquiries</b>\n"
        "/inquiries [STATUS] — latest inquiries\n"
        "/inquiry ID — details and status history\n"
        f"/status ID STATUS — {', '.join(INQUIRY_STATUSES)}\n"
        "/quote ID — PDF quotation\n"
        "/export [STATUS] — CSV export\n"
        "/stats — dashboard\n\n"
        "<b>Catalog</b>\n"
        "/price — change an item price\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("inquiries"))
async def cmd_inquiries(message: Message, command: CommandObject):
    if not _is_admin(message):
        return
    status = (command.args or "").strip().lower() or None
    if status and status not in INQUIRY_STATUSES:
        await message.answer(f"❌ Unknown status. Use: {', '.join(INQUIRY_STATUSES)}")
        return
    await message.answer(inquiries_text(list_inquiries(status), status))


@router.message(Command("inquiry"))
async def cmd_inquiry(message: Message, command: CommandObject):
    if not _is_admin(message):
        return
    inq = find_inquiry_by_prefix(command.args or "")
    if not inq:
        await message.answer("❌ Inquiry not found. Usage: /inquiry ID")
        return
    await message.answer(
        inquiry_text(inq, get_status_history(inq["id"])),
        reply_markup=status_kb(short_id(inq["id"])),
    )


@router.message(Command("status"))
async def cmd_status(message: Message, command: CommandObject):
    if not _is_admin(message):
        return
    parts = (command.args or "").split()
    if len(parts) < 2:
        await message.answer("Usage: /status ID STATUS [note]")
        return
    inq = find_inquiry_by_prefix(parts[0])
    if not inq:
        await message.answer("❌ Inquiry not found")
        return
    note = " ".join(parts[2:]) or "via bot"
    ok, msg = update_inquiry_status(inq["id"], parts[1], note)
    if not ok:
        await message.answer(f"❌ {msg}")
        return
    await message.answer(f"✅ {short_id(inq['id'])}: {parts[1].lower()}", reply_markup=ReplyKeyboardRemove())


@router.message(Command("quote"))
async def cmd_quote(message: Message, command: CommandObject):
    if not _is_admin(message):
        return
    inq = find_inquiry_by_prefix(command.args or "")
    if not inq:
        await message.answer("❌ Inquiry not found. Usage: /quote ID")
        return
    try:
        path = generate_quotation_pdf(inq)
    except OSError as e:
        logger.exception("quotation pdf failed")
        await message.answer(f"❌ PDF error: {e}")
        return
    await message.answer_document(FSInputFile(path))


@router.message(Command("export"))
async def cmd_export(message: Message, command: CommandObject):
    if not _is_admin(message):
        return
    status = (command.args or "").strip().lower() or None
    path = export_inquiries_csv(list_inquiries(status))
    if path is None:
        await message.answer("No inquiries to export.")
        return
    await message.answer_document(FSInputFile(path))


@router.message(Command("stats"))
async def cmd_stats(message: Message):
    if not _is_admin(message):
        return
    await message.answer(stats_text(dashboard_stats()))


# ---------------- price edit dialog ----------------

@router.message(Command("price"))
async def cmd_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.set_state(PriceEdit.item)
    await message.answer("Item name or id? (/cancel to stop)")


@router.message(PriceEdit.item)
async def price_item(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    query = (message.text or "").strip()
    found = find_items(query)
    if not found:
        await message.answer("❌ Nothing found, try again.")
        return
    exact = [i for i in found if i["id"] == query or i["name"].lower() == query.lower()]
    if len(exact) == 1:
        found = exact
    if len(found) > 1:
        names = "\n".join(f"  • {escape(i['name'])} ({money(i['price'])})" for i in found)
        await message.answer(f"Several items match:\n{names}\nBe more specific.")
        return
    item = found[0]
    await state.update_data(item_id=item["id"], item_name=item["name"])
    await state.set_state(PriceEdit.price)
    await message.answer(f"{escape(item['name'])}: now {money(item['price'])}. New price?")


@router.message(PriceEdit.price)
async def price_value(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    try:
        price = _parse_price(message.text or "")
    except ValueError as e:
        await message.answer(f"❌ {e}")
        return
    data = await state.get_data()
    ok, msg = update_item(data["item_id"], price=price)
    await state.clear()
    if not ok:
        await message.answer(f"❌ {msg}")
        return
    await message.answer(f"✅ {escape(data['item_name'])}: {money(price)}")
