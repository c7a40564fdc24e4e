from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from eventcraft.constants import INQUIRY_STATUSES


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/help"), KeyboardButton(text="/inquiries")],
            [KeyboardButton(text="/stats"), KeyboardButton(text="/export")],
            [KeyboardButton(text="/price"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def status_kb(short: str) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=f"/status {short} {s}")] for s in INQUIRY_STATUSES],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
