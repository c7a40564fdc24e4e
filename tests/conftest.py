import pytest

from eventcraft.config import refresh_settings
from eventcraft.db import sqlite as db


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: int = 0) -> None:
        self.t = start

    def __call__(self) -> int:
        return self.t

    def advance(self, ms: int) -> None:
        self.t += ms


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def test_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("DB_PATH", str(tmp_path / "eventcraft.db"))
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("ADMIN_TOKEN", "admin-secret")
    monkeypatch.setenv("CURRENCY", "IDR")
    for key in (
        "BOT_TOKEN",
        "TELEGRAM_BOT_TOKEN",
        "ADMIN_ID",
        "ADMIN_TG_ID",
        "ADMIN_TG",
        "EMAIL_HOST",
        "SMTP_HOST",
        "EMAIL_USER",
        "SMTP_USER",
        "EMAIL_PASSWORD",
        "SMTP_PASSWORD",
        "VENDOR_EMAIL",
        "RATE_LIMIT_MAX",
        "RATE_LIMIT_WINDOW_MS",
        "TOTAL_TOLERANCE",
        "COMPANY_NAME",
        "SESSION_MAX",
        "SESSION_IDLE_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)
    return refresh_settings()


@pytest.fixture()
def test_db(test_settings):
    db.init_db()
    return test_settings


@pytest.fixture()
def seeded(test_db):
    """Two categories, three items and one template with two presets."""
    _, sound = db.add_category("Sound", "speaker", 1)
    _, light = db.add_category("Lighting", "lamp", 2)
    _, speaker = db.add_item(sound, "Line Array Speaker", 1_500_000, "per day")
    _, mixer = db.add_item(sound, "Digital Mixer", 750_000, "per day")
    _, par = db.add_item(light, "LED Par", 100_000, "per unit")
    template = db.add_template("Small Gathering", "Up to 100 guests", capacity_label="100 pax")
    db.set_template_item(template, speaker, 2)
    db.set_template_item(template, par, 8)
    return {
        "categories": {"sound": sound, "light": light},
        "items": {"speaker": speaker, "mixer": mixer, "par": par},
        "template": template,
    }
