from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../eventcraft repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    db_path: str
    export_dir: str
    storage_dir: str
    currency: str
    decimals: int
    company_name: str
    admin_token: str
    bot_token: str
    admin_id: int
    rate_limit_max: int
    rate_limit_window_ms: int
    total_tolerance: int
    session_max: int
    session_idle_seconds: int
    email_host: str
    email_port: int
    email_user: str
    email_password: str
    email_from_name: str
    vendor_email: str

    @property
    def email_configured(self) -> bool:
        return bool(self.email_host and self.email_user and self.email_password)

    @property
    def bot_configured(self) -> bool:
        return bool(self.bot_token and self.admin_id)


def load_settings() -> Settings:
    return Settings(
        db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "eventcraft.db")),
        export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
        storage_dir=_get_path("STORAGE_DIR", default=str(ROOT_DIR / "data" / "local_storage")),
        currency=_get_env("CURRENCY", default="IDR") or "IDR",
        decimals=_get_int("DECIMALS", default=0) or 0,
        company_name=_get_env("COMPANY_NAME", default="Modiv EventCraft") or "Modiv EventCraft",
        admin_token=_get_env("ADMIN_TOKEN", default="") or "",
        bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
        admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", "ADMIN_TG", default=0) or 0,
        rate_limit_max=_get_int("RATE_LIMIT_MAX", default=3) or 3,
        rate_limit_window_ms=_get_int("RATE_LIMIT_WINDOW_MS", default=60_000) or 60_000,
        total_tolerance=_get_int("TOTAL_TOLERANCE", default=1) or 0,
        session_max=_get_int("SESSION_MAX", default=1000) or 1000,
        session_idle_seconds=_get_int("SESSION_IDLE_SECONDS", default=3600) or 3600,
        email_host=_get_env("EMAIL_HOST", "SMTP_HOST", default="") or "",
        email_port=_get_int("EMAIL_PORT", "SMTP_PORT", default=587) or 587,
        email_user=_get_env("EMAIL_USER", "SMTP_USER", default="") or "",
        email_password=_get_env("EMAIL_PASSWORD", "SMTP_PASSWORD", default="") or "",
        email_from_name=_get_env("EMAIL_FROM_NAME", default="Modiv EventCraft") or "Modiv EventCraft",
        vendor_email=_get_env("VENDOR_EMAIL", default="") or "",
    )


settings = load_settings()


def refresh_settings() -> Settings:
    """Re-read the environment into the module-level ``settings``."""
    global settings
    settings = load_settings()
    return settings


def get_settings() -> Settings:
    return settings


def require_bot_settings(s: Settings | None = None) -> Settings:
    s = s or settings
    if not s.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not s.admin_id:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_TG_ID) in .env")
    return s
