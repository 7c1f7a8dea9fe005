import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except Exception:
        return int(default)


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return float(raw)
    except Exception:
        return float(default)


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "1" if default else "0").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return bool(default)


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./slotbook.db")
    DB_AUTO_CREATE_ALL = _get_bool("DB_AUTO_CREATE_ALL", True)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    SITE_URL = os.getenv("SITE_URL", "http://localhost:3000").strip().rstrip("/")
    CRON_SECRET = os.getenv("CRON_SECRET", "").strip()
    ADMIN_API_SECRET = os.getenv("ADMIN_API_SECRET", "").strip()

    TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").strip().rstrip("/")
    TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET", "").strip()
    RESEND_API_KEY = os.getenv("RESEND_API_KEY", "").strip()
    RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails").strip()
    EMAIL_FROM = os.getenv("EMAIL_FROM", "Booking SaaS <onboarding@resend.dev>").strip()
    NOTIFICATION_TIMEOUT_SECONDS = _get_float("NOTIFICATION_TIMEOUT_SECONDS", 10.0)

    REMINDER_LOOKAHEAD_HOURS = _get_int("REMINDER_LOOKAHEAD_HOURS", 48)


settings = Settings()
