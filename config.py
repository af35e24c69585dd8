import os
import secrets
from contextvars import ContextVar
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Optional

APP_NAME = "Digital Health Wallet API"
APP_VERSION = "1.0.0"

DB_PATH = os.environ.get("HEALTH_WALLET_DB_PATH", "health_wallet.db")
SECRET_KEY_PATH = Path(".app_secret_key")
TOKEN_TTL_SECONDS = 60 * 60 * 24 * 7
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "uploads"))
MAX_FILE_SIZE = int(os.environ.get("MAX_FILE_SIZE", "10485760"))
ALLOWED_FILE_TYPES = [
    ext.strip().lower()
    for ext in os.environ.get("ALLOWED_FILE_TYPES", "pdf,jpg,jpeg,png").split(",")
    if ext.strip()
]

CORS_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]

PUBLIC_PATHS = {"/", "/api/health", "/api/info", "/api/auth/register", "/api/auth/login"}

DEFAULT_SUMMARY_DAYS = 30
REPORT_TYPES = ("lab_report", "x_ray", "prescription", "discharge_summary", "other")

# Fixed-width UTC text with microseconds; compares correctly as a plain string.
STORAGE_FMT = "%Y-%m-%d %H:%M:%S.%f"
# What SQLite's CURRENT_TIMESTAMP writes for created_at/updated_at defaults.
SQLITE_FMT = "%Y-%m-%d %H:%M:%S"

_current_user_id: ContextVar[Optional[int]] = ContextVar("_current_user_id", default=None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 date or datetime into a naive UTC datetime.

    Accepts a trailing ``Z``, an explicit offset, a naive value (taken as
    UTC) or a bare date (midnight UTC). Fractional seconds are kept.
    Raises ValueError on anything else, including instants that fall
    outside the representable range once shifted to UTC.
    """
    text = (value or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if len(text) == 10:
        return datetime.combine(date.fromisoformat(text), time())
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        try:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            raise ValueError(f"timestamp out of range: {value}")
    return dt


def _is_date_only(value: str) -> bool:
    return len((value or "").strip()) == 10


def _to_storage(dt: datetime) -> str:
    return dt.isoformat(sep=" ", timespec="microseconds")


def _to_iso(dt: datetime) -> str:
    if not dt.microsecond:
        spec = "seconds"
    elif dt.microsecond % 1000 == 0:
        spec = "milliseconds"
    else:
        spec = "microseconds"
    return dt.isoformat(timespec=spec) + "Z"


def _from_storage(ts: Optional[str]) -> Optional[str]:
    """Render a stored UTC timestamp as ISO 8601 with a trailing Z."""
    if not ts:
        return ts
    return _to_iso(datetime.strptime(ts, STORAGE_FMT if "." in ts else SQLITE_FMT))


def _end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.max)


def _load_secret_key() -> str:
    env_key = os.environ.get("APP_SECRET_KEY", "").strip()
    if env_key:
        return env_key
    if SECRET_KEY_PATH.exists():
        return SECRET_KEY_PATH.read_text(encoding="utf-8").strip()
    key = secrets.token_hex(32)
    SECRET_KEY_PATH.write_text(key, encoding="utf-8")
    return key


SECRET_KEY = _load_secret_key()
