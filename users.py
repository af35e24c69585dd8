import logging
import re
import sqlite3
from datetime import date
from typing import Optional

from config import _from_storage
from errors import Conflict, InvalidArgument, NotFound, Unauthorized
from security import _hash_password, _make_token, _verify_password

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _user_dict(row) -> dict:
    item = {key: row[key] for key in row.keys() if key != "password_hash"}
    for key in ("created_at", "updated_at"):
        if key in item:
            item[key] = _from_storage(item[key])
    return item


def _optional_date(value, field: str) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise InvalidArgument(f"{field} must be a date in YYYY-MM-DD format")


def register_user(
    conn,
    username: str,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    date_of_birth: Optional[str] = None,
):
    """Create an account; return ``(token, user)``."""
    username = (username or "").strip()
    email = (email or "").strip().lower()
    password = password or ""
    if not username or not email or not password:
        raise InvalidArgument("Username, email, and password are required")
    if not _EMAIL_RE.match(email):
        raise InvalidArgument("Email address is not valid")
    if len(password) < 8:
        raise InvalidArgument("Password must be at least 8 characters")
    if len(password) > 1000:
        raise InvalidArgument("Password is too long")
    dob = _optional_date(date_of_birth, "date_of_birth")

    existing = conn.execute(
        "SELECT id FROM users WHERE username = ? OR email = ?", (username, email)
    ).fetchone()
    if existing:
        raise Conflict("Username or email already exists")
    pw_hash = _hash_password(password)
    try:
        cur = conn.execute(
            "INSERT INTO users (username, email, password_hash, full_name, date_of_birth)"
            " VALUES (?, ?, ?, ?, ?)",
            (username, email, pw_hash, str(full_name or "").strip() or None, dob),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        raise Conflict("Username or email already exists")
    logger.info("Registered user %s (id=%s)", username, cur.lastrowid)
    return _make_token(cur.lastrowid, pw_hash), get_profile(conn, cur.lastrowid)


def login_user(conn, username: str, password: str):
    """Check credentials; return ``(token, user)``."""
    username = (username or "").strip()
    if not username or not password:
        raise InvalidArgument("Username and password are required")
    row = conn.execute(
        "SELECT id, password_hash FROM users WHERE username = ?", (username,)
    ).fetchone()
    if not row or not _verify_password(password, row["password_hash"]):
        raise Unauthorized("Invalid credentials")
    return _make_token(row["id"], row["password_hash"]), get_profile(conn, row["id"])


def get_profile(conn, user_id: int) -> dict:
    row = conn.execute(
        "SELECT id, username, email, full_name, date_of_birth, created_at, updated_at"
        " FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        raise NotFound("User not found")
    return _user_dict(row)


def update_profile(conn, user_id: int, full_name=None, date_of_birth=None) -> dict:
    dob = _optional_date(date_of_birth, "date_of_birth")
    conn.execute(
        "UPDATE users SET full_name = ?, date_of_birth = ?, updated_at = CURRENT_TIMESTAMP"
        " WHERE id = ?",
        ((str(full_name).strip() or None) if full_name is not None else None, dob, user_id),
    )
    conn.commit()
    return get_profile(conn, user_id)
