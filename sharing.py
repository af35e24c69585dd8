"""Report ownership and delegated access.

A share grants one other user ``viewer`` or ``editor`` access to one
report, optionally until ``expires_at``. Expired shares are not deleted;
they stop counting wherever access is decided, but the owner still sees
them. Only one share row may exist per (report, grantee) pair, expired
or not, and the database constraint is what settles concurrent creates.
"""
import logging
import sqlite3
from datetime import datetime
from enum import Enum
from typing import Optional

from config import _from_storage, _parse_instant, _to_storage, _utcnow
from errors import Conflict, InvalidArgument, NotFound

logger = logging.getLogger(__name__)


class AccessLevel(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"


OWNER = "owner"


def _share_dict(row) -> dict:
    item = dict(row)
    item["created_at"] = _from_storage(item.get("created_at"))
    item["expires_at"] = _from_storage(item.get("expires_at"))
    return item


def _owned_report(conn, owner_id: int, report_id: int):
    row = conn.execute(
        "SELECT * FROM reports WHERE id = ? AND user_id = ?", (report_id, owner_id)
    ).fetchone()
    if row is None:
        raise NotFound("Report not found")
    return row


def _owned_share(conn, owner_id: int, report_id: int, share_id: int):
    _owned_report(conn, owner_id, report_id)
    share = conn.execute(
        "SELECT * FROM shares WHERE id = ? AND report_id = ? AND owner_id = ?",
        (share_id, report_id, owner_id),
    ).fetchone()
    if share is None:
        raise NotFound("Share not found")
    return share


def _parse_expiry(expires_at) -> Optional[str]:
    if expires_at is None or expires_at == "":
        return None
    try:
        return _to_storage(_parse_instant(str(expires_at)))
    except ValueError:
        raise InvalidArgument("expires_at must be an ISO 8601 date or datetime")


def create_share(
    conn,
    owner_id: int,
    report_id: int,
    grantee_username: str,
    access_level: str = AccessLevel.VIEWER.value,
    expires_at=None,
) -> dict:
    grantee_username = (grantee_username or "").strip()
    if not grantee_username:
        raise InvalidArgument("shared_with_username is required")
    level = access_level or AccessLevel.VIEWER.value
    try:
        level = AccessLevel(level).value
    except ValueError:
        raise InvalidArgument("access_level must be 'viewer' or 'editor'")
    expiry = _parse_expiry(expires_at)

    _owned_report(conn, owner_id, report_id)
    grantee = conn.execute(
        "SELECT id FROM users WHERE username = ?", (grantee_username,)
    ).fetchone()
    if grantee is None:
        raise NotFound("User not found")
    if grantee["id"] == owner_id:
        raise InvalidArgument("Cannot share report with yourself")

    try:
        cur = conn.execute(
            "INSERT INTO shares (report_id, owner_id, shared_with_user_id, access_level, expires_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (report_id, owner_id, grantee["id"], level, expiry),
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        if "UNIQUE" in str(exc):
            raise Conflict("Report already shared with this user")
        raise
    logger.info("User %s shared report %s with user %s (%s)", owner_id, report_id, grantee["id"], level)
    row = conn.execute("SELECT * FROM shares WHERE id = ?", (cur.lastrowid,)).fetchone()
    share = _share_dict(row)
    share["shared_with_username"] = grantee_username
    return share


def list_shares_for_report(conn, owner_id: int, report_id: int) -> list:
    """All shares on a report, newest first, expired ones included."""
    _owned_report(conn, owner_id, report_id)
    rows = conn.execute(
        """SELECT s.*, u.username, u.email
           FROM shares s
           JOIN users u ON s.shared_with_user_id = u.id
           WHERE s.report_id = ?
           ORDER BY s.created_at DESC, s.id DESC""",
        (report_id,),
    ).fetchall()
    return [_share_dict(r) for r in rows]


def list_shared_with_me(conn, grantee_id: int, now: Optional[datetime] = None) -> list:
    now_s = _to_storage(now or _utcnow())
    rows = conn.execute(
        """SELECT r.id, r.user_id, r.file_name, r.file_type, r.report_type, r.report_date,
                  r.description, r.created_at, r.updated_at,
                  u.username AS owner_username,
                  s.id AS share_id, s.access_level, s.expires_at
           FROM reports r
           JOIN shares s ON r.id = s.report_id
           JOIN users u ON r.user_id = u.id
           WHERE s.shared_with_user_id = ?
             AND (s.expires_at IS NULL OR s.expires_at > ?)
           ORDER BY r.report_date DESC, r.id DESC""",
        (grantee_id, now_s),
    ).fetchall()
    items = []
    for r in rows:
        item = dict(r)
        for key in ("created_at", "updated_at", "expires_at"):
            item[key] = _from_storage(item[key])
        items.append(item)
    return items


def revoke_share(conn, owner_id: int, report_id: int, share_id: int):
    _owned_share(conn, owner_id, report_id, share_id)
    conn.execute("DELETE FROM shares WHERE id = ?", (share_id,))
    conn.commit()
    logger.info("User %s revoked share %s on report %s", owner_id, share_id, report_id)


def update_share_access_level(conn, owner_id: int, report_id: int, share_id: int, access_level) -> dict:
    # Any non-empty level is stored as given; only creation checks the vocabulary.
    if access_level is None or not str(access_level).strip():
        raise InvalidArgument("access_level is required")
    _owned_share(conn, owner_id, report_id, share_id)
    conn.execute(
        "UPDATE shares SET access_level = ? WHERE id = ?", (str(access_level), share_id)
    )
    conn.commit()
    row = conn.execute("SELECT * FROM shares WHERE id = ?", (share_id,)).fetchone()
    return _share_dict(row)


def active_share(conn, report_id: int, user_id: int, now: Optional[datetime] = None):
    now_s = _to_storage(now or _utcnow())
    return conn.execute(
        "SELECT * FROM shares WHERE report_id = ? AND shared_with_user_id = ?"
        " AND (expires_at IS NULL OR expires_at > ?)",
        (report_id, user_id, now_s),
    ).fetchone()


def resolve_report_access(
    conn, report_id: int, user_id: int, write: bool = False, now: Optional[datetime] = None
):
    """Return ``(report_row, access_level)`` for a principal or raise NotFound.

    Owners always get ``"owner"``. Anyone else needs an unexpired share, and
    an ``editor`` one when ``write`` is set. Every refusal looks exactly
    like a missing report.
    """
    report = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
    if report is None:
        raise NotFound("Report not found")
    if report["user_id"] == user_id:
        return report, OWNER
    share = active_share(conn, report_id, user_id, now=now)
    if share is None:
        raise NotFound("Report not found")
    if write and share["access_level"] != AccessLevel.EDITOR.value:
        raise NotFound("Report not found")
    return report, share["access_level"]
