import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from analysis import _summarize_vitals
from config import (
    DEFAULT_SUMMARY_DAYS,
    _end_of_day,
    _from_storage,
    _is_date_only,
    _parse_instant,
    _to_storage,
    _utcnow,
)
from errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

_VITAL_COLUMNS = "id, user_id, vital_type, value, unit, measured_at, notes, created_at"


def _vital_dict(row) -> dict:
    item = dict(row)
    item["measured_at"] = _from_storage(item["measured_at"])
    item["created_at"] = _from_storage(item["created_at"])
    return item


def _coerce_value(value) -> float:
    # 0 is a valid reading, so only None/blank count as missing.
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgument("vital_type, value, and unit are required")
    if isinstance(value, bool):
        raise InvalidArgument("value must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument("value must be a number")
    if not math.isfinite(number):
        raise InvalidArgument("value must be a finite number")
    return number


def _instant_or_error(value: str, field: str) -> datetime:
    try:
        return _parse_instant(value)
    except ValueError:
        raise InvalidArgument(f"{field} must be an ISO 8601 date or datetime")


def record_vital(
    conn,
    user_id: int,
    vital_type: str,
    value,
    unit: str,
    measured_at: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    vital_type = (vital_type or "").strip() if isinstance(vital_type, str) else vital_type
    unit = (unit or "").strip() if isinstance(unit, str) else unit
    if not vital_type or not unit:
        raise InvalidArgument("vital_type, value, and unit are required")
    number = _coerce_value(value)
    if notes is not None and not isinstance(notes, str):
        raise InvalidArgument("notes must be a string")
    if measured_at:
        measured = _instant_or_error(str(measured_at), "measured_at")
    else:
        measured = now or _utcnow()
    cur = conn.execute(
        "INSERT INTO vitals (user_id, vital_type, value, unit, measured_at, notes)"
        " VALUES (?, ?, ?, ?, ?, ?)",
        (user_id, str(vital_type), number, str(unit), _to_storage(measured), notes or None),
    )
    conn.commit()
    row = conn.execute(
        f"SELECT {_VITAL_COLUMNS} FROM vitals WHERE id = ?", (cur.lastrowid,)
    ).fetchone()
    return _vital_dict(row)


def list_vitals(
    conn,
    user_id: int,
    vital_type: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> list:
    clauses: list[str] = ["user_id = ?"]
    params: list = [user_id]
    if vital_type:
        clauses.append("vital_type = ?")
        params.append(vital_type)
    if from_date:
        clauses.append("measured_at >= ?")
        params.append(_to_storage(_instant_or_error(from_date, "from_date")))
    if to_date:
        upper = _instant_or_error(to_date, "to_date")
        if _is_date_only(to_date):
            upper = _end_of_day(upper)
        clauses.append("measured_at <= ?")
        params.append(_to_storage(upper))
    where = "WHERE " + " AND ".join(clauses)
    rows = conn.execute(
        f"SELECT {_VITAL_COLUMNS} FROM vitals {where} ORDER BY measured_at DESC, id DESC",
        params,
    ).fetchall()
    return [_vital_dict(r) for r in rows]


def list_vital_types(conn, user_id: int) -> list:
    rows = conn.execute(
        "SELECT DISTINCT vital_type, unit FROM vitals WHERE user_id = ? ORDER BY vital_type, unit",
        (user_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def summarize_vitals(
    conn,
    user_id: int,
    vital_type: str,
    days: int = DEFAULT_SUMMARY_DAYS,
    now: Optional[datetime] = None,
):
    """Return ``(summary, vitals)`` for the trailing ``days`` window.

    ``summary`` is None when nothing was measured in ``[now - days, now]``;
    ``vitals`` is the window in ascending measurement order.
    """
    if not vital_type:
        raise InvalidArgument("vital_type is required")
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise InvalidArgument("days must be a positive integer")
    end = now or _utcnow()
    try:
        start = end - timedelta(days=days)
    except OverflowError:
        # Window reaches past the earliest representable instant.
        start = datetime.min
    rows = conn.execute(
        f"SELECT {_VITAL_COLUMNS} FROM vitals"
        " WHERE user_id = ? AND vital_type = ? AND measured_at >= ? AND measured_at <= ?"
        " ORDER BY measured_at ASC, id ASC",
        (user_id, vital_type, _to_storage(start), _to_storage(end)),
    ).fetchall()
    summary = _summarize_vitals(rows, vital_type, days)
    return summary, [_vital_dict(r) for r in rows]


def delete_vital(conn, user_id: int, vital_id: int):
    row = conn.execute(
        "SELECT id FROM vitals WHERE id = ? AND user_id = ?", (vital_id, user_id)
    ).fetchone()
    if row is None:
        raise NotFound("Vital not found")
    conn.execute("DELETE FROM vitals WHERE id = ?", (vital_id,))
    conn.commit()
    logger.info("User %s deleted vital %s", user_id, vital_id)
