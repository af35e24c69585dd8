"""Report lifecycle.

Uploading touches two resources: the file goes to the ``FileStore``
first, then the metadata row is inserted. If the insert fails the file
is deleted again; that cleanup is best-effort and only logged. Deleting
works the other way round and never lets a stuck file keep the row alive.
"""
import logging
from datetime import date
from typing import Optional

from config import _from_storage
from errors import InvalidArgument, NotFound
from sharing import OWNER, resolve_report_access

logger = logging.getLogger(__name__)

_PUBLIC_COLUMNS = (
    "id", "user_id", "file_name", "file_type", "report_type",
    "report_date", "description", "created_at", "updated_at",
)


def _report_dict(row, access_level: Optional[str] = None) -> dict:
    item = {key: row[key] for key in _PUBLIC_COLUMNS}
    item["created_at"] = _from_storage(item["created_at"])
    item["updated_at"] = _from_storage(item["updated_at"])
    if access_level is not None:
        item["access_level"] = access_level
    return item


def _validate_report_date(report_date) -> str:
    report_date = str(report_date or "").strip()
    try:
        return date.fromisoformat(report_date).isoformat()
    except ValueError:
        raise InvalidArgument("report_date must be a date in YYYY-MM-DD format")


def upload_report(
    conn,
    store,
    user_id: int,
    data: bytes,
    file_name: str,
    file_type: str,
    report_type: str,
    report_date: str,
    description: Optional[str] = None,
) -> dict:
    if not data or not file_name:
        raise InvalidArgument("No file provided")
    report_type = (report_type or "").strip()
    if not report_type or not (report_date or "").strip():
        raise InvalidArgument("Report type and date are required")
    report_date = _validate_report_date(report_date)
    store.validate(data, file_name)

    ref = store.write(data, file_name)
    try:
        cur = conn.execute(
            "INSERT INTO reports (user_id, file_name, file_path, file_type, report_type, report_date, description)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (user_id, file_name, ref, file_type or "application/octet-stream",
             report_type, report_date, description or None),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        try:
            if not store.delete(ref):
                logger.warning("Uploaded file %s was already gone during rollback", ref)
        except OSError:
            logger.exception("Could not remove orphaned upload %s", ref)
        raise
    logger.info("User %s uploaded report %s (%s)", user_id, cur.lastrowid, report_type)
    row = conn.execute("SELECT * FROM reports WHERE id = ?", (cur.lastrowid,)).fetchone()
    return _report_dict(row)


def list_reports(
    conn,
    user_id: int,
    report_type: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> list:
    clauses: list[str] = ["user_id = ?"]
    params: list = [user_id]
    if report_type:
        clauses.append("report_type = ?")
        params.append(report_type)
    if from_date:
        clauses.append("report_date >= ?")
        params.append(from_date)
    if to_date:
        clauses.append("report_date <= ?")
        params.append(to_date)
    where = "WHERE " + " AND ".join(clauses)
    rows = conn.execute(
        f"SELECT * FROM reports {where} ORDER BY report_date DESC, id DESC", params
    ).fetchall()
    return [_report_dict(r) for r in rows]


def get_report(conn, user_id: int, report_id: int) -> dict:
    row, level = resolve_report_access(conn, report_id, user_id)
    return _report_dict(row, level)


def update_report(conn, user_id: int, report_id: int, changes: dict) -> dict:
    row, level = resolve_report_access(conn, report_id, user_id, write=True)
    report_type = changes.get("report_type")
    report_date = changes.get("report_date")
    description = changes.get("description")
    if report_type is not None and not str(report_type).strip():
        raise InvalidArgument("report_type cannot be empty")
    if description is not None and not isinstance(description, str):
        raise InvalidArgument("description must be a string")
    new_type = str(report_type).strip() if report_type is not None else row["report_type"]
    new_date = _validate_report_date(report_date) if report_date is not None else row["report_date"]
    new_description = description if description is not None else row["description"]
    conn.execute(
        "UPDATE reports SET report_type = ?, report_date = ?, description = ?,"
        " updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (new_type, new_date, new_description, report_id),
    )
    conn.commit()
    updated = conn.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
    return _report_dict(updated, level)


def delete_report(conn, store, user_id: int, report_id: int):
    row, level = resolve_report_access(conn, report_id, user_id)
    if level != OWNER:
        raise NotFound("Report not found")
    try:
        if not store.delete(row["file_path"]):
            logger.warning("File for report %s was already missing", report_id)
    except OSError:
        logger.exception("Could not delete file for report %s", report_id)
    conn.execute("DELETE FROM reports WHERE id = ?", (report_id,))
    conn.commit()
    logger.info("User %s deleted report %s", user_id, report_id)


def report_file(conn, store, user_id: int, report_id: int):
    """Return ``(path, file_name, file_type)`` for a readable report."""
    row, _ = resolve_report_access(conn, report_id, user_id)
    return store.path_for(row["file_path"]), row["file_name"], row["file_type"]
