from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from config import _current_user_id
from db import get_db
from sharing import (
    create_share,
    list_shared_with_me,
    list_shares_for_report,
    revoke_share,
    update_share_access_level,
)

router = APIRouter()


@router.post("/api/shares/reports/{report_id}/share")
def api_share_report(report_id: int, payload: dict = Body(...), conn=Depends(get_db)):
    uid = _current_user_id.get()
    share = create_share(
        conn,
        uid,
        report_id,
        grantee_username=str(payload.get("shared_with_username") or ""),
        access_level=payload.get("access_level") or "viewer",
        expires_at=payload.get("expires_at"),
    )
    return JSONResponse({"message": "Report shared successfully", "share": share}, status_code=201)


@router.get("/api/shares/shared-with-me")
def api_shared_with_me(conn=Depends(get_db)):
    uid = _current_user_id.get()
    reports = list_shared_with_me(conn, uid)
    return JSONResponse({"reports": reports, "total": len(reports)})


@router.get("/api/shares/reports/{report_id}/shares")
def api_report_shares(report_id: int, conn=Depends(get_db)):
    uid = _current_user_id.get()
    shares = list_shares_for_report(conn, uid, report_id)
    return JSONResponse({"shares": shares, "total": len(shares)})


@router.delete("/api/shares/reports/{report_id}/shares/{share_id}")
def api_revoke_share(report_id: int, share_id: int, conn=Depends(get_db)):
    uid = _current_user_id.get()
    revoke_share(conn, uid, report_id, share_id)
    return JSONResponse({"message": "Share revoked successfully"})


@router.put("/api/shares/reports/{report_id}/shares/{share_id}")
def api_update_share(report_id: int, share_id: int, payload: dict = Body(...), conn=Depends(get_db)):
    uid = _current_user_id.get()
    share = update_share_access_level(conn, uid, report_id, share_id, payload.get("access_level"))
    return JSONResponse({"message": "Share access updated successfully", "share": share})
