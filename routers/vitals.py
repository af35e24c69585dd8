from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from config import DEFAULT_SUMMARY_DAYS, _current_user_id
from db import get_db
from vitals import delete_vital, list_vital_types, list_vitals, record_vital, summarize_vitals

router = APIRouter()


@router.post("/api/vitals")
def api_vitals_create(payload: dict = Body(...), conn=Depends(get_db)):
    uid = _current_user_id.get()
    vital = record_vital(
        conn,
        uid,
        vital_type=payload.get("vital_type"),
        value=payload.get("value"),
        unit=payload.get("unit"),
        measured_at=payload.get("measured_at"),
        notes=payload.get("notes"),
    )
    return JSONResponse({"message": "Vital recorded successfully", "vital": vital}, status_code=201)


@router.get("/api/vitals/types")
def api_vital_types(conn=Depends(get_db)):
    uid = _current_user_id.get()
    return JSONResponse({"vital_types": list_vital_types(conn, uid)})


@router.get("/api/vitals/summary/{vital_type}")
def api_vital_summary(vital_type: str, days: int = DEFAULT_SUMMARY_DAYS, conn=Depends(get_db)):
    uid = _current_user_id.get()
    summary, vitals = summarize_vitals(conn, uid, vital_type, days)
    return JSONResponse({"summary": summary, "vitals": vitals})


@router.get("/api/vitals")
def api_vitals_list(vital_type: str = "", from_date: str = "", to_date: str = "", conn=Depends(get_db)):
    uid = _current_user_id.get()
    vitals = list_vitals(conn, uid, vital_type, from_date, to_date)
    return JSONResponse({"vitals": vitals, "total": len(vitals)})


@router.delete("/api/vitals/{vital_id}")
def api_vitals_delete(vital_id: int, conn=Depends(get_db)):
    uid = _current_user_id.get()
    delete_vital(conn, uid, vital_id)
    return JSONResponse({"message": "Vital deleted successfully"})
