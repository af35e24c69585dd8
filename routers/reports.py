from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from config import _current_user_id
from db import get_db
from errors import InvalidArgument
from reports import delete_report, get_report, list_reports, report_file, update_report, upload_report
from storage import _read_limited_upload

router = APIRouter()


def get_store(request: Request):
    return request.app.state.store


@router.post("/api/reports/upload")
async def api_reports_upload(
    file: Optional[UploadFile] = File(None),
    report_type: str = Form(""),
    report_date: str = Form(""),
    description: str = Form(""),
    conn=Depends(get_db),
    store=Depends(get_store),
):
    uid = _current_user_id.get()
    if file is None or not file.filename:
        raise InvalidArgument("No file provided")
    data = await _read_limited_upload(file, store.max_size)
    if data is None:
        raise InvalidArgument(f"File exceeds the maximum size of {store.max_size} bytes")
    report = upload_report(
        conn,
        store,
        uid,
        data=data,
        file_name=file.filename,
        file_type=file.content_type,
        report_type=report_type,
        report_date=report_date,
        description=description,
    )
    return JSONResponse(
        {"message": "Report uploaded successfully", "report": report}, status_code=201
    )


@router.get("/api/reports")
def api_reports_list(
    report_type: str = "", from_date: str = "", to_date: str = "", conn=Depends(get_db)
):
    uid = _current_user_id.get()
    reports = list_reports(conn, uid, report_type, from_date, to_date)
    return JSONResponse({"reports": reports, "total": len(reports)})


@router.get("/api/reports/{report_id}")
def api_reports_get(report_id: int, conn=Depends(get_db)):
    uid = _current_user_id.get()
    return JSONResponse({"report": get_report(conn, uid, report_id)})


@router.put("/api/reports/{report_id}")
def api_reports_update(report_id: int, payload: dict = Body(...), conn=Depends(get_db)):
    uid = _current_user_id.get()
    report = update_report(conn, uid, report_id, payload)
    return JSONResponse({"message": "Report updated successfully", "report": report})


@router.delete("/api/reports/{report_id}")
def api_reports_delete(report_id: int, conn=Depends(get_db), store=Depends(get_store)):
    uid = _current_user_id.get()
    delete_report(conn, store, uid, report_id)
    return JSONResponse({"message": "Report deleted successfully"})


@router.get("/api/reports/{report_id}/download")
def api_reports_download(report_id: int, conn=Depends(get_db), store=Depends(get_store)):
    uid = _current_user_id.get()
    path, file_name, file_type = report_file(conn, store, uid, report_id)
    return FileResponse(path, media_type=file_type, filename=file_name)
