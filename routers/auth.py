from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from config import _current_user_id
from db import get_db
from errors import RateLimited
from security import _is_login_allowed
from users import get_profile, login_user, register_user, update_profile

router = APIRouter()


@router.post("/api/auth/register")
def api_register(payload: dict = Body(...), conn=Depends(get_db)):
    token, user = register_user(
        conn,
        username=str(payload.get("username") or ""),
        email=str(payload.get("email") or ""),
        password=str(payload.get("password") or ""),
        full_name=payload.get("full_name"),
        date_of_birth=payload.get("date_of_birth"),
    )
    return JSONResponse(
        {"message": "User registered successfully", "token": token, "user": user},
        status_code=201,
    )


@router.post("/api/auth/login")
def api_login(request: Request, payload: dict = Body(...), conn=Depends(get_db)):
    ip = request.client.host if request.client else "unknown"
    if not _is_login_allowed(ip):
        raise RateLimited()
    token, user = login_user(
        conn,
        username=str(payload.get("username") or ""),
        password=str(payload.get("password") or ""),
    )
    return JSONResponse({"message": "Login successful", "token": token, "user": user})


@router.get("/api/auth/profile")
def api_profile_get(conn=Depends(get_db)):
    uid = _current_user_id.get()
    return JSONResponse({"user": get_profile(conn, uid)})


@router.put("/api/auth/profile")
def api_profile_update(payload: dict = Body(...), conn=Depends(get_db)):
    uid = _current_user_id.get()
    user = update_profile(
        conn,
        uid,
        full_name=payload.get("full_name"),
        date_of_birth=payload.get("date_of_birth"),
    )
    return JSONResponse({"message": "Profile updated successfully", "user": user})
