import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import (
    APP_NAME,
    APP_VERSION,
    CORS_ORIGINS,
    DB_PATH,
    LOG_LEVEL,
    PUBLIC_PATHS,
    REPORT_TYPES,
    UPLOAD_DIR,
    _current_user_id,
)
from db import Database
from errors import HealthWalletError
from routers import auth, reports, shares, vitals
from security import _get_authenticated_user_id
from storage import FileStore

logger = logging.getLogger(__name__)


def create_app(db_path=None, upload_dir=None) -> FastAPI:
    database = Database(db_path or DB_PATH)
    store = FileStore(upload_dir or UPLOAD_DIR)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        store.open()
        try:
            yield
        finally:
            database.close()

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.db = database
    app.state.store = store

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if request.method == "OPTIONS" or path in PUBLIC_PATHS or not path.startswith("/api/"):
            return await call_next(request)
        uid = _get_authenticated_user_id(request)
        if uid is None:
            message = "No token provided" if "authorization" not in request.headers else "Invalid or expired token"
            return JSONResponse({"error": "unauthorized", "message": message}, status_code=401)
        _current_user_id.set(uid)
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    # Added last so it wraps everything, including 401s from the auth middleware.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
        expose_headers=["Content-Disposition"],
    )

    @app.exception_handler(HealthWalletError)
    async def health_wallet_error_handler(request: Request, exc: HealthWalletError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
        fields = [f for f in fields if f]
        message = "Invalid value for " + ", ".join(fields) if fields else "Invalid request body"
        return JSONResponse({"error": "invalid_argument", "message": message}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                {"error": "not_found", "message": f"Endpoint not found: {request.method} {request.url.path}"},
                status_code=404,
            )
        return JSONResponse({"error": "error", "message": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "internal", "message": "Internal server error"}, status_code=500)

    @app.get("/")
    def root():
        return JSONResponse({
            "message": APP_NAME,
            "endpoints": {
                "health": "/api/health",
                "info": "/api/info",
                "auth": "/api/auth",
                "reports": "/api/reports",
                "vitals": "/api/vitals",
                "shares": "/api/shares",
            },
        })

    @app.get("/api/health")
    def health():
        return JSONResponse({
            "status": "OK",
            "message": f"{APP_NAME} is running",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        })

    @app.get("/api/info")
    def info():
        return JSONResponse({
            "name": APP_NAME,
            "version": APP_VERSION,
            "status": "running",
            "report_types": list(REPORT_TYPES),
        })

    app.include_router(auth.router)
    app.include_router(reports.router)
    app.include_router(shares.router)
    app.include_router(vitals.router)
    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3001")))
