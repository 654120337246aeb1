import os
import time
import logging

from dotenv import load_dotenv
import uvicorn

# =====================================================
# ENV + LOGGING
# =====================================================
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("subtrack.main")

# =====================================================
# FASTAPI CORE
# =====================================================
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from subtrack.config import CORS_ALLOW_ALL, FRONTEND_URL, SCHEDULER_ENABLED
from subtrack.db import init_db, is_db_available
from subtrack.deps import clear_auth_cookies
from subtrack.errors import SubtrackError, Unauthorized
from subtrack.scheduler import get_scheduler_status, start_scheduler, stop_scheduler

# =====================================================
# CREATE APP
# =====================================================
app = FastAPI(
    title="Subtrack Backend",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# =====================================================
# MIDDLEWARE
# =====================================================
allowed_origins = [
    FRONTEND_URL,
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
]

if CORS_ALLOW_ALL:
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =====================================================
# ERROR HANDLERS
# =====================================================
@app.exception_handler(SubtrackError)
async def subtrack_error_handler(request: Request, exc: SubtrackError):
    response = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    if isinstance(exc, Unauthorized):
        # a rejected session must not linger in the browser
        clear_auth_cookies(response)
    return response


@app.exception_handler(OperationalError)
async def db_unavailable_handler(request: Request, exc: OperationalError):
    log.error("database unavailable on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", [])), "msg": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid input", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# =====================================================
# AUTO LOAD ALL API ROUTES
# =====================================================
from subtrack.api import router as api_router
from subtrack.api import auto_register_routes

auto_register_routes()
app.include_router(api_router, prefix="/api")


# =====================================================
# HEALTH
# =====================================================
@app.get("/health")
def health():
    db_ok = is_db_available()
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ok": db_ok,
            "db": db_ok,
            "scheduler": get_scheduler_status(),
            "time": int(time.time()),
        },
    )


# =====================================================
# STARTUP / SHUTDOWN
# =====================================================
@app.on_event("startup")
async def startup():
    init_db()
    if SCHEDULER_ENABLED:
        start_scheduler()
    log.info("Subtrack Backend Started")


@app.on_event("shutdown")
async def shutdown():
    stop_scheduler()
    log.info("Subtrack Backend Stopped")


# =====================================================
# ENTRYPOINT
# =====================================================
if __name__ == "__main__":
    uvicorn.run(
        "subtrack.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True,
    )
