"""
Certificate Protection System — FastAPI Application Entry Point

Aggregates all routers, configures logging and middleware, renders domain
errors into the uniform error envelope, and initializes the database on startup.
"""
import logging
import os
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from certrbac.config import get_settings
from certrbac.database import SessionLocal, init_db
from certrbac.errors import AppError
from certrbac.rbac import ROLE_DESCRIPTIONS, ROLE_HIERARCHY, Permission
from certrbac.schemas.schemas import HealthResponse
from certrbac.routes import (
    audit_router, auth_router, certificates_router, users_router, verify_router,
)
from certrbac.services.authorization import get_permissions

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("certrbac")


def _attach_file_handler() -> None:
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    log_file = os.path.join(settings.LOG_DIR, "server.log")
    if any(getattr(h, "baseFilename", None) == os.path.abspath(log_file) for h in logger.handlers):
        return
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    logger.addHandler(handler)


# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Certificate issuance, signing, revocation and public verification "
        "under role-based access control, with a tamper-evident audit trail."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()
    _attach_file_handler()

    logger.info(
        "\n%s\n  %s v%s\n  TIME: %s\n  DATABASE: %s\n  DEBUG: %s\n%s",
        "=" * 60,
        settings.APP_NAME,
        settings.APP_VERSION,
        datetime.now().isoformat(),
        settings.DATABASE_URL,
        settings.DEBUG,
        "=" * 60,
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error Envelope ──────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={
        "success": False,
        "error": "Validation failed",
        "code": "VALIDATION_ERROR",
        "errors": errors,
    })


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={
        "success": False,
        "error": str(exc) if settings.DEBUG else "Internal server error",
        "code": "INTERNAL_ERROR",
    })


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(certificates_router)
app.include_router(verify_router)
app.include_router(audit_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def deep_health():
    """Health check including database connectivity."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as exc:
        logger.error("Health check: database unreachable: %s", exc)
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": "connected" if db_ok else "disconnected",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
    }


@app.get("/api/rbac/info", tags=["RBAC"])
def rbac_info():
    """Public description of roles, their permissions and the role hierarchy."""
    return {
        "success": True,
        "roles": [
            {
                "role": role.value,
                "description": ROLE_DESCRIPTIONS[role],
                "permissions": list(get_permissions(role)),
            }
            for role in reversed(ROLE_HIERARCHY)
        ],
        "hierarchy": [role.value for role in ROLE_HIERARCHY],
        "permissions": [p.value for p in Permission],
    }
