"""
Shop Notify Backend API
FastAPI application for sending invoice and vehicle-tracking links to
customers by email and SMS.
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopnotify.config import get_settings
from shopnotify.db import get_supabase_admin
from shopnotify.errors import ConfigurationError, NotifyError
from shopnotify.routers import notifications, public

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Shop Notify API",
    description="Invoice and tracking link delivery over email and SMS",
    version="0.1.0",
)

settings = get_settings()

# Origins default to "*"; credentials are only allowed with an explicit list
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_origins != ["*"],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# The frontend historically calls /api/send-*; both prefixes are served
for prefix in ("", "/api"):
    app.include_router(notifications.router, prefix=prefix, tags=["notifications"])
    app.include_router(public.router, prefix=prefix, tags=["public"])


# ---------------------------------------------------------------------------
# Error rendering: every error body is {"error": "..."}
# ---------------------------------------------------------------------------

@app.exception_handler(NotifyError)
async def handle_notify_error(request: Request, exc: NotifyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.url.path} rejected [{exc.status_code}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request body")
    detail = f"{location}: {message}" if location else message
    logger.warning(f"{request.url.path} invalid body: {detail}")
    return JSONResponse(status_code=400, content={"error": detail})


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.on_event("startup")
async def log_startup_configuration() -> None:
    """Log which providers are configured so a missing key is obvious at boot."""
    current = get_settings()
    logger.info(
        "Shop Notify API starting:\n"
        "  Datastore: %s\n"
        "  Email:     %s\n"
        "  SMS:       %s\n"
        "  Links:     %s",
        "configured" if current.datastore_configured else "MISSING (SUPABASE_URL / SUPABASE_SERVICE_KEY)",
        "Resend" if current.email_configured else "not configured",
        "Twilio" if current.sms_configured else "not configured",
        current.app_base_url,
    )


@app.get("/")
async def root():
    return {"message": "Shop Notify API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Executes a lightweight query (one row from shops) to verify that the
    admin client can reach the database. Returns 503 on failure.
    """
    try:
        client = get_supabase_admin()
    except ConfigurationError:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        client.table("shops").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
