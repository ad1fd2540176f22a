"""
ScopeWorks API
FastAPI backend for agency project scoping: rate card, overheads, scoped
deliverables, frozen versions, version compare and PDF exports.
"""
import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from scopeworks.services.autosave import Debouncer
from scopeworks.services.logging_config import setup_logging
from scopeworks.services.middleware import RequestTimingMiddleware

# .env is optional; real environment variables win
load_dotenv()

from scopeworks.config import AUTOSAVE_SHUTDOWN_TIMEOUT_S  # noqa: E402  (reads env at import)

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("scopeworks-api")

APP_VERSION = "1.0.0"

if not os.getenv("DATABASE_URL"):
    logger.warning("MISSING env var: DATABASE_URL — running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from scopeworks.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init failed, continuing without schema sync: {e}")

    app.state.debouncer = Debouncer()
    yield
    # Deferred edits were already acknowledged to clients, so write them out
    cancelled = await app.state.debouncer.shutdown(AUTOSAVE_SHUTDOWN_TIMEOUT_S)
    if cancelled:
        logger.warning(f"Shutdown dropped {cancelled} pending autosave(s)")


app = FastAPI(
    title="ScopeWorks API",
    version=APP_VERSION,
    description="Pricing, scoping and version history for agency proposals",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# ---------------------------------------------------------------------------
# CORS: restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
    expose_headers=["Content-Disposition", "X-Request-ID", "X-Process-Time"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Outermost, so timing covers every other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from scopeworks.api.settings_routes import router as settings_router
from scopeworks.api.project_routes import router as project_router
from scopeworks.api.export_routes import router as export_router
from scopeworks.api.public_routes import router as public_router

app.include_router(settings_router)
app.include_router(project_router)
app.include_router(export_router)
app.include_router(public_router)


@app.get("/health")
async def health_check(request: Request):
    debouncer = getattr(request.app.state, "debouncer", None)
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "pending_autosaves": debouncer.pending if debouncer else 0,
    }
