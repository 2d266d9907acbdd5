"""
target_onchain.security — HTTP plumbing shared by every route.

Frame clients render whatever HTML comes back and ignore status codes, so
failures on ``/api/frame/...`` paths (rate limiting, unhandled errors) are
answered with the default error frame. Every other path gets JSON.
"""

import hmac
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import HTMLResponse, JSONResponse, Response

from target_onchain.config import Settings
from target_onchain.rendering import default_error_frame

__all__ = [
    "request_id_var", "RequestIdFilter", "setup_structured_logging", "limiter",
    "rate_limit_exceeded_handler", "RequestLoggingMiddleware", "configure_cors",
    "generic_exception_handler", "require_admin_key", "apply_security",
]

FRAME_PREFIX = "/api/frame/"
RETRY_AFTER_SECONDS = 60

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger("target_onchain.http")


# ─── Logging ───────────────────────────────────────────────────────

class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request being served."""

    def filter(self, record):
        record.request_id = request_id_var.get()
        return True


def setup_structured_logging(level: str = "INFO") -> logging.Logger:
    """Send the ``target_onchain`` logger tree to stderr as JSON lines.

    Fields passed through ``extra=`` (frame_id, address, criteria, ...) become
    top-level keys. Safe to call more than once.
    """
    from pythonjsonlogger.json import JsonFormatter

    root = logging.getLogger("target_onchain")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(isinstance(h.formatter, JsonFormatter) for h in root.handlers):
        return root

    stream = logging.StreamHandler()
    stream.addFilter(RequestIdFilter())
    stream.setFormatter(JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": "target-onchain"},
    ))
    root.addHandler(stream)
    root.propagate = False
    return root


def _is_frame_path(request: Request) -> bool:
    return request.url.path.startswith(FRAME_PREFIX)


def _error_frame_response(request: Request) -> HTMLResponse:
    return HTMLResponse(default_error_frame(request.app.state.settings.base_url))


# ─── Rate limiting (slowapi) ───────────────────────────────────────

limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning("Rate limit exceeded", extra={
        "path": request.url.path, "client": get_remote_address(request),
    })
    if _is_frame_path(request):
        return _error_frame_response(request)
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


# ─── Middleware ────────────────────────────────────────────────────

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assign a request id and write one access-log line per response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info("request", extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            })
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Content-Type-Options"] = "nosniff"
            return response
        finally:
            request_id_var.reset(token)


def configure_cors(app: FastAPI, allowed_origins: Optional[list[str]] = None) -> None:
    # Frame documents and the composer are fetched cross-origin by clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    logger.error("Unhandled %s on %s", type(exc).__name__, request.url.path, exc_info=exc)
    if _is_frame_path(request):
        return _error_frame_response(request)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ─── Admin key ─────────────────────────────────────────────────────

_admin_key = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_admin_key(request: Request, key: Optional[str] = Security(_admin_key)) -> None:
    """Guard frame and catalog writes with ``Settings.admin_api_key``."""
    expected = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Admin access not configured")
    if key and hmac.compare_digest(key.encode(), expected.encode()):
        return

    reason = "invalid api key" if key else "missing api key"
    logger.warning("Auth failure: %s", reason, extra={
        "event": "auth_failure",
        "client": request.client.host if request.client else "unknown",
        "path": request.url.path,
    })
    if key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    raise HTTPException(status_code=401, detail="Missing X-API-Key header")


def apply_security(app: FastAPI, settings: Settings) -> None:
    """CORS, rate limiting, access logging and the fallback error handler."""
    configure_cors(app, settings.allowed_origins)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    app.add_middleware(RequestLoggingMiddleware)
