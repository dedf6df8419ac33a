from __future__ import annotations

import logging
import os
from typing import Iterable, Optional
from urllib.parse import urlsplit

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import lifespan
from .errors import PortalError
from .routes import admin, analytics, auth, email, events, feedback, messages, registration

app = FastAPI(title="Digital Event Management Portal API", lifespan=lifespan)

logger = logging.getLogger(__name__)


def _normalize_origin(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    parsed = urlsplit(trimmed)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def _collect_cors_origins() -> list[str]:
    origin_keys: Iterable[str] = ("FRONTEND_APP_URL",)
    origins = {
        origin
        for origin in (
            _normalize_origin(os.getenv(key))
            for key in origin_keys
        )
        if origin
    }

    extra_origins = os.getenv("ADDITIONAL_CORS_ORIGINS")
    if extra_origins:
        for candidate in extra_origins.split(","):
            normalized = _normalize_origin(candidate)
            if normalized:
                origins.add(normalized)

    if not origins:
        # Fall back to local development defaults when nothing is configured.
        origins.update(
            {
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:3000",
            }
        )
        logger.debug(
            "CORS origins not configured; defaulting to local development origins: %s",
            sorted(origins),
        )
    else:
        logger.debug("Configured CORS origins: %s", sorted(origins))

    return sorted(origins)


def _is_development() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() in ("development", "dev", "local")


allowed_origins = _collect_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def _cors_headers(request: Request) -> dict[str, str]:
    headers: dict[str, str] = {}
    origin = request.headers.get("origin")
    if origin and origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ``ctx`` may carry the original exception object, which is not JSON serializable.
    cleaned = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        cleaned.append(error)
    return cleaned


# Add exception handlers to ensure CORS headers are included even on errors
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Render domain errors with their HTTP status and error type."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__},
        headers=_cors_headers(request),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Ensure CORS headers are included in HTTP exception responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=_cors_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Ensure CORS headers are included in validation error responses."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": _jsonable_errors(exc)},
        headers=_cors_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Ensure CORS headers are included in general exception responses."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )

    # In development, return the actual error message for debugging
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": str(exc) if _is_development() else "Internal server error",
            "type": type(exc).__name__,
        },
        headers=_cors_headers(request),
    )


app.include_router(auth.router)
app.include_router(events.router)
app.include_router(registration.router)
app.include_router(feedback.router)
app.include_router(analytics.router)
app.include_router(admin.router)
app.include_router(messages.router)
app.include_router(email.router)


@app.get("/")
async def root():
    return {"message": "Digital Event Management Portal API is running"}
