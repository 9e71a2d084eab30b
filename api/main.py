"""
TinyMind API

Blog posts and thoughts stored as files in each user's own GitHub
repository, which serves as the database.
"""

import logging
import time
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import get_settings
from api.dependencies import new_content_cache
from api.middleware import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    request_id_var,
)
from api.routers import about, blog, images, public, thoughts
from api.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    StoreError,
    TransientError,
    UnauthorizedError,
)
from api.services.http_client import close_shared_client

logger = logging.getLogger(__name__)

settings = get_settings()

_STATUS_BY_ERROR: list[tuple[type[StoreError], int]] = [
    (UnauthorizedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (RateLimitedError, 429),
    (InvalidInputError, 400),
    (TransientError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    app.state.content_cache = new_content_cache()
    yield
    await close_shared_client()


app = FastAPI(
    title="TinyMind API",
    description="Blog posts and thoughts stored in your own GitHub repository",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID (added last, so outermost: runs first)
app.add_middleware(RequestIDMiddleware)

# Routers
app.include_router(blog.router, prefix="/api")
app.include_router(thoughts.router, prefix="/api")
app.include_router(about.router, prefix="/api")
app.include_router(images.router, prefix="/api")
app.include_router(public.router, prefix="/api")


def status_for(error: StoreError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map content-store failures to JSON errors with stable codes."""
    status = status_for(exc)
    headers: dict[str, str] = {}
    message = exc.message

    if isinstance(exc, RateLimitedError):
        message = "Rate limit exceeded. Please try again later."
        if exc.reset_at:
            headers["Retry-After"] = str(max(0, exc.reset_at - int(time.time())))
    if status >= 500:
        logger.error(
            "%s %s failed: %s [%s]",
            request.method,
            request.url.path,
            exc,
            request_id_var.get(),
        )
        if status == 500 and not settings.debug:
            message = "An unexpected error occurred"
    else:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc)

    body: dict[str, object] = {"error": message, "code": exc.code}
    if isinstance(exc, RateLimitedError) and exc.reset_at:
        body["reset_at"] = exc.reset_at
    return JSONResponse(status_code=status, content=body, headers=headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s [%s]",
        request.method,
        request.url.path,
        request_id_var.get(),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
    )


@app.get("/api/health")
async def health_check() -> JSONResponse:
    """Liveness check."""
    return JSONResponse(
        content={"status": "ok", "service": "tinymind-api", "version": "0.1.0"}
    )
