"""FastAPI application entry point."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import bookmarks, health, thumbnails
from core.config import get_settings
from core.rate_limit_config import RateLimitExceededError
from core.redis import RedisClient
from db.session import get_session_factory
from services.exceptions import AccessDeniedError, UrlValidationError
from services.thumbnail_services import build_thumbnail_services

HTTP_TIMEOUT_SECONDS = 10.0
USER_AGENT = "Mozilla/5.0 (compatible; BookmarkThumbnails/0.1)"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: Connect to Redis (persistent tier of the local cache)
    redis_client = RedisClient(
        url=app_settings.redis_url,
        enabled=app_settings.redis_enabled,
        pool_size=app_settings.redis_pool_size,
    )
    await redis_client.connect()

    # Startup: One HTTP client shared by every outbound thumbnail call
    http_client = httpx.AsyncClient(
        timeout=HTTP_TIMEOUT_SECONDS,
        headers={"User-Agent": USER_AGENT},
    )

    app.state.redis = redis_client
    app.state.http_client = http_client
    app.state.thumbnails = build_thumbnail_services(
        app_settings,
        get_session_factory(),
        redis_client,
        http_client,
    )

    yield

    # Shutdown: Release outbound connections and Redis
    await http_client.aclose()
    await redis_client.close()


app_settings = get_settings()

app = FastAPI(
    title="Bookmark Thumbnails API",
    description="Bookmarks with deduplicated, cached thumbnail resolution.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RateLimitExceededError)
async def rate_limit_exception_handler(
    _request: Request, exc: RateLimitExceededError,
) -> JSONResponse:
    """Handle rate limit exceeded with proper headers."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please try again later."},
        headers={
            "Retry-After": str(exc.result.retry_after),
            "X-RateLimit-Limit": str(exc.result.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.result.reset),
        },
    )


@app.exception_handler(AccessDeniedError)
async def access_denied_exception_handler(
    _request: Request, exc: AccessDeniedError,
) -> JSONResponse:
    """Callers may only see thumbnails for URLs they have bookmarked."""
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(UrlValidationError)
async def url_validation_exception_handler(
    _request: Request, exc: UrlValidationError,
) -> JSONResponse:
    """Malformed URLs passed as query parameters."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(bookmarks.router)
app.include_router(thumbnails.router)
