"""
Taskify FastAPI application entrypoint.
Run with ``uvicorn taskify.main:app``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from taskify.api.v1.router import api_router
from taskify.core.config import settings
from taskify.core.exceptions import register_exception_handlers
from taskify.core.logging_config import configure_logging
from taskify.db.session import engine

logger = logging.getLogger(__name__)

# Every route shares the default per-client limit; tests switch it off.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "Starting %s v%s (rate limiting %s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        "on" if settings.RATE_LIMIT_ENABLED else "off",
    )
    yield
    await engine.dispose()
    logger.info("%s stopped", settings.APP_NAME)


def _add_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


def create_application() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Business-management REST API for freelancers: clients, tasks, "
            "and invoices aggregated from completed tasks."
        ),
        lifespan=lifespan,
    )
    _add_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "service": settings.APP_NAME, "version": settings.APP_VERSION}

    return app


app = create_application()
