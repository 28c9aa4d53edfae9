"""ASGI entry point: ``uvicorn filemarket.main:app``."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filemarket.api import (
    admin_router,
    checkouts_router,
    downloads_router,
    health_router,
    webhooks_router,
)
from filemarket.api.errors import register_exception_handlers
from filemarket.api.middleware import setup_middleware
from filemarket.infrastructure.config import settings
from filemarket.infrastructure.container import get_container
from filemarket.infrastructure.log_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Seed override rows on startup; close adapters and the engine on shutdown."""
    logger.info(
        "Starting FileMarket API",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
    )

    container = get_container()
    await container.startup()

    yield

    logger.info("Shutting down FileMarket API")
    await container.close()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="FileMarket API",
        description="Order lifecycle and royalty settlement for a design-file marketplace",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Browser checkout pages post from the public site
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.public_site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request correlation, then error envelopes
    setup_middleware(app)
    register_exception_handlers(app)

    # Routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(checkouts_router)
    app.include_router(webhooks_router)
    app.include_router(downloads_router)
    app.include_router(admin_router)

    return app


app = create_app()
