"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from filemarket.api.admin import router as admin_router
from filemarket.api.checkouts import router as checkouts_router
from filemarket.api.downloads import router as downloads_router
from filemarket.api.health import router as health_router
from filemarket.api.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "checkouts_router",
    "downloads_router",
    "health_router",
    "webhooks_router",
]
