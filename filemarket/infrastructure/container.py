"""Wiring of repositories and collaborator adapters.

The container is built once per process from settings and shared by all
requests. Tests swap in their own container with ``set_container``.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from filemarket.domain import utc_now
from filemarket.infrastructure.alerts import AlertChannel, LoggingAlertChannel
from filemarket.infrastructure.config import settings
from filemarket.infrastructure.database import create_engine, create_session_factory
from filemarket.infrastructure.email_client import EmailClient, EmailSender
from filemarket.infrastructure.identity_client import IdentityClient, IdentityResolver
from filemarket.infrastructure.payment_gateway import LocalPaymentGateway, PaymentGateway
from filemarket.infrastructure.repositories import (
    InMemoryListingRepository,
    InMemoryOrderRepository,
    InMemoryOverrideRepository,
    InMemoryPaymentEventLog,
    InMemoryPayoutRepository,
    ListingRepository,
    OrderRepository,
    OverrideRepository,
    PaymentEventLog,
    PayoutRepository,
)
from filemarket.infrastructure.sql_repositories import (
    SqlListingRepository,
    SqlOrderRepository,
    SqlOverrideRepository,
    SqlPaymentEventLog,
    SqlPayoutRepository,
)
from filemarket.infrastructure.storage_client import ObjectStorage, StorageClient

logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    """Shared repositories and adapters."""

    listings: ListingRepository
    orders: OrderRepository
    payouts: PayoutRepository
    overrides: OverrideRepository
    payment_events: PaymentEventLog
    gateway: PaymentGateway
    storage: ObjectStorage
    email: EmailSender
    identity: IdentityResolver
    alerts: AlertChannel = field(default_factory=LoggingAlertChannel)
    clock: Callable[[], datetime] = utc_now
    engine: AsyncEngine | None = None

    async def startup(self) -> None:
        """Seed missing override rows when backed by a database."""
        seed = getattr(self.overrides, "seed_defaults", None)
        if seed is not None:
            await seed()

    async def ping(self) -> bool:
        """Check that the backing store answers."""
        if self.engine is None:
            return True
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed", error=str(e))
            return False

    async def close(self) -> None:
        for adapter in (self.storage, self.email, self.identity):
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()
        if self.engine is not None:
            await self.engine.dispose()


def build_memory_container(**overrides: Any) -> ServiceContainer:
    """Container backed by in-memory repositories.

    Keyword arguments replace individual members, e.g. ``storage=fake``.
    """
    members: dict[str, Any] = {
        "listings": InMemoryListingRepository(),
        "orders": InMemoryOrderRepository(),
        "payouts": InMemoryPayoutRepository(),
        "overrides": InMemoryOverrideRepository(settings.override_defaults),
        "payment_events": InMemoryPaymentEventLog(),
        "gateway": LocalPaymentGateway(),
        "storage": StorageClient(),
        "email": EmailClient(),
        "identity": IdentityClient(),
    }
    members.update(overrides)
    return ServiceContainer(**members)


def build_database_container(database_url: str | None = None, **overrides: Any) -> ServiceContainer:
    """Container backed by SQLAlchemy repositories."""
    engine = create_engine(database_url)
    session_factory = create_session_factory(engine)
    members: dict[str, Any] = {
        "listings": SqlListingRepository(session_factory),
        "orders": SqlOrderRepository(session_factory),
        "payouts": SqlPayoutRepository(session_factory),
        "overrides": SqlOverrideRepository(session_factory, settings.override_defaults),
        "payment_events": SqlPaymentEventLog(session_factory),
        "gateway": LocalPaymentGateway(),
        "storage": StorageClient(),
        "email": EmailClient(),
        "identity": IdentityClient(),
        "engine": engine,
    }
    members.update(overrides)
    return ServiceContainer(**members)


# Global container instance
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the container singleton, building it from settings on first use."""
    global _container
    if _container is None:
        if settings.storage_backend == "database":
            _container = build_database_container()
        else:
            _container = build_memory_container()
        logger.info("Service container built", storage_backend=settings.storage_backend)
    return _container


def set_container(container: ServiceContainer | None) -> None:
    """Replace the container singleton (for testing)."""
    global _container
    _container = container


def reset_container() -> None:
    """Reset the container singleton (for testing)."""
    set_container(None)
