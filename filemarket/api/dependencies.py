"""FastAPI dependencies: container, identity, flags and services."""

from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from filemarket.application import (
    AccessPolicy,
    CheckoutService,
    CredentialService,
    OrderService,
    OverrideService,
    PaymentEventService,
)
from filemarket.domain import FeatureFlags
from filemarket.infrastructure.config import settings
from filemarket.infrastructure.container import ServiceContainer, get_container


def container_dependency() -> ServiceContainer:
    return get_container()


Container = Annotated[ServiceContainer, Depends(container_dependency)]


# ============================================================================
# Identity and Authorization
# ============================================================================


def get_access_policy() -> AccessPolicy:
    return AccessPolicy(settings.admin_identities)


Policy = Annotated[AccessPolicy, Depends(get_access_policy)]


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def optional_identity(
    container: Container,
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """Verified identity of the caller, or None when not signed in."""
    return await container.identity.resolve(_bearer_token(authorization))


async def require_identity(
    identity: Annotated[str | None, Depends(optional_identity)],
) -> str:
    """Verified identity of the caller.

    Raises:
        HTTPException: 401 when the caller is not signed in.
    """
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHENTICATED",
                "message": "Sign in to continue",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


async def require_admin(
    identity: Annotated[str, Depends(require_identity)],
    policy: Policy,
) -> str:
    policy.require_admin(identity)
    return identity


OptionalIdentity = Annotated[str | None, Depends(optional_identity)]
Identity = Annotated[str, Depends(require_identity)]
AdminIdentity = Annotated[str, Depends(require_admin)]


async def current_flags(container: Container) -> FeatureFlags:
    """Override snapshot taken once per request."""
    return await container.overrides.snapshot()


Flags = Annotated[FeatureFlags, Depends(current_flags)]


# ============================================================================
# Services
# ============================================================================


def get_credential_service(container: Container, policy: Policy) -> CredentialService:
    return CredentialService(
        orders=container.orders,
        listings=container.listings,
        storage=container.storage,
        email=container.email,
        policy=policy,
        alerts=container.alerts,
        credential_ttl=timedelta(hours=settings.credential_ttl_hours),
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        retry_limit=settings.delivery_retry_limit,
        clock=container.clock,
    )


def get_checkout_service(request: Request, container: Container) -> CheckoutService:
    return CheckoutService(
        listings=container.listings,
        orders=container.orders,
        gateway=container.gateway,
        alerts=container.alerts,
        clock=container.clock,
        request_id=getattr(request.state, "request_id", None),
    )


def get_payment_event_service(
    container: Container,
    credentials: Annotated[CredentialService, Depends(get_credential_service)],
) -> PaymentEventService:
    return PaymentEventService(
        orders=container.orders,
        listings=container.listings,
        payouts=container.payouts,
        event_log=container.payment_events,
        credentials=credentials,
        alerts=container.alerts,
        clock=container.clock,
    )


def get_order_service(container: Container) -> OrderService:
    return OrderService(
        orders=container.orders,
        payouts=container.payouts,
        retry_limit=settings.delivery_retry_limit,
        clock=container.clock,
    )


def get_override_service(container: Container) -> OverrideService:
    return OverrideService(container.overrides, clock=container.clock)
