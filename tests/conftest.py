"""Shared fixtures: fake collaborators, a controllable clock and a wired container.

Signed-in sessions available through the static identity resolver:

- ``buyer-session``: buyer@example.com
- ``other-session``: someone-else@example.com
- ``admin-session``: ops@filemarket.test (administrator)
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from filemarket.api.dependencies import get_access_policy
from filemarket.application import (
    AccessPolicy,
    CheckoutService,
    CredentialService,
    PaymentEventService,
)
from filemarket.domain import (
    DependencyError,
    FeatureFlags,
    Listing,
    ListingStage,
    RoyaltyShare,
)
from filemarket.infrastructure.alerts import RecordingAlertChannel
from filemarket.infrastructure.container import (
    ServiceContainer,
    build_memory_container,
    reset_container,
    set_container,
)
from filemarket.infrastructure.email_client import DeliveryContext
from filemarket.infrastructure.identity_client import StaticIdentityResolver
from filemarket.infrastructure.payment_gateway import LocalPaymentGateway, sign_payload
from filemarket.infrastructure.repositories import (
    InMemoryListingRepository,
    InMemoryOverrideRepository,
)
from filemarket.main import app

WEBHOOK_SECRET = "test-webhook-secret"
BUYER = "buyer@example.com"
OTHER_MEMBER = "someone-else@example.com"
ADMIN = "ops@filemarket.test"

SESSIONS = {
    "buyer-session": BUYER,
    "other-session": OTHER_MEMBER,
    "admin-session": ADMIN,
}


# ============================================================================
# Fake Collaborators
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeStorage:
    """Records signing requests; can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self.fail = False

    async def create_signed_download_location(self, path: str, ttl_seconds: int) -> str:
        self.calls.append((path, ttl_seconds))
        if self.fail:
            raise DependencyError("storage", "signing request failed", {"path": path})
        return f"https://storage.test/signed/{path}?expires={ttl_seconds}"


class FakeEmail:
    """Records delivery notices; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, DeliveryContext, str]] = []
        self.fail = False

    async def send_delivery_notice(
        self,
        recipient: str,
        context: DeliveryContext,
        redemption_reference: str,
    ) -> bool:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((recipient, context, redemption_reference))
        return True

    @property
    def tokens(self) -> list[str]:
        return [token for _, _, token in self.sent]


# ============================================================================
# Domain Fixtures
# ============================================================================


def make_listing(
    listing_id: str = "listing-1",
    base_price_minor: int = 500,
    stage: ListingStage = ListingStage.LISTED,
    storage_path: str = "files/listing-1/model.stl",
    split: list[RoyaltyShare] | None = None,
) -> Listing:
    """Create a listing with a single-originator split by default."""
    return Listing(
        id=listing_id,
        title="Parametric Vase",
        base_price_minor=base_price_minor,
        stage=stage,
        storage_path=storage_path,
        royalty_split=split if split is not None else [RoyaltyShare("originator-1", 10_000)],
    )


ALL_ON = {
    "master_switch": True,
    "marketplace_purchase": True,
    "download_delivery": True,
}


@pytest.fixture
def flags() -> FeatureFlags:
    """Snapshot with purchasing and delivery enabled."""
    return FeatureFlags.from_mapping(ALL_ON)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def email() -> FakeEmail:
    return FakeEmail()


@pytest.fixture
def alerts() -> RecordingAlertChannel:
    return RecordingAlertChannel()


@pytest.fixture
def gateway() -> LocalPaymentGateway:
    return LocalPaymentGateway(secret=WEBHOOK_SECRET, tolerance_seconds=300)


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy([ADMIN])


# ============================================================================
# Container and Services
# ============================================================================


@pytest.fixture
def container(
    clock: FakeClock,
    storage: FakeStorage,
    email: FakeEmail,
    alerts: RecordingAlertChannel,
    gateway: LocalPaymentGateway,
) -> ServiceContainer:
    """In-memory container with fakes, installed as the process singleton."""
    container = build_memory_container(
        listings=InMemoryListingRepository([make_listing()]),
        overrides=InMemoryOverrideRepository(ALL_ON),
        gateway=gateway,
        storage=storage,
        email=email,
        identity=StaticIdentityResolver(SESSIONS),
        alerts=alerts,
        clock=clock,
    )
    set_container(container)
    yield container
    reset_container()


@pytest.fixture
def credential_service(container: ServiceContainer, policy: AccessPolicy) -> CredentialService:
    return CredentialService(
        orders=container.orders,
        listings=container.listings,
        storage=container.storage,
        email=container.email,
        policy=policy,
        alerts=container.alerts,
        credential_ttl=timedelta(hours=72),
        signed_url_ttl_seconds=600,
        retry_limit=5,
        clock=container.clock,
    )


@pytest.fixture
def checkout_service(container: ServiceContainer) -> CheckoutService:
    return CheckoutService(
        listings=container.listings,
        orders=container.orders,
        gateway=container.gateway,
        alerts=container.alerts,
        clock=container.clock,
    )


@pytest.fixture
def payment_service(
    container: ServiceContainer, credential_service: CredentialService
) -> PaymentEventService:
    return PaymentEventService(
        orders=container.orders,
        listings=container.listings,
        payouts=container.payouts,
        event_log=container.payment_events,
        credentials=credential_service,
        alerts=container.alerts,
        clock=container.clock,
    )


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def client(container: ServiceContainer, policy: AccessPolicy) -> TestClient:
    """Test client bound to the in-memory container."""
    app.dependency_overrides[get_access_policy] = lambda: policy
    yield TestClient(app)
    app.dependency_overrides.clear()


def _signed_event(
    event_type: str,
    object_id: str,
    metadata: dict[str, str] | None = None,
    event_id: str = "evt_001",
    secret: str = WEBHOOK_SECRET,
    timestamp: int | None = None,
) -> tuple[bytes, dict[str, str]]:
    """Provider notification body and its signature header."""
    body = json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {"object": {"id": object_id, "metadata": metadata or {}}},
        }
    ).encode()
    return body, {
        "Stripe-Signature": sign_payload(secret, body, timestamp),
        "Content-Type": "application/json",
    }


@pytest.fixture
def sign_event():
    """Factory for signed provider notifications."""
    return _signed_event


@pytest.fixture
def listing_factory():
    """Factory for listings."""
    return make_listing
