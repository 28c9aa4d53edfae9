"""Domain events for the marketplace order lifecycle.

Domain events represent significant occurrences in the domain. They are
collected from aggregates after a successful write and published to the
structured log, which doubles as the audit trail.

The payment outcome notifications at the bottom are inbound messages from
the payment provider, already authenticated and normalized by the gateway.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from filemarket.domain.base import DomainEvent


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when a pending order is opened at checkout."""

    event_type: ClassVar[str] = "order.created"

    order_id: str = ""
    listing_id: str = ""
    payment_reference: str = ""
    base_price_minor: int = 0
    platform_fee_minor: int = 0
    total_charged_minor: int = 0


@dataclass(frozen=True)
class OrderPaid(DomainEvent):
    """Event raised when payment for an order is confirmed."""

    event_type: ClassVar[str] = "order.paid"

    order_id: str = ""
    paid_at: datetime | None = None
    credential_expires_at: datetime | None = None


@dataclass(frozen=True)
class OrderPaymentFailed(DomainEvent):
    """Event raised when the provider reports a failed payment."""

    event_type: ClassVar[str] = "order.payment_failed"

    order_id: str = ""


@dataclass(frozen=True)
class OrderRefunded(DomainEvent):
    """Event raised when a paid order is refunded."""

    event_type: ClassVar[str] = "order.refunded"

    order_id: str = ""
    refunded_at: datetime | None = None


# ============================================================================
# Credential Events
# ============================================================================


@dataclass(frozen=True)
class CredentialIssued(DomainEvent):
    """Event raised when a download credential is issued or renewed."""

    event_type: ClassVar[str] = "credential.issued"

    order_id: str = ""
    expires_at: datetime | None = None
    delivery_retry_count: int = 0
    renewal: bool = False


@dataclass(frozen=True)
class DownloadRedeemed(DomainEvent):
    """Event raised when a buyer redeems a credential for a download."""

    event_type: ClassVar[str] = "download.redeemed"

    order_id: str = ""
    download_attempt_count: int = 0
    past_expiry: bool = False


# ============================================================================
# Payment Outcome Notifications
# ============================================================================


@dataclass(frozen=True)
class CheckoutCompleted:
    """Provider reports a completed checkout session."""

    kind: ClassVar[str] = "checkout_completed"

    payment_reference: str
    metadata: dict[str, str] = field(default_factory=dict)
    provider_event_id: str | None = None


@dataclass(frozen=True)
class PaymentFailed:
    """Provider reports a failed or abandoned payment."""

    kind: ClassVar[str] = "payment_failed"

    payment_reference: str
    provider_event_id: str | None = None


@dataclass(frozen=True)
class ChargeRefunded:
    """Provider reports a refunded charge."""

    kind: ClassVar[str] = "charge_refunded"

    payment_reference: str
    provider_event_id: str | None = None


PaymentOutcomeEvent = CheckoutCompleted | PaymentFailed | ChargeRefunded
