"""API schemas for the FileMarket API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from filemarket.application import OrderView
from filemarket.domain import OverrideControl, Payout


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(default=None, description="Request ID for correlation")


class HealthResponse(BaseModel):
    """Liveness probe body."""

    status: str
    service: str
    version: str


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutRequest(BaseModel):
    """Request to buy a listing."""

    listing_id: str = Field(..., min_length=1, description="Listing to purchase")
    buyer_identity: str = Field(
        ..., min_length=1, max_length=255, description="Buyer e-mail or account reference"
    )


class PricingSchema(BaseModel):
    """Amounts charged for an order, in minor currency units."""

    base_price_minor: int
    platform_fee_minor: int
    total_charged_minor: int


class CheckoutResponse(BaseModel):
    """Opened checkout."""

    order_id: str
    checkout_handle: str = Field(..., description="Payment provider session reference")
    checkout_url: str = Field(..., description="Hosted checkout page to redirect the buyer to")
    pricing: PricingSchema


# ============================================================================
# Webhook Schemas
# ============================================================================


class PaymentWebhookResponse(BaseModel):
    """Acknowledgement of a payment notification."""

    received: bool = True
    status: str = Field(..., description="processed, duplicate, ignored or failed")
    order_id: str | None = None
    message: str = ""


# ============================================================================
# Download Schemas
# ============================================================================


class RenewalResponse(BaseModel):
    """Renewed download credential.

    The token itself is only delivered by e-mail.
    """

    order_id: str
    expires_at: datetime
    delivery_retry_count: int
    retries_remaining: int


# ============================================================================
# Admin Schemas
# ============================================================================


class PayoutSchema(BaseModel):
    """Payout row."""

    id: str
    participant_id: str
    position: int
    amount_minor: int
    status: str
    created_at: datetime
    transferred_at: datetime | None = None

    @classmethod
    def from_payout(cls, payout: Payout) -> "PayoutSchema":
        return cls(
            id=payout.id,
            participant_id=payout.participant_id,
            position=payout.position,
            amount_minor=payout.amount_minor,
            status=payout.status.value,
            created_at=payout.created_at,
            transferred_at=payout.transferred_at,
        )


class PayoutsResponse(BaseModel):
    """Payout batch of one order."""

    order_id: str
    payouts: list[PayoutSchema]
    total_minor: int


class ReconcileResponse(PayoutsResponse):
    """Result of payout reconciliation."""

    created: bool


class OrderResponse(BaseModel):
    """Operator view of an order."""

    id: str
    listing_id: str
    buyer_identity: str
    payment_reference: str
    payment_state: str
    credential_state: str
    credential_expires_at: datetime | None = None
    download_attempt_count: int
    delivery_retry_count: int
    version: int
    pricing: PricingSchema
    payouts: list[PayoutSchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    downloaded_at: datetime | None = None

    @classmethod
    def from_view(cls, view: OrderView) -> "OrderResponse":
        order = view.order
        credential = order.download_credential
        return cls(
            id=order.id,
            listing_id=order.listing_id,
            buyer_identity=order.buyer_identity,
            payment_reference=order.payment_reference,
            payment_state=order.payment_state.value,
            credential_state=view.credential_state.value,
            credential_expires_at=credential.expires_at if credential else None,
            download_attempt_count=order.download_attempt_count,
            delivery_retry_count=order.delivery_retry_count,
            version=order.version,
            pricing=PricingSchema(
                base_price_minor=order.base_price_minor,
                platform_fee_minor=order.platform_fee_minor,
                total_charged_minor=order.total_charged_minor,
            ),
            payouts=[PayoutSchema.from_payout(p) for p in view.payouts],
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            refunded_at=order.refunded_at,
            downloaded_at=order.downloaded_at,
        )


class OverrideSchema(BaseModel):
    """Override control row."""

    feature_key: str
    enabled: bool
    effective: bool = Field(..., description="Enabled and master switch on")
    description: str | None = None
    updated_at: datetime
    updated_by: str | None = None

    @classmethod
    def from_control(cls, control: OverrideControl, effective: bool) -> "OverrideSchema":
        return cls(
            feature_key=control.feature_key,
            enabled=control.enabled,
            effective=effective,
            description=control.description,
            updated_at=control.updated_at,
            updated_by=control.updated_by,
        )


class OverridesResponse(BaseModel):
    """All override controls."""

    overrides: list[OverrideSchema]


class OverrideUpdateRequest(BaseModel):
    """Change to an override control."""

    enabled: bool
    description: str | None = Field(default=None, max_length=500)
