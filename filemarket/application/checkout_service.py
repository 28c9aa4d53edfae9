"""Checkout application service.

Opens a purchase for a listing:
- Checks the purchase gate, the listing's stage and its royalty split
- Prices the order (base price plus platform fee)
- Opens a hosted checkout session with the payment provider
- Records a pending order keyed by the session reference

The order is only created once the provider session exists, so a provider
failure leaves nothing behind.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import structlog

from filemarket.application.event_publisher import publish_events
from filemarket.domain import (
    MARKETPLACE_PURCHASE,
    BuyerIdentity,
    DependencyError,
    FeatureDisabledError,
    FeatureFlags,
    InvalidSplitError,
    Listing,
    ListingNotFoundError,
    MisconfiguredListingError,
    NotListedError,
    Order,
    PricingBreakdown,
    ValidationError,
    compute,
    utc_now,
)
from filemarket.infrastructure.alerts import AlertChannel, LoggingAlertChannel
from filemarket.infrastructure.payment_gateway import CheckoutSession, PaymentGateway
from filemarket.infrastructure.repositories import ListingRepository, OrderRepository

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class OpenCheckoutResult:
    """Result of opening a checkout."""

    order_id: str
    checkout_handle: str
    checkout_url: str
    pricing: PricingBreakdown


# ============================================================================
# Checkout Service
# ============================================================================


class CheckoutService:
    """Application service that turns a purchase intent into a pending order."""

    def __init__(
        self,
        listings: ListingRepository,
        orders: OrderRepository,
        gateway: PaymentGateway,
        alerts: AlertChannel | None = None,
        clock: Callable[[], datetime] = utc_now,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            listings: Listing repository.
            orders: Order repository.
            gateway: Payment provider gateway.
            alerts: Operator alert channel.
            clock: Source of the current time.
            request_id: Request ID for correlation.
        """
        self.listings = listings
        self.orders = orders
        self.gateway = gateway
        self.alerts = alerts or LoggingAlertChannel()
        self.clock = clock
        self.request_id = request_id

    async def open_checkout(
        self,
        listing_id: str,
        buyer_identity: str | None,
        flags: FeatureFlags,
    ) -> OpenCheckoutResult:
        """Open a checkout session and a pending order.

        Checks run in order and the first failure wins.

        Args:
            listing_id: Listing to buy.
            buyer_identity: Buyer e-mail address or account reference.
            flags: Override snapshot for this request.

        Returns:
            OpenCheckoutResult with the provider handle and the order id.

        Raises:
            FeatureDisabledError: If purchasing is switched off.
            ValidationError: If the buyer identity is blank.
            ListingNotFoundError: If the listing does not exist.
            NotListedError: If the listing is not for sale.
            MisconfiguredListingError: If the listing cannot be priced.
            DependencyError: If the provider session cannot be opened.
        """
        if not flags.is_enabled(MARKETPLACE_PURCHASE):
            raise FeatureDisabledError(MARKETPLACE_PURCHASE)

        buyer = BuyerIdentity.parse(buyer_identity)

        listing = await self.listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        if not listing.is_purchasable:
            raise NotListedError(listing_id, listing.stage.value)

        pricing = self._price(listing)
        order_id = str(uuid4())
        session = await self._open_session(order_id, listing, pricing, buyer)

        order = Order.open(
            listing_id=listing.id,
            buyer_identity=buyer,
            pricing=pricing,
            payment_reference=session.reference,
            order_id=order_id,
            now=self.clock(),
        )
        await self.orders.add(order)
        publish_events(order)

        logger.info(
            "Checkout opened",
            order_id=order.id,
            listing_id=listing.id,
            payment_reference=session.reference,
            total_charged_minor=pricing.total_charged_minor,
            request_id=self.request_id,
        )

        return OpenCheckoutResult(
            order_id=order.id,
            checkout_handle=session.reference,
            checkout_url=session.url,
            pricing=pricing,
        )

    def _price(self, listing: Listing) -> PricingBreakdown:
        try:
            return compute(listing.base_price_minor, listing.ordered_split())
        except (InvalidSplitError, ValidationError) as e:
            self.alerts.alert(
                "LISTING_MISCONFIGURED",
                "Listed item cannot be priced",
                listing_id=listing.id,
                reason=e.message,
            )
            raise MisconfiguredListingError(listing.id, e.message) from e

    async def _open_session(
        self,
        order_id: str,
        listing: Listing,
        pricing: PricingBreakdown,
        buyer: BuyerIdentity,
    ) -> CheckoutSession:
        try:
            return await self.gateway.open_checkout_session(
                order_id=order_id,
                listing_title=listing.title,
                amount_minor=pricing.total_charged_minor,
                buyer_identity=str(buyer),
                metadata={"order_id": order_id, "listing_id": listing.id},
            )
        except DependencyError:
            raise
        except Exception as e:
            logger.error(
                "Checkout session could not be opened",
                listing_id=listing.id,
                error=str(e),
                request_id=self.request_id,
            )
            raise DependencyError("payment", "checkout session could not be opened") from e
