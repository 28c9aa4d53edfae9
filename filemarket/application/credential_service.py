"""Download credential application service.

Issues, renews and redeems the time-boxed tokens that grant access to a
purchased file:

- A credential is minted when payment is confirmed.
- The buyer may renew it a bounded number of times (each renewal rotates
  the token and mails the new link).
- Redeeming returns a short-lived signed storage location. An expired
  token is still honoured for the order's owner once they have signed in.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from filemarket.application.access_policy import AccessPolicy
from filemarket.application.event_publisher import publish_events
from filemarket.domain import (
    DEFAULT_RETRY_LIMIT,
    DOWNLOAD_DELIVERY,
    ConflictError,
    DependencyError,
    DomainError,
    DownloadCredential,
    ExpiredError,
    FeatureDisabledError,
    FeatureFlags,
    InvalidTokenError,
    MisconfiguredListingError,
    Order,
    OrderNotFoundError,
    PaymentIncompleteError,
    PaymentState,
    ValidationError,
    utc_now,
)
from filemarket.infrastructure.alerts import AlertChannel, LoggingAlertChannel
from filemarket.infrastructure.email_client import DeliveryContext, EmailSender
from filemarket.infrastructure.repositories import ListingRepository, OrderRepository
from filemarket.infrastructure.storage_client import ObjectStorage

logger = structlog.get_logger()

DEFAULT_CREDENTIAL_TTL = timedelta(hours=72)
DEFAULT_SIGNED_URL_TTL_SECONDS = 600
DEFAULT_LISTING_TITLE = "your purchase"


@dataclass
class RedeemResult:
    """Outcome of a successful redemption."""

    order_id: str
    location: str
    past_expiry: bool = False


class CredentialService:
    """Application service for download credentials."""

    def __init__(
        self,
        orders: OrderRepository,
        listings: ListingRepository,
        storage: ObjectStorage,
        email: EmailSender,
        policy: AccessPolicy,
        alerts: AlertChannel | None = None,
        credential_ttl: timedelta = DEFAULT_CREDENTIAL_TTL,
        signed_url_ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize service.

        Args:
            orders: Order repository.
            listings: Listing repository, for storage paths and titles.
            storage: Object storage signer.
            email: Delivery notice sender.
            policy: Ownership and administrator checks.
            alerts: Operator alert channel.
            credential_ttl: Lifetime of a freshly issued credential.
            signed_url_ttl_seconds: Lifetime of a signed storage location.
            retry_limit: Maximum number of renewals per order.
            clock: Source of the current time.
        """
        self.orders = orders
        self.listings = listings
        self.storage = storage
        self.email = email
        self.policy = policy
        self.alerts = alerts or LoggingAlertChannel()
        self.credential_ttl = credential_ttl
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.retry_limit = retry_limit
        self.clock = clock

    def mint(self, now: datetime | None = None) -> DownloadCredential:
        """Produce a fresh credential without attaching it to an order."""
        return DownloadCredential.issue(now or self.clock(), self.credential_ttl)

    async def _get_order(self, order_id: str) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    # -------------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------------

    async def issue(self, order_id: str) -> DownloadCredential:
        """Attach a fresh credential to a paid order.

        Does not consume the renewal budget.

        Raises:
            OrderNotFoundError: If the order does not exist.
            PaymentIncompleteError: If the order is not paid.
            ConflictError: If the order changed concurrently.
        """
        order = await self._get_order(order_id)
        loaded_version = order.version
        now = self.clock()
        credential = self.mint(now)
        order.issue_credential(credential, now)
        await self.orders.save(order, loaded_version, PaymentState.PAID)
        publish_events(order)
        logger.info("Download credential issued", order_id=order_id)
        return credential

    # -------------------------------------------------------------------------
    # Renew
    # -------------------------------------------------------------------------

    async def renew(
        self,
        order_id: str,
        requester_identity: str | None,
        flags: FeatureFlags,
    ) -> DownloadCredential:
        """Rotate an order's credential on behalf of its owner.

        Args:
            order_id: Order to renew.
            requester_identity: Verified identity of the caller.
            flags: Override snapshot for this request.

        Returns:
            The new credential; the previous token stops working.

        Raises:
            FeatureDisabledError: If download delivery is switched off.
            OrderNotFoundError: If the order does not exist.
            ForbiddenError: If the caller does not own the order.
            PaymentIncompleteError: If the order is not paid.
            RetryLimitExceededError: If the renewal budget is spent.
            ConflictError: If the order changed concurrently.
        """
        if not flags.is_enabled(DOWNLOAD_DELIVERY):
            raise FeatureDisabledError(DOWNLOAD_DELIVERY)

        order = await self._get_order(order_id)
        self.policy.require_order_access(requester_identity, order)

        loaded_version = order.version
        now = self.clock()
        credential = self.mint(now)
        try:
            order.renew_credential(credential, self.retry_limit, now)
        except PaymentIncompleteError:
            logger.info("Renewal refused: payment incomplete", order_id=order_id)
            raise

        try:
            await self.orders.save(order, loaded_version, PaymentState.PAID)
        except ConflictError:
            logger.warning("Renewal lost a concurrent update", order_id=order_id)
            raise
        publish_events(order)

        logger.info(
            "Download credential renewed",
            order_id=order_id,
            delivery_retry_count=order.delivery_retry_count,
        )
        await self.send_delivery_notice(order, credential, renewal=True)
        return credential

    async def send_delivery_notice(
        self,
        order: Order,
        credential: DownloadCredential,
        renewal: bool,
    ) -> bool:
        """Mail the download link; failures are logged, never raised."""
        title = DEFAULT_LISTING_TITLE
        try:
            listing = await self.listings.get(order.listing_id)
            if listing is not None:
                title = listing.title
        except DomainError as e:
            logger.warning(
                "Listing lookup failed for delivery notice",
                order_id=order.id,
                listing_id=order.listing_id,
                error=e.message,
            )
        context = DeliveryContext(
            order_id=order.id,
            listing_title=title,
            expires_at_iso=credential.expires_at.isoformat(),
            renewal=renewal,
        )
        try:
            sent = await self.email.send_delivery_notice(
                order.buyer_identity, context, credential.token
            )
        except Exception as e:
            logger.error("Delivery notice failed", order_id=order.id, error=str(e))
            return False
        if not sent:
            logger.warning("Delivery notice not sent", order_id=order.id)
        return sent

    # -------------------------------------------------------------------------
    # Redeem
    # -------------------------------------------------------------------------

    async def redeem(
        self,
        token: str,
        flags: FeatureFlags,
        requester_identity: str | None = None,
    ) -> RedeemResult:
        """Exchange a token for a signed download location.

        Args:
            token: Download token from the delivery link.
            flags: Override snapshot for this request.
            requester_identity: Verified identity of the caller, if signed in.

        Returns:
            RedeemResult with the signed location.

        Raises:
            FeatureDisabledError: If download delivery is switched off.
            ValidationError: If the token is blank.
            InvalidTokenError: If no order's current credential matches.
            PaymentIncompleteError: If the order is not paid.
            ExpiredError: If the credential expired and the caller is not
                the owner.
            MisconfiguredListingError: If the listing has no stored file.
            DependencyError: If storage signing fails.
        """
        if not flags.is_enabled(DOWNLOAD_DELIVERY):
            raise FeatureDisabledError(DOWNLOAD_DELIVERY)
        if not token or not token.strip():
            raise ValidationError("Download token is required")

        order = await self.orders.get_by_token(token)
        if order is None or order.download_credential is None:
            raise InvalidTokenError()
        if not order.is_paid:
            raise PaymentIncompleteError(order.id, order.payment_state.value)

        now = self.clock()
        past_expiry = order.download_credential.is_expired(now)
        if past_expiry and not self.policy.can_access_order(requester_identity, order):
            logger.info("Expired download token refused", order_id=order.id)
            raise ExpiredError(order.id)

        listing = await self.listings.get(order.listing_id)
        if listing is None or not listing.storage_path:
            self.alerts.alert(
                "LISTING_FILE_MISSING",
                "Paid order references a listing without a stored file",
                order_id=order.id,
                listing_id=order.listing_id,
            )
            raise MisconfiguredListingError(order.listing_id, "no stored file")

        location = await self.storage.create_signed_download_location(
            listing.storage_path, self.signed_url_ttl_seconds
        )

        await self._track_download(order, now, past_expiry)
        return RedeemResult(order_id=order.id, location=location, past_expiry=past_expiry)

    async def _track_download(self, order: Order, now: datetime, past_expiry: bool) -> None:
        loaded_version = order.version
        order.record_download(now, past_expiry=past_expiry)
        try:
            await self.orders.save(order, loaded_version, PaymentState.PAID)
        except (ConflictError, DependencyError) as e:
            logger.warning("Download tracking not recorded", order_id=order.id, error=str(e))
            order.collect_events()
            return
        publish_events(order)
        logger.info(
            "Download redeemed",
            order_id=order.id,
            download_attempt_count=order.download_attempt_count,
            past_expiry=past_expiry,
        )
