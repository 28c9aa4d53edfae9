"""Payment event application service.

Consumes authenticated payment outcome notifications:
- checkout completed: mark the order paid, issue the first credential,
  create royalty payouts and mail the download link
- payment failed: mark a pending order failed
- charge refunded: refund a paid order and void its pending payouts

Handling is idempotent. The guard is the order's current payment state, so
a redelivered notification finds the transition already applied and
changes nothing. Failures after the payment transition (payouts, e-mail)
are reported to operators and never undo the payment.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from filemarket.application.credential_service import CredentialService
from filemarket.application.event_publisher import publish_events
from filemarket.domain import (
    ChargeRefunded,
    CheckoutCompleted,
    ConflictError,
    DomainError,
    InvalidSplitError,
    MisconfiguredListingError,
    Order,
    OrderNotFoundError,
    PartialPayoutBatchError,
    PaymentEventRecord,
    PaymentEventStatus,
    PaymentFailed,
    PaymentOutcomeEvent,
    PaymentState,
    Payout,
    PayoutStatus,
    StaleOrderError,
    ValidationError,
    compute,
    utc_now,
)
from filemarket.infrastructure.alerts import AlertChannel, LoggingAlertChannel
from filemarket.infrastructure.repositories import (
    ListingRepository,
    OrderRepository,
    PaymentEventLog,
    PayoutRepository,
)

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class PaymentOutcomeResult:
    """Result of handling one payment notification."""

    status: PaymentEventStatus
    order_id: str | None = None
    message: str = ""
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.status != PaymentEventStatus.FAILED


@dataclass
class ReconcilePayoutsResult:
    """Result of reconciling an order's payout batch."""

    order_id: str
    payouts: list[Payout] = field(default_factory=list)
    created: bool = False


# ============================================================================
# Payment Event Service
# ============================================================================


class PaymentEventService:
    """Application service for payment outcome notifications."""

    def __init__(
        self,
        orders: OrderRepository,
        listings: ListingRepository,
        payouts: PayoutRepository,
        event_log: PaymentEventLog,
        credentials: CredentialService,
        alerts: AlertChannel | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize service.

        Args:
            orders: Order repository.
            listings: Listing repository, for royalty splits.
            payouts: Payout repository.
            event_log: Audit log of notifications.
            credentials: Credential service, mints the first credential and
                sends the delivery notice.
            alerts: Operator alert channel.
            clock: Source of the current time.
        """
        self.orders = orders
        self.listings = listings
        self.payouts = payouts
        self.event_log = event_log
        self.credentials = credentials
        self.alerts = alerts or LoggingAlertChannel()
        self.clock = clock

    async def handle_payment_outcome(self, event: PaymentOutcomeEvent) -> PaymentOutcomeResult:
        """Apply a payment notification to its order.

        Domain errors are captured into the result; nothing is raised to the
        caller, which acknowledges every authenticated notification.

        Args:
            event: Normalized notification.

        Returns:
            PaymentOutcomeResult describing what happened.
        """
        log = logger.bind(kind=event.kind, payment_reference=event.payment_reference)
        try:
            if isinstance(event, CheckoutCompleted):
                result = await self._handle_checkout_completed(event)
            elif isinstance(event, PaymentFailed):
                result = await self._handle_payment_failed(event)
            elif isinstance(event, ChargeRefunded):
                result = await self._handle_charge_refunded(event)
            else:
                result = PaymentOutcomeResult(
                    status=PaymentEventStatus.IGNORED,
                    message=f"Unsupported event: {type(event).__name__}",
                )
        except DomainError as e:
            log.warning("Payment notification failed", error_code=e.error_code, error=e.message)
            result = PaymentOutcomeResult(
                status=PaymentEventStatus.FAILED,
                message=e.message,
                error_code=e.error_code,
            )
        except Exception as e:
            log.exception("Payment notification raised unexpectedly", error=str(e))
            result = PaymentOutcomeResult(
                status=PaymentEventStatus.FAILED,
                message="Internal error",
                error_code="INTERNAL_ERROR",
            )

        log.info(
            "Payment notification handled",
            status=result.status.value,
            order_id=result.order_id,
            error_code=result.error_code,
        )
        await self._audit(event, result)
        return result

    async def _audit(self, event: PaymentOutcomeEvent, result: PaymentOutcomeResult) -> None:
        record = PaymentEventRecord(
            kind=event.kind,
            status=result.status,
            payment_reference=event.payment_reference,
            provider_event_id=event.provider_event_id,
            error_code=result.error_code,
            message=result.message,
            received_at=self.clock(),
        )
        try:
            await self.event_log.record(record)
        except DomainError as e:
            logger.warning("Payment event audit not recorded", error=e.message)

    async def _find_order(self, payment_reference: str) -> Order:
        order = await self.orders.get_by_payment_reference(payment_reference)
        if order is None:
            raise OrderNotFoundError(payment_reference=payment_reference)
        return order

    # -------------------------------------------------------------------------
    # Checkout Completed
    # -------------------------------------------------------------------------

    async def _handle_checkout_completed(self, event: CheckoutCompleted) -> PaymentOutcomeResult:
        try:
            order = await self._find_order(event.payment_reference)
        except OrderNotFoundError:
            self.alerts.alert(
                "PAYMENT_ORDER_NOT_FOUND",
                "Completed checkout matches no order",
                payment_reference=event.payment_reference,
                provider_event_id=event.provider_event_id,
            )
            raise

        metadata_order_id = event.metadata.get("order_id")
        if metadata_order_id and metadata_order_id != order.id:
            logger.warning(
                "Checkout metadata names a different order",
                order_id=order.id,
                metadata_order_id=metadata_order_id,
            )

        if order.is_paid:
            return PaymentOutcomeResult(
                status=PaymentEventStatus.DUPLICATE,
                order_id=order.id,
                message="Order already paid",
            )
        if order.payment_state != PaymentState.PENDING:
            logger.warning(
                "Completed checkout for non-pending order",
                order_id=order.id,
                payment_state=order.payment_state.value,
            )
            return PaymentOutcomeResult(
                status=PaymentEventStatus.IGNORED,
                order_id=order.id,
                message=f"Order is {order.payment_state.value}",
                error_code="INVALID_TRANSITION",
            )

        loaded_version = order.version
        now = self.clock()
        credential = self.credentials.mint(now)
        order.mark_paid(credential, now)
        try:
            await self.orders.save(order, loaded_version, PaymentState.PENDING)
        except StaleOrderError:
            current = await self.orders.get(order.id)
            if current is not None and current.is_paid:
                return PaymentOutcomeResult(
                    status=PaymentEventStatus.DUPLICATE,
                    order_id=order.id,
                    message="Order paid by a concurrent notification",
                )
            raise
        publish_events(order)
        logger.info("Order paid", order_id=order.id, paid_at=now.isoformat())

        try:
            await self._create_payouts(order)
        except DomainError as e:
            self.alerts.alert(
                "PAYOUT_BATCH_FAILED",
                "Payouts were not created for a paid order",
                order_id=order.id,
                error_code=e.error_code,
                reason=e.message,
            )

        await self.credentials.send_delivery_notice(order, credential, renewal=False)

        return PaymentOutcomeResult(
            status=PaymentEventStatus.PROCESSED,
            order_id=order.id,
            message="Order paid",
        )

    async def _create_payouts(self, order: Order) -> list[Payout]:
        """Compute and store the payout batch for a paid order.

        Raises:
            MisconfiguredListingError: If the listing or its split is unusable.
            PartialPayoutBatchError: If the stored batch is incomplete.
        """
        listing = await self.listings.get(order.listing_id)
        if listing is None:
            raise MisconfiguredListingError(order.listing_id, "listing no longer exists")
        try:
            pricing = compute(order.base_price_minor, listing.ordered_split())
        except (InvalidSplitError, ValidationError) as e:
            raise MisconfiguredListingError(listing.id, e.message) from e

        batch = Payout.batch_for(order.id, pricing.payouts, self.clock())
        stored = await self.payouts.add_batch(order.id, batch)
        if len(stored) != len(batch):
            raise PartialPayoutBatchError(order.id, expected=len(batch), stored=len(stored))

        logger.info(
            "Payout batch created",
            order_id=order.id,
            rows=len(stored),
            payout_total_minor=sum(p.amount_minor for p in stored),
            residual_minor=pricing.residual_minor,
        )
        return stored

    # -------------------------------------------------------------------------
    # Payment Failed
    # -------------------------------------------------------------------------

    async def _handle_payment_failed(self, event: PaymentFailed) -> PaymentOutcomeResult:
        order = await self._find_order(event.payment_reference)
        if order.payment_state != PaymentState.PENDING:
            return PaymentOutcomeResult(
                status=PaymentEventStatus.DUPLICATE,
                order_id=order.id,
                message=f"Order is {order.payment_state.value}; nothing to fail",
            )

        loaded_version = order.version
        order.mark_failed(self.clock())
        try:
            await self.orders.save(order, loaded_version, PaymentState.PENDING)
        except StaleOrderError:
            return PaymentOutcomeResult(
                status=PaymentEventStatus.DUPLICATE,
                order_id=order.id,
                message="Order changed concurrently; left as is",
            )
        publish_events(order)
        logger.info("Order payment failed", order_id=order.id)
        return PaymentOutcomeResult(
            status=PaymentEventStatus.PROCESSED,
            order_id=order.id,
            message="Order marked failed",
        )

    # -------------------------------------------------------------------------
    # Charge Refunded
    # -------------------------------------------------------------------------

    async def _handle_charge_refunded(self, event: ChargeRefunded) -> PaymentOutcomeResult:
        order = await self._find_order(event.payment_reference)
        if order.payment_state == PaymentState.REFUNDED:
            return PaymentOutcomeResult(
                status=PaymentEventStatus.DUPLICATE,
                order_id=order.id,
                message="Order already refunded",
            )
        if not order.is_paid:
            logger.warning(
                "Refund for unpaid order",
                order_id=order.id,
                payment_state=order.payment_state.value,
            )
            return PaymentOutcomeResult(
                status=PaymentEventStatus.IGNORED,
                order_id=order.id,
                message=f"Order is {order.payment_state.value}",
                error_code="INVALID_TRANSITION",
            )

        loaded_version = order.version
        order.mark_refunded(self.clock())
        try:
            await self.orders.save(order, loaded_version, PaymentState.PAID)
        except StaleOrderError:
            current = await self.orders.get(order.id)
            if current is not None and current.payment_state == PaymentState.REFUNDED:
                return PaymentOutcomeResult(
                    status=PaymentEventStatus.DUPLICATE,
                    order_id=order.id,
                    message="Order refunded by a concurrent notification",
                )
            raise
        publish_events(order)
        logger.info("Order refunded", order_id=order.id)

        try:
            await self._void_pending_payouts(order.id)
        except DomainError as e:
            self.alerts.alert(
                "PAYOUT_VOID_FAILED",
                "Pending payouts of a refunded order were not voided",
                order_id=order.id,
                reason=e.message,
            )

        return PaymentOutcomeResult(
            status=PaymentEventStatus.PROCESSED,
            order_id=order.id,
            message="Order refunded",
        )

    async def _void_pending_payouts(self, order_id: str) -> int:
        voided = 0
        for payout in await self.payouts.list_for_order(order_id):
            if payout.status != PayoutStatus.PENDING:
                continue
            payout.mark_failed()
            await self.payouts.save(payout)
            voided += 1
        if voided:
            logger.info("Pending payouts voided", order_id=order_id, count=voided)
        return voided

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    async def reconcile_payouts(self, order_id: str) -> ReconcilePayoutsResult:
        """Create the payout batch for a paid order that has none.

        Args:
            order_id: Paid order to reconcile.

        Returns:
            ReconcilePayoutsResult with the stored batch.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ConflictError: If the order is not paid.
            MisconfiguredListingError: If the listing cannot be priced.
            PartialPayoutBatchError: If the stored batch is incomplete.
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        if not order.is_paid:
            raise ConflictError(
                "Payouts exist only for paid orders",
                details={"order_id": order_id, "payment_state": order.payment_state.value},
            )

        existing = await self.payouts.list_for_order(order_id)
        if existing:
            return ReconcilePayoutsResult(order_id=order_id, payouts=existing, created=False)

        stored = await self._create_payouts(order)
        logger.info("Payout batch reconciled", order_id=order_id, rows=len(stored))
        return ReconcilePayoutsResult(order_id=order_id, payouts=stored, created=True)
