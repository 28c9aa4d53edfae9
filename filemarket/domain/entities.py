"""Domain entities and aggregates.

- Listing: a sellable design file (read-only to the order engine)
- Order: the purchase record, aggregate root of the order lifecycle
- Payout: one royalty participant's share of a paid order
- OverrideControl, PaymentEventRecord: operational flag and audit rows
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

from filemarket.domain.base import AggregateRoot, Entity, utc_now
from filemarket.domain.events import (
    CredentialIssued,
    DownloadRedeemed,
    OrderCreated,
    OrderPaid,
    OrderPaymentFailed,
    OrderRefunded,
)
from filemarket.domain.exceptions import PaymentIncompleteError, RetryLimitExceededError
from filemarket.domain.royalty import ParticipantPayout, PricingBreakdown
from filemarket.domain.state_machines import (
    CredentialState,
    ListingStage,
    PaymentState,
    PayoutStatus,
    validate_payment_transition,
    validate_payout_transition,
)
from filemarket.domain.value_objects import BuyerIdentity, DownloadCredential, RoyaltyShare

DEFAULT_RETRY_LIMIT = 5


# ============================================================================
# Listing
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Listing(Entity[str]):
    """A design file offered for sale.

    Attributes:
        id: Listing identifier.
        title: Display title, used in delivery notices.
        base_price_minor: Price before the platform fee, in minor units.
        stage: Publication stage.
        storage_path: Object-storage path of the purchasable file.
        royalty_split: Ordered royalty allocation.
    """

    id: str
    title: str
    base_price_minor: int
    stage: ListingStage = ListingStage.DRAFT
    storage_path: str = ""
    royalty_split: list[RoyaltyShare] = field(default_factory=list)

    @property
    def is_purchasable(self) -> bool:
        return self.stage.is_purchasable()

    def ordered_split(self) -> list[RoyaltyShare]:
        """Split entries sorted by position."""
        return sorted(self.royalty_split, key=lambda s: s.position)


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot[str]):
    """Order aggregate root.

    An order is opened as PENDING at checkout and mutated only by the
    payment event processor and the download credential manager. Orders are
    never deleted.

    Invariants:
        * ``download_credential`` is set only while the order is PAID.
        * ``total_charged_minor`` equals base plus fee and never changes.
        * ``paid_at`` is written exactly once, on PENDING -> PAID.

    Attributes:
        id: Opaque order identifier.
        listing_id: Purchased listing.
        buyer_identity: E-mail address or account reference of the buyer.
        base_price_minor: Listing price at checkout time.
        platform_fee_minor: Platform surcharge.
        total_charged_minor: Amount the buyer is charged.
        payment_reference: Payment provider's checkout session id (unique).
        payment_state: Current payment state.
        download_credential: Current credential, if any.
        download_attempt_count: Number of successful redemptions.
        delivery_retry_count: Number of renewals performed.
        paid_at: When payment was confirmed.
        refunded_at: When the order was refunded.
        downloaded_at: Last redemption time.
    """

    id: str
    listing_id: str
    buyer_identity: str
    base_price_minor: int
    platform_fee_minor: int
    total_charged_minor: int
    payment_reference: str
    payment_state: PaymentState = PaymentState.PENDING
    download_credential: DownloadCredential | None = None
    download_attempt_count: int = 0
    delivery_retry_count: int = 0
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    downloaded_at: datetime | None = None

    @classmethod
    def open(
        cls,
        listing_id: str,
        buyer_identity: BuyerIdentity,
        pricing: PricingBreakdown,
        payment_reference: str,
        order_id: str | None = None,
        now: datetime | None = None,
    ) -> "Order":
        """Open a pending order from a computed price breakdown."""
        now = now or utc_now()
        order = cls(
            id=order_id or str(uuid4()),
            listing_id=listing_id,
            buyer_identity=str(buyer_identity),
            base_price_minor=pricing.base_price_minor,
            platform_fee_minor=pricing.platform_fee_minor,
            total_charged_minor=pricing.total_charged_minor,
            payment_reference=payment_reference,
            created_at=now,
            updated_at=now,
        )
        order._record_event(
            OrderCreated(
                aggregate_id=order.id,
                aggregate_type="Order",
                order_id=order.id,
                listing_id=listing_id,
                payment_reference=payment_reference,
                base_price_minor=order.base_price_minor,
                platform_fee_minor=order.platform_fee_minor,
                total_charged_minor=order.total_charged_minor,
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def is_paid(self) -> bool:
        return self.payment_state == PaymentState.PAID

    def is_owned_by(self, identity: str | None) -> bool:
        """Check whether ``identity`` is this order's buyer."""
        return BuyerIdentity(self.buyer_identity).matches(identity)

    def credential_state(
        self, now: datetime, retry_limit: int = DEFAULT_RETRY_LIMIT
    ) -> CredentialState:
        """Derive the credential lifecycle state at ``now``."""
        if self.download_credential is None:
            return CredentialState.NONE
        if not self.download_credential.is_expired(now):
            return CredentialState.ISSUED
        if self.delivery_retry_count >= retry_limit:
            return CredentialState.RETRY_EXHAUSTED
        return CredentialState.EXPIRED

    # -------------------------------------------------------------------------
    # Payment Transitions
    # -------------------------------------------------------------------------

    def mark_paid(self, credential: DownloadCredential, now: datetime | None = None) -> None:
        """Confirm payment and attach the first download credential.

        Both happen in the same write so a paid order is never observed
        without a credential.

        Raises:
            InvalidStateTransitionError: If the order is not PENDING.
        """
        validate_payment_transition(self.id, self.payment_state, PaymentState.PAID)
        now = now or utc_now()
        self.payment_state = PaymentState.PAID
        self.paid_at = now
        self.download_credential = credential
        self._touch(now)
        self._record_event(
            OrderPaid(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                paid_at=now,
                credential_expires_at=credential.expires_at,
            )
        )
        self._record_event(
            CredentialIssued(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                expires_at=credential.expires_at,
            )
        )

    def mark_failed(self, now: datetime | None = None) -> None:
        """Record a failed payment.

        Raises:
            InvalidStateTransitionError: If the order is not PENDING.
        """
        validate_payment_transition(self.id, self.payment_state, PaymentState.FAILED)
        self.payment_state = PaymentState.FAILED
        self._touch(now)
        self._record_event(
            OrderPaymentFailed(aggregate_id=self.id, aggregate_type="Order", order_id=self.id)
        )

    def mark_refunded(self, now: datetime | None = None) -> None:
        """Refund a paid order and revoke its credential.

        Raises:
            InvalidStateTransitionError: If the order is not PAID.
        """
        validate_payment_transition(self.id, self.payment_state, PaymentState.REFUNDED)
        now = now or utc_now()
        self.payment_state = PaymentState.REFUNDED
        self.refunded_at = now
        self.download_credential = None
        self._touch(now)
        self._record_event(
            OrderRefunded(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                refunded_at=now,
            )
        )

    # -------------------------------------------------------------------------
    # Credential Lifecycle
    # -------------------------------------------------------------------------

    def _require_paid(self) -> None:
        if not self.is_paid:
            raise PaymentIncompleteError(self.id, self.payment_state.value)

    def issue_credential(self, credential: DownloadCredential, now: datetime | None = None) -> None:
        """Replace the current credential without touching the retry budget.

        Raises:
            PaymentIncompleteError: If the order is not PAID.
        """
        self._require_paid()
        self.download_credential = credential
        self._touch(now)
        self._record_event(
            CredentialIssued(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                expires_at=credential.expires_at,
                delivery_retry_count=self.delivery_retry_count,
            )
        )

    def renew_credential(
        self,
        credential: DownloadCredential,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        now: datetime | None = None,
    ) -> None:
        """Rotate the credential, spending one unit of the retry budget.

        The previous token stops matching immediately.

        Raises:
            PaymentIncompleteError: If the order is not PAID.
            RetryLimitExceededError: If the retry budget is spent.
        """
        self._require_paid()
        if self.delivery_retry_count >= retry_limit:
            raise RetryLimitExceededError(self.id, retry_limit)
        self.download_credential = credential
        self.delivery_retry_count += 1
        self._touch(now)
        self._record_event(
            CredentialIssued(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                expires_at=credential.expires_at,
                delivery_retry_count=self.delivery_retry_count,
                renewal=True,
            )
        )

    def record_download(self, now: datetime | None = None, past_expiry: bool = False) -> None:
        """Count a successful redemption."""
        now = now or utc_now()
        self.download_attempt_count += 1
        self.downloaded_at = now
        self._touch(now)
        self._record_event(
            DownloadRedeemed(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                download_attempt_count=self.download_attempt_count,
                past_expiry=past_expiry,
            )
        )


# ============================================================================
# Payout
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Payout(Entity[str]):
    """Amount owed to one royalty participant for a paid order.

    ``amount_minor`` is fixed at creation; only the status moves.
    """

    id: str
    order_id: str
    participant_id: str
    amount_minor: int
    position: int = 0
    status: PayoutStatus = PayoutStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    transferred_at: datetime | None = None

    @classmethod
    def batch_for(
        cls,
        order_id: str,
        payouts: Sequence[ParticipantPayout],
        now: datetime | None = None,
    ) -> list["Payout"]:
        """Build the pending payout rows for a paid order."""
        now = now or utc_now()
        return [
            cls(
                id=str(uuid4()),
                order_id=order_id,
                participant_id=p.participant_id,
                amount_minor=p.amount_minor,
                position=p.position,
                created_at=now,
            )
            for p in payouts
        ]

    def mark_transferred(self, now: datetime | None = None) -> None:
        validate_payout_transition(self.id, self.status, PayoutStatus.TRANSFERRED)
        self.status = PayoutStatus.TRANSFERRED
        self.transferred_at = now or utc_now()

    def mark_failed(self) -> None:
        validate_payout_transition(self.id, self.status, PayoutStatus.FAILED)
        self.status = PayoutStatus.FAILED


# ============================================================================
# Override Control
# ============================================================================


@dataclass(kw_only=True)
class OverrideControl:
    """Named feature flag row."""

    feature_key: str
    enabled: bool = False
    description: str | None = None
    updated_at: datetime = field(default_factory=utc_now)
    updated_by: str | None = None


# ============================================================================
# Payment Event Record
# ============================================================================


class PaymentEventStatus(str, Enum):
    """Outcome of handling one inbound payment notification."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(kw_only=True)
class PaymentEventRecord:
    """Audit entry for an inbound payment notification.

    The log is never consulted for idempotence; the order's payment state
    is the only guard.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    kind: str
    status: PaymentEventStatus
    payment_reference: str | None = None
    provider_event_id: str | None = None
    error_code: str | None = None
    message: str | None = None
    received_at: datetime = field(default_factory=utc_now)
