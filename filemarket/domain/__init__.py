"""Domain layer - Entities, value objects, state machines, domain events.

This module exports the core domain building blocks:

- **Entities**: Listing, Order (aggregate root), Payout, OverrideControl
- **Value Objects**: RoyaltyShare, DownloadCredential, BuyerIdentity, FeatureFlags
- **State Machines**: ListingStage, PaymentState, PayoutStatus, CredentialState
- **Royalty calculator**: compute() and PricingBreakdown
- **Domain Events** and **Exceptions**

Example usage:
    from filemarket.domain import RoyaltyShare, compute

    pricing = compute(500, [RoyaltyShare("originator-1", 10_000)])
    pricing.total_charged_minor  # 550
"""

from filemarket.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject, utc_now
from filemarket.domain.entities import (
    DEFAULT_RETRY_LIMIT,
    Listing,
    Order,
    OverrideControl,
    PaymentEventRecord,
    PaymentEventStatus,
    Payout,
)
from filemarket.domain.events import (
    ChargeRefunded,
    CheckoutCompleted,
    PaymentFailed,
    PaymentOutcomeEvent,
    CredentialIssued,
    DownloadRedeemed,
    OrderCreated,
    OrderPaid,
    OrderPaymentFailed,
    OrderRefunded,
)
from filemarket.domain.exceptions import (
    ConflictError,
    DependencyError,
    DomainError,
    ExpiredError,
    FeatureDisabledError,
    ForbiddenError,
    InvalidSplitError,
    InvalidStateTransitionError,
    InvalidTokenError,
    ListingNotFoundError,
    MisconfiguredListingError,
    NotFoundError,
    NotListedError,
    OrderNotFoundError,
    PartialPayoutBatchError,
    PaymentIncompleteError,
    RetryLimitExceededError,
    StaleOrderError,
    UnauthenticatedEventError,
    ValidationError,
)
from filemarket.domain.royalty import (
    ParticipantPayout,
    PricingBreakdown,
    compute,
    validate_split,
)
from filemarket.domain.state_machines import (
    CredentialState,
    ListingStage,
    PaymentState,
    PayoutStatus,
    validate_payment_transition,
    validate_payout_transition,
)
from filemarket.domain.value_objects import (
    BASIS_POINTS_TOTAL,
    DOWNLOAD_DELIVERY,
    MARKETPLACE_PURCHASE,
    MASTER_SWITCH,
    BuyerIdentity,
    DownloadCredential,
    FeatureFlags,
    RoyaltyShare,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    "utc_now",
    # Entities
    "DEFAULT_RETRY_LIMIT",
    "Listing",
    "Order",
    "OverrideControl",
    "PaymentEventRecord",
    "PaymentEventStatus",
    "Payout",
    # Events
    "ChargeRefunded",
    "CheckoutCompleted",
    "PaymentFailed",
    "PaymentOutcomeEvent",
    "CredentialIssued",
    "DownloadRedeemed",
    "OrderCreated",
    "OrderPaid",
    "OrderPaymentFailed",
    "OrderRefunded",
    # Exceptions
    "ConflictError",
    "DependencyError",
    "DomainError",
    "ExpiredError",
    "FeatureDisabledError",
    "ForbiddenError",
    "InvalidSplitError",
    "InvalidStateTransitionError",
    "InvalidTokenError",
    "ListingNotFoundError",
    "MisconfiguredListingError",
    "NotFoundError",
    "NotListedError",
    "OrderNotFoundError",
    "PartialPayoutBatchError",
    "PaymentIncompleteError",
    "RetryLimitExceededError",
    "StaleOrderError",
    "UnauthenticatedEventError",
    "ValidationError",
    # Royalty
    "ParticipantPayout",
    "PricingBreakdown",
    "compute",
    "validate_split",
    # State machines
    "CredentialState",
    "ListingStage",
    "PaymentState",
    "PayoutStatus",
    "validate_payment_transition",
    "validate_payout_transition",
    # Value objects
    "BASIS_POINTS_TOTAL",
    "DOWNLOAD_DELIVERY",
    "MARKETPLACE_PURCHASE",
    "MASTER_SWITCH",
    "BuyerIdentity",
    "DownloadCredential",
    "FeatureFlags",
    "RoyaltyShare",
]
