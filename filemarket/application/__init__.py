"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from filemarket.application.access_policy import AccessPolicy
from filemarket.application.checkout_service import CheckoutService, OpenCheckoutResult
from filemarket.application.credential_service import CredentialService, RedeemResult
from filemarket.application.order_service import OrderService, OrderView
from filemarket.application.override_service import OverrideService
from filemarket.application.payment_event_service import (
    PaymentEventService,
    PaymentOutcomeResult,
    ReconcilePayoutsResult,
)

__all__ = [
    "AccessPolicy",
    "CheckoutService",
    "OpenCheckoutResult",
    "CredentialService",
    "RedeemResult",
    "OrderService",
    "OrderView",
    "OverrideService",
    "PaymentEventService",
    "PaymentOutcomeResult",
    "ReconcilePayoutsResult",
]
