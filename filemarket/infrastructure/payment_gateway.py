"""Payment provider gateway.

Opens hosted checkout sessions and authenticates inbound payment
notifications. Notifications are signed with HMAC-SHA256 in the header
format ``t=<unix seconds>,v1=<hex digest>``; the digest covers
``"{t}.{raw body}"``.
"""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

import structlog

from filemarket.domain import (
    ChargeRefunded,
    CheckoutCompleted,
    PaymentFailed,
    PaymentOutcomeEvent,
    UnauthenticatedEventError,
)
from filemarket.infrastructure.config import settings

logger = structlog.get_logger()

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout session opened with the provider."""

    reference: str
    url: str


class PaymentGateway(Protocol):
    async def open_checkout_session(
        self,
        order_id: str,
        listing_title: str,
        amount_minor: int,
        buyer_identity: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession: ...

    def parse_event(self, body: bytes, signature: str | None) -> PaymentOutcomeEvent | None: ...


def sign_payload(secret: str, body: bytes, timestamp: int | None = None) -> str:
    """Build a signature header for ``body``."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode(),
        f"{ts}.".encode() + body,
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={digest}"


class LocalPaymentGateway:
    """Development stand-in for the payment provider.

    Checkout sessions are minted locally as ``cs_test_<uuid>`` references and
    never reach a real provider, so no money moves. Notification signature
    verification is the real scheme and rejects anything not signed with
    the configured webhook secret. Swap in a provider adapter implementing
    ``PaymentGateway`` for live payments.
    """

    def __init__(
        self,
        secret: str | None = None,
        tolerance_seconds: int | None = None,
        checkout_base_url: str | None = None,
        clock=time.time,
    ) -> None:
        self.secret = secret or settings.payment_webhook_secret
        self.tolerance_seconds = (
            settings.payment_webhook_tolerance_seconds
            if tolerance_seconds is None
            else tolerance_seconds
        )
        self.checkout_base_url = (checkout_base_url or settings.payment_checkout_base_url).rstrip("/")
        self._clock = clock

    # -------------------------------------------------------------------------
    # Checkout Sessions
    # -------------------------------------------------------------------------

    async def open_checkout_session(
        self,
        order_id: str,
        listing_title: str,
        amount_minor: int,
        buyer_identity: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession:
        reference = f"cs_test_{uuid4().hex}"
        logger.info(
            "Checkout session opened",
            payment_reference=reference,
            order_id=order_id,
            amount_minor=amount_minor,
        )
        return CheckoutSession(reference=reference, url=f"{self.checkout_base_url}/{reference}")

    # -------------------------------------------------------------------------
    # Notification Authentication
    # -------------------------------------------------------------------------

    def verify(self, body: bytes, signature: str | None) -> None:
        """Check the signature header against ``body``.

        Raises:
            UnauthenticatedEventError: If the header is missing, malformed,
                outside the tolerance window or does not match.
        """
        if not signature:
            logger.warning("Missing payment notification signature")
            raise UnauthenticatedEventError("Missing signature header")

        parts: dict[str, list[str]] = {}
        for item in signature.split(","):
            key, sep, value = item.strip().partition("=")
            if sep:
                parts.setdefault(key, []).append(value)

        timestamps = parts.get("t", [])
        candidates = parts.get("v1", [])
        if len(timestamps) != 1 or not candidates or not timestamps[0].isdigit():
            logger.warning("Invalid signature format", signature_prefix=signature[:20])
            raise UnauthenticatedEventError("Malformed signature header")

        timestamp = int(timestamps[0])
        if abs(self._clock() - timestamp) > self.tolerance_seconds:
            logger.warning("Payment notification outside tolerance", timestamp=timestamp)
            raise UnauthenticatedEventError("Signature timestamp outside tolerance")

        expected = sign_payload(self.secret, body, timestamp).split("v1=", 1)[1]
        if not any(hmac.compare_digest(expected, c) for c in candidates):
            logger.warning("Payment notification signature mismatch")
            raise UnauthenticatedEventError("Signature mismatch")

    def parse_event(self, body: bytes, signature: str | None) -> PaymentOutcomeEvent | None:
        """Authenticate and normalize a provider notification.

        Args:
            body: Raw request body, exactly as received.
            signature: Value of the signature header.

        Returns:
            The normalized event, or None for event types this service
            does not act on.

        Raises:
            UnauthenticatedEventError: If authentication fails or the
                authenticated body is not a valid notification.
        """
        self.verify(body, signature)

        try:
            payload: dict[str, Any] = json.loads(body)
            event_type = payload["type"]
            obj: dict[str, Any] = payload["data"]["object"]
            object_id = str(obj["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise UnauthenticatedEventError("Notification body is not a valid event") from e

        event_id = payload.get("id")
        metadata = {str(k): str(v) for k, v in (obj.get("metadata") or {}).items()}

        if event_type == CHECKOUT_COMPLETED:
            return CheckoutCompleted(
                payment_reference=object_id,
                metadata=metadata,
                provider_event_id=event_id,
            )
        if event_type in (ASYNC_PAYMENT_FAILED, PAYMENT_INTENT_FAILED):
            return PaymentFailed(
                payment_reference=metadata.get("checkout_session_id") or object_id,
                provider_event_id=event_id,
            )
        if event_type == CHARGE_REFUNDED:
            return ChargeRefunded(
                payment_reference=metadata.get("checkout_session_id") or object_id,
                provider_event_id=event_id,
            )

        logger.info("Ignoring payment notification", event_type=event_type, event_id=event_id)
        return None
