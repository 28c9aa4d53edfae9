"""Domain exceptions.

All domain-level errors that represent business rule violations or
collaborator failures. Every error carries a stable ``error_code`` that
the API layer uses for its error envelope and status mapping.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Input and Lookup Errors
# ============================================================================


class ValidationError(DomainError):
    """Malformed or missing input that the caller can fix."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    error_code = "NOT_FOUND"


class ListingNotFoundError(NotFoundError):
    """Raised when a listing does not exist."""

    error_code = "LISTING_NOT_FOUND"

    def __init__(self, listing_id: str) -> None:
        super().__init__(
            f"Listing not found: {listing_id}",
            details={"listing_id": listing_id},
        )


class OrderNotFoundError(NotFoundError):
    """Raised when an order cannot be located by id or payment reference."""

    error_code = "ORDER_NOT_FOUND"

    def __init__(
        self,
        order_id: str | None = None,
        payment_reference: str | None = None,
    ) -> None:
        if payment_reference is not None:
            message = f"No order matches payment reference {payment_reference}"
        else:
            message = f"Order not found: {order_id}"
        super().__init__(
            message,
            details={"order_id": order_id, "payment_reference": payment_reference},
        )


class InvalidTokenError(NotFoundError):
    """Raised when a download token matches no order's current credential."""

    error_code = "INVALID_TOKEN"

    def __init__(self) -> None:
        super().__init__("Invalid or superseded download token")


# ============================================================================
# Authorization and Gating Errors
# ============================================================================


class ForbiddenError(DomainError):
    """Authenticated caller is not allowed to act on the resource."""

    error_code = "FORBIDDEN"


class FeatureDisabledError(DomainError):
    """An operational gate (override control) is closed."""

    error_code = "FEATURE_DISABLED"

    def __init__(self, feature_key: str) -> None:
        super().__init__(
            f"Feature '{feature_key}' is currently disabled",
            details={"feature_key": feature_key},
        )


class UnauthenticatedEventError(DomainError):
    """Inbound payment notification failed authentication."""

    error_code = "UNAUTHENTICATED_EVENT"


# ============================================================================
# State Errors
# ============================================================================


class ConflictError(DomainError):
    """State precondition failed; safe to retry after re-reading state."""

    error_code = "CONFLICT"


class InvalidStateTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order", "Payout").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class StaleOrderError(ConflictError):
    """Raised when a conditional order update loses a concurrent race."""

    error_code = "STALE_ORDER"

    def __init__(self, order_id: str, expected_version: int) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently",
            details={"order_id": order_id, "expected_version": expected_version},
        )


class NotListedError(DomainError):
    """Listing exists but is not in the purchasable stage."""

    error_code = "NOT_LISTED"

    def __init__(self, listing_id: str, stage: str) -> None:
        super().__init__(
            f"Listing {listing_id} is not currently listed for sale",
            details={"listing_id": listing_id, "stage": stage},
        )


class PaymentIncompleteError(DomainError):
    """Operation requires a paid order."""

    error_code = "PAYMENT_INCOMPLETE"

    def __init__(self, order_id: str, payment_state: str) -> None:
        super().__init__(
            f"Payment has not been completed for order {order_id}",
            details={"order_id": order_id, "payment_state": payment_state},
        )


class ExpiredError(DomainError):
    """Download credential has expired and the requester may not bypass it."""

    error_code = "CREDENTIAL_EXPIRED"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            "Download link has expired. Sign in and request a new link.",
            details={"order_id": order_id},
        )


class RetryLimitExceededError(DomainError):
    """Delivery retry budget for an order is exhausted."""

    error_code = "RETRY_LIMIT_EXCEEDED"

    def __init__(self, order_id: str, limit: int) -> None:
        super().__init__(
            f"Maximum delivery retries ({limit}) exceeded. Contact support.",
            details={"order_id": order_id, "limit": limit},
        )


# ============================================================================
# Royalty Errors
# ============================================================================


class InvalidSplitError(DomainError):
    """Royalty split is empty, has negative shares or does not sum to 10000."""

    error_code = "INVALID_SPLIT"


class MisconfiguredListingError(DomainError):
    """Listing data is inconsistent; operators must fix it."""

    error_code = "MISCONFIGURED_LISTING"

    def __init__(self, listing_id: str, reason: str) -> None:
        super().__init__(
            f"Listing {listing_id} is misconfigured: {reason}",
            details={"listing_id": listing_id, "reason": reason},
        )


# ============================================================================
# Collaborator Errors
# ============================================================================


class DependencyError(DomainError):
    """An external collaborator (payment, storage, e-mail, database) failed."""

    error_code = "DEPENDENCY_ERROR"

    def __init__(
        self,
        dependency: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            f"{dependency}: {message}",
            details={"dependency": dependency, **(details or {})},
        )
        self.dependency = dependency


class PartialPayoutBatchError(DependencyError):
    """Payout batch insertion left an incomplete set of rows."""

    error_code = "PARTIAL_PAYOUT_BATCH"

    def __init__(self, order_id: str, expected: int, stored: int) -> None:
        super().__init__(
            "payout-store",
            f"payout batch for order {order_id} is incomplete ({stored}/{expected} rows)",
            details={"order_id": order_id, "expected": expected, "stored": stored},
        )
