"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for order payment, payouts and the download credential lifecycle.
"""

from enum import Enum

from filemarket.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Listing Stage
# ============================================================================


class ListingStage(str, Enum):
    """Publication stage of a listing. Only LISTED is purchasable."""

    DRAFT = "draft"
    LISTED = "listed"
    UNLISTED = "unlisted"
    REMOVED = "removed"

    def is_purchasable(self) -> bool:
        return self == ListingStage.LISTED


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentState(str, Enum):
    """Order payment lifecycle states.

    State diagram:
        PENDING ─────────────────────────► FAILED
          │
          │ checkout completed
          ▼
        PAID
          │
          │ charge refunded
          ▼
        REFUNDED
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentState") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentState"]:
        """Get list of valid target states."""
        return list(_PAYMENT_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0


# Payment state transitions (defined outside enum to avoid Enum restrictions)
_PAYMENT_TRANSITIONS: dict[PaymentState, set[PaymentState]] = {
    PaymentState.PENDING: {PaymentState.PAID, PaymentState.FAILED},
    PaymentState.PAID: {PaymentState.REFUNDED},
    PaymentState.FAILED: set(),  # Terminal state
    PaymentState.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Payout State Machine
# ============================================================================


class PayoutStatus(str, Enum):
    """Payout row lifecycle states.

    State diagram:
        PENDING ──► TRANSFERRED
           │
           └──────► FAILED
    """

    PENDING = "pending"
    TRANSFERRED = "transferred"
    FAILED = "failed"

    def can_transition_to(self, target: "PayoutStatus") -> bool:
        return target in _PAYOUT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PayoutStatus"]:
        return list(_PAYOUT_TRANSITIONS.get(self, set()))


_PAYOUT_TRANSITIONS: dict[PayoutStatus, set[PayoutStatus]] = {
    PayoutStatus.PENDING: {PayoutStatus.TRANSFERRED, PayoutStatus.FAILED},
    PayoutStatus.TRANSFERRED: set(),
    PayoutStatus.FAILED: set(),
}


# ============================================================================
# Credential Lifecycle
# ============================================================================


class CredentialState(str, Enum):
    """Derived state of an order's download credential.

    State diagram:
        NONE ──pay──► ISSUED ──time──► EXPIRED ──renew──► ISSUED
                                          │
                                          │ retry budget spent
                                          ▼
                                    RETRY_EXHAUSTED
    """

    NONE = "none"
    ISSUED = "issued"
    EXPIRED = "expired"
    RETRY_EXHAUSTED = "retry_exhausted"


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_payment_transition(
    order_id: str,
    current_state: PaymentState,
    target_state: PaymentState,
) -> None:
    """Validate and raise if an order payment transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_state: Current payment state.
        target_state: Target payment state.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_state.can_transition_to(target_state):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_state.value,
            target_state=target_state.value,
            allowed_transitions=[s.value for s in current_state.allowed_transitions()],
        )


def validate_payout_transition(
    payout_id: str,
    current_status: PayoutStatus,
    target_status: PayoutStatus,
) -> None:
    """Validate and raise if a payout status transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Payout",
            entity_id=payout_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
