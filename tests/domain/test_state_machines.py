"""Tests for domain state machines."""

import pytest

from filemarket.domain import (
    InvalidStateTransitionError,
    ListingStage,
    PaymentState,
    PayoutStatus,
    validate_payment_transition,
    validate_payout_transition,
)


class TestPaymentState:
    """Tests for PaymentState state machine."""

    def test_pending_can_be_paid_or_failed(self) -> None:
        """PENDING can transition to PAID or FAILED."""
        assert PaymentState.PENDING.can_transition_to(PaymentState.PAID)
        assert PaymentState.PENDING.can_transition_to(PaymentState.FAILED)

    def test_pending_cannot_be_refunded(self) -> None:
        """PENDING cannot skip straight to REFUNDED."""
        assert not PaymentState.PENDING.can_transition_to(PaymentState.REFUNDED)

    def test_paid_can_only_be_refunded(self) -> None:
        """PAID can only transition to REFUNDED."""
        assert PaymentState.PAID.allowed_transitions() == [PaymentState.REFUNDED]
        assert not PaymentState.PAID.can_transition_to(PaymentState.FAILED)
        assert not PaymentState.PAID.can_transition_to(PaymentState.PENDING)

    def test_failed_is_terminal(self) -> None:
        assert PaymentState.FAILED.is_terminal()
        assert PaymentState.FAILED.allowed_transitions() == []

    def test_refunded_is_terminal(self) -> None:
        assert PaymentState.REFUNDED.is_terminal()

    def test_pending_is_not_terminal(self) -> None:
        assert not PaymentState.PENDING.is_terminal()

    def test_state_values(self) -> None:
        """State values are stable strings."""
        assert [s.value for s in PaymentState] == ["pending", "paid", "failed", "refunded"]


class TestPayoutStatus:
    """Tests for PayoutStatus state machine."""

    def test_pending_can_transfer_or_fail(self) -> None:
        assert PayoutStatus.PENDING.can_transition_to(PayoutStatus.TRANSFERRED)
        assert PayoutStatus.PENDING.can_transition_to(PayoutStatus.FAILED)

    def test_transferred_is_final(self) -> None:
        assert PayoutStatus.TRANSFERRED.allowed_transitions() == []
        assert not PayoutStatus.TRANSFERRED.can_transition_to(PayoutStatus.FAILED)


class TestListingStage:
    def test_only_listed_is_purchasable(self) -> None:
        """Only LISTED listings can be bought."""
        assert ListingStage.LISTED.is_purchasable()
        for stage in (ListingStage.DRAFT, ListingStage.UNLISTED, ListingStage.REMOVED):
            assert not stage.is_purchasable()


class TestValidateTransitions:
    """Tests for the validate_* helpers."""

    def test_valid_payment_transition_passes(self) -> None:
        validate_payment_transition("order-1", PaymentState.PENDING, PaymentState.PAID)

    def test_invalid_payment_transition_raises(self) -> None:
        """Error carries the entity, states and allowed targets."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_payment_transition("order-1", PaymentState.FAILED, PaymentState.PAID)

        details = exc_info.value.details
        assert details["entity_type"] == "Order"
        assert details["entity_id"] == "order-1"
        assert details["current_state"] == "failed"
        assert details["target_state"] == "paid"
        assert details["allowed_transitions"] == []

    def test_invalid_payout_transition_raises(self) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_payout_transition("payout-1", PayoutStatus.FAILED, PayoutStatus.TRANSFERRED)
        assert exc_info.value.details["entity_type"] == "Payout"
