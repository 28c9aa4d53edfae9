"""Tests for the royalty calculator."""

import pytest

from filemarket.domain import (
    InvalidSplitError,
    RoyaltyShare,
    ValidationError,
    compute,
    validate_split,
)


def single(participant: str = "originator-1") -> list[RoyaltyShare]:
    return [RoyaltyShare(participant, 10_000)]


class TestPlatformFee:
    """Tests for the buyer total and platform fee."""

    def test_ten_percent_on_top_of_base(self) -> None:
        """A 500 base price charges 550 with a fee of 50."""
        pricing = compute(500, single())
        assert pricing.base_price_minor == 500
        assert pricing.platform_fee_minor == 50
        assert pricing.total_charged_minor == 550

    def test_half_unit_rounds_up(self) -> None:
        """5 * 1.10 = 5.5 rounds half-up to 6."""
        pricing = compute(5, single())
        assert pricing.total_charged_minor == 6
        assert pricing.platform_fee_minor == 1

    def test_below_half_rounds_down(self) -> None:
        """333 * 1.10 = 366.3 rounds to 366."""
        pricing = compute(333, single())
        assert pricing.total_charged_minor == 366
        assert pricing.platform_fee_minor == 33

    def test_total_is_base_plus_fee(self) -> None:
        """Total always equals base plus fee."""
        for base in (0, 1, 7, 99, 1234, 999_999):
            pricing = compute(base, single())
            assert pricing.total_charged_minor == pricing.base_price_minor + pricing.platform_fee_minor

    def test_zero_price(self) -> None:
        """A free listing charges nothing and pays nothing."""
        pricing = compute(0, single())
        assert pricing.total_charged_minor == 0
        assert pricing.payouts[0].amount_minor == 0


class TestPayouts:
    """Tests for participant payouts."""

    def test_single_originator_receives_base(self) -> None:
        """A 100% share receives the full base price."""
        pricing = compute(500, single())
        assert len(pricing.payouts) == 1
        assert pricing.payouts[0].participant_id == "originator-1"
        assert pricing.payouts[0].amount_minor == 500
        assert pricing.residual_minor == 0

    def test_payouts_round_down(self) -> None:
        """Each payout is floored; the residual stays with the platform."""
        split = [
            RoyaltyShare("a", 3333, position=0),
            RoyaltyShare("b", 3333, position=1),
            RoyaltyShare("c", 3334, position=2),
        ]
        pricing = compute(100, split)
        assert [p.amount_minor for p in pricing.payouts] == [33, 33, 33]
        assert pricing.payout_total_minor == 99
        assert pricing.residual_minor == 1

    def test_even_split_of_odd_base(self) -> None:
        """Two halves of 333 are 166 each, leaving 1."""
        split = [RoyaltyShare("a", 5000), RoyaltyShare("b", 5000, position=1)]
        pricing = compute(333, split)
        assert [p.amount_minor for p in pricing.payouts] == [166, 166]
        assert pricing.residual_minor == 1

    def test_payout_total_never_exceeds_base(self) -> None:
        """Sum of payouts stays at or below the base for awkward splits."""
        split = [
            RoyaltyShare("a", 1),
            RoyaltyShare("b", 4999, position=1),
            RoyaltyShare("c", 5000, position=2),
        ]
        for base in (1, 3, 17, 101, 9_999, 123_457):
            pricing = compute(base, split)
            assert pricing.payout_total_minor <= base
            assert pricing.residual_minor >= 0

    def test_payouts_keep_split_order(self) -> None:
        """Payouts come back in the order and positions given."""
        split = [RoyaltyShare("remixer", 3000, position=0), RoyaltyShare("originator", 7000, position=1)]
        pricing = compute(1000, split)
        assert [(p.participant_id, p.amount_minor, p.position) for p in pricing.payouts] == [
            ("remixer", 300, 0),
            ("originator", 700, 1),
        ]


class TestSplitValidation:
    """Tests for split validation."""

    def test_empty_split_rejected(self) -> None:
        with pytest.raises(InvalidSplitError):
            compute(500, [])

    def test_short_split_rejected(self) -> None:
        """Shares summing to 9999 are rejected."""
        with pytest.raises(InvalidSplitError) as exc_info:
            compute(500, [RoyaltyShare("a", 9999)])
        assert exc_info.value.details["total_basis_points"] == 9999

    def test_over_split_rejected(self) -> None:
        """Shares summing to 10001 are rejected."""
        with pytest.raises(InvalidSplitError):
            compute(500, [RoyaltyShare("a", 5001), RoyaltyShare("b", 5000)])

    def test_negative_share_rejected(self) -> None:
        """A negative share is rejected even when the total is 10000."""
        with pytest.raises(InvalidSplitError) as exc_info:
            validate_split([RoyaltyShare("a", -1000), RoyaltyShare("b", 11_000)])
        assert exc_info.value.details["participants"] == ["a"]

    def test_repeated_participant_rejected(self) -> None:
        """Payout rows are keyed by participant, so each may appear once."""
        with pytest.raises(InvalidSplitError) as exc_info:
            validate_split([RoyaltyShare("member-1", 7000), RoyaltyShare("member-1", 3000, 1)])
        assert exc_info.value.details["participants"] == ["member-1"]

    def test_exact_split_accepted(self) -> None:
        validate_split([RoyaltyShare("a", 2500), RoyaltyShare("b", 7500)])


class TestBasePriceValidation:
    """Tests for base price validation."""

    def test_negative_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compute(-1, single())

    def test_non_integer_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compute(5.5, single())  # type: ignore[arg-type]

    def test_bool_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compute(True, single())  # type: ignore[arg-type]
