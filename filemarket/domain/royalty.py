"""Royalty calculator.

Computes the platform fee charged on top of a listing's base price and
each split participant's payout.

Rounding rules:
    * The buyer pays ``base * 1.10`` rounded half-up to a whole minor unit;
      the platform fee is whatever that adds to the base price.
    * Each payout is ``base * share / 10000`` rounded down. Rounding down
      keeps the payout total at or below the base price; leftover minor
      units stay with the platform and are never redistributed.

All arithmetic runs on ``Decimal`` so results are reproducible exactly.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from filemarket.domain.exceptions import InvalidSplitError, ValidationError
from filemarket.domain.value_objects import BASIS_POINTS_TOTAL, RoyaltyShare

PLATFORM_FEE_MULTIPLIER = Decimal("1.10")


@dataclass(frozen=True)
class ParticipantPayout:
    """Computed payout for one split participant."""

    participant_id: str
    amount_minor: int
    position: int = 0


@dataclass(frozen=True)
class PricingBreakdown:
    """Result of a royalty computation.

    Attributes:
        base_price_minor: Listing price the split applies to.
        platform_fee_minor: Surcharge retained by the platform.
        total_charged_minor: Amount charged to the buyer.
        payouts: One entry per participant, in split order.
    """

    base_price_minor: int
    platform_fee_minor: int
    total_charged_minor: int
    payouts: tuple[ParticipantPayout, ...]

    @property
    def payout_total_minor(self) -> int:
        return sum(p.amount_minor for p in self.payouts)

    @property
    def residual_minor(self) -> int:
        """Minor units of the base price left unallocated by rounding."""
        return self.base_price_minor - self.payout_total_minor


def validate_split(splits: Sequence[RoyaltyShare]) -> None:
    """Check that a split can price an order.

    Shares must be non-negative and sum to 10000 basis points, and each
    participant may appear only once since payouts are keyed by participant.

    Raises:
        InvalidSplitError: If the split cannot be used for an order.
    """
    if not splits:
        raise InvalidSplitError("Royalty split is empty")

    negative = [s.participant_id for s in splits if s.share_basis_points < 0]
    if negative:
        raise InvalidSplitError(
            "Royalty split contains negative shares",
            details={"participants": negative},
        )

    counts = Counter(s.participant_id for s in splits)
    repeated = sorted(p for p, n in counts.items() if n > 1)
    if repeated:
        raise InvalidSplitError(
            "Royalty split lists a participant more than once",
            details={"participants": repeated},
        )

    total = sum(s.share_basis_points for s in splits)
    if total != BASIS_POINTS_TOTAL:
        raise InvalidSplitError(
            f"Royalty shares sum to {total} basis points, expected {BASIS_POINTS_TOTAL}",
            details={"total_basis_points": total},
        )


def compute(base_price_minor: int, splits: Sequence[RoyaltyShare]) -> PricingBreakdown:
    """Compute platform fee, buyer total and participant payouts.

    Args:
        base_price_minor: Listing base price in minor currency units.
        splits: Ordered royalty split; shares must sum to 10000.

    Returns:
        PricingBreakdown with payouts in the order given.

    Raises:
        ValidationError: If the base price is negative or not an integer.
        InvalidSplitError: If the split is invalid.
    """
    if isinstance(base_price_minor, bool) or not isinstance(base_price_minor, int):
        raise ValidationError(
            "Base price must be an integer number of minor units",
            details={"base_price_minor": repr(base_price_minor)},
        )
    if base_price_minor < 0:
        raise ValidationError(
            "Base price cannot be negative",
            details={"base_price_minor": base_price_minor},
        )
    validate_split(splits)

    base = Decimal(base_price_minor)
    total = int((base * PLATFORM_FEE_MULTIPLIER).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    payouts = tuple(
        ParticipantPayout(
            participant_id=share.participant_id,
            amount_minor=int(
                (base * share.share_basis_points / BASIS_POINTS_TOTAL).quantize(
                    Decimal(1), rounding=ROUND_DOWN
                )
            ),
            position=share.position,
        )
        for share in splits
    )

    return PricingBreakdown(
        base_price_minor=base_price_minor,
        platform_fee_minor=total - base_price_minor,
        total_charged_minor=total,
        payouts=payouts,
    )
