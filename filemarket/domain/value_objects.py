"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Self

from filemarket.domain.base import ValueObject
from filemarket.domain.exceptions import ValidationError

BASIS_POINTS_TOTAL = 10_000


# ============================================================================
# Royalty Split
# ============================================================================


@dataclass(frozen=True)
class RoyaltyShare(ValueObject):
    """One participant's allocation in a listing's royalty split.

    Attributes:
        participant_id: Member receiving the payout.
        share_basis_points: Share of the base price, 10000 = 100%.
        position: Ordering of payout rows; no financial meaning.
    """

    participant_id: str
    share_basis_points: int
    position: int = 0


# ============================================================================
# Download Credential
# ============================================================================


@dataclass(frozen=True)
class DownloadCredential(ValueObject):
    """Opaque token granting time-boxed access to a purchased file.

    Attributes:
        token: URL-safe random token.
        expires_at: Instant after which the token no longer grants
            anonymous access.
    """

    token: str
    expires_at: datetime

    @classmethod
    def issue(cls, now: datetime, ttl: timedelta) -> Self:
        """Mint a fresh credential valid for ``ttl`` from ``now``."""
        return cls(token=secrets.token_urlsafe(32), expires_at=now + ttl)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        return f"DownloadCredential(token='***', expires_at={self.expires_at.isoformat()})"


# ============================================================================
# Buyer Identity
# ============================================================================


@dataclass(frozen=True)
class BuyerIdentity(ValueObject):
    """Buyer reference (e-mail address or account reference).

    Comparison is case-insensitive so that ``Buyer@Example.com`` and
    ``buyer@example.com`` denote the same buyer.
    """

    value: str

    @classmethod
    def parse(cls, raw: str | None) -> Self:
        """Normalize and validate a raw identity string.

        Raises:
            ValidationError: If the identity is missing or blank.
        """
        if raw is None or not raw.strip():
            raise ValidationError("Buyer identity is required")
        return cls(value=raw.strip())

    def matches(self, other: str | None) -> bool:
        if other is None:
            return False
        return self.value.casefold() == other.strip().casefold()

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Feature Flags
# ============================================================================

MASTER_SWITCH = "master_switch"
MARKETPLACE_PURCHASE = "marketplace_purchase"
DOWNLOAD_DELIVERY = "download_delivery"


@dataclass(frozen=True)
class FeatureFlags(ValueObject):
    """Frozen snapshot of the override controls.

    A flag counts as enabled only while ``master_switch`` is enabled too.
    Operations receive one snapshot and evaluate it once, so a flag flip
    mid-request does not change the outcome.
    """

    enabled_keys: frozenset[str] = frozenset()

    @classmethod
    def from_mapping(cls, values: Mapping[str, bool]) -> Self:
        return cls(enabled_keys=frozenset(k for k, v in values.items() if v))

    @classmethod
    def enabled(cls, *keys: str) -> Self:
        """Snapshot with ``master_switch`` and ``keys`` turned on."""
        return cls(enabled_keys=frozenset({MASTER_SWITCH, *keys}))

    def is_enabled(self, key: str) -> bool:
        return MASTER_SWITCH in self.enabled_keys and key in self.enabled_keys
