"""Repository interfaces and in-memory implementations.

Every order write is a compare-and-swap: the stored row must still carry
the version and payment state the caller loaded, otherwise the write is
rejected with ``StaleOrderError``. The in-memory implementations perform the
check and the write without awaiting in between, which makes them atomic
with respect to other coroutines on the same event loop.

Stored objects are copies; callers never share mutable state with the store.
"""

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Protocol

import structlog

from filemarket.domain import (
    FeatureFlags,
    Listing,
    Order,
    OverrideControl,
    PaymentEventRecord,
    PaymentState,
    Payout,
    StaleOrderError,
    utc_now,
)
from filemarket.domain.exceptions import ConflictError, NotFoundError

logger = structlog.get_logger()


# ============================================================================
# Repository Protocols
# ============================================================================


class ListingRepository(Protocol):
    async def get(self, listing_id: str) -> Listing | None: ...

    async def add(self, listing: Listing) -> None: ...


class OrderRepository(Protocol):
    async def add(self, order: Order) -> None: ...

    async def get(self, order_id: str) -> Order | None: ...

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None: ...

    async def get_by_token(self, token: str) -> Order | None: ...

    async def save(
        self,
        order: Order,
        expected_version: int,
        expected_state: PaymentState,
    ) -> None: ...


class PayoutRepository(Protocol):
    async def add_batch(self, order_id: str, payouts: Sequence[Payout]) -> list[Payout]: ...

    async def list_for_order(self, order_id: str) -> list[Payout]: ...

    async def save(self, payout: Payout) -> None: ...


class OverrideRepository(Protocol):
    async def list_all(self) -> list[OverrideControl]: ...

    async def get(self, feature_key: str) -> OverrideControl | None: ...

    async def set(
        self,
        feature_key: str,
        enabled: bool,
        updated_by: str | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> OverrideControl: ...

    async def snapshot(self) -> FeatureFlags: ...


class PaymentEventLog(Protocol):
    async def record(self, record: PaymentEventRecord) -> None: ...

    async def list_recent(self, limit: int = 50) -> list[PaymentEventRecord]: ...


# ============================================================================
# In-Memory Implementations
# ============================================================================


class InMemoryListingRepository:
    """In-memory listing store, used for local runs and tests."""

    def __init__(self, listings: Sequence[Listing] = ()) -> None:
        self._listings: dict[str, Listing] = {listing.id: listing for listing in listings}

    async def get(self, listing_id: str) -> Listing | None:
        return self._listings.get(listing_id)

    async def add(self, listing: Listing) -> None:
        self._listings[listing.id] = listing


class InMemoryOrderRepository:
    """In-memory order store with compare-and-swap writes."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._by_reference: dict[str, str] = {}
        self._by_token: dict[str, str] = {}

    @staticmethod
    def _copy(order: Order) -> Order:
        return replace(order)

    async def add(self, order: Order) -> None:
        """Insert a new order.

        Raises:
            ConflictError: If the id or payment reference is already used.
        """
        if order.id in self._orders:
            raise ConflictError(f"Order {order.id} already exists")
        if order.payment_reference in self._by_reference:
            raise ConflictError(
                "Payment reference already belongs to another order",
                details={"payment_reference": order.payment_reference},
            )
        self._orders[order.id] = self._copy(order)
        self._by_reference[order.payment_reference] = order.id
        self._index_token(None, order)

    async def get(self, order_id: str) -> Order | None:
        stored = self._orders.get(order_id)
        return self._copy(stored) if stored else None

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        order_id = self._by_reference.get(payment_reference)
        return await self.get(order_id) if order_id else None

    async def get_by_token(self, token: str) -> Order | None:
        order_id = self._by_token.get(token)
        return await self.get(order_id) if order_id else None

    async def save(
        self,
        order: Order,
        expected_version: int,
        expected_state: PaymentState,
    ) -> None:
        """Conditionally replace the stored order.

        Raises:
            NotFoundError: If the order was never added.
            StaleOrderError: If the stored version or state moved on.
        """
        stored = self._orders.get(order.id)
        if stored is None:
            raise NotFoundError(f"Order not found: {order.id}")
        if stored.version != expected_version or stored.payment_state != expected_state:
            raise StaleOrderError(order.id, expected_version)
        self._index_token(stored, order)
        self._orders[order.id] = self._copy(order)

    def _index_token(self, previous: Order | None, current: Order) -> None:
        if previous is not None and previous.download_credential is not None:
            self._by_token.pop(previous.download_credential.token, None)
        if current.download_credential is not None:
            self._by_token[current.download_credential.token] = current.id

    def list_all(self) -> list[Order]:
        return [self._copy(o) for o in self._orders.values()]


class InMemoryPayoutRepository:
    """In-memory payout store; batches are written in one step."""

    def __init__(self) -> None:
        self._by_order: dict[str, list[Payout]] = {}

    async def add_batch(self, order_id: str, payouts: Sequence[Payout]) -> list[Payout]:
        """Insert all payouts for an order, or none.

        A second call for the same order returns the existing batch
        unchanged.
        """
        existing = self._by_order.get(order_id)
        if existing:
            logger.info("Payout batch already exists", order_id=order_id, rows=len(existing))
            return [replace(p) for p in existing]

        participants = [p.participant_id for p in payouts]
        if len(set(participants)) != len(participants):
            raise ConflictError(
                "Payout batch lists a participant twice",
                details={"order_id": order_id, "participants": participants},
            )
        if any(p.order_id != order_id for p in payouts):
            raise ConflictError(
                "Payout batch mixes orders",
                details={"order_id": order_id},
            )

        self._by_order[order_id] = [replace(p) for p in payouts]
        return [replace(p) for p in payouts]

    async def list_for_order(self, order_id: str) -> list[Payout]:
        rows = self._by_order.get(order_id, [])
        return sorted((replace(p) for p in rows), key=lambda p: p.position)

    async def save(self, payout: Payout) -> None:
        rows = self._by_order.get(payout.order_id, [])
        for i, row in enumerate(rows):
            if row.id == payout.id:
                rows[i] = replace(payout)
                return
        raise NotFoundError(f"Payout not found: {payout.id}")


class InMemoryOverrideRepository:
    """In-memory override controls, seeded from configured defaults."""

    def __init__(self, defaults: Mapping[str, bool] | None = None) -> None:
        self._controls: dict[str, OverrideControl] = {
            key: OverrideControl(feature_key=key, enabled=enabled)
            for key, enabled in (defaults or {}).items()
        }

    async def list_all(self) -> list[OverrideControl]:
        return [replace(c) for c in sorted(self._controls.values(), key=lambda c: c.feature_key)]

    async def get(self, feature_key: str) -> OverrideControl | None:
        control = self._controls.get(feature_key)
        return replace(control) if control else None

    async def set(
        self,
        feature_key: str,
        enabled: bool,
        updated_by: str | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> OverrideControl:
        current = self._controls.get(feature_key)
        control = OverrideControl(
            feature_key=feature_key,
            enabled=enabled,
            description=description if description is not None else (
                current.description if current else None
            ),
            updated_at=now or utc_now(),
            updated_by=updated_by,
        )
        self._controls[feature_key] = control
        return replace(control)

    async def snapshot(self) -> FeatureFlags:
        return FeatureFlags.from_mapping({k: c.enabled for k, c in self._controls.items()})


class InMemoryPaymentEventLog:
    """Bounded in-memory audit log of payment notifications."""

    def __init__(self, max_entries: int = 1000) -> None:
        self._records: list[PaymentEventRecord] = []
        self._max_entries = max_entries

    async def record(self, record: PaymentEventRecord) -> None:
        self._records.append(record)
        if len(self._records) > self._max_entries:
            del self._records[: len(self._records) - self._max_entries]

    async def list_recent(self, limit: int = 50) -> list[PaymentEventRecord]:
        return list(reversed(self._records[-limit:]))
