"""SQLAlchemy-backed repositories.

Same contracts as the in-memory repositories. Order writes are issued as
``UPDATE ... WHERE id = ? AND payment_state = ? AND version = ?`` and the
row count decides whether the caller won the race.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filemarket.domain import (
    DownloadCredential,
    FeatureFlags,
    ListingStage,
    Listing,
    Order,
    OverrideControl,
    PaymentEventRecord,
    PaymentEventStatus,
    PaymentState,
    Payout,
    PayoutStatus,
    RoyaltyShare,
    StaleOrderError,
    utc_now,
)
from filemarket.domain.exceptions import ConflictError, DependencyError, NotFoundError
from filemarket.infrastructure.database import session_scope
from filemarket.infrastructure.models import (
    ListingModel,
    OrderModel,
    OverrideControlModel,
    PaymentEventModel,
    PayoutModel,
    RoyaltySplitModel,
)

logger = structlog.get_logger()

SessionFactory = async_sessionmaker[AsyncSession]


def _aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes returned by backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _database_error(exc: SQLAlchemyError) -> DependencyError:
    return DependencyError("database", str(exc.__class__.__name__), details={"error": str(exc)})


# ============================================================================
# Mapping
# ============================================================================


def _listing_from_model(row: ListingModel) -> Listing:
    return Listing(
        id=row.id,
        title=row.title,
        base_price_minor=row.base_price_minor,
        stage=ListingStage(row.stage),
        storage_path=row.storage_path,
        royalty_split=[
            RoyaltyShare(
                participant_id=s.participant_id,
                share_basis_points=s.share_basis_points,
                position=s.position,
            )
            for s in row.royalty_split
        ],
    )


def _order_from_model(row: OrderModel) -> Order:
    credential = None
    if row.download_token is not None and row.download_expires_at is not None:
        credential = DownloadCredential(
            token=row.download_token,
            expires_at=_aware(row.download_expires_at),
        )
    return Order(
        id=row.id,
        listing_id=row.listing_id,
        buyer_identity=row.buyer_identity,
        base_price_minor=row.base_price_minor,
        platform_fee_minor=row.platform_fee_minor,
        total_charged_minor=row.total_charged_minor,
        payment_reference=row.payment_reference,
        payment_state=PaymentState(row.payment_state),
        download_credential=credential,
        download_attempt_count=row.download_attempt_count,
        delivery_retry_count=row.delivery_retry_count,
        paid_at=_aware(row.paid_at),
        refunded_at=_aware(row.refunded_at),
        downloaded_at=_aware(row.downloaded_at),
        version=row.version,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _order_values(order: Order) -> dict:
    credential = order.download_credential
    return {
        "payment_state": order.payment_state.value,
        "download_token": credential.token if credential else None,
        "download_expires_at": credential.expires_at if credential else None,
        "download_attempt_count": order.download_attempt_count,
        "delivery_retry_count": order.delivery_retry_count,
        "paid_at": order.paid_at,
        "refunded_at": order.refunded_at,
        "downloaded_at": order.downloaded_at,
        "version": order.version,
        "updated_at": order.updated_at,
    }


def _payout_from_model(row: PayoutModel) -> Payout:
    return Payout(
        id=row.id,
        order_id=row.order_id,
        participant_id=row.participant_id,
        amount_minor=row.amount_minor,
        position=row.position,
        status=PayoutStatus(row.status),
        created_at=_aware(row.created_at),
        transferred_at=_aware(row.transferred_at),
    )


def _override_from_model(row: OverrideControlModel) -> OverrideControl:
    return OverrideControl(
        feature_key=row.feature_key,
        enabled=row.enabled,
        description=row.description,
        updated_at=_aware(row.updated_at),
        updated_by=row.updated_by,
    )


# ============================================================================
# Listings
# ============================================================================


class SqlListingRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(self, listing_id: str) -> Listing | None:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(ListingModel, listing_id)
                return _listing_from_model(row) if row else None
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def add(self, listing: Listing) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                session.add(
                    ListingModel(
                        id=listing.id,
                        title=listing.title,
                        base_price_minor=listing.base_price_minor,
                        stage=listing.stage.value,
                        storage_path=listing.storage_path,
                        royalty_split=[
                            RoyaltySplitModel(
                                participant_id=s.participant_id,
                                share_basis_points=s.share_basis_points,
                                position=s.position,
                            )
                            for s in listing.royalty_split
                        ],
                    )
                )
        except SQLAlchemyError as e:
            raise _database_error(e) from e


# ============================================================================
# Orders
# ============================================================================


class SqlOrderRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def add(self, order: Order) -> None:
        row = OrderModel(
            id=order.id,
            listing_id=order.listing_id,
            buyer_identity=order.buyer_identity,
            base_price_minor=order.base_price_minor,
            platform_fee_minor=order.platform_fee_minor,
            total_charged_minor=order.total_charged_minor,
            payment_reference=order.payment_reference,
            created_at=order.created_at,
            **_order_values(order),
        )
        try:
            async with session_scope(self._session_factory) as session:
                session.add(row)
        except IntegrityError as e:
            raise ConflictError(
                "Order id or payment reference already exists",
                details={"order_id": order.id, "payment_reference": order.payment_reference},
            ) from e
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def _get_one(self, *criteria) -> Order | None:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(select(OrderModel).where(*criteria))
                row = result.scalar_one_or_none()
                return _order_from_model(row) if row else None
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def get(self, order_id: str) -> Order | None:
        return await self._get_one(OrderModel.id == order_id)

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        return await self._get_one(OrderModel.payment_reference == payment_reference)

    async def get_by_token(self, token: str) -> Order | None:
        return await self._get_one(OrderModel.download_token == token)

    async def save(
        self,
        order: Order,
        expected_version: int,
        expected_state: PaymentState,
    ) -> None:
        """Conditionally update the order row.

        Raises:
            StaleOrderError: If no row matched the expected version and state.
        """
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order.id,
                OrderModel.payment_state == expected_state.value,
                OrderModel.version == expected_version,
            )
            .values(**_order_values(order))
            .execution_options(synchronize_session=False)
        )
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(stmt)
                matched = result.rowcount
        except SQLAlchemyError as e:
            raise _database_error(e) from e
        if matched != 1:
            raise StaleOrderError(order.id, expected_version)


# ============================================================================
# Payouts
# ============================================================================


class SqlPayoutRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def add_batch(self, order_id: str, payouts: Sequence[Payout]) -> list[Payout]:
        """Insert all payouts for an order in one transaction.

        If a batch already exists (or a concurrent writer inserted it first)
        the stored rows are returned instead.
        """
        try:
            async with session_scope(self._session_factory) as session:
                existing = await session.scalar(
                    select(func.count()).select_from(PayoutModel).where(
                        PayoutModel.order_id == order_id
                    )
                )
                if existing:
                    logger.info("Payout batch already exists", order_id=order_id, rows=existing)
                else:
                    session.add_all(
                        PayoutModel(
                            id=p.id,
                            order_id=order_id,
                            participant_id=p.participant_id,
                            position=p.position,
                            amount_minor=p.amount_minor,
                            status=p.status.value,
                            created_at=p.created_at,
                        )
                        for p in payouts
                    )
        except IntegrityError:
            logger.warning("Concurrent payout batch insert detected", order_id=order_id)
        except SQLAlchemyError as e:
            raise _database_error(e) from e
        return await self.list_for_order(order_id)

    async def list_for_order(self, order_id: str) -> list[Payout]:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(PayoutModel)
                    .where(PayoutModel.order_id == order_id)
                    .order_by(PayoutModel.position)
                )
                return [_payout_from_model(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def save(self, payout: Payout) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(PayoutModel)
                    .where(PayoutModel.id == payout.id)
                    .values(status=payout.status.value, transferred_at=payout.transferred_at)
                )
                matched = result.rowcount
        except SQLAlchemyError as e:
            raise _database_error(e) from e
        if matched != 1:
            raise NotFoundError(f"Payout not found: {payout.id}")


# ============================================================================
# Override Controls
# ============================================================================


class SqlOverrideRepository:
    def __init__(
        self,
        session_factory: SessionFactory,
        defaults: Mapping[str, bool] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._defaults = dict(defaults or {})

    async def seed_defaults(self) -> None:
        """Insert rows for default keys that are not stored yet."""
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(select(OverrideControlModel.feature_key))
                stored = set(result.scalars())
                session.add_all(
                    OverrideControlModel(feature_key=key, enabled=enabled)
                    for key, enabled in self._defaults.items()
                    if key not in stored
                )
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def list_all(self) -> list[OverrideControl]:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(OverrideControlModel).order_by(OverrideControlModel.feature_key)
                )
                return [_override_from_model(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def get(self, feature_key: str) -> OverrideControl | None:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(OverrideControlModel, feature_key)
                return _override_from_model(row) if row else None
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def set(
        self,
        feature_key: str,
        enabled: bool,
        updated_by: str | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> OverrideControl:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(OverrideControlModel, feature_key)
                if row is None:
                    row = OverrideControlModel(feature_key=feature_key)
                    session.add(row)
                row.enabled = enabled
                row.updated_by = updated_by
                row.updated_at = now or utc_now()
                if description is not None:
                    row.description = description
                await session.flush()
                return _override_from_model(row)
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def snapshot(self) -> FeatureFlags:
        controls = await self.list_all()
        values = dict(self._defaults)
        values.update({c.feature_key: c.enabled for c in controls})
        return FeatureFlags.from_mapping(values)


# ============================================================================
# Payment Event Log
# ============================================================================


class SqlPaymentEventLog:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record(self, record: PaymentEventRecord) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                session.add(
                    PaymentEventModel(
                        id=record.id,
                        provider_event_id=record.provider_event_id,
                        kind=record.kind,
                        payment_reference=record.payment_reference,
                        status=record.status.value,
                        error_code=record.error_code,
                        message=record.message,
                        received_at=record.received_at,
                    )
                )
        except SQLAlchemyError as e:
            raise _database_error(e) from e

    async def list_recent(self, limit: int = 50) -> list[PaymentEventRecord]:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(PaymentEventModel)
                    .order_by(PaymentEventModel.received_at.desc())
                    .limit(limit)
                )
                return [
                    PaymentEventRecord(
                        id=row.id,
                        kind=row.kind,
                        status=PaymentEventStatus(row.status),
                        payment_reference=row.payment_reference,
                        provider_event_id=row.provider_event_id,
                        error_code=row.error_code,
                        message=row.message,
                        received_at=_aware(row.received_at),
                    )
                    for row in result.scalars()
                ]
        except SQLAlchemyError as e:
            raise _database_error(e) from e
