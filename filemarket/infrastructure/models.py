"""SQLAlchemy models for database tables.

Provides ORM models for listings, royalty splits, orders, payouts,
override controls and the payment event log.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from filemarket.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Listing Models
# ============================================================================


class ListingModel(Base):
    """Sellable design file.

    Only the columns the order engine reads are mapped here; upload and
    validation metadata live with the upload pipeline.
    """

    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(255), nullable=False)
    base_price_minor = Column(Integer, nullable=False)
    stage = Column(String(20), nullable=False, default="draft", index=True)
    storage_path = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    royalty_split = relationship(
        "RoyaltySplitModel",
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="RoyaltySplitModel.position",
        lazy="selectin",
    )


class RoyaltySplitModel(Base):
    """One participant's share in a listing's royalty split."""

    __tablename__ = "royalty_splits"
    __table_args__ = (UniqueConstraint("listing_id", "participant_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    listing_id = Column(
        String(36),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(String(100), nullable=False)
    share_basis_points = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    listing = relationship("ListingModel", back_populates="royalty_split")


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Purchase record. Rows are never deleted."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    listing_id = Column(String(36), ForeignKey("listings.id"), nullable=False, index=True)
    buyer_identity = Column(String(255), nullable=False, index=True)

    # Amounts (minor units)
    base_price_minor = Column(Integer, nullable=False)
    platform_fee_minor = Column(Integer, nullable=False)
    total_charged_minor = Column(Integer, nullable=False)

    # Payment
    payment_reference = Column(String(255), nullable=False, unique=True)
    payment_state = Column(String(20), nullable=False, default="pending", index=True)

    # Download delivery
    download_token = Column(String(255), nullable=True, unique=True)
    download_expires_at = Column(DateTime(timezone=True), nullable=True)
    download_attempt_count = Column(Integer, nullable=False, default=0)
    delivery_retry_count = Column(Integer, nullable=False, default=0)

    # Concurrency token
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    downloaded_at = Column(DateTime(timezone=True), nullable=True)

    payouts = relationship("PayoutModel", back_populates="order", order_by="PayoutModel.position")


class PayoutModel(Base):
    """Amount owed to a royalty participant for a paid order."""

    __tablename__ = "payouts"
    __table_args__ = (UniqueConstraint("order_id", "participant_id"),)

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    participant_id = Column(String(100), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    amount_minor = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    transferred_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("OrderModel", back_populates="payouts")


# ============================================================================
# Override Controls
# ============================================================================


class OverrideControlModel(Base):
    """Feature flag row; effective only together with ``master_switch``."""

    __tablename__ = "override_controls"

    feature_key = Column(String(100), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_by = Column(String(255), nullable=True)


# ============================================================================
# Payment Event Log
# ============================================================================


class PaymentEventModel(Base):
    """Audit record of an inbound payment notification."""

    __tablename__ = "payment_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    provider_event_id = Column(String(255), nullable=True, index=True)
    kind = Column(String(50), nullable=False)
    payment_reference = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=False)
    error_code = Column(String(50), nullable=True)
    message = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
