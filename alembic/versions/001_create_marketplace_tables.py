"""Create listings, royalty_splits, orders and payouts tables.

Revision ID: 001
Revises:
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create listings, royalty_splits, orders and payouts tables."""
    # Listings table
    op.create_table(
        'listings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('base_price_minor', sa.Integer(), nullable=False),
        sa.Column('stage', sa.String(20), nullable=False, server_default='draft', index=True),
        sa.Column('storage_path', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('base_price_minor >= 0', name='ck_listings_base_price_non_negative'),
    )

    # Royalty splits table
    op.create_table(
        'royalty_splits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('listing_id', sa.String(36),
                  sa.ForeignKey('listings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('participant_id', sa.String(100), nullable=False),
        sa.Column('share_basis_points', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint(
            'share_basis_points > 0 AND share_basis_points <= 10000',
            name='ck_royalty_splits_share_range',
        ),
    )
    op.create_unique_constraint(
        'uq_royalty_splits_listing_participant',
        'royalty_splits',
        ['listing_id', 'participant_id'],
    )

    # Orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('listing_id', sa.String(36), sa.ForeignKey('listings.id'), nullable=False, index=True),
        sa.Column('buyer_identity', sa.String(255), nullable=False, index=True),
        sa.Column('base_price_minor', sa.Integer(), nullable=False),
        sa.Column('platform_fee_minor', sa.Integer(), nullable=False),
        sa.Column('total_charged_minor', sa.Integer(), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=False, unique=True),
        sa.Column('payment_state', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('download_token', sa.String(255), nullable=True, unique=True),
        sa.Column('download_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('download_attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('downloaded_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Payouts table
    op.create_table(
        'payouts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('participant_id', sa.String(100), nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_minor', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending', index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('transferred_at', sa.DateTime(timezone=True), nullable=True),
    )

    # One payout per participant per order
    op.create_unique_constraint(
        'uq_payouts_order_participant',
        'payouts',
        ['order_id', 'participant_id'],
    )


def downgrade() -> None:
    """Drop payouts, orders, royalty_splits and listings tables."""
    op.drop_table('payouts')
    op.drop_table('orders')
    op.drop_table('royalty_splits')
    op.drop_table('listings')
