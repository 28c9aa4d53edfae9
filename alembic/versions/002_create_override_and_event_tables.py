"""Create override_controls and payment_events tables.

Revision ID: 002
Revises: 001
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create override_controls and payment_events tables."""
    # Override controls (feature flags gated by master_switch)
    op.create_table(
        'override_controls',
        sa.Column('feature_key', sa.String(100), primary_key=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_by', sa.String(255), nullable=True),
    )

    # Payment event audit log
    op.create_table(
        'payment_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider_event_id', sa.String(255), nullable=True, index=True),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_code', sa.String(50), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )


def downgrade() -> None:
    """Drop payment_events and override_controls tables."""
    op.drop_table('payment_events')
    op.drop_table('override_controls')
