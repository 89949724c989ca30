"""Create user_subscriptions table

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

What:  Creates the `user_subscriptions` table written by the Stripe webhook.
How:   Unique constraint on user_id is the conflict target of the upsert.

Rollback: downgrade() drops the table entirely (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the user_subscriptions table and its unique user_id constraint."""
    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.String(255),
            nullable=True,
            comment="Frontend user identifier carried in checkout metadata",
        ),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column(
            "plan_type",
            sa.String(50),
            nullable=False,
            server_default=sa.text("'unknown'"),
            comment="subscription | single | unknown",
        ),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column(
            "subscription_status",
            sa.String(50),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_user_subscriptions_user_id"),
    )


def downgrade() -> None:
    """Drop the user_subscriptions table (all subscription rows are lost)."""
    op.drop_table("user_subscriptions")
