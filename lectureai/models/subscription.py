"""
LectureAI Backend - UserSubscription SQLAlchemy Model
=======================================================

What:  ORM model for the `user_subscriptions` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads it for migrations.
Who:   Written only by SubscriptionRepository on behalf of the webhook handler.

Table Design:
    - id: surrogate key
    - user_id: unique; the upsert conflict target. NULL when the checkout
      carried no user identity (NULLs never conflict, so such rows are
      not merged)
    - subscription_status: 'active' once a checkout completes; no flow in
      this service moves it back
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from lectureai.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserSubscription(Base):
    """A paying user's plan, keyed by the frontend's user identifier."""

    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Frontend user identifier carried in checkout metadata",
    )

    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    plan_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="unknown",
        server_default=text("'unknown'"),
        comment="subscription | single | unknown",
    )

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    subscription_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="active",
        server_default=text("'active'"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserSubscription(user_id={self.user_id}, plan_type='{self.plan_type}', "
            f"status='{self.subscription_status}')>"
        )
