"""
LectureAI Backend - Subscription Repository
=============================================

What:  Insert-or-update of UserSubscription rows keyed by user_id.
How:   One `INSERT ... ON CONFLICT (user_id) DO UPDATE` statement built with
       the dialect-specific insert construct (PostgreSQL in production,
       SQLite in tests). The database makes it atomic; there is no
       application-level locking, so concurrent deliveries for the same
       user still converge on a single row.
Who:   WebhookService on checkout.session.completed.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from lectureai.exceptions import DatabaseError
from lectureai.models.subscription import UserSubscription, utcnow
from lectureai.schemas.api import SubscriptionRecord

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SubscriptionRepository:
    """Persistence for SubscriptionRecord. Stateless; takes the session per call."""

    async def upsert(self, db: AsyncSession, record: SubscriptionRecord) -> None:
        """
        Insert the record, or update the existing row with the same user_id.

        Raises:
            DatabaseError: the statement failed or the dialect has no upsert.
        """
        dialect = db.get_bind().dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise DatabaseError(
                message="Subscription storage does not support upserts on this database",
                context={"dialect": dialect},
            )

        values = record.model_dump()
        stmt = insert(UserSubscription).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserSubscription.user_id],
            set_={
                "email": stmt.excluded.email,
                "plan_type": stmt.excluded.plan_type,
                "stripe_customer_id": stmt.excluded.stripe_customer_id,
                "subscription_status": stmt.excluded.subscription_status,
                "updated_at": utcnow(),
            },
        )

        try:
            await db.execute(stmt)
            await db.flush()
        except Exception as e:
            logger.error(
                "Subscription upsert failed for user_id=%s: %s",
                record.user_id,
                str(e),
                exc_info=True,
            )
            raise DatabaseError(
                message="Failed to record subscription",
                context={"user_id": record.user_id, "error_type": type(e).__name__},
            )

        logger.info(
            "Subscription upserted: user_id=%s plan_type=%s status=%s",
            record.user_id,
            record.plan_type,
            record.subscription_status,
        )

    async def get_by_user_id(self, db: AsyncSession, user_id: str) -> Optional[UserSubscription]:
        try:
            result = await db.execute(
                select(UserSubscription).where(UserSubscription.user_id == user_id)
            )
        except Exception as e:
            logger.error("Subscription lookup failed for user_id=%s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the subscription",
                context={"user_id": user_id},
            )
        return result.scalar_one_or_none()
