"""
LectureAI Backend - Stripe Webhook Service
============================================

What:  Verifies inbound Stripe events and reconciles completed checkouts
       into user_subscriptions.
How:   RECEIVED → VERIFIED → DISPATCHED, or RECEIVED → REJECTED.
       The signature is checked against the exact raw body bytes with
       stripe.WebhookSignature; nothing in the payload is trusted before that.
Who:   POST /stripe/webhook.

Response policy:
    - bad/missing signature or malformed JSON → WebhookSignatureError (400),
      no side effects
    - checkout.session.completed → one upsert keyed by metadata.user_id
    - any other type → logged and acknowledged (200); Stripe would
      otherwise redeliver it indefinitely
    - persistence failure → DatabaseError (500) so Stripe redelivers later
"""

import json
import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import DatabaseError, WebhookSignatureError
from lectureai.schemas.api import SubscriptionRecord, WebhookOutcome
from lectureai.services.billing_service import NO_USER
from lectureai.services.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def _event_email(session: Dict[str, Any]) -> Optional[str]:
    metadata = session.get("metadata") or {}
    details = session.get("customer_details") or {}
    return metadata.get("email") or details.get("email") or session.get("customer_email")


def record_from_checkout(session: Dict[str, Any]) -> SubscriptionRecord:
    """Build the subscription row for a completed Checkout session object."""
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    if user_id == NO_USER:
        user_id = None

    return SubscriptionRecord(
        user_id=user_id or None,
        email=_event_email(session),
        plan_type=metadata.get("plan_type") or "unknown",
        stripe_customer_id=session.get("customer"),
        subscription_status="active",
    )


class WebhookService:
    """
    Args:
        repository: Where completed checkouts are recorded.
        settings: Webhook secret and timestamp tolerance.
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        settings: Settings = default_settings,
    ):
        self._repository = repository
        self._settings = settings

    def verify(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Check the Stripe-Signature header against the raw body and decode it.

        Raises:
            WebhookSignatureError: header missing, signature or timestamp
                rejected, or the body is not a JSON object.
        """
        if not signature:
            raise WebhookSignatureError(message="Missing stripe-signature header")
        if not self._settings.stripe_webhook_secret:
            raise WebhookSignatureError(message="Webhook secret is not configured")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._settings.stripe_webhook_secret,
                self._settings.stripe_webhook_tolerance,
            )
        except UnicodeDecodeError:
            raise WebhookSignatureError(message="Webhook payload is not valid UTF-8")
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", str(e))
            raise WebhookSignatureError(message=f"Webhook Error: {e}")

        try:
            event = json.loads(body)
        except ValueError as e:
            raise WebhookSignatureError(message=f"Webhook Error: invalid JSON ({e})")
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError(message="Webhook Error: payload is not a Stripe event")
        return event

    async def dispatch(self, event: Dict[str, Any], db: AsyncSession) -> WebhookOutcome:
        event_type = event["type"]
        if event_type != CHECKOUT_COMPLETED:
            logger.info("Ignoring Stripe event %s (%s)", event.get("id"), event_type)
            return WebhookOutcome(event_type=event_type, handled=False)

        session = (event.get("data") or {}).get("object") or {}
        record = record_from_checkout(session)
        await self._repository.upsert(db, record)
        await self._commit(db, event)
        logger.info(
            "Subscription recorded from %s: user_id=%s plan_type=%s",
            event.get("id"),
            record.user_id,
            record.plan_type,
        )
        return WebhookOutcome(event_type=event_type, handled=True)

    async def _commit(self, db: AsyncSession, event: Dict[str, Any]) -> None:
        # Must land before the 200 goes out, or Stripe will never redeliver
        try:
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("Commit failed for Stripe event %s: %s", event.get("id"), str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to record subscription",
                context={"event_id": event.get("id"), "error_type": type(e).__name__},
            )

    async def handle(
        self, payload: bytes, signature: Optional[str], db: AsyncSession
    ) -> WebhookOutcome:
        """Verify, then dispatch. Nothing is persisted for a rejected delivery."""
        event = self.verify(payload, signature)
        return await self.dispatch(event, db)
