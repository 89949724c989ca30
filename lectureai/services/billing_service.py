"""
LectureAI Backend - Billing Service (Stripe)
==============================================

What:  Creates hosted Stripe Checkout and Billing Portal sessions.
How:   The Stripe SDK is synchronous, so each call runs in the threadpool
       and only suspends the request that made it. The secret key is passed
       per call; the module-global `stripe.api_key` is never set.
Who:   POST /create-checkout-session and POST /create-portal-session.

Plan resolution:
    plan_type        price setting            checkout mode
    ─────────────    ─────────────────────    ─────────────
    "subscription"   PRICE_ID_SUBSCRIPTION    subscription
    "single"         PRICE_ID_SINGLE          payment

    Anything else, or a plan whose price is not configured, is a client
    error. plan_type and user_id travel as session metadata so the webhook
    can recover them without a database lookup.
"""

import logging
from typing import Dict, Optional, Tuple

import stripe
from fastapi.concurrency import run_in_threadpool

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import PaymentServiceError, ValidationError
from lectureai.schemas.api import CheckoutSessionResult

logger = logging.getLogger(__name__)

CHECKOUT_MODES = {
    "subscription": "subscription",
    "single": "payment",
}

# Metadata value the webhook reads as "no user identity"
NO_USER = "none"


class BillingService:
    """Stripe Checkout and Billing Portal sessions."""

    def __init__(self, settings: Settings = default_settings):
        self._settings = settings

    def resolve_plan(self, plan_type: Optional[str]) -> Tuple[str, str]:
        """
        Map a plan tag to (price_id, mode).

        Raises:
            ValidationError: unknown tag or no price configured for it.
        """
        price_id = self._settings.price_for_plan(plan_type)
        if not price_id:
            logger.warning("Checkout rejected: unresolvable plan_type=%r", plan_type)
            raise ValidationError(
                message="Invalid plan_type or missing priceId",
                field="plan_type",
                context={"plan_type": plan_type, "allowed": sorted(CHECKOUT_MODES)},
            )
        return price_id, CHECKOUT_MODES[plan_type]

    async def create_checkout_session(
        self,
        plan_type: Optional[str],
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CheckoutSessionResult:
        """
        Create a Checkout session for one unit of the plan's price.

        Raises:
            ValidationError: the plan cannot be resolved to a price.
            PaymentServiceError: Stripe rejected the request.
        """
        price_id, mode = self.resolve_plan(plan_type)

        metadata: Dict[str, str] = {
            "plan_type": plan_type,
            "user_id": user_id or NO_USER,
        }
        params = {
            "mode": mode,
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "metadata": metadata,
            "success_url": self._settings.success_url,
            "cancel_url": self._settings.cancel_url,
        }
        if email:
            metadata["email"] = email
            params["customer_email"] = email

        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                api_key=self._settings.stripe_secret_key,
                **params,
            )
        except stripe.StripeError as e:
            logger.error("Checkout session creation failed: %s", str(e))
            raise PaymentServiceError(
                message=e.user_message or str(e),
                context={"plan_type": plan_type, "error_type": type(e).__name__},
            )

        logger.info(
            "Checkout session created: %s (plan_type=%s, mode=%s)", session.id, plan_type, mode
        )
        return CheckoutSessionResult(id=session.id, url=session.url)

    async def create_portal_session(
        self, customer_id: Optional[str], return_url: Optional[str] = None
    ) -> str:
        """
        Create a Billing Portal session and return its URL.

        Raises:
            ValidationError: no customer id supplied.
            PaymentServiceError: Stripe rejected the request.
        """
        if not customer_id:
            raise ValidationError(message="customer_id is required", field="customer_id")

        params = {"customer": customer_id}
        return_url = return_url or self._settings.portal_return_url
        if return_url:
            params["return_url"] = return_url

        try:
            session = await run_in_threadpool(
                stripe.billing_portal.Session.create,
                api_key=self._settings.stripe_secret_key,
                **params,
            )
        except stripe.StripeError as e:
            logger.error("Portal session creation failed for %s: %s", customer_id, str(e))
            raise PaymentServiceError(
                message=e.user_message or str(e),
                context={"customer_id": customer_id, "error_type": type(e).__name__},
            )

        logger.info("Portal session created for customer %s", customer_id)
        return session.url
