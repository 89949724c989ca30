"""
LectureAI Backend - Billing Service Tests (Stripe mocked)
===========================================================
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from lectureai.exceptions import PaymentServiceError, ValidationError
from lectureai.services.billing_service import BillingService


def stripe_session(session_id: str = "cs_test_1", url: str = "https://checkout.stripe.com/c/pay/cs_test_1"):
    session = MagicMock()
    session.id = session_id
    session.url = url
    return session


class TestCheckout:
    @pytest.mark.asyncio
    async def test_subscription_plan(self, test_settings):
        service = BillingService(test_settings)
        with patch("stripe.checkout.Session.create", return_value=stripe_session()) as create:
            result = await service.create_checkout_session("subscription", "a@b.com", "u1")

        assert result.url.startswith("https://")
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_sub_123", "quantity": 1}]
        assert kwargs["metadata"] == {"plan_type": "subscription", "user_id": "u1", "email": "a@b.com"}
        assert kwargs["customer_email"] == "a@b.com"
        assert kwargs["api_key"] == "sk_test_123"
        assert kwargs["success_url"] == test_settings.success_url
        assert kwargs["cancel_url"] == test_settings.cancel_url

    @pytest.mark.asyncio
    async def test_single_plan_is_one_time_payment(self, test_settings):
        service = BillingService(test_settings)
        with patch("stripe.checkout.Session.create", return_value=stripe_session()) as create:
            await service.create_checkout_session("single")

        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price"] == "price_single_123"
        assert kwargs["metadata"] == {"plan_type": "single", "user_id": "none"}
        assert "customer_email" not in kwargs

    @pytest.mark.asyncio
    @pytest.mark.parametrize("plan_type", [None, "", "enterprise", "SUBSCRIPTION"])
    async def test_unknown_plan_rejected_without_calling_stripe(self, test_settings, plan_type):
        service = BillingService(test_settings)
        with patch("stripe.checkout.Session.create") as create:
            with pytest.raises(ValidationError, match="Invalid plan_type"):
                await service.create_checkout_session(plan_type, "a@b.com", "u1")

        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_price_rejected(self, test_settings):
        test_settings.price_id_subscription = ""
        service = BillingService(test_settings)

        with pytest.raises(ValidationError):
            await service.create_checkout_session("subscription")

    @pytest.mark.asyncio
    async def test_stripe_failure_becomes_payment_error(self, test_settings):
        service = BillingService(test_settings)
        error = stripe.InvalidRequestError("No such price: 'price_sub_123'", param="line_items")
        with patch("stripe.checkout.Session.create", side_effect=error):
            with pytest.raises(PaymentServiceError, match="No such price"):
                await service.create_checkout_session("subscription", user_id="u1")


class TestPortal:
    @pytest.mark.asyncio
    async def test_portal_session_url(self, test_settings):
        service = BillingService(test_settings)
        portal = MagicMock(url="https://billing.stripe.com/p/session/test_1")
        with patch("stripe.billing_portal.Session.create", return_value=portal) as create:
            url = await service.create_portal_session("cus_1", "https://lectureai.bolt.host/settings")

        assert url == "https://billing.stripe.com/p/session/test_1"
        assert create.call_args.kwargs["customer"] == "cus_1"
        assert create.call_args.kwargs["return_url"] == "https://lectureai.bolt.host/settings"

    @pytest.mark.asyncio
    async def test_portal_defaults_return_url(self, test_settings):
        service = BillingService(test_settings)
        with patch("stripe.billing_portal.Session.create", return_value=MagicMock(url="https://x")) as create:
            await service.create_portal_session("cus_1")

        assert create.call_args.kwargs["return_url"] == test_settings.portal_return_url

    @pytest.mark.asyncio
    async def test_portal_without_any_return_url_leaves_it_to_stripe(self, test_settings):
        test_settings.portal_return_url = ""
        service = BillingService(test_settings)
        with patch("stripe.billing_portal.Session.create", return_value=MagicMock(url="https://x")) as create:
            await service.create_portal_session("cus_1")

        assert "return_url" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_portal_requires_customer(self, test_settings):
        service = BillingService(test_settings)
        with patch("stripe.billing_portal.Session.create") as create:
            with pytest.raises(ValidationError, match="customer_id"):
                await service.create_portal_session(None)

        create.assert_not_called()
