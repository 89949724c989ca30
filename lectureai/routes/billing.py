"""
LectureAI Backend - Billing Routes
====================================

POST /create-checkout-session   {plan_type, user_id?, email?} → {url}
POST /create-portal-session     {customer_id, return_url?}    → {url}
"""

import logging

from fastapi import APIRouter, Depends

from lectureai.dependencies import get_billing_service
from lectureai.schemas.api import CheckoutRequest, ErrorResponse, PortalRequest, UrlResponse
from lectureai.services.billing_service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])


@router.post(
    "/create-checkout-session",
    response_model=UrlResponse,
    responses={
        400: {"description": "plan_type cannot be resolved to a price", "model": ErrorResponse},
        500: {"description": "Stripe rejected the request", "model": ErrorResponse},
    },
    summary="Start a hosted Stripe Checkout",
)
async def create_checkout_session(
    body: CheckoutRequest,
    billing: BillingService = Depends(get_billing_service),
) -> UrlResponse:
    logger.info("Checkout requested: plan_type=%s user_id=%s", body.plan_type, body.user_id)
    session = await billing.create_checkout_session(
        plan_type=body.plan_type,
        email=body.email,
        user_id=body.user_id,
    )
    return UrlResponse(url=session.url)


@router.post(
    "/create-portal-session",
    response_model=UrlResponse,
    responses={
        400: {"description": "customer_id missing", "model": ErrorResponse},
        500: {"description": "Stripe rejected the request", "model": ErrorResponse},
    },
    summary="Open the Stripe Billing Portal for a customer",
)
async def create_portal_session(
    body: PortalRequest,
    billing: BillingService = Depends(get_billing_service),
) -> UrlResponse:
    url = await billing.create_portal_session(body.customer_id, body.return_url)
    return UrlResponse(url=url)
