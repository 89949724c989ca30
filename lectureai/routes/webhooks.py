"""
LectureAI Backend - Stripe Webhook Route
==========================================

POST /stripe/webhook

The body is read as raw bytes: the signature covers the exact payload, so
it must not be parsed or re-serialized before verification.

    400  signature missing/invalid, nothing persisted
    200  {received: true} for every verified event, handled or not
    500  the subscription could not be stored (Stripe will redeliver)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lectureai.database import get_db_session
from lectureai.dependencies import get_webhook_service
from lectureai.schemas.api import ErrorResponse, WebhookAck
from lectureai.services.webhook_service import WebhookService

router = APIRouter(tags=["Webhooks"])


@router.post(
    "/stripe/webhook",
    response_model=WebhookAck,
    responses={
        400: {"description": "Signature verification failed", "model": ErrorResponse},
        500: {"description": "Subscription could not be stored", "model": ErrorResponse},
    },
    summary="Receive Stripe events",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    webhooks: WebhookService = Depends(get_webhook_service),
    db: AsyncSession = Depends(get_db_session),
) -> WebhookAck:
    payload = await request.body()
    await webhooks.handle(payload, stripe_signature, db)
    return WebhookAck()
