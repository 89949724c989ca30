"""
LectureAI Backend - Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models for the HTTP contract and for values passed
       between services.
How:   FastAPI validates request bodies against the request models and
       serializes the response models; aliases keep the camelCase names
       the frontend already uses (fileName, downloadUrl, ...).
Who:   Route handlers and services.

Required fields are declared Optional on purpose where a missing value
must produce a 400 with a descriptive message (the services raise
ValidationError) rather than FastAPI's generic schema error.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class CheckoutRequest(BaseModel):
    """
    Body of POST /create-checkout-session.

    plan_type selects both the price and the mode:
        "subscription" → PRICE_ID_SUBSCRIPTION, mode=subscription
        "single"       → PRICE_ID_SINGLE, mode=payment
    """

    model_config = ConfigDict(extra="ignore")

    plan_type: Optional[str] = Field(default=None, description="subscription | single")
    user_id: Optional[str] = Field(default=None, description="Frontend user identifier")
    email: Optional[str] = Field(default=None, description="Payer email, prefilled at checkout")


class PortalRequest(BaseModel):
    """Body of POST /create-portal-session."""

    customer_id: Optional[str] = Field(default=None, description="Stripe customer id (cus_...)")
    return_url: Optional[str] = Field(
        default=None,
        description="Where the portal sends the user back; PORTAL_RETURN_URL when omitted",
    )


class AnalyzeRequest(BaseModel):
    """Body of POST /analyze."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: Optional[str] = Field(default=None, alias="fileName")
    email: Optional[str] = Field(default=None)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UploadResponse(BaseModel):
    """Returned by POST /upload; `result` is B2's b2_upload_file response."""

    message: str = Field(default="Upload successful")
    result: Dict[str, Any] = Field(description="Storage provider upload result")


class SignedDownloadResponse(BaseModel):
    """
    Returned by GET /signed-download.

    authorizationHeader must be sent as the Authorization header when
    fetching downloadUrl. It is scoped to this one object name and expires
    after B2_DOWNLOAD_TTL seconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    download_url: str = Field(alias="downloadUrl")
    authorization_header: str = Field(alias="authorizationHeader")


class UrlResponse(BaseModel):
    """Hosted Stripe page (checkout or billing portal) to redirect to."""

    url: str


class WebhookAck(BaseModel):
    received: bool = True


class AnalyzeResponse(BaseModel):
    """Returned by POST /analyze; `sample` is the first 300 characters of the summary."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(default="Analysis complete, summary emailed")
    file_name: str = Field(alias="fileName")
    email: str
    sample: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Fields:
        error: Human-readable description (upstream message for provider failures)
        code: Machine-readable error code (e.g., "validation_error")
        details: Optional extra context for client errors
        request_id: Correlation ID for tracing this error in server logs
    """

    error: str
    code: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = Field(description="healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected, disconnected")
    transcription: str = Field(description="available, circuit_open, disabled")
    uptime_seconds: float


# ══════════════════════════════════════════════════════════════════════════
# Internal Values
# ══════════════════════════════════════════════════════════════════════════


class StagedFile(BaseModel):
    """A client upload written to a local temp path for the duration of one request."""

    path: str
    original_name: str
    size: int


class SignedDownload(BaseModel):
    """Download URL plus the token that authorizes fetching it."""

    download_url: str
    authorization_token: str


class CheckoutSessionResult(BaseModel):
    id: str
    url: str


class SubscriptionRecord(BaseModel):
    """Values written to user_subscriptions by the webhook handler."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    plan_type: str = "unknown"
    stripe_customer_id: Optional[str] = None
    subscription_status: str = "active"


class WebhookOutcome(BaseModel):
    event_type: str
    handled: bool


class AnalysisResult(BaseModel):
    file_name: str
    email: str
    summary: str
    sample: str
