"""
LectureAI Backend - Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for every failure the routes can see.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into
       JSON error responses with the right HTTP status code.
Who:   Raised by services; caught by the global handlers.

Exception Hierarchy:
    LectureAIError (base)
    ├── ValidationError          → 400 Bad Request (missing file/field, unknown plan)
    ├── WebhookSignatureError    → 400 Bad Request (signature rejected)
    ├── NotFoundError            → 404 Not Found
    ├── StorageServiceError      → 500 (Backblaze B2 call failed)
    ├── PaymentServiceError      → 500 (Stripe call failed)
    ├── LLMServiceError          → 500 (Gemini call failed)
    ├── CircuitBreakerOpenError  → 503 (Gemini failing repeatedly)
    ├── EmailServiceError        → 500 (Resend call failed)
    ├── DatabaseError            → 500 (subscription upsert failed)
    └── AnalysisPipelineError    → 500 (a stage of /analyze failed)

Downstream errors surface the upstream message to the caller; the
context dict is logged server-side only.
"""

from typing import Any, Dict, Optional


class LectureAIError(Exception):
    """
    Base exception for all LectureAI application errors.

    Attributes:
        message:  User-facing error description (returned in the API response)
        context:  Additional debug info (logged, returned only for 4xx errors)
    """

    code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(LectureAIError):
    """
    Raised when client input is missing or invalid.

    When:    No uploaded file, no fileName, no customer_id, unresolvable plan.
    HTTP:    400 Bad Request
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class WebhookSignatureError(LectureAIError):
    """
    Raised when an inbound Stripe webhook cannot be verified.

    The request is rejected before any field of the payload is trusted.
    HTTP:    400 Bad Request
    """

    code = "webhook_signature_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Webhook signature verification failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(LectureAIError):
    """
    Raised when a requested object does not exist in storage.

    HTTP:    404 Not Found
    """

    code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class StorageServiceError(LectureAIError):
    """
    Raised when the object-storage provider rejects or fails a call.

    Covers authorization, upload URL issuance, the upload itself and
    download authorization. The provider's own message is kept.
    HTTP:    500 Internal Server Error
    """

    code = "storage_error"

    def __init__(
        self,
        message: str = "Storage provider request failed",
        status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status is not None:
            ctx["upstream_status"] = status
        super().__init__(message=message, context=ctx)
        self.status = status


class StorageAuthExpiredError(StorageServiceError):
    """The cached storage session was rejected (401); re-authorize and retry once."""

    def __init__(self, message: str = "Storage authorization expired", context=None):
        super().__init__(message=message, status=401, context=context)


class PaymentServiceError(LectureAIError):
    """
    Raised when the payment provider (Stripe) call fails.

    HTTP:    500 Internal Server Error
    """

    code = "payment_error"

    def __init__(
        self,
        message: str = "Payment provider request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(LectureAIError):
    """
    Raised when transcription or summarization fails.

    HTTP:    500 Internal Server Error
    """

    code = "llm_service_error"

    def __init__(
        self,
        message: str = "Transcription service request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(LectureAIError):
    """
    Raised while the Gemini circuit breaker is OPEN.

    State machine:
        CLOSED → (failure_threshold consecutive failures) → OPEN
        OPEN → (recovery_timeout elapsed) → HALF_OPEN (one trial call)
        HALF_OPEN → success → CLOSED | failure → OPEN

    HTTP:    503 Service Unavailable, with Retry-After
    """

    code = "service_unavailable"
    status_code = 503

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Transcription service is temporarily unavailable due to repeated failures. "
            f"Try again in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class EmailServiceError(LectureAIError):
    """Raised when the transactional email provider rejects a message. HTTP 500."""

    code = "email_error"

    def __init__(
        self,
        message: str = "Email provider request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(LectureAIError):
    """
    Raised when persisting a subscription record fails.

    The webhook handler turns this into a 500 so Stripe redelivers the
    event later; SQL details stay in the server log.
    HTTP:    500 Internal Server Error
    """

    code = "database_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AnalysisPipelineError(LectureAIError):
    """
    Raised when any stage of the transcription/summarization pipeline fails.

    Attributes:
        stage: Name of the failing stage (sign, download, transcribe,
               summarize, email).
    HTTP:    500 Internal Server Error
    """

    code = "analysis_failed"

    def __init__(
        self,
        stage: str,
        message: str = "Analysis failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["stage"] = stage
        super().__init__(message=message, context=ctx)
        self.stage = stage
