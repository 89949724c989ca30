"""
LectureAI Backend - FastAPI Application Factory
=================================================

What:  Builds the FastAPI app: logging, middleware, exception handlers,
       services and routes.
How:   create_app() constructs one shared httpx.AsyncClient and every
       service once, stores them on app.state, and the routes reach them
       through the providers in lectureai.dependencies.
Who:   uvicorn (lectureai.main:app), run.py and the test suite.

    ┌──────────────────────────────────────────────────────────┐
    │  Request ID → Access log → GZip → CORS → Router           │
    │                                                          │
    │  /upload  /signed-download        StorageService ─┐      │
    │  /create-checkout-session         BillingService  │httpx │
    │  /create-portal-session                           │client│
    │  /stripe/webhook                  WebhookService  │      │
    │  /analyze                         AnalysisService ┘      │
    │  /  /health                                              │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration report (not fatal), upload dir, ready banner
    Shutdown: close the httpx client, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from lectureai import __version__
from lectureai.config import Settings, settings as default_settings
from lectureai.database import build_engine, build_session_factory
from lectureai.exceptions import (
    AnalysisPipelineError,
    CircuitBreakerOpenError,
    LectureAIError,
)
from lectureai.middleware.logging import RequestLoggingMiddleware
from lectureai.middleware.request_id import RequestIDMiddleware, request_id_var
from lectureai.routes import analysis, billing, health, storage, webhooks
from lectureai.services.analysis_service import AnalysisService
from lectureai.services.billing_service import BillingService
from lectureai.services.email_service import EmailService
from lectureai.services.gemini_service import GeminiService
from lectureai.services.storage_service import StorageService
from lectureai.services.subscription_repository import SubscriptionRepository
from lectureai.services.upload_staging import UploadStaging
from lectureai.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "stripe")


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once, writing to stdout for the container runtime."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    cfg: Settings = app.state.settings

    setup_logging(cfg.log_level)
    logger.info("=" * 60)
    logger.info("LectureAI Backend %s starting up...", __version__)

    try:
        cfg.validate_required_for_production()
    except ValueError as e:
        # Keep serving: liveness and health must still answer
        logger.error("Configuration error: %s", str(e))

    await app.state.upload_staging.prepare()
    logger.info("Upload staging directory: %s", app.state.upload_staging.upload_dir)
    logger.info("Analysis pipeline: %s", "enabled" if cfg.enable_analysis else "disabled")
    logger.info("Server ready at http://%s:%d", cfg.host, cfg.port)
    logger.info("=" * 60)

    yield

    logger.info("LectureAI Backend shutting down...")
    await app.state.http_client.aclose()
    await app.state.db_engine.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def _error_body(error: str, code: str, details: Optional[dict] = None) -> dict:
    return {
        "error": error,
        "code": code,
        "details": details,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to JSON error bodies.

        LectureAIError subclasses → their own status_code and code
        RequestValidationError    → 400 validation_error
        Exception                 → 500 internal_server_error

    4xx responses carry the exception context as `details`; 5xx responses
    carry only the message (plus the failing stage for /analyze).
    """

    @app.exception_handler(LectureAIError)
    async def handle_app_error(request: Request, exc: LectureAIError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.code, exc.message)

        details = exc.context if exc.status_code < 500 else None
        headers = {}
        if isinstance(exc, AnalysisPipelineError):
            details = {"stage": exc.stage}
        if isinstance(exc, CircuitBreakerOpenError):
            details = {"recovery_time": exc.recovery_time}
            headers["Retry-After"] = str(exc.recovery_time)

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.code, details or None),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid request", "validation_error", {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "An unexpected error occurred. Please try again later.",
                "internal_server_error",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Assemble the application.

    Args:
        app_settings: Configuration to build the services with; the
            environment-loaded settings when omitted.
    """
    cfg = app_settings or default_settings

    app = FastAPI(
        title="LectureAI API",
        description=(
            "Upload relay to Backblaze B2, Stripe checkout and webhooks, and "
            "Gemini-powered lecture summaries delivered by email."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # ── Services ──────────────────────────────────────────────────────────
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(cfg.http_timeout, connect=10.0))
    storage_service = StorageService(http_client, cfg)

    db_engine = build_engine(cfg)

    app.state.settings = cfg
    app.state.http_client = http_client
    app.state.db_engine = db_engine
    app.state.session_factory = build_session_factory(db_engine)
    app.state.storage_service = storage_service
    app.state.upload_staging = UploadStaging(cfg)
    app.state.billing_service = BillingService(cfg)
    app.state.webhook_service = WebhookService(SubscriptionRepository(), cfg)
    app.state.llm_service = None
    app.state.analysis_service = None

    if cfg.enable_analysis:
        llm_service = GeminiService(cfg)
        app.state.llm_service = llm_service
        app.state.analysis_service = AnalysisService(
            storage=storage_service,
            llm=llm_service,
            email=EmailService(http_client, cfg),
            settings=cfg,
        )

    # ── Middleware (last added runs first) ────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(storage.router)
    app.include_router(billing.router)
    app.include_router(webhooks.router)
    if cfg.enable_analysis:
        app.include_router(analysis.router)

    return app


app = create_app()
