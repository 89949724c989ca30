"""
LectureAI Backend - Liveness & Health Routes
==============================================

GET /         plain-text liveness string (what the hosting platform probes)
GET /health   dependency report

Status levels for /health:
    healthy    database reachable, transcription available or disabled
    degraded   database reachable, transcription circuit open
    unhealthy  database unreachable (HTTP 503)
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text

from lectureai import __version__
from lectureai.dependencies import get_llm_service
from lectureai.schemas.api import HealthResponse
from lectureai.services.llm_base import LLMService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

LIVENESS_MESSAGE = "LectureAI Uploader backend is running successfully."

_start_time = time.time()


@router.get("/", response_class=PlainTextResponse, summary="Liveness probe")
async def root() -> str:
    return LIVENESS_MESSAGE


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request, llm: Optional[LLMService] = Depends(get_llm_service)):
    """
    Probe the database with SELECT 1 and report the transcription circuit state.

    The Gemini API itself is not called here: probes run every few seconds
    and the breaker state already reflects recent provider health.
    """
    db_status = "connected"
    overall = "healthy"

    try:
        async with request.app.state.db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    transcription = llm.state if llm is not None else "disabled"
    if transcription == "circuit_open" and overall == "healthy":
        overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        transcription=transcription,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
