"""
LectureAI Backend - Lecture Analysis Pipeline
===============================================

What:  Turns an uploaded lecture recording into an emailed summary.
How:   Five stages run strictly in order, each awaiting the previous one:

    ┌──────┐   ┌──────────┐   ┌────────────┐   ┌───────────┐   ┌───────┐
    │ sign │──▶│ download │──▶│ transcribe │──▶│ summarize │──▶│ email │
    └──────┘   └──────────┘   └────────────┘   └───────────┘   └───────┘
     storage     storage         Gemini          Gemini         Resend

       The first failing stage stops the run with AnalysisPipelineError
       naming that stage. Nothing is persisted and nothing is retried.
       CircuitBreakerOpenError passes through as-is so callers get a 503.
Who:   POST /analyze.
"""

import logging
import mimetypes
import time
from typing import Any, Awaitable, Optional, TypeVar

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import (
    AnalysisPipelineError,
    CircuitBreakerOpenError,
    LectureAIError,
    ValidationError,
)
from lectureai.schemas.api import AnalysisResult
from lectureai.services.email_service import EmailService, render_summary_html
from lectureai.services.llm_base import LLMService
from lectureai.services.storage_service import StorageService

logger = logging.getLogger(__name__)

T = TypeVar("T")

SAMPLE_LENGTH = 300
DEFAULT_AUDIO_MIME = "audio/mpeg"


def guess_audio_mime(file_name: str) -> str:
    mime, _ = mimetypes.guess_type(file_name)
    return mime if mime and mime.startswith(("audio/", "video/")) else DEFAULT_AUDIO_MIME


class AnalysisService:
    def __init__(
        self,
        storage: StorageService,
        llm: LLMService,
        email: EmailService,
        settings: Settings = default_settings,
    ):
        self._storage = storage
        self._llm = llm
        self._email = email
        self._settings = settings

    async def _stage(self, name: str, step: Awaitable[T], **context: Any) -> T:
        started = time.perf_counter()
        try:
            result = await step
        except CircuitBreakerOpenError:
            raise
        except LectureAIError as e:
            logger.error("Analysis stage '%s' failed: %s", name, e.message)
            raise AnalysisPipelineError(
                stage=name,
                message=f"Analysis failed at {name}: {e.message}",
                context={**context, "error_code": e.code},
            )
        except Exception as e:
            logger.error("Analysis stage '%s' failed unexpectedly: %s", name, str(e), exc_info=True)
            raise AnalysisPipelineError(
                stage=name,
                message=f"Analysis failed at {name}: {e}",
                context={**context, "error_type": type(e).__name__},
            )
        logger.info("Analysis stage '%s' done in %.0fms", name, (time.perf_counter() - started) * 1000)
        return result

    async def analyze(self, file_name: Optional[str], email: Optional[str]) -> AnalysisResult:
        """
        Run the full pipeline for one stored recording.

        Raises:
            ValidationError: fileName or email missing (before any stage runs).
            AnalysisPipelineError: a stage failed; `.stage` names it.
            CircuitBreakerOpenError: the transcription provider is being shed.
        """
        if not file_name:
            raise ValidationError(message="fileName is required", field="fileName")
        if not email:
            raise ValidationError(message="email is required", field="email")

        logger.info("Analysis started for %s", file_name)

        signed = await self._stage(
            "sign", self._storage.get_signed_download(file_name), file_name=file_name
        )
        audio = await self._stage("download", self._storage.download(signed), file_name=file_name)
        transcript = await self._stage(
            "transcribe",
            self._llm.transcribe_audio(audio, guess_audio_mime(file_name)),
            file_name=file_name,
            audio_bytes=len(audio),
        )
        summary = await self._stage("summarize", self._llm.summarize(transcript), file_name=file_name)
        await self._stage(
            "email",
            self._email.send_html(
                email, self._settings.email_subject, render_summary_html(file_name, summary)
            ),
            file_name=file_name,
        )

        logger.info("Analysis finished for %s (%d chars summary)", file_name, len(summary))
        return AnalysisResult(
            file_name=file_name,
            email=email,
            summary=summary,
            sample=summary[:SAMPLE_LENGTH],
        )
