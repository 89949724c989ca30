"""
LectureAI Backend - Google Gemini Transcription & Summarization
=================================================================

What:  LLMService backed by Google Gemini: audio → transcript → study notes.
How:   google-generativeai GenerativeModel.generate_content_async for both
       steps. Audio up to GEMINI_INLINE_LIMIT bytes travels inline in the
       request; larger recordings go through the File API first.
Who:   Built once by create_app; called by AnalysisService.

Resilience:
    Every call passes through a CircuitBreaker. After CB_FAILURE_THRESHOLD
    consecutive failures the breaker opens and calls fail immediately with
    CircuitBreakerOpenError (503) until CB_RECOVERY_TIMEOUT has passed; then
    a single trial call decides whether it closes again. Calls are never
    retried: a failed stage fails the request.
"""

import io
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional

import google.generativeai as genai
from fastapi.concurrency import run_in_threadpool

from lectureai.config import Settings, settings as default_settings
from lectureai.exceptions import CircuitBreakerOpenError, LLMServiceError
from lectureai.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════


class CircuitBreaker:
    """
    Fail-fast guard around an unreliable upstream.

    States:
        CLOSED     calls flow; consecutive failures are counted
        OPEN       calls are refused until recovery_timeout elapses
        HALF_OPEN  one trial call; success closes, failure re-opens

    Not shared between processes. Each uvicorn worker keeps its own.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def _elapsed(self) -> float:
        return self._clock() - (self.last_failure_time or 0)

    def can_execute(self) -> bool:
        """
        Admit or refuse a call.

        Raises:
            CircuitBreakerOpenError: OPEN and still inside the recovery window.
        """
        if self.state == self.OPEN:
            elapsed = self._elapsed()
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=max(1, int(self.recovery_timeout - elapsed))
                )
            logger.info("Circuit breaker HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state != self.CLOSED:
            logger.info("Circuit breaker CLOSED (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker re-OPENED (trial call failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPEN after %d consecutive failures", self.failure_count
            )
            self.state = self.OPEN

    @property
    def is_open(self) -> bool:
        return self.state == self.OPEN and self._elapsed() < self.recovery_timeout


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════


class GeminiService(LLMService):
    """Gemini-backed transcription and summarization."""

    TRANSCRIBE_PROMPT = """You are a precise transcription engine. Transcribe the spoken
content of this lecture recording verbatim.

Rules:
1. Output only the transcript, with no commentary or timestamps
2. Start a new paragraph when the speaker changes topic
3. Mark inaudible passages as [inaudible]
4. If the recording contains no speech, return an empty response"""

    SUMMARY_PROMPT = """You are an expert teaching assistant. Summarize the following lecture
transcript into clear study notes for a student.

Structure:
- A one-paragraph overview of the lecture
- The key concepts, each with a short explanation
- Important definitions, formulas or dates mentioned
- Three review questions

Write in plain text with short paragraphs and "-" bullets.

Transcript:
{transcript}"""

    def __init__(self, settings: Settings = default_settings):
        self._settings = settings
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def state(self) -> str:
        return "circuit_open" if self.circuit_breaker.is_open else "available"

    async def _guarded(self, operation: str, call: Callable[[], Awaitable[Any]]) -> str:
        """Run one provider call under the circuit breaker and normalize its errors."""
        call_id = uuid.uuid4().hex[:8]
        self.circuit_breaker.can_execute()

        started = time.perf_counter()
        try:
            response = await call()
            text = (response.text or "").strip()
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini %s failed after %.0fms: %s",
                call_id,
                operation,
                (time.perf_counter() - started) * 1000,
                str(e),
            )
            raise LLMServiceError(
                message=f"Gemini {operation} failed: {e}",
                context={"call_id": call_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] Gemini %s completed in %.0fms (%d chars)",
            call_id,
            operation,
            (time.perf_counter() - started) * 1000,
            len(text),
        )
        return text

    async def _audio_part(self, audio: bytes, mime_type: str) -> Any:
        if len(audio) <= self._settings.gemini_inline_limit:
            return {"mime_type": mime_type, "data": audio}
        # Over the inline request cap: stage through the File API
        return await run_in_threadpool(
            genai.upload_file, path=io.BytesIO(audio), mime_type=mime_type
        )

    async def transcribe_audio(self, audio: bytes, mime_type: str) -> str:
        if not audio:
            raise LLMServiceError(message="No audio to transcribe")

        async def call():
            part = await self._audio_part(audio, mime_type)
            return await self.model.generate_content_async(
                [self.TRANSCRIBE_PROMPT, part],
                request_options={"timeout": self._settings.http_timeout},
            )

        return await self._guarded("transcription", call)

    async def summarize(self, transcript: str) -> str:
        if not transcript.strip():
            raise LLMServiceError(message="Transcript is empty; nothing to summarize")

        async def call():
            return await self.model.generate_content_async(
                self.SUMMARY_PROMPT.format(transcript=transcript),
                request_options={"timeout": self._settings.http_timeout},
            )

        return await self._guarded("summary", call)

    async def health_check(self) -> bool:
        """Lists models (no token cost) to confirm the key and connectivity."""
        try:
            models = await run_in_threadpool(lambda: [m.name for m in genai.list_models()])
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
        target = f"models/{self._settings.gemini_model}"
        if target not in models:
            logger.warning("Configured model %s not found in available models", target)
        return True
