"""
LectureAI Backend - Abstract Transcription/Summarization Interface
====================================================================

What:  The contract AnalysisService relies on for speech-to-text and
       summarization.
How:   Concrete providers subclass LLMService; AnalysisService only sees
       this interface, and tests substitute an AsyncMock against it.
Who:   Implemented by GeminiService.
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Speech-to-text plus text summarization.

    Contract:
        - Provider errors are wrapped in LLMServiceError
        - CircuitBreakerOpenError is raised unchanged while the provider is
          being shed
        - Neither method returns None; an empty string means "nothing found"
    """

    @abstractmethod
    async def transcribe_audio(self, audio: bytes, mime_type: str) -> str:
        """
        Turn recorded speech into plain text.

        Args:
            audio: Raw audio bytes as downloaded from storage.
            mime_type: e.g. "audio/mpeg" for .mp3, "audio/wav" for .wav.

        Raises:
            LLMServiceError, CircuitBreakerOpenError
        """
        ...

    @abstractmethod
    async def summarize(self, transcript: str) -> str:
        """
        Condense a lecture transcript into study notes.

        Raises:
            LLMServiceError, CircuitBreakerOpenError
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the provider is reachable; must not spend generation quota."""
        ...

    @property
    def state(self) -> str:
        """Availability as reported by /health: available or circuit_open."""
        return "available"
