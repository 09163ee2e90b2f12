"""
Voice-note transcription through the OpenAI audio API.

The whole call is bounded by ``timeout`` seconds; transient API errors are
retried a couple of times inside that budget. Without an API key the
transcriber reports itself unavailable and text-only operation is unaffected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import openai
from openai import AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

_LOGGER = logging.getLogger(__name__)

# Retry only on transport / rate-limit / backend errors
RETRY_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.InternalServerError,
)


class TranscriptionUnavailable(RuntimeError):
    """No API key configured."""


class TranscriptionError(RuntimeError):
    """The audio could not be turned into text."""


class Transcriber:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "whisper-1",
        timeout: float = 60.0,
        language: str = "ru",
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.timeout = timeout
        self.language = language
        self._client: Optional[AsyncOpenAI] = None

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self.timeout, max_retries=0)
        return self._client

    @retry(
        wait=wait_random_exponential(multiplier=1, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(RETRY_ERRORS),
        reraise=True,
    )
    async def _create(self, audio: bytes, filename: str) -> str:
        response = await self._get_client().audio.transcriptions.create(
            model=self.model,
            file=(filename, audio),
            language=self.language,
        )
        return (getattr(response, "text", "") or "").strip()

    async def transcribe(self, audio: bytes, filename: str = "voice.ogg") -> str:
        if not self.available:
            raise TranscriptionUnavailable("OPENAI_API_KEY is not configured")
        try:
            text = await asyncio.wait_for(self._create(audio, filename), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise TranscriptionError(f"transcription timed out after {self.timeout}s") from exc
        except openai.OpenAIError as exc:
            raise TranscriptionError(f"transcription failed: {exc}") from exc
        if not text:
            raise TranscriptionError("empty transcript")
        _LOGGER.info("Voice transcribed: chars=%s model=%s", len(text), self.model)
        return text
