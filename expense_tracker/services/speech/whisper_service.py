"""
Speech-to-Text Service (OpenAI Whisper)

Turns a recorded clip into text. One upload per clip, no retries:
a failed transcription is shown to the user, who simply records again.

DESIGN DECISION: The OpenAI client is created per call unless one is
injected. The UI runs every coroutine on its own event loop, and a
long-lived async client would hold connections bound to a closed loop.
"""

from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from expense_tracker.config import OpenAISettings, get_settings


logger = structlog.get_logger(__name__)


class TranscriptionError(Exception):
    """Speech could not be turned into text."""
    pass


class WhisperTranscriptionService:
    """
    Wrapper around the OpenAI audio transcription endpoint.

    Usage:
        service = WhisperTranscriptionService()
        text = await service.transcribe(clip.data, clip.audio_format)
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        settings: Optional[OpenAISettings] = None,
    ):
        self._client = client
        self._settings = settings or get_settings().openai

    async def _create_transcription(self, filename: str, audio: bytes):
        kwargs = dict(
            file=(filename, audio),
            model=self._settings.transcription_model,
            language=self._settings.transcription_language,
        )
        if self._client is not None:
            return await self._client.audio.transcriptions.create(**kwargs)

        async with AsyncOpenAI(api_key=self._settings.api_key) as client:
            return await client.audio.transcriptions.create(**kwargs)

    async def transcribe(self, audio: bytes, audio_format: str = "webm") -> str:
        """
        Transcribe a clip.

        Args:
            audio: Raw encoded audio bytes
            audio_format: File extension matching the encoding (webm, m4a, ogg, wav)

        Returns:
            The recognized text (may be empty if nothing was said)

        Raises:
            TranscriptionError: If there is no audio or the API call fails
        """
        if not audio:
            raise TranscriptionError("No audio was recorded")

        extension = (audio_format or "webm").lower().lstrip(".")
        filename = f"recording.{extension}"

        try:
            response = await self._create_transcription(filename, audio)
        except OpenAIError as e:
            logger.error(
                "transcription_failed",
                audio_format=extension,
                size_bytes=len(audio),
                error=str(e),
            )
            raise TranscriptionError(f"Speech recognition failed: {e}") from e

        text = (getattr(response, "text", None) or "").strip()
        logger.info("transcription_completed", text_length=len(text))
        return text
