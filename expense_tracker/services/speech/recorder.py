"""
Audio Capture Session

Models one press-to-record interaction independently of where the audio
comes from (browser widget, file upload, tests).

CRITICAL: A session always ends with the capture device released exactly
once, however it ends (user stop, timeout, error path calling stop again).

States: idle → recording → stopped. There is no way back; a new
recording needs a new session.
"""

import io
import time
import wave
from enum import Enum
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from expense_tracker.config import get_settings


logger = structlog.get_logger(__name__)


class RecordingError(Exception):
    """Microphone unavailable or the session was used out of order."""
    pass


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class AudioFormat(BaseModel):
    mime_type: str
    extension: str


# Preference order; the first one the recorder supports wins
AUDIO_FORMATS: list[AudioFormat] = [
    AudioFormat(mime_type="audio/webm;codecs=opus", extension="webm"),
    AudioFormat(mime_type="audio/mp4;codecs=mp4a", extension="m4a"),
    AudioFormat(mime_type="audio/ogg;codecs=opus", extension="ogg"),
    AudioFormat(mime_type="audio/wav", extension="wav"),
]

DEFAULT_AUDIO_FORMAT = AudioFormat(mime_type="", extension="webm")

_EXTENSION_BY_MIME = {
    "audio/webm": "webm",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
}


def choose_audio_format(supported_mime_types: Iterable[str]) -> AudioFormat:
    """First preferred format present in `supported_mime_types`, else webm."""
    supported = {m.strip().lower() for m in supported_mime_types}
    for candidate in AUDIO_FORMATS:
        if candidate.mime_type in supported:
            return candidate
    return DEFAULT_AUDIO_FORMAT


def extension_for_mime_type(mime_type: Optional[str]) -> str:
    """File extension for an uploaded clip's MIME type (parameters ignored)."""
    if not mime_type:
        return DEFAULT_AUDIO_FORMAT.extension
    base = mime_type.split(";", 1)[0].strip().lower()
    return _EXTENSION_BY_MIME.get(base, DEFAULT_AUDIO_FORMAT.extension)


def trim_wav(data: bytes, max_seconds: float) -> tuple[bytes, float]:
    """
    Cut a WAV clip to at most `max_seconds`.

    Returns the (possibly shortened) clip and its duration.

    Raises:
        RecordingError: If the bytes are not a readable WAV file
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as source:
            params = source.getparams()
            rate = source.getframerate()
            frames = source.readframes(min(source.getnframes(), int(max_seconds * rate)))
    except (wave.Error, EOFError) as e:
        raise RecordingError(f"Unreadable WAV recording: {e}") from e

    frame_count = len(frames) // (params.sampwidth * params.nchannels)
    out = io.BytesIO()
    with wave.open(out, "wb") as target:
        target.setparams(params)
        target.writeframes(frames)

    return out.getvalue(), frame_count / rate if rate else 0.0


class AudioClip(BaseModel):
    """The finished recording."""

    data: bytes = b""
    audio_format: str = DEFAULT_AUDIO_FORMAT.extension
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def is_empty(self) -> bool:
        return not self.data


class RecordingSession:
    """
    Collects audio chunks for at most `max_seconds`.

    The limit is checked against both the wall clock and the duration of
    the audio actually received; whichever hits first stops the session.

    Usage:
        session = RecordingSession(on_release=mic.close)
        session.start()
        session.add_chunk(chunk, duration_seconds=0.5)
        clip = session.stop()
    """

    def __init__(
        self,
        audio_format: str = DEFAULT_AUDIO_FORMAT.extension,
        max_seconds: Optional[float] = None,
        on_release: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_seconds is None:
            max_seconds = get_settings().app.max_recording_seconds
        if max_seconds <= 0:
            raise ValueError("max_seconds must be positive")

        self._audio_format = audio_format
        self._max_seconds = float(max_seconds)
        self._on_release = on_release
        self._clock = clock

        self._state = RecordingState.IDLE
        self._chunks: list[bytes] = []
        self._recorded_seconds = 0.0
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._clip: Optional[AudioClip] = None
        self._released = False

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecordingState.RECORDING

    @property
    def max_seconds(self) -> float:
        return self._max_seconds

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return end - self._started_at

    @property
    def recorded_seconds(self) -> float:
        return self._recorded_seconds

    def _limit_reached(self) -> bool:
        return (
            self.elapsed_seconds >= self._max_seconds
            or self._recorded_seconds >= self._max_seconds
        )

    def start(self) -> None:
        if self._state != RecordingState.IDLE:
            raise RecordingError(f"Cannot start a session that is {self._state.value}")
        self._started_at = self._clock()
        self._state = RecordingState.RECORDING
        logger.debug("recording_started", max_seconds=self._max_seconds)

    def add_chunk(self, data: bytes, duration_seconds: float = 0.0) -> bool:
        """
        Append audio. Returns False if the chunk was dropped
        (not recording, or the time limit already passed).
        """
        if self._state != RecordingState.RECORDING:
            return False

        if self._limit_reached():
            self.stop()
            return False

        if data:
            self._chunks.append(data)
        self._recorded_seconds += max(duration_seconds, 0.0)

        if self._limit_reached():
            logger.info("recording_auto_stopped", max_seconds=self._max_seconds)
            self.stop()

        return True

    def poll(self) -> Optional[AudioClip]:
        """Stop the session if its time is up. Returns the clip once stopped."""
        if self._state == RecordingState.RECORDING and self._limit_reached():
            logger.info("recording_auto_stopped", max_seconds=self._max_seconds)
            return self.stop()
        return self._clip

    def stop(self) -> AudioClip:
        """Finish the session. Safe to call any number of times."""
        if self._clip is not None:
            return self._clip

        if self._started_at is not None:
            self._stopped_at = self._clock()

        self._state = RecordingState.STOPPED

        duration = self._recorded_seconds or self.elapsed_seconds
        self._clip = AudioClip(
            data=b"".join(self._chunks),
            audio_format=self._audio_format,
            duration_seconds=min(duration, self._max_seconds),
        )
        self._chunks = []
        self._release()
        return self._clip

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._on_release is not None:
            self._on_release()
