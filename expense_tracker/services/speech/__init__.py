"""Speech services package (audio capture + transcription)."""

from expense_tracker.services.speech.recorder import (
    AUDIO_FORMATS,
    AudioClip,
    AudioFormat,
    RecordingError,
    RecordingSession,
    RecordingState,
    choose_audio_format,
    extension_for_mime_type,
    trim_wav,
)
from expense_tracker.services.speech.whisper_service import (
    TranscriptionError,
    WhisperTranscriptionService,
)

__all__ = [
    "AUDIO_FORMATS",
    "AudioClip",
    "AudioFormat",
    "RecordingError",
    "RecordingSession",
    "RecordingState",
    "TranscriptionError",
    "WhisperTranscriptionService",
    "choose_audio_format",
    "extension_for_mime_type",
    "trim_wav",
]
