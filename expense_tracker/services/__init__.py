"""
Services package.

Exchange rates are imported from expense_tracker.services.exchange
directly: they audit through expense_tracker.audit, which itself
depends on the storage services re-exported here.
"""

from expense_tracker.services.speech import (
    AudioClip,
    RecordingError,
    RecordingSession,
    TranscriptionError,
    WhisperTranscriptionService,
    choose_audio_format,
)
from expense_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Speech
    "AudioClip",
    "RecordingError",
    "RecordingSession",
    "TranscriptionError",
    "WhisperTranscriptionService",
    "choose_audio_format",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "InMemoryAuditStorage",
    "InMemoryExpenseStorage",
    "NotFoundError",
    "StorageError",
]
