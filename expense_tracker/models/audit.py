"""
Audit Models for Voice Expense Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability from a recording to the saved expense
2. Debugging information when a third-party service misbehaves
3. A history the user can inspect in the audit sheet

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the expense entry pipeline has its own event type.
    """
    # Voice pipeline
    RECORDING_CAPTURED = "recording_captured"
    TRANSCRIPTION_COMPLETED = "transcription_completed"
    TRANSCRIPTION_FAILED = "transcription_failed"
    ANALYSIS_COMPLETED = "analysis_completed"
    ANALYSIS_FAILED = "analysis_failed"
    VALIDATION_WARNINGS = "validation_warnings"

    # Human confirmation
    CONFIRMATION_REQUESTED = "confirmation_requested"
    CONFIRMATION_SKIPPED = "confirmation_skipped"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"

    # Persistence
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    SAVE_FAILED = "save_failed"

    # Degraded third-party services
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'recording', 'draft')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one recording)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transcription_completed(chars, correlation_id)
        event = AuditEventBuilder.expense_saved(expense_id, "35", "CNY", correlation_id)
    """

    @staticmethod
    def recording_captured(
        audio_format: str,
        size_bytes: int,
        duration_seconds: float,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDING_CAPTURED,
            entity_type="recording",
            correlation_id=correlation_id,
            description=f"Recording captured ({duration_seconds:.1f}s, {audio_format})",
            details={
                "audio_format": audio_format,
                "size_bytes": size_bytes,
                "duration_seconds": duration_seconds,
            },
            is_user_action=True,
        )

    @staticmethod
    def transcription_completed(
        text_length: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSCRIPTION_COMPLETED,
            entity_type="recording",
            correlation_id=correlation_id,
            description=f"Transcription completed ({text_length} characters)",
            details={"text_length": text_length},
        )

    @staticmethod
    def analysis_completed(
        amount: str,
        currency: str,
        category: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPLETED,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Expense extracted: {amount} {currency} ({category})",
            details={
                "amount": amount,
                "currency": currency,
                "category": category,
            },
        )

    @staticmethod
    def step_failed(
        step: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSCRIPTION_FAILED
            if step == "transcription"
            else AuditEventType.ANALYSIS_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            entity_type="recording",
            correlation_id=correlation_id,
            description=f"{step.capitalize()} failed",
            error_message=error_message,
            details={"step": step},
        )

    @staticmethod
    def validation_warnings(
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_WARNINGS,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Draft flagged with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def confirmation_requested(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_REQUESTED,
            entity_type="draft",
            correlation_id=correlation_id,
            description="Draft presented to user for review",
        )

    @staticmethod
    def confirmation_skipped(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_SKIPPED,
            entity_type="draft",
            correlation_id=correlation_id,
            description="Draft saved without review (skip confirmation is on)",
        )

    @staticmethod
    def user_confirmed(
        expense_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CONFIRMED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="User confirmed the extracted expense",
            is_user_action=True,
        )

    @staticmethod
    def user_rejected(
        reason: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REJECTED,
            entity_type="draft",
            correlation_id=correlation_id,
            description="User rejected the extracted expense",
            details={
                "reason": reason or "No reason provided",
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_saved(
        expense_id: str,
        amount: str,
        currency: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense saved: {amount} {currency}",
            details={
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def expense_updated(expense_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense updated",
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(expense_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Storage {operation} failed",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.WARNING,
            description=f"External service degraded: {service}",
            error_message=error_message,
            details={"service": service, **(details or {})},
            correlation_id=correlation_id,
        )
