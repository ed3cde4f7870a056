"""
Audit Logger

DESIGN DECISION: Every step of an entry (recording, transcription,
analysis, confirmation, save) and every edit or delete is logged.
This gives:
1. A trace of how each expense came to be
2. Debugging capability when the model misreads something
3. A history the user can inspect in the audit sheet

The audit logger:
- Always logs locally through structlog
- Persists to audit storage when one is configured
- Never lets an audit failure break the action being audited
- Uses correlation IDs to tie together one entry's events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from expense_tracker.models.expense import Expense, ValidationResult
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, e.g. the AuditLog sheet (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit is best effort; the audited action already happened
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_recording_captured(
        self,
        audio_format: str,
        size_bytes: int,
        duration_seconds: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.recording_captured(
            audio_format=audio_format,
            size_bytes=size_bytes,
            duration_seconds=duration_seconds,
            correlation_id=correlation_id,
        ))

    async def log_transcription_completed(
        self,
        transcript: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transcription_completed(
            text_length=len(transcript),
            correlation_id=correlation_id,
        ))

    async def log_analysis_completed(
        self,
        amount: str,
        currency: str,
        category: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.analysis_completed(
            amount=amount,
            currency=currency,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_step_failed(
        self,
        step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a failed transcription or analysis."""
        await self.log(AuditEventBuilder.step_failed(
            step=step,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_validation(
        self,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        """Log validation warnings. A clean result is not logged."""
        flagged = [
            issue.model_dump() for issue in result.issues
            if issue.severity != "info"
        ]
        if not flagged:
            return
        await self.log(AuditEventBuilder.validation_warnings(
            issues=flagged,
            correlation_id=correlation_id,
        ))

    async def log_confirmation_requested(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.confirmation_requested(correlation_id))

    async def log_confirmation_skipped(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.confirmation_skipped(correlation_id))

    async def log_user_confirmed(
        self,
        expense_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_confirmed(
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    async def log_user_rejected(
        self,
        reason: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_rejected(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_expense_saved(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_saved(
            expense_id=expense.id,
            amount=str(expense.amount),
            currency=expense.currency,
            correlation_id=correlation_id,
        ))

    async def log_expense_updated(self, expense_id: str) -> None:
        await self.log(AuditEventBuilder.expense_updated(expense_id))

    async def log_expense_deleted(self, expense_id: str) -> None:
        await self.log(AuditEventBuilder.expense_deleted(expense_id))

    async def log_save_failed(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a third-party failure the app degraded around."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new entry (one recording or manual form).
    Pass it through all subsequent operations.
    """
    return uuid4()
