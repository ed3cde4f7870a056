"""
Main Orchestrator for Voice Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Voice entry (audio → transcript → draft → validate → confirm → save)
2. Manual entry and edits (form → save)
3. Statistics (cached list → window → buckets → one currency)

DESIGN DECISION: The orchestrator enforces the boundaries:
- A voice draft is saved without review ONLY when the user turned on
  skip-confirmation
- The cached expense list changes only after the store call succeeded
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import math
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from expense_tracker.agents import AnalysisError, ExpenseAnalysisAgent
from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import get_settings
from expense_tracker.models.expense import (
    Expense,
    ExpenseDraft,
    GroupBy,
    StatisticsReport,
    TimeRange,
    ValidationResult,
)
from expense_tracker.preferences import CategoryRegistry, SettingsStore
from expense_tracker.services.exchange import ExchangeRateService
from expense_tracker.services.speech import (
    TranscriptionError,
    WhisperTranscriptionService,
)
from expense_tracker.services.storage import (
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    StorageError,
)
from expense_tracker.stats import StatisticsCalculator
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


class EntryStatus(str, Enum):
    NEEDS_CONFIRMATION = "needs_confirmation"
    SAVED = "saved"
    REJECTED = "rejected"


class ProcessingResult(BaseModel):
    """What one recording (or typed transcript) turned into."""

    correlation_id: UUID
    transcript: str = ""
    draft: Optional[ExpenseDraft] = None
    validation: Optional[ValidationResult] = None

    @property
    def recognized(self) -> bool:
        return self.draft is not None


class EntryOutcome(BaseModel):
    """Where a draft ended up after submit/confirm/reject."""

    status: EntryStatus
    correlation_id: UUID
    draft: ExpenseDraft
    expense: Optional[Expense] = None


# =============================================================================
# CACHED EXPENSE LIST
# =============================================================================

class ExpenseBook:
    """
    The expense list the UI renders, kept in step with the store.

    Every mutation goes to the store first; the cached list is only
    touched after the store call returned. On failure the error
    propagates and the list is exactly as before.
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        items_per_page: Optional[int] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._items_per_page = items_per_page or get_settings().app.items_per_page
        self._expenses: list[Expense] = []
        self._loaded = False

    @property
    def expenses(self) -> list[Expense]:
        return list(self._expenses)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def items_per_page(self) -> int:
        return self._items_per_page

    def get(self, expense_id: str) -> Optional[Expense]:
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        return None

    async def refresh(self) -> list[Expense]:
        """Reload the whole list from the store."""
        self._expenses = await self._storage.list_expenses()
        self._loaded = True
        return self.expenses

    async def add(self, expense: Expense) -> Expense:
        saved = await self._storage.create_expense(expense)
        self._expenses.insert(0, saved)
        return saved

    async def update(self, expense: Expense) -> Expense:
        try:
            saved = await self._storage.update_expense(expense)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed("update", str(e), expense.id)
            raise

        self._expenses = [saved if e.id == saved.id else e for e in self._expenses]

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(saved.id)
        return saved

    async def delete(self, expense_id: str) -> None:
        try:
            await self._storage.delete_expense(expense_id)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed("delete", str(e), expense_id)
            raise

        self._expenses = [e for e in self._expenses if e.id != expense_id]

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(expense_id)

    def filter(
        self,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        expenses: Optional[list[Expense]] = None,
    ) -> list[Expense]:
        """
        Expenses matching every given criterion (bounds inclusive).
        A None criterion matches everything.
        """
        source = self._expenses if expenses is None else expenses
        return [
            e for e in source
            if (category is None or e.category == category)
            and (date_from is None or e.expense_date >= date_from)
            and (date_to is None or e.expense_date <= date_to)
        ]

    def page_count(
        self,
        expenses: Union[list[Expense], int],
        per_page: Optional[int] = None,
    ) -> int:
        """Number of pages; an empty list still has one (empty) page."""
        per_page = per_page or self._items_per_page
        total = expenses if isinstance(expenses, int) else len(expenses)
        return max(1, math.ceil(total / per_page))

    def paginate(
        self,
        expenses: list[Expense],
        page: int,
        per_page: Optional[int] = None,
    ) -> list[Expense]:
        """Slice for a 1-based page number, clamped to the valid range."""
        per_page = per_page or self._items_per_page
        page = min(max(page, 1), self.page_count(expenses, per_page))
        start = (page - 1) * per_page
        return expenses[start:start + per_page]


# =============================================================================
# ENTRY FLOW
# =============================================================================

class ExpenseEntryFlow:
    """
    Orchestrates getting an expense into the book.

    Voice flow:
    1. Recording → transcript (Whisper)
    2. Transcript → draft (analysis agent)
    3. Draft → validation hints
    4. Submit → saved directly if skip-confirmation is on,
       otherwise PAUSE for the user to confirm or reject
    5. Confirm → saved (possibly edited by the user)

    Manual entries skip steps 1-4.
    """

    def __init__(
        self,
        book: ExpenseBook,
        settings_store: SettingsStore,
        transcriber: Optional[WhisperTranscriptionService] = None,
        analyzer: Optional[ExpenseAnalysisAgent] = None,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._book = book
        self._settings_store = settings_store
        self._transcriber = transcriber
        self._analyzer = analyzer
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger

    @property
    def voice_enabled(self) -> bool:
        return self._transcriber is not None and self._analyzer is not None

    def summarize_validation(self, result: ValidationResult) -> str:
        return self._validator.get_user_friendly_summary(result)

    async def process_recording(
        self,
        audio: bytes,
        audio_format: str = "webm",
        duration_seconds: float = 0.0,
        correlation_id: Optional[UUID] = None,
    ) -> ProcessingResult:
        """
        Transcribe and analyze a clip. Nothing is saved here.

        Raises:
            TranscriptionError: Speech-to-text failed or is not configured
            AnalysisError: Field extraction failed
        """
        correlation_id = correlation_id or create_correlation_id()

        if self._transcriber is None:
            raise TranscriptionError("Speech recognition is not configured (missing OpenAI API key)")

        if self._audit_logger:
            await self._audit_logger.log_recording_captured(
                audio_format=audio_format,
                size_bytes=len(audio),
                duration_seconds=duration_seconds,
                correlation_id=correlation_id,
            )

        try:
            transcript = await self._transcriber.transcribe(audio, audio_format)
        except TranscriptionError as e:
            if self._audit_logger:
                await self._audit_logger.log_step_failed("transcription", str(e), correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_transcription_completed(transcript, correlation_id)

        if not transcript:
            # Nothing said; nothing to analyze
            return ProcessingResult(correlation_id=correlation_id)

        return await self.process_transcript(transcript, correlation_id)

    async def process_transcript(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> ProcessingResult:
        """Analyze text (a transcript, possibly corrected by the user)."""
        correlation_id = correlation_id or create_correlation_id()
        text = (text or "").strip()

        if not text:
            return ProcessingResult(correlation_id=correlation_id)

        if self._analyzer is None:
            raise AnalysisError("Expense analysis is not configured (missing OpenAI API key)")

        user_settings = self._settings_store.get()

        try:
            draft = await self._analyzer.analyze_expense_text(
                text,
                categories=user_settings.categories,
                default_currency=user_settings.default_currency,
            )
        except AnalysisError as e:
            if self._audit_logger:
                await self._audit_logger.log_step_failed("analysis", str(e), correlation_id)
            raise

        validation = self._validator.validate(draft, user_settings.categories)

        if self._audit_logger:
            await self._audit_logger.log_analysis_completed(
                amount=str(draft.amount),
                currency=draft.currency,
                category=draft.category,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_validation(validation, correlation_id)

        return ProcessingResult(
            correlation_id=correlation_id,
            transcript=text,
            draft=draft,
            validation=validation,
        )

    async def submit_draft(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> EntryOutcome:
        """
        Hand a fresh draft over. Saved immediately only with
        skip-confirmation on; otherwise nothing is written.
        """
        correlation_id = correlation_id or create_correlation_id()

        if not self._settings_store.should_skip_confirmation():
            if self._audit_logger:
                await self._audit_logger.log_confirmation_requested(correlation_id)
            return EntryOutcome(
                status=EntryStatus.NEEDS_CONFIRMATION,
                correlation_id=correlation_id,
                draft=draft,
            )

        if self._audit_logger:
            await self._audit_logger.log_confirmation_skipped(correlation_id)

        expense = await self._save(draft, correlation_id)
        return EntryOutcome(
            status=EntryStatus.SAVED,
            correlation_id=correlation_id,
            draft=draft,
            expense=expense,
        )

    async def confirm_draft(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> EntryOutcome:
        """The user approved the (possibly edited) draft."""
        correlation_id = correlation_id or create_correlation_id()

        expense = await self._save(draft, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_user_confirmed(expense.id, correlation_id)

        return EntryOutcome(
            status=EntryStatus.SAVED,
            correlation_id=correlation_id,
            draft=draft,
            expense=expense,
        )

    async def reject_draft(
        self,
        draft: ExpenseDraft,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> EntryOutcome:
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_user_rejected(reason, correlation_id)

        return EntryOutcome(
            status=EntryStatus.REJECTED,
            correlation_id=correlation_id,
            draft=draft,
        )

    async def create_manual_expense(
        self,
        amount: Union[Decimal, float, int, str],
        currency: Optional[str] = None,
        category: Optional[str] = None,
        expense_date: Optional[date] = None,
        description: str = "",
    ) -> Expense:
        """
        Save a form entry.

        Raises:
            pydantic.ValidationError: If the fields do not make an expense
            StorageError: If the store rejects it
        """
        user_settings = self._settings_store.get()
        fields = dict(
            amount=amount,
            currency=currency or user_settings.default_currency,
            description=description,
        )
        if category:
            fields["category"] = category
        if expense_date:
            fields["expense_date"] = expense_date

        draft = ExpenseDraft(**fields)
        return await self._save(draft, create_correlation_id())

    async def _save(self, draft: ExpenseDraft, correlation_id: UUID) -> Expense:
        expense = draft.to_expense()
        try:
            saved = await self._book.add(expense)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    "create", str(e), expense.id, correlation_id
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_saved(saved, correlation_id)
        return saved


# =============================================================================
# STATISTICS FLOW
# =============================================================================

class StatisticsFlow:
    """Statistics over the cached list, in the user's currency by default."""

    def __init__(
        self,
        book: ExpenseBook,
        exchange_service: ExchangeRateService,
        settings_store: SettingsStore,
    ):
        self._book = book
        self._exchange = exchange_service
        self._calculator = StatisticsCalculator(exchange_service)
        self._settings_store = settings_store

    async def build_report(
        self,
        time_range: TimeRange = TimeRange.ALL,
        group_by: GroupBy = GroupBy.CATEGORY,
        currency: Optional[str] = None,
        custom_start: Optional[date] = None,
        custom_end: Optional[date] = None,
        today: Optional[date] = None,
    ) -> StatisticsReport:
        return await self._calculator.build_report(
            self._book.expenses,
            time_range=time_range,
            group_by=group_by,
            currency=currency or self._settings_store.get_default_currency(),
            custom_start=custom_start,
            custom_end=custom_end,
            today=today,
        )

    async def total_in(
        self,
        expenses: Optional[list[Expense]] = None,
        currency: Optional[str] = None,
    ) -> Decimal:
        """Sum of `expenses` (default: the whole book) in one currency."""
        source = self._book.expenses if expenses is None else expenses
        return await self._exchange.convert_batch_total(
            source,
            currency or self._settings_store.get_default_currency(),
        )


# =============================================================================
# FACTORY
# =============================================================================

class AppComponents(NamedTuple):
    entry_flow: ExpenseEntryFlow
    book: ExpenseBook
    statistics_flow: StatisticsFlow
    settings_store: SettingsStore
    categories: CategoryRegistry
    exchange_service: ExchangeRateService
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
    settings_store: Optional[SettingsStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to keep
                    expenses in memory for this process only.
        settings_store: Preferences file; defaults to the configured path.
    """
    settings = get_settings()
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            expense_storage = GoogleSheetsExpenseStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except ValidationError as e:
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if sheets_client is None:
        expense_storage = InMemoryExpenseStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    try:
        openai_settings = settings.openai
        transcriber = WhisperTranscriptionService(settings=openai_settings)
        analyzer = ExpenseAnalysisAgent(settings=openai_settings)
    except ValidationError as e:
        logger.warning("openai_not_configured", error=str(e))
        transcriber = None
        analyzer = None

    settings_store = settings_store or SettingsStore()
    exchange_service = ExchangeRateService(settings=settings.exchange, audit_logger=audit_logger)

    book = ExpenseBook(
        expense_storage,
        audit_logger=audit_logger,
        items_per_page=settings.app.items_per_page,
    )
    entry_flow = ExpenseEntryFlow(
        book,
        settings_store,
        transcriber=transcriber,
        analyzer=analyzer,
        validator=ExpenseValidator(settings.app),
        audit_logger=audit_logger,
    )
    statistics_flow = StatisticsFlow(book, exchange_service, settings_store)

    return AppComponents(
        entry_flow=entry_flow,
        book=book,
        statistics_flow=statistics_flow,
        settings_store=settings_store,
        categories=CategoryRegistry(settings_store),
        exchange_service=exchange_service,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
