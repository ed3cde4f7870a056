"""End-to-end tests for the entry, list and statistics flows."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest
from openai import OpenAIError

from expense_tracker.agents import AnalysisError, ExpenseAnalysisAgent
from expense_tracker.audit import AuditLogger
from expense_tracker.config import ExchangeRateSettings, get_settings
from expense_tracker.models.audit import AuditEventType
from expense_tracker.services.exchange import ExchangeRateCache, ExchangeRateService
from expense_tracker.services.speech import TranscriptionError, WhisperTranscriptionService
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    StorageError,
)
from expense_tracker.orchestrator import (
    EntryStatus,
    ExpenseBook,
    ExpenseEntryFlow,
    StatisticsFlow,
    create_app_components,
)


COFFEE = json.dumps({"amount": 35, "currency": "CNY", "category": "餐饮", "date": 0, "description": "咖啡"})


class FailingStorage(InMemoryExpenseStorage):
    """Accepts reads, refuses every write."""

    async def create_expense(self, expense):
        raise StorageError("sheet is read-only")

    async def update_expense(self, expense):
        raise StorageError("sheet is read-only")

    async def delete_expense(self, expense_id):
        raise StorageError("sheet is read-only")


def event_types(audit_storage):
    events = asyncio.run(audit_storage.get_recent_events())
    return {e.event_type for e in events}


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def book(audit_storage):
    return ExpenseBook(InMemoryExpenseStorage(), AuditLogger(audit_storage), items_per_page=2)


@pytest.fixture
def make_flow(book, settings_store, audit_storage, fake_openai, openai_settings):
    def make(text="买咖啡35元", content=COFFEE, error=None, voice=True):
        client = fake_openai(text=text, content=content, error=error)
        transcriber = analyzer = None
        if voice:
            transcriber = WhisperTranscriptionService(client=client, settings=openai_settings)
            analyzer = ExpenseAnalysisAgent(client=client, settings=openai_settings)
        return ExpenseEntryFlow(
            book,
            settings_store,
            transcriber=transcriber,
            analyzer=analyzer,
            audit_logger=AuditLogger(audit_storage),
        )

    return make


class TestVoiceEntry:

    def test_coffee_needs_confirmation_by_default(self, make_flow, book, audit_storage):
        flow = make_flow()

        result = asyncio.run(flow.process_recording(b"audio", "webm", 2.0))
        assert result.recognized
        assert result.transcript == "买咖啡35元"
        assert result.draft.amount == Decimal("35")
        assert result.draft.category == "餐饮"

        outcome = asyncio.run(flow.submit_draft(result.draft, result.correlation_id))

        assert outcome.status == EntryStatus.NEEDS_CONFIRMATION
        assert outcome.expense is None
        assert asyncio.run(book.refresh()) == []
        assert AuditEventType.CONFIRMATION_REQUESTED in event_types(audit_storage)

    def test_coffee_saved_directly_with_skip_confirmation(self, make_flow, book, settings_store, audit_storage):
        settings_store.set_skip_confirmation(True)
        flow = make_flow()

        result = asyncio.run(flow.process_recording(b"audio", "webm", 2.0))
        outcome = asyncio.run(flow.submit_draft(result.draft, result.correlation_id))

        assert outcome.status == EntryStatus.SAVED
        assert [e.amount for e in book.expenses] == [Decimal("35")]
        assert [e.amount for e in asyncio.run(book.refresh())] == [Decimal("35")]
        assert {
            AuditEventType.CONFIRMATION_SKIPPED,
            AuditEventType.EXPENSE_SAVED,
        } <= event_types(audit_storage)

    def test_confirm_saves_the_edited_draft(self, make_flow, book):
        flow = make_flow()
        result = asyncio.run(flow.process_recording(b"audio"))

        edited = result.draft.model_copy(update={"amount": Decimal("38")})
        outcome = asyncio.run(flow.confirm_draft(edited, result.correlation_id))

        assert outcome.status == EntryStatus.SAVED
        assert outcome.expense.amount == Decimal("38")
        assert book.get(outcome.expense.id) is not None

    def test_reject_saves_nothing(self, make_flow, book, audit_storage):
        flow = make_flow()
        result = asyncio.run(flow.process_recording(b"audio"))

        outcome = asyncio.run(flow.reject_draft(result.draft, "wrong amount", result.correlation_id))

        assert outcome.status == EntryStatus.REJECTED
        assert book.expenses == []
        assert AuditEventType.USER_REJECTED in event_types(audit_storage)

    def test_silence_gives_no_draft(self, make_flow):
        flow = make_flow(text="")
        result = asyncio.run(flow.process_recording(b"audio"))
        assert not result.recognized
        assert result.draft is None

    def test_transcription_failure_is_audited(self, make_flow, audit_storage):
        flow = make_flow(error=OpenAIError("invalid file format"))
        with pytest.raises(TranscriptionError):
            asyncio.run(flow.process_recording(b"audio"))
        assert AuditEventType.TRANSCRIPTION_FAILED in event_types(audit_storage)

    def test_analysis_failure_is_audited(self, make_flow, audit_storage):
        flow = make_flow(content="not json")
        with pytest.raises(AnalysisError):
            asyncio.run(flow.process_recording(b"audio"))
        assert AuditEventType.ANALYSIS_FAILED in event_types(audit_storage)

    def test_voice_disabled_without_openai(self, make_flow):
        flow = make_flow(voice=False)
        assert not flow.voice_enabled
        with pytest.raises(TranscriptionError):
            asyncio.run(flow.process_recording(b"audio"))
        with pytest.raises(AnalysisError):
            asyncio.run(flow.process_transcript("买咖啡35元"))

    def test_typed_transcript_uses_user_preferences(self, make_flow, settings_store, fake_openai):
        settings_store.set_default_currency("USD")
        flow = make_flow(content=json.dumps({"amount": 4, "category": "餐饮"}))

        result = asyncio.run(flow.process_transcript("  coffee 4  "))

        assert result.transcript == "coffee 4"
        assert result.draft.currency == "USD"
        assert result.validation is not None

    def test_validation_summary(self, make_flow):
        flow = make_flow(content=json.dumps({"amount": 0}))
        result = asyncio.run(flow.process_transcript("嗯"))
        assert "Please check" in flow.summarize_validation(result.validation)


class TestManualEntry:

    def test_defaults_from_preferences(self, make_flow, settings_store):
        settings_store.set_default_currency("EUR")
        flow = make_flow(voice=False)

        expense = asyncio.run(flow.create_manual_expense("12.50", description="lunch"))

        assert expense.amount == Decimal("12.50")
        assert expense.currency == "EUR"
        assert expense.category == "其他"
        assert expense.expense_date == date.today()

    def test_explicit_fields(self, make_flow, book):
        flow = make_flow(voice=False)
        expense = asyncio.run(flow.create_manual_expense(
            20, "CNY", "交通", date(2024, 6, 1), "taxi",
        ))
        assert book.expenses == [expense]
        assert expense.category == "交通"

    def test_storage_failure_leaves_list_alone(self, settings_store, audit_storage):
        book = ExpenseBook(FailingStorage(), AuditLogger(audit_storage), items_per_page=10)
        flow = ExpenseEntryFlow(book, settings_store, audit_logger=AuditLogger(audit_storage))

        with pytest.raises(StorageError):
            asyncio.run(flow.create_manual_expense(5))

        assert book.expenses == []
        assert AuditEventType.SAVE_FAILED in event_types(audit_storage)


class TestExpenseBook:

    def test_add_prepends(self, book, make_expense):
        first, second = make_expense(), make_expense()
        asyncio.run(book.add(first))
        asyncio.run(book.add(second))
        assert [e.id for e in book.expenses] == [second.id, first.id]

    def test_update_and_delete(self, book, make_expense, audit_storage):
        expense = make_expense(amount="10")
        asyncio.run(book.add(expense))

        changed = expense.model_copy(update={"amount": Decimal("11")})
        asyncio.run(book.update(changed))
        assert book.get(expense.id).amount == Decimal("11")

        asyncio.run(book.delete(expense.id))
        assert book.expenses == []
        assert {
            AuditEventType.EXPENSE_UPDATED,
            AuditEventType.EXPENSE_DELETED,
        } <= event_types(audit_storage)

    def test_failed_writes_keep_cached_list(self, make_expense):
        expense = make_expense(amount="10")
        book = ExpenseBook(FailingStorage([expense]), items_per_page=10)
        asyncio.run(book.refresh())

        with pytest.raises(StorageError):
            asyncio.run(book.update(expense.model_copy(update={"amount": Decimal("99")})))
        with pytest.raises(StorageError):
            asyncio.run(book.delete(expense.id))

        assert book.expenses == [expense]

    def test_filter(self, book, make_expense):
        food = make_expense(category="餐饮", expense_date=date(2024, 6, 1))
        taxi = make_expense(category="交通", expense_date=date(2024, 6, 10))
        late = make_expense(category="餐饮", expense_date=date(2024, 6, 20))
        for expense in (food, taxi, late):
            asyncio.run(book.add(expense))

        assert book.filter(category="餐饮") == [late, food]
        assert book.filter(date_from=date(2024, 6, 1), date_to=date(2024, 6, 10)) == [taxi, food]
        assert book.filter() == book.expenses

    def test_pagination(self, book, make_expense):
        expenses = [make_expense() for _ in range(5)]

        assert book.page_count(expenses) == 3
        assert book.page_count([]) == 1
        assert book.paginate(expenses, 1) == expenses[:2]
        assert book.paginate(expenses, 3) == expenses[4:]
        assert book.paginate(expenses, 99) == expenses[4:]
        assert book.paginate(expenses, 0) == expenses[:2]


class TestStatisticsFlow:

    def _flow(self, book, settings_store, rates):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        cache = ExchangeRateCache()
        for base, table in rates.items():
            cache.store(base, table)
        exchange = ExchangeRateService(
            cache=cache,
            settings=ExchangeRateSettings(cache_path=""),
            transport=httpx.MockTransport(handler),
        )
        return StatisticsFlow(book, exchange, settings_store)

    def test_total_in_default_currency(self, book, settings_store, make_expense):
        asyncio.run(book.add(make_expense(amount="10", currency="USD")))
        asyncio.run(book.add(make_expense(amount="5", currency="CNY")))
        flow = self._flow(book, settings_store, {"USD": {"CNY": 7.0}})

        assert asyncio.run(flow.total_in()) == Decimal("75")

    def test_report_uses_book(self, book, settings_store, make_expense):
        asyncio.run(book.add(make_expense(amount="8", category="交通")))
        flow = self._flow(book, settings_store, {})

        report = asyncio.run(flow.build_report())

        assert report.currency == "CNY"
        assert [(i.label, i.amount) for i in report.items] == [("交通", Decimal("8"))]


class TestCreateAppComponents:

    @pytest.fixture(autouse=True)
    def isolated_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_in_memory_with_voice(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")

        components = create_app_components(use_storage=False)

        assert components.sheets_client is None
        assert components.entry_flow.voice_enabled
        assert asyncio.run(components.book.refresh()) == []

    def test_voice_disabled_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        components = create_app_components(use_storage=False)

        assert not components.entry_flow.voice_enabled
