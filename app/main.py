"""
Streamlit Frontend for Voice Expense Tracker

Say what you spent ("昨天打车35块"), check what was understood, save.

DESIGN PRINCIPLES:
1. Recording is one tap; reviewing is one glance
2. Confirmation before save unless the user turned it off
3. Clear error messages; a failed step never loses the page
4. Conversions are hints ("≈"), never blockers

Pages: Record, Expenses, Statistics, Settings.
"""

import asyncio
import hashlib
import logging
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from expense_tracker.agents import AnalysisError
from expense_tracker.config import get_settings, validate_all_settings
from expense_tracker.data import CURRENCIES, format_currency, get_currency_name
from expense_tracker.models import (
    Expense,
    ExpenseDraft,
    GroupBy,
    Theme,
    TimeRange,
)
from expense_tracker.orchestrator import (
    AppComponents,
    EntryStatus,
    create_app_components,
)
from expense_tracker.services.speech import (
    RecordingError,
    RecordingSession,
    TranscriptionError,
    extension_for_mime_type,
    trim_wav,
)
from expense_tracker.services.storage import StorageError
from expense_tracker.stats import format_group_label


logging.basicConfig(level=logging.INFO, format="%(message)s")

# Page configuration
st.set_page_config(
    page_title="Voice Expense Tracker",
    page_icon="🎙️",
    layout="centered",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
    }
</style>
""", unsafe_allow_html=True)

DARK_CSS = """
<style>
    .stApp { background-color: #111827; color: #f3f4f6; }
</style>
"""

CURRENCY_CODES = [c.code for c in CURRENCIES]

TIME_RANGE_LABELS = {
    TimeRange.ALL: "All time",
    TimeRange.THIS_WEEK: "This week",
    TimeRange.THIS_MONTH: "This month",
    TimeRange.THIS_YEAR: "This year",
    TimeRange.LAST_WEEK: "Last week",
    TimeRange.LAST_MONTH: "Last month",
    TimeRange.LAST_YEAR: "Last year",
    TimeRange.CUSTOM: "Custom",
}

GROUP_BY_LABELS = {
    GroupBy.CATEGORY: "Category",
    GroupBy.DAY: "Day",
    GroupBy.MONTH: "Month",
    GroupBy.YEAR: "Year",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def currency_label(code: str) -> str:
    return f"{code} · {get_currency_name(code)}"


def ensure_loaded(components: AppComponents) -> bool:
    """Load the expense list once per process. False if the store failed."""
    if components.book.is_loaded:
        return True
    try:
        run_async(components.book.refresh())
        return True
    except StorageError as e:
        st.error(f"❌ Could not load expenses: {e}")
        return False


def main():
    """Main application entry point."""
    components = get_components()

    if components.settings_store.get().theme == Theme.DARK:
        st.markdown(DARK_CSS, unsafe_allow_html=True)

    st.sidebar.title("🎙️ Voice Expenses")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🎙️ Record", "📋 Expenses", "📊 Statistics", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Try saying:**
        - "买咖啡35元"
        - "昨天打车花了28块"
        - "前天午饭 12 美元"
        """
    )
    if components.sheets_client is None:
        st.sidebar.warning("Storage is not configured: expenses live in memory only.")

    if page == "🎙️ Record":
        render_record_page(components)
    elif page == "📋 Expenses":
        render_expenses_page(components)
    elif page == "📊 Statistics":
        render_statistics_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


# =============================================================================
# RECORD
# =============================================================================

def _reset_entry_state():
    st.session_state.entry_state = "idle"
    st.session_state.processing = None
    st.session_state.saved_expense = None


def _capture_clip(recording) -> tuple[bytes, str, float]:
    """Bound the widget's clip to the recording limit."""
    max_seconds = get_settings().app.max_recording_seconds
    data = recording.getvalue()
    audio_format = extension_for_mime_type(recording.type)
    duration = 0.0

    if audio_format == "wav":
        data, duration = trim_wav(data, max_seconds)

    session = RecordingSession(audio_format=audio_format, max_seconds=max_seconds)
    session.start()
    session.add_chunk(data, duration_seconds=duration)
    clip = session.stop()
    return clip.data, clip.audio_format, clip.duration_seconds


def render_record_page(components: AppComponents):
    st.title("🎙️ Record an Expense")

    if "entry_state" not in st.session_state:
        _reset_entry_state()
    if "last_clip_digest" not in st.session_state:
        st.session_state.last_clip_digest = None

    flow = components.entry_flow

    if st.session_state.entry_state == "idle":
        if not flow.voice_enabled:
            st.warning("🔇 Voice entry needs an OpenAI API key (OPENAI_API_KEY). Manual entry still works.")
        else:
            max_seconds = get_settings().app.max_recording_seconds
            recording = st.audio_input(f"Tap to record (up to {max_seconds}s)")

            if recording is not None:
                digest = hashlib.sha1(recording.getvalue()).hexdigest()
                if digest != st.session_state.last_clip_digest:
                    st.session_state.last_clip_digest = digest
                    with st.spinner("Listening to what you said..."):
                        try:
                            data, audio_format, duration = _capture_clip(recording)
                            result = run_async(flow.process_recording(
                                data, audio_format, duration_seconds=duration,
                            ))
                        except RecordingError as e:
                            st.error(f"🎤 Recording problem: {e}")
                            result = None
                        except TranscriptionError as e:
                            st.error(f"❌ {e}")
                            result = None
                        except AnalysisError as e:
                            st.error(f"❌ {e}")
                            result = None

                    if result is not None:
                        if not result.recognized:
                            st.info("🤔 Nothing was recognized. Please try again.")
                        else:
                            _handle_processed(components, result)

        render_manual_entry(components)

    if st.session_state.entry_state == "reviewing":
        render_review(components)

    if st.session_state.entry_state == "saved":
        expense = st.session_state.saved_expense
        st.success(
            f"✅ Saved {format_currency(expense.amount, expense.currency)} "
            f"· {expense.category} · {expense.expense_date.isoformat()}"
        )
        if st.button("🎙️ Record another"):
            _reset_entry_state()
            st.rerun()


def _handle_processed(components: AppComponents, result):
    try:
        outcome = run_async(components.entry_flow.submit_draft(
            result.draft, correlation_id=result.correlation_id,
        ))
    except StorageError as e:
        st.error(f"❌ Could not save: {e}")
        return
    st.session_state.processing = result
    if outcome.status == EntryStatus.SAVED:
        st.session_state.saved_expense = outcome.expense
        st.session_state.entry_state = "saved"
    else:
        st.session_state.entry_state = "reviewing"
    st.rerun()


def render_review(components: AppComponents):
    result = st.session_state.processing
    draft: ExpenseDraft = result.draft
    categories = components.categories.list_categories()

    st.markdown("### 📝 Please check")
    st.caption(f"You said: “{result.transcript}”")

    if result.validation is not None:
        summary = components.entry_flow.summarize_validation(result.validation)
        if result.validation.warnings:
            st.warning(summary)
        else:
            st.info(summary)

    category_options = categories if draft.category in categories else [*categories, draft.category]
    currency_options = CURRENCY_CODES if draft.currency in CURRENCY_CODES else [*CURRENCY_CODES, draft.currency]

    with st.form("review_form"):
        amount = st.number_input("Amount", min_value=0.0, value=float(draft.amount), step=1.0, format="%.2f")
        currency = st.selectbox(
            "Currency", currency_options,
            index=currency_options.index(draft.currency),
            format_func=currency_label,
        )
        category = st.selectbox("Category", category_options, index=category_options.index(draft.category))
        expense_date = st.date_input("Date", value=draft.expense_date)
        description = st.text_input("Description", value=draft.description)

        col1, col2 = st.columns(2)
        with col1:
            confirmed = st.form_submit_button("✅ Save", type="primary")
        with col2:
            rejected = st.form_submit_button("🗑️ Discard")

    if confirmed:
        try:
            edited = ExpenseDraft.model_validate({
                **draft.model_dump(),
                "amount": round(amount, 2),
                "currency": currency,
                "category": category,
                "expense_date": expense_date,
                "description": description,
            })
            outcome = run_async(components.entry_flow.confirm_draft(
                edited,
                correlation_id=result.correlation_id,
            ))
        except (StorageError, ValidationError) as e:
            st.error(f"❌ Could not save: {e}")
        else:
            st.session_state.saved_expense = outcome.expense
            st.session_state.entry_state = "saved"
            st.rerun()

    if rejected:
        run_async(components.entry_flow.reject_draft(
            draft, reason="Discarded on review", correlation_id=result.correlation_id,
        ))
        _reset_entry_state()
        st.rerun()


def render_manual_entry(components: AppComponents):
    categories = components.categories.list_categories()
    default_currency = components.settings_store.get_default_currency()
    currency_options = CURRENCY_CODES if default_currency in CURRENCY_CODES else [*CURRENCY_CODES, default_currency]

    with st.expander("⌨️ Enter manually"):
        with st.form("manual_form", clear_on_submit=True):
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            currency = st.selectbox(
                "Currency", currency_options,
                index=currency_options.index(default_currency),
                format_func=currency_label,
            )
            category = st.selectbox("Category", categories)
            expense_date = st.date_input("Date", value=date.today())
            description = st.text_input("Description")
            submitted = st.form_submit_button("💾 Save")

        if submitted:
            try:
                expense = run_async(components.entry_flow.create_manual_expense(
                    amount=round(amount, 2),
                    currency=currency,
                    category=category,
                    expense_date=expense_date,
                    description=description,
                ))
            except (StorageError, ValidationError) as e:
                st.error(f"❌ Could not save: {e}")
            else:
                st.success(f"✅ Saved {format_currency(expense.amount, expense.currency)}")


# =============================================================================
# EXPENSES
# =============================================================================

def render_expenses_page(components: AppComponents):
    st.title("📋 Your Expenses")

    if not ensure_loaded(components):
        return

    book = components.book
    categories = components.categories.list_categories()

    col1, col2 = st.columns(2)
    with col1:
        category = st.selectbox(
            "Category", [None, *categories],
            format_func=lambda c: "All categories" if c is None else c,
        )
    with col2:
        date_range = st.date_input("Date range", value=[])

    date_from = date_to = None
    if len(date_range) == 2:
        date_from, date_to = date_range
    elif len(date_range) == 1:
        date_from = date_range[0]

    filtered = book.filter(category=category, date_from=date_from, date_to=date_to)

    if not filtered:
        st.info("📭 No expenses yet. Record one on the Record page.")
        return

    currency = components.settings_store.get_default_currency()
    total = run_async(components.statistics_flow.total_in(filtered, currency))
    st.markdown(
        f'<div class="big-number">≈ {format_currency(total, currency)}</div>',
        unsafe_allow_html=True,
    )
    st.caption(f"{len(filtered)} expenses")

    pages = book.page_count(filtered)
    page = st.number_input("Page", min_value=1, max_value=pages, value=1, step=1) if pages > 1 else 1

    visible = book.paginate(filtered, int(page))
    converted = run_async(components.exchange_service.convert_expenses(visible, currency))
    for expense in visible:
        equivalent = None
        if expense.currency != currency:
            equivalent = format_currency(converted[expense.id], currency)
        render_expense_row(components, expense, categories, equivalent)


def render_expense_row(
    components: AppComponents,
    expense: Expense,
    categories: list[str],
    equivalent: Optional[str] = None,
):
    title = (
        f"{expense.expense_date.isoformat()} · {expense.category} · "
        f"{format_currency(expense.amount, expense.currency)}"
    )
    if equivalent:
        title += f" (≈ {equivalent})"
    with st.expander(title):
        if expense.description:
            st.markdown(expense.description)

        category_options = categories if expense.category in categories else [*categories, expense.category]
        currency_options = CURRENCY_CODES if expense.currency in CURRENCY_CODES else [*CURRENCY_CODES, expense.currency]

        with st.form(f"edit_{expense.id}"):
            amount = st.number_input("Amount", min_value=0.0, value=float(expense.amount), step=1.0, format="%.2f")
            currency = st.selectbox(
                "Currency", currency_options,
                index=currency_options.index(expense.currency),
                format_func=currency_label,
            )
            category = st.selectbox("Category", category_options, index=category_options.index(expense.category))
            expense_date = st.date_input("Date", value=expense.expense_date)
            description = st.text_input("Description", value=expense.description)
            save = st.form_submit_button("💾 Update")

        if save:
            try:
                updated = Expense.model_validate({
                    **expense.model_dump(),
                    "amount": round(amount, 2),
                    "currency": currency,
                    "category": category,
                    "expense_date": expense_date,
                    "description": description,
                })
                run_async(components.book.update(updated))
            except (StorageError, ValidationError) as e:
                st.error(f"❌ Could not update: {e}")
            else:
                st.rerun()

        if st.button("🗑️ Delete", key=f"delete_{expense.id}"):
            try:
                run_async(components.book.delete(expense.id))
            except StorageError as e:
                st.error(f"❌ Could not delete: {e}")
            else:
                st.rerun()


# =============================================================================
# STATISTICS
# =============================================================================

def render_statistics_page(components: AppComponents):
    st.title("📊 Statistics")

    if not ensure_loaded(components):
        return

    default_currency = components.settings_store.get_default_currency()
    currency_options = CURRENCY_CODES if default_currency in CURRENCY_CODES else [*CURRENCY_CODES, default_currency]

    col1, col2, col3 = st.columns(3)
    with col1:
        time_range = st.selectbox(
            "Period", list(TimeRange),
            format_func=TIME_RANGE_LABELS.get,
        )
    with col2:
        group_by = st.selectbox("Group by", list(GroupBy), format_func=GROUP_BY_LABELS.get)
    with col3:
        currency = st.selectbox(
            "Currency", currency_options,
            index=currency_options.index(default_currency),
        )

    custom_start = custom_end = None
    if time_range == TimeRange.CUSTOM:
        col1, col2 = st.columns(2)
        with col1:
            custom_start = st.date_input("From", value=date.today() - timedelta(days=30))
        with col2:
            custom_end = st.date_input("To", value=date.today())

    try:
        with st.spinner("Converting currencies..."):
            report = run_async(components.statistics_flow.build_report(
                time_range=time_range,
                group_by=group_by,
                currency=currency,
                custom_start=custom_start,
                custom_end=custom_end,
            ))
    except ValueError as e:
        st.error(f"❌ {e}")
        return

    if report.is_empty:
        st.info("📭 No expenses in this period.")
        return

    st.markdown(
        f'<div class="big-number">{format_currency(report.total, report.currency)}</div>',
        unsafe_allow_html=True,
    )
    st.caption(f"{report.expense_count} expenses")

    frame = pd.DataFrame([
        {
            "Group": format_group_label(item.label, report.group_by),
            "Amount": float(item.amount),
            "Count": item.count,
            "Share (%)": round(item.percentage, 1),
        }
        for item in report.items
    ])

    st.bar_chart(frame.set_index("Group")["Amount"])
    st.dataframe(frame, hide_index=True, use_container_width=True)


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    st.title("⚙️ Settings")

    store = components.settings_store
    current = store.get()

    st.markdown("### Preferences")

    currency_options = CURRENCY_CODES if current.default_currency in CURRENCY_CODES else [*CURRENCY_CODES, current.default_currency]
    currency = st.selectbox(
        "Default currency", currency_options,
        index=currency_options.index(current.default_currency),
        format_func=currency_label,
    )
    if currency != current.default_currency:
        store.set_default_currency(currency)
        st.rerun()

    themes = list(Theme)
    theme = st.radio(
        "Theme", themes,
        index=themes.index(current.theme),
        format_func=lambda t: t.value.title(),
        horizontal=True,
    )
    if theme != current.theme:
        store.set_theme(theme)
        st.rerun()

    skip = st.toggle("Save voice entries without confirmation", value=current.skip_confirmation)
    if skip != current.skip_confirmation:
        store.set_skip_confirmation(skip)
        st.rerun()

    render_category_manager(components)

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("OpenAI (Speech + Analysis)", "openai"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Exchange rates", "exchange"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if st.button("🔄 Clear exchange-rate cache"):
        components.exchange_service.cache.clear()
        components.exchange_service.cache.save()
        st.success("Cache cleared. Rates will be fetched again.")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


def render_category_manager(components: AppComponents):
    registry = components.categories
    categories = registry.list_categories()

    st.markdown("### Categories")

    for index, name in enumerate(categories):
        col1, col2, col3 = st.columns([4, 1, 1])
        with col1:
            new_name = st.text_input(
                "Name", value=name, key=f"category_{index}", label_visibility="collapsed",
            )
        with col2:
            if st.button("✏️", key=f"rename_{index}", help="Rename"):
                if not new_name.strip():
                    st.error("Category name cannot be empty")
                elif new_name.strip() != name and new_name.strip() in categories:
                    st.error("That category already exists")
                else:
                    registry.rename(name, new_name)
                    st.rerun()
        with col3:
            if st.button("🗑️", key=f"remove_{index}", help="Delete"):
                registry.delete(name)
                st.rerun()

    with st.form("add_category", clear_on_submit=True):
        new_category = st.text_input("New category")
        if st.form_submit_button("➕ Add"):
            if not new_category.strip():
                st.error("Category name cannot be empty")
            elif new_category.strip() in categories:
                st.error("That category already exists")
            else:
                registry.add(new_category)
                st.rerun()

    if st.button("↩️ Restore default categories"):
        registry.reset()
        st.rerun()


if __name__ == "__main__":
    main()
