"""
Streamlit Frontend for Recurring Ledger

A thin caller of the scheduler's exposed operations:
- add a transaction (optionally recurring)
- preview upcoming dates for a recurrence
- stop a recurring transaction
- run a sweep on demand

DESIGN PRINCIPLES:
1. The UI acts for exactly one authenticated owner
2. Nothing is stopped without an explicit button press
3. Sweep results are shown in full, failures included
"""

from datetime import datetime, time
from decimal import Decimal

import streamlit as st

from recurring_ledger.config import get_settings, validate_all_settings
from recurring_ledger.models.transaction import (
    IntervalUnit,
    NewTransaction,
    OutcomeStatus,
    RecurringTemplate,
    TransactionType,
)
from recurring_ledger.orchestrator import AppComponents, BackgroundLoop, create_app_components
from recurring_ledger.services.storage import NotFoundError, PersistenceError


st.set_page_config(
    page_title="Recurring Ledger",
    page_icon="🔁",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_event_loop() -> BackgroundLoop:
    """The one event loop every session runs its calls on (cached)."""
    return BackgroundLoop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_event_loop().run(coro)


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    components = get_components()
    owner_id = get_settings().app.ui_owner_id

    st.sidebar.title("🔁 Recurring Ledger")
    st.sidebar.caption(f"Signed in as **{owner_id}**")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["➕ Add Transaction", "🔁 Recurring", "🧹 Run Sweep", "⚙️ Settings"],
        index=0,
    )

    if page == "➕ Add Transaction":
        render_add_page(components, owner_id)
    elif page == "🔁 Recurring":
        render_recurring_page(components, owner_id)
    elif page == "🧹 Run Sweep":
        render_sweep_page(components)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_add_page(components: AppComponents, owner_id: str):
    """Render the add-transaction form."""
    st.title("➕ Add Transaction")

    col1, col2 = st.columns(2)
    with col1:
        description = st.text_input("Description")
        amount = st.number_input("Amount", value=0.0, step=1.0, format="%.2f")
        tx_type = st.selectbox("Type", [t.value for t in TransactionType])
        category = st.text_input("Category")
    with col2:
        day = st.date_input("Date")
        at = st.time_input("Time", value=time(9, 0))
        is_recurring = st.checkbox("Repeats")
        interval = None
        if is_recurring:
            interval = IntervalUnit(
                st.selectbox("Every", [i.value for i in IntervalUnit], index=2)
            )

    occurrence_time = datetime.combine(day, at)

    if interval:
        upcoming = components.lifecycle.preview(occurrence_time, interval, count=5)
        st.markdown("**Upcoming:** " + ", ".join(d.strftime("%d %b %Y") for d in upcoming))

    if st.button("💾 Save", type="primary"):
        try:
            new = NewTransaction(
                description=description,
                amount=Decimal(str(amount)),
                type=TransactionType(tx_type),
                category=category,
                occurrence_time=occurrence_time,
                is_recurring=is_recurring,
                interval=interval,
            )
            record = run_async(components.lifecycle.add_transaction(owner_id, new))
        except ValueError as e:
            st.error(f"Please check the form: {e}")
        except PersistenceError as e:
            st.error(f"Could not save: {e}")
        else:
            st.success("Transaction added")
            if isinstance(record, RecurringTemplate):
                st.info(f"First repeat on {record.next_run:%d %b %Y}")


def render_recurring_page(components: AppComponents, owner_id: str):
    """List the owner's recurring transactions with stop buttons."""
    st.title("🔁 Recurring Transactions")

    try:
        templates = run_async(
            components.lifecycle.list_transactions(owner_id, recurring=True)
        )
    except PersistenceError as e:
        st.error(f"Could not load transactions: {e}")
        return

    if not templates:
        st.info("No recurring transactions yet.")
        return

    for template in templates:
        with st.container(border=True):
            col1, col2, col3 = st.columns([3, 2, 1])
            col1.markdown(
                f"**{template.description or '(no description)'}** · "
                f"{template.amount} · {template.interval.value}"
            )
            if template.active:
                col2.markdown(f"Next: {template.next_run:%d %b %Y}")
                if col3.button("⏹ Stop", key=f"stop-{template.id}"):
                    try:
                        run_async(components.lifecycle.stop(template.id, owner_id))
                    except NotFoundError:
                        st.error("Transaction not found")
                    except PersistenceError as e:
                        st.error(f"Could not stop: {e}")
                    else:
                        st.rerun()
            else:
                col2.markdown("_Stopped_")


def render_sweep_page(components: AppComponents):
    """Run a sweep now and show the report."""
    st.title("🧹 Run Sweep")
    st.markdown(
        "The sweep runs automatically once a day. "
        "Running it again the same day does not create duplicates."
    )

    if not st.button("▶️ Run sweep now", type="primary"):
        return

    with st.spinner("Sweeping..."):
        report = run_async(components.sweep_driver.run_sweep())

    if report.skipped:
        st.warning("Another sweep is already running.")
        return
    if report.selection_error:
        st.error(f"Could not read due templates: {report.selection_error}")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Due templates", report.selected_count)
    col2.metric("Occurrences created", report.materialized_count)
    col3.metric("Failures", report.failed_count)

    for outcome in report.outcomes:
        if outcome.status == OutcomeStatus.ADVANCED:
            continue
        st.error(f"{outcome.template_id}: {outcome.status.value} - {outcome.error_message or ''}")


def render_settings_page():
    """Show which configuration groups are valid."""
    st.title("⚙️ Settings")
    results = validate_all_settings()
    for name in ("scheduler", "google_sheets", "app"):
        if results.get(name):
            st.success(f"{name}: configured")
        else:
            st.warning(f"{name}: {results.get(f'{name}_error', 'not configured')}")


if __name__ == "__main__":
    main()
