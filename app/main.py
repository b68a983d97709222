"""
Streamlit Frontend for Kakeibo

The household uploads the two CSV exports of their bookkeeping app here
and checks the balances the import produced.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Either file may be uploaded on its own
3. Clear error messages in simple language
4. Re-uploading the same export is always safe
"""

import asyncio
from datetime import date

import streamlit as st

from kakeibo.audit import create_correlation_id
from kakeibo.config import get_settings, validate_all_settings
from kakeibo.models.ledger import AssetType
from kakeibo.orchestrator import LedgerImportFlow, create_app_components, handle_import_request
from kakeibo.queries import LedgerQueries
from kakeibo.services.storage import NotFoundError


# Page configuration
st.set_page_config(
    page_title="Kakeibo",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro, timeout: float = None):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(asyncio.wait_for(coro, timeout))
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    import_flow, queries, _ = get_components()

    st.sidebar.title("📒 Kakeibo")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📤 Import", "💴 Balances", "🗂 Activity", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Export the combined ledger and the asset ledger as CSV
        2. Upload one or both files
        3. Check the balances page
        """
    )

    if page == "📤 Import":
        render_import_page(import_flow)
    elif page == "💴 Balances":
        render_balances_page(import_flow, queries)
    elif page == "🗂 Activity":
        render_activity_page(import_flow)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_import_page(import_flow: LedgerImportFlow):
    """Render the CSV upload page."""
    st.title("📤 Import")
    st.markdown("Upload the exported CSV files. Months in the files replace what is stored.")

    combined_file = st.file_uploader("Combined ledger (combined)", type=["csv"])
    asset_file = st.file_uploader("Asset ledger (asset)", type=["csv"])

    if st.button("📥 Import", type="primary"):
        timeout = get_settings().app.import_timeout_seconds
        with st.spinner("Importing... Please wait."):
            try:
                status, payload = run_async(
                    handle_import_request(
                        import_flow,
                        combined=combined_file.getvalue() if combined_file else None,
                        asset=asset_file.getvalue() if asset_file else None,
                        correlation_id=create_correlation_id(),
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                st.error(f"The import took longer than {timeout} seconds. Please try again.")
                return

        if status == 200:
            st.markdown(f"""
            <div class="success-box">
                <h4>✅ Import finished</h4>
                <p><strong>Transactions:</strong> {payload["transactions"]["inserted"]} inserted,
                {payload["transactions"]["skipped"]} skipped</p>
                <p><strong>Assets:</strong> {payload["assets"]["snapshots"]} monthly balances,
                {payload["assets"]["transfers"]} investment transfers</p>
            </div>
            """, unsafe_allow_html=True)
        else:
            st.markdown(f"""
            <div class="error-box">
                <h4>❌ Import failed</h4>
                <p>{payload.get("error", "Unknown error")}</p>
            </div>
            """, unsafe_allow_html=True)
        with st.expander("Response"):
            st.json(payload)


def render_balances_page(import_flow: LedgerImportFlow, queries: LedgerQueries):
    """Render account balances as of a month."""
    st.title("💴 Balances")

    today = date.today()
    col1, col2 = st.columns(2)
    with col1:
        year = st.number_input("Year", min_value=1900, max_value=2100, value=today.year)
    with col2:
        month = st.number_input("Month", min_value=1, max_value=12, value=today.month)

    snapshots = run_async(queries.balances_as_of(int(year), int(month)))
    if not snapshots:
        st.info("No balances yet. Import the asset ledger first.")
        return

    st.metric("Total", f"¥{sum(s.closing_balance for s in snapshots):,}")
    st.dataframe(
        [
            {
                "Account": s.account_name,
                "Type": s.asset_type.value,
                "As of": f"{s.year}-{s.month:02d}",
                "Opening": s.opening_balance,
                "Closing": s.closing_balance,
            }
            for s in snapshots
        ],
        use_container_width=True,
    )

    st.markdown("### Correct an account type")
    account = st.selectbox("Account", [s.account_name for s in snapshots])
    asset_type = st.selectbox("Type", list(AssetType), format_func=lambda t: t.value)
    if st.button("Save type"):
        try:
            updated = run_async(import_flow.reclassify_account(account, asset_type))
            st.success(f"Updated {updated} monthly balances")
        except NotFoundError as e:
            st.error(str(e))


def render_activity_page(import_flow: LedgerImportFlow):
    """Render recent audit events."""
    st.title("🗂 Activity")

    audit_logger = import_flow.audit_logger
    if audit_logger is None or audit_logger.storage is None:
        st.info("Activity is not recorded in this setup.")
        return

    events = run_async(audit_logger.storage.get_recent_events(limit=50))
    if not events:
        st.info("No imports yet.")
        return

    for event in events:
        icon = "❌" if event.severity.value in ("error", "critical") else "•"
        st.markdown(f"{icon} `{event.timestamp:%Y-%m-%d %H:%M}` {event.description}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")
    status = validate_all_settings()

    sections = [
        ("Ledger", "ledger"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name}")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file with "
        "`GOOGLE_SHEETS_CREDENTIALS_PATH` and `GOOGLE_SHEETS_SPREADSHEET_ID`."
    )


if __name__ == "__main__":
    main()
