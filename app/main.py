"""
Streamlit Dashboard for the Finance Ledger

The browser counterpart of the chat bot. Everything the bot can do
is available here, plus statement imports, which are too long to paste
into a chat message.

DESIGN PRINCIPLES:
1. Every number shown comes from the ledger, never from the AI
2. Bad input gets a clear message and nothing is saved
3. Refund outcomes are explicit: linked or unmatched
"""

import asyncio
from datetime import date

import streamlit as st

from src.bot import BotCommandHandler, formatting
from src.config import validate_all_settings
from src.models.transaction import DateWindow
from src.orchestrator import ReportFlow, TransactionFlow, create_app_components
from src.validation import TransactionValidationError


st.set_page_config(
    page_title="Finance Ledger",
    page_icon="💰",
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
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def main():
    transaction_flow, report_flow, sheets_client = get_components()

    st.sidebar.title("💰 Finance Ledger")
    if sheets_client is None:
        st.sidebar.warning("Google Sheets not configured: entries are kept in memory only.")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "➕ Add Transaction",
            "↩️ Refund",
            "📄 Import Statement",
            "📧 Bank E-mail",
            "💬 Chat",
            "📊 Reports",
            "⚙️ Settings",
        ],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Amounts:**
        - Negative for money out: `-25.50`
        - Positive for money in: `1200`

        Refunds are matched to purchases from the last 90 days.
        """
    )

    if page == "➕ Add Transaction":
        render_add_page(transaction_flow)
    elif page == "↩️ Refund":
        render_refund_page(transaction_flow)
    elif page == "📄 Import Statement":
        render_import_page(transaction_flow)
    elif page == "📧 Bank E-mail":
        render_email_page(transaction_flow)
    elif page == "💬 Chat":
        render_chat_page(transaction_flow, report_flow)
    elif page == "📊 Reports":
        render_reports_page(report_flow)
    elif page == "⚙️ Settings":
        render_settings_page(report_flow)


def render_add_page(transaction_flow: TransactionFlow):
    st.title("➕ Add Transaction")

    with st.form("add_transaction"):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.text_input("Amount", placeholder="-25.50")
            transaction_date = st.date_input("Date", value=date.today())
        with col2:
            description = st.text_input("Description", placeholder="Coffee at Starbucks")
            account = st.text_input("Account", placeholder="default")
        card = st.checkbox(
            "Card transaction",
            help="Positive card amounts are treated as refunds and matched to purchases",
        )
        submitted = st.form_submit_button("💾 Save", type="primary")

    if not submitted:
        return

    with st.spinner("Categorizing and saving..."):
        try:
            if card:
                record = run_async(transaction_flow.process_card_transaction(
                    amount, description, transaction_date=transaction_date, account=account or None
                ))
            else:
                record = run_async(transaction_flow.add_manual_transaction(
                    amount, description, transaction_date=transaction_date, account=account or None
                ))
        except TransactionValidationError as e:
            st.warning(f"⚠️ {e}")
            return
        except Exception as e:
            st.error(f"Error: {str(e)}")
            return

    st.success(formatting.format_transaction_added(record).replace("\n", "  \n"))


def render_refund_page(transaction_flow: TransactionFlow):
    st.title("↩️ Record a Refund")
    st.markdown("The refund is linked to the matching purchase when one is found.")

    with st.form("refund"):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.text_input("Refund amount", placeholder="25.50")
            refund_date = st.date_input("Refund date", value=date.today())
        with col2:
            description = st.text_input("Description", placeholder="Starbucks refund")
            account = st.text_input("Account", placeholder="default")
        original_id = st.text_input(
            "Original transaction ID (optional)",
            help="Leave empty to search recent purchases",
        )
        submitted = st.form_submit_button("↩️ Process Refund", type="primary")

    if not submitted:
        return

    try:
        record = run_async(transaction_flow.process_refund(
            amount,
            description,
            refund_date=refund_date,
            account=account or None,
            original_id=original_id or None,
        ))
    except TransactionValidationError as e:
        st.warning(f"⚠️ {e}")
        return
    except Exception as e:
        st.error(f"Error: {str(e)}")
        return

    box = "success-box" if record.original_id else "info-box"
    st.markdown(f"""
    <div class="{box}">
        <h4>{'🔗 Linked to original purchase' if record.original_id else '📋 No matching purchase'}</h4>
        <p>{record.description}: {formatting.format_money(record.amount, signed=True)}</p>
        <p>Category: {record.category}</p>
    </div>
    """, unsafe_allow_html=True)


def render_import_page(transaction_flow: TransactionFlow):
    st.title("📄 Import Statement")
    st.markdown("Paste the text of a credit card statement.")

    account_name = st.text_input("Account name", placeholder="Visa")
    text = st.text_area("Statement text", height=300)

    if not st.button("📥 Import", type="primary"):
        return
    if not account_name.strip() or not text.strip():
        st.warning("Please provide both an account name and the statement text.")
        return

    with st.spinner("Reading the statement..."):
        try:
            result = run_async(transaction_flow.import_statement(text, account_name.strip()))
        except Exception as e:
            st.error(f"Error: {str(e)}")
            return

    if result.total == 0:
        st.info("No transactions were found in this statement.")
        return

    st.success(f"✅ Imported {len(result.succeeded)} of {result.total} transactions.")
    if result.succeeded:
        st.dataframe(
            [
                {
                    "date": r.date.isoformat(),
                    "amount": str(r.amount),
                    "description": r.description,
                    "category": r.category,
                    "kind": r.kind.value,
                }
                for r in result.succeeded
            ],
            use_container_width=True,
        )
    if result.has_failures:
        with st.expander(f"⚠️ {len(result.failed)} lines could not be imported"):
            for failure in result.failed:
                st.markdown(f"**Line {failure.index + 1}:** {failure.error}")
                st.json(failure.descriptor)


def render_email_page(transaction_flow: TransactionFlow):
    st.title("📧 Bank E-mail")
    st.markdown(
        "Paste a bank notification e-mail. If it describes a transaction, "
        "it is recorded and a Telegram notification is sent."
    )

    with st.form("bank_email"):
        sender = st.text_input("From", placeholder="alerts@bank.example")
        subject = st.text_input("Subject", placeholder="Card transaction")
        body = st.text_area("Body", height=250)
        submitted = st.form_submit_button("📨 Process E-mail", type="primary")

    if not submitted:
        return
    if not body.strip():
        st.warning("Please paste the e-mail body.")
        return

    with st.spinner("Reading the e-mail..."):
        record = run_async(transaction_flow.ingest_email(subject, body, sender=sender))

    if record is None:
        st.info("No transaction was recorded from this e-mail.")
        return
    st.success(formatting.format_email_notification(record, sender).replace("\n", "  \n"))


def render_chat_page(transaction_flow: TransactionFlow, report_flow: ReportFlow):
    st.title("💬 Chat")
    st.markdown("Send the same commands as the Telegram bot. Try `/help`.")

    handler = BotCommandHandler(transaction_flow, report_flow)
    history = st.session_state.setdefault("chat_history", [])

    text = st.chat_input("/add -25.50 Coffee")
    if text:
        history.append(("user", text))
        reply = run_async(handler.handle_text(text))
        history.append(("assistant", reply or "🤷 Not a command. Try /help."))

    for role, message in history:
        with st.chat_message(role):
            st.markdown(message.replace("\n", "  \n"))


def render_reports_page(report_flow: ReportFlow):
    st.title("📊 Reports")

    today = st.date_input("Month", value=date.today(), help="Any day in the month to report on")
    tab_month, tab_card = st.tabs(["📈 Monthly", "💳 Credit Card"])

    with tab_month:
        try:
            summary = run_async(report_flow.monthly_report(today))
        except Exception as e:
            st.error(f"Error: {str(e)}")
        else:
            col1, col2, col3 = st.columns(3)
            col1.metric("Income", formatting.format_money(summary.total_income))
            col2.metric("Expenses", formatting.format_money(summary.total_expense))
            col3.metric("Net", formatting.format_money(summary.net))
            render_breakdown(summary.breakdown_dict)

    with tab_card:
        account = st.text_input("Card account", value="default")
        try:
            summary = run_async(report_flow.card_summary(
                account=account or None,
                window=DateWindow.current_month(today),
            ))
        except Exception as e:
            st.error(f"Error: {str(e)}")
        else:
            col1, col2, col3, col4 = st.columns(4)
            col1.metric("Spent", formatting.format_money(summary.total_spent))
            col2.metric("Refunds", formatting.format_money(summary.total_refunds))
            col3.metric("Net spent", formatting.format_money(summary.net_spent))
            col4.metric("Transactions", summary.count)
            render_breakdown(summary.breakdown_dict)


def render_breakdown(breakdown: dict):
    if not breakdown:
        st.info("No spending recorded for this period.")
        return
    st.markdown("**Spending by category**")
    st.bar_chart({category: float(total) for category, total in breakdown.items()})


def render_settings_page(report_flow: ReportFlow):
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Telegram (Notifications)", "telegram"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Categories")
    try:
        categories = run_async(report_flow.list_categories())
    except Exception as e:
        st.error(f"Error: {str(e)}")
        categories = []
    if categories:
        st.dataframe(categories, use_container_width=True)

    with st.form("add_category"):
        name = st.text_input("Name")
        keywords = st.text_input("Keywords", help="Comma-separated merchant keywords")
        budget = st.text_input("Monthly budget")
        color = st.color_picker("Colour", value="#4CAF50")
        if st.form_submit_button("➕ Add Category"):
            try:
                run_async(report_flow.add_category(name, keywords, budget, color))
                st.success(f"Category '{name}' added.")
            except Exception as e:
                st.error(f"Error: {str(e)}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys "
        "(`GOOGLE_SHEETS_*`, `GEMINI_*`, `TELEGRAM_*`, and optional `LEDGER_*` tuning)."
    )


if __name__ == "__main__":
    main()
