"""
Chat Message Formatting

Every user-facing string the bot sends is built here.
The ledger core only returns records and summaries; it never
builds display text.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

from src.models.transaction import DateWindow, LedgerSummary, TransactionRecord


GENERIC_ERROR = "Sorry, something went wrong. Please try again."

ADD_USAGE = "Usage: /add [amount] [description]\nExample: /add 25.50 Coffee at Starbucks"
REFUND_USAGE = "Usage: /refund [amount] [description]\nExample: /refund 25.50 Starbucks refund"

START_MESSAGE = """🤖 Welcome to your Personal Finance Bot!

Commands:
• /add [amount] [description] - Add transaction
• /refund [amount] [description] - Record a refund
• /balance - Current balance
• /report - Monthly report
• /ccreport - Credit card report
• /categories - View categories

You can also just type: "25.50 Coffee" to add quickly!"""

HELP_MESSAGE = """🤖 Personal Finance Bot Help

📝 Adding Transactions:
• /add 25.50 Coffee at Starbucks
• 25.50 Coffee (quick format)
• -100 Grocery shopping (negative for expenses)

💳 Credit Card:
• /refund 25.50 Starbucks refund - linked to the original purchase when found
• /ccreport - Spent, refunded and net spent this month

📊 Reports:
• /balance - Current month balance
• /report - Detailed monthly report
• /categories - View all categories

🤖 AI Features:
• Automatic categorization
• Smart tagging
• Email transaction parsing"""


def format_money(amount: Decimal, signed: bool = False) -> str:
    """$12.34, or +$12.34 / -$12.34 when signed."""
    text = f"${abs(amount):,.2f}"
    if not signed:
        return f"-{text}" if amount < 0 else text
    return f"-{text}" if amount < 0 else f"+{text}"


def _period(window: Optional[DateWindow]) -> str:
    if window is None:
        return "all time"
    return window.start.strftime("%B %Y")


def format_transaction_added(record: TransactionRecord) -> str:
    return "\n".join([
        "✅ Transaction added!",
        f"💰 Amount: {format_money(record.amount)}",
        f"📝 Description: {record.description}",
        f"🏷️ Category: {record.category}",
        f"🔖 Tags: {record.tags_text or '-'}",
    ])


def format_refund(record: TransactionRecord) -> str:
    lines = [
        "✅ Refund processed!",
        f"💰 Amount: {format_money(record.amount, signed=True)}",
        f"📝 Description: {record.description}",
        f"🏷️ Category: {record.category}",
    ]
    if record.original_id:
        lines.append("🔗 Linked to original purchase")
    else:
        lines.append("🔗 No matching purchase found")
    return "\n".join(lines)


def format_balance(balance: Decimal, window: DateWindow) -> str:
    return f"📊 Monthly Balance ({_period(window)})\n💰 Total: {format_money(balance)}"


def _breakdown_lines(summary: LedgerSummary, limit: int) -> list[str]:
    return [
        f"• {item.category}: {format_money(item.total)}"
        for item in summary.top_categories(limit)
    ]


def format_monthly_report(summary: LedgerSummary, limit: int = 5) -> str:
    lines = [
        f"📈 Monthly Report ({_period(summary.window)})",
        "",
        f"💰 Income: {format_money(summary.total_income)}",
        f"💸 Expenses: {format_money(summary.total_expense)}",
        f"📊 Net: {format_money(summary.net)}",
    ]
    breakdown = _breakdown_lines(summary, limit)
    if breakdown:
        lines += ["", "📋 Top Categories:"] + breakdown
    return "\n".join(lines)


def format_card_report(summary: LedgerSummary, limit: int = 5) -> str:
    lines = [
        f"💳 Credit Card Report ({_period(summary.window)})",
        "",
        f"💸 Total Spent: {format_money(summary.total_spent)}",
        f"💰 Total Refunds: {format_money(summary.total_refunds)}",
        f"📊 Net Spent: {format_money(summary.net_spent)}",
        f"🔢 Transactions: {summary.count}",
    ]
    breakdown = _breakdown_lines(summary, limit)
    if breakdown:
        lines += ["", "📋 Category Breakdown:"] + breakdown
    return "\n".join(lines)


def format_categories(categories: Iterable[dict[str, str]]) -> str:
    names = [c.get("name", "") for c in categories if c.get("name")]
    if not names:
        return "🏷️ No categories yet."
    return "🏷️ Categories:\n\n" + "\n".join(f"• {name}" for name in names)


def format_email_notification(record: TransactionRecord, sender: str = "") -> str:
    lines = [
        "🏦 Bank Transaction Detected!",
        f"💰 Amount: {format_money(record.amount)}",
        f"📝 Description: {record.description}",
        f"🏷️ Category: {record.category}",
    ]
    if sender:
        lines.append(f"📧 Source: {sender}")
    return "\n".join(lines)
