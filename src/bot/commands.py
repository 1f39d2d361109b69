"""
Chat Command Handler

Maps incoming chat text to ledger flows and returns the reply text.
Delivery (webhook, polling, sendMessage) is not handled here, so the
handler can be driven by any chat transport or by tests.

DESIGN DECISION: The handler never lets an exception escape.
- Bad input (TransactionValidationError) becomes usage text
- Anything else becomes one generic apology, and is logged
"""

import re
from datetime import date
from typing import TYPE_CHECKING, Optional

import structlog

from src.bot import formatting
from src.models.transaction import DateWindow
from src.validation import TransactionValidationError

if TYPE_CHECKING:
    from src.orchestrator import ReportFlow, TransactionFlow


logger = structlog.get_logger(__name__)

QUICK_TRANSACTION_PATTERN = re.compile(r"^(-?\d+(?:\.\d{2})?)\s+(.+)$")


def parse_command(text: str) -> tuple[str, list[str]]:
    """
    Split "/add@MyBot 25 Coffee" into ("/add", ["25", "Coffee"]).
    """
    parts = text.split()
    command = parts[0].split("@", 1)[0].lower()
    return command, parts[1:]


def parse_quick_transaction(text: str) -> Optional[tuple[str, str]]:
    """Match the "25.50 Coffee" shorthand. Returns (amount, description)."""
    match = QUICK_TRANSACTION_PATTERN.match(text.strip())
    if not match:
        return None
    return match.group(1), match.group(2).strip()


class BotCommandHandler:
    """
    Text in, reply text out.

    Usage:
        handler = BotCommandHandler(transaction_flow, report_flow)
        reply = await handler.handle_text("/add 25.50 Coffee")
    """

    def __init__(
        self,
        transaction_flow: "TransactionFlow",
        report_flow: "ReportFlow",
    ):
        self._transactions = transaction_flow
        self._reports = report_flow
        self._commands = {
            "/start": self._start,
            "/help": self._help,
            "/add": self._add,
            "/refund": self._refund,
            "/balance": self._balance,
            "/report": self._report,
            "/ccreport": self._card_report,
            "/categories": self._categories,
        }

    async def handle_text(self, text: str, today: Optional[date] = None) -> Optional[str]:
        """
        Handle one chat message.

        Returns:
            The reply, or None when the message isn't for the bot
            (unknown command, or text that isn't a quick transaction)
        """
        text = (text or "").strip()
        if not text:
            return None

        try:
            if text.startswith("/"):
                command, args = parse_command(text)
                handler = self._commands.get(command)
                if handler is None:
                    return None
                return await handler(args, today or date.today())

            quick = parse_quick_transaction(text)
            if quick is None:
                return None
            return await self._record_manual(quick[0], quick[1], today or date.today())

        except Exception as e:
            logger.error("command_failed", text=text[:100], error=str(e))
            return formatting.GENERIC_ERROR

    async def _start(self, args: list[str], today: date) -> str:
        return formatting.START_MESSAGE

    async def _help(self, args: list[str], today: date) -> str:
        return formatting.HELP_MESSAGE

    async def _record_manual(self, amount: str, description: str, today: date) -> str:
        try:
            record = await self._transactions.add_manual_transaction(
                amount, description, transaction_date=today
            )
        except TransactionValidationError as e:
            return f"⚠️ {e}\n\n{formatting.ADD_USAGE}"
        return formatting.format_transaction_added(record)

    async def _add(self, args: list[str], today: date) -> str:
        if len(args) < 2:
            return formatting.ADD_USAGE
        return await self._record_manual(args[0], " ".join(args[1:]), today)

    async def _refund(self, args: list[str], today: date) -> str:
        if len(args) < 2:
            return formatting.REFUND_USAGE
        try:
            record = await self._transactions.process_refund(
                args[0], " ".join(args[1:]), refund_date=today
            )
        except TransactionValidationError as e:
            return f"⚠️ {e}\n\n{formatting.REFUND_USAGE}"
        return formatting.format_refund(record)

    async def _balance(self, args: list[str], today: date) -> str:
        balance = await self._reports.monthly_balance(today)
        return formatting.format_balance(balance, DateWindow.current_month(today))

    async def _report(self, args: list[str], today: date) -> str:
        summary = await self._reports.monthly_report(today)
        return formatting.format_monthly_report(summary, self._reports.top_categories)

    async def _card_report(self, args: list[str], today: date) -> str:
        summary = await self._reports.card_summary(today=today)
        return formatting.format_card_report(summary, self._reports.top_categories)

    async def _categories(self, args: list[str], today: date) -> str:
        return formatting.format_categories(await self._reports.list_categories())
