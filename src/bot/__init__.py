"""Chat bot adapter: command handling and message formatting."""

from src.bot.commands import BotCommandHandler, parse_command, parse_quick_transaction

__all__ = ["BotCommandHandler", "parse_command", "parse_quick_transaction"]
