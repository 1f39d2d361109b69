"""Notification services package."""

from src.services.notifications.telegram import (
    NotificationError,
    NotifierInterface,
    TelegramNotifier,
)

__all__ = [
    "NotificationError",
    "NotifierInterface",
    "TelegramNotifier",
]
