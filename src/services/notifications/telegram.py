"""
Telegram Notification Service

Sends plain-text messages through the Telegram Bot API.
Only outbound notifications live here; receiving chat updates is
the job of whatever webhook sits in front of the command handler.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from src.config import TelegramSettings, get_settings


logger = structlog.get_logger(__name__)


class NotificationError(Exception):
    """A message could not be delivered."""
    pass


class NotifierInterface(ABC):
    """Anything that can deliver a text message to a chat."""

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> bool:
        """
        Deliver a message.

        Raises:
            NotificationError: If delivery fails
        """
        pass


class TelegramNotifier(NotifierInterface):
    """Telegram Bot API `sendMessage` over httpx."""

    def __init__(
        self,
        settings: Optional[TelegramSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().telegram
        self._client = client

    @property
    def _endpoint(self) -> str:
        base = self._settings.api_base_url.rstrip("/")
        return f"{base}/bot{self._settings.bot_token}/sendMessage"

    async def send_message(self, chat_id: str, text: str) -> bool:
        payload = {"chat_id": chat_id, "text": text}
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._endpoint, json=payload, timeout=self._settings.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
                    response = await client.post(self._endpoint, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Telegram sendMessage failed: {e}") from e

        logger.info("notification_sent", chat_id=chat_id)
        return True
