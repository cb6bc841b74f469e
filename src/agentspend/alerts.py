"""Outbound delivery of budget alerts.

Each transport implements AlertChannel.deliver(text) -> bool. The runtime picks
one channel at startup with build_channel() and never inspects it again.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from .config import CONNECT_TIMEOUT, OVERALL_TIMEOUT, Settings

logger = logging.getLogger("agentspend")

TELEGRAM_API = "https://api.telegram.org"


class AlertChannel(ABC):
    name = "base"

    @abstractmethod
    def deliver(self, text: str) -> bool:
        """Send ``text``. Returns False on failure; never raises."""


class LogChannel(AlertChannel):
    """Writes alerts to the log. Used when no transport is configured."""

    name = "log"

    def deliver(self, text: str) -> bool:
        logger.warning("ALERT %s", text)
        return True


class _HttpChannel(AlertChannel):
    def __init__(self, client: httpx.Client | None = None):
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=httpx.Timeout(OVERALL_TIMEOUT, connect=CONNECT_TIMEOUT))
        return self._client

    def _post(self, url: str, payload: dict) -> bool:
        try:
            resp = self._get_client().post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Alert delivery via %s failed: %s", self.name, e)
            return False
        if resp.is_success:
            logger.info("Alert sent via %s", self.name)
            return True
        logger.warning("Alert delivery via %s failed: HTTP %d %s", self.name, resp.status_code, resp.text[:200])
        return False

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None


class WebhookChannel(_HttpChannel):
    """Generic JSON webhook: POSTs ``{"text": ...}``."""

    name = "webhook"

    def __init__(self, url: str, client: httpx.Client | None = None):
        super().__init__(client)
        self.url = url

    def deliver(self, text: str) -> bool:
        return self._post(self.url, {"text": text})


class DiscordChannel(_HttpChannel):
    name = "discord"

    def __init__(self, url: str, client: httpx.Client | None = None):
        super().__init__(client)
        self.url = url

    def deliver(self, text: str) -> bool:
        return self._post(self.url, {"content": text})


class TelegramChannel(_HttpChannel):
    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, client: httpx.Client | None = None):
        super().__init__(client)
        self.bot_token = bot_token
        self.chat_id = chat_id

    def deliver(self, text: str) -> bool:
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        return self._post(url, {"chat_id": self.chat_id, "text": text})


def build_channel(settings: Settings) -> AlertChannel:
    """Pick the configured transport, falling back to LogChannel when it is incomplete."""
    channel = settings.alert_channel.lower()
    if channel in ("webhook", "discord"):
        if settings.alert_webhook_url:
            cls = WebhookChannel if channel == "webhook" else DiscordChannel
            return cls(settings.alert_webhook_url)
        logger.warning("Alert channel %r needs AGENTSPEND_ALERT_WEBHOOK_URL, logging alerts instead", channel)
    elif channel == "telegram":
        if settings.telegram_bot_token and settings.telegram_chat_id:
            return TelegramChannel(settings.telegram_bot_token, settings.telegram_chat_id)
        logger.warning("Telegram alerts need a bot token and chat id, logging alerts instead")
    elif channel != "log":
        logger.warning("Unknown alert channel %r, logging alerts instead", channel)
    return LogChannel()
