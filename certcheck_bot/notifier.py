"""
Slack webhook notifications for SSL Certificate Checker.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from certcheck_bot.errors import NotifierFailed
from certcheck_bot.logger import get_logger

DEFAULT_TIMEOUT = 10.0


def format_alert_message(domain: str, days_remaining: int, expiry: datetime, threshold: int) -> str:
    """Build the Slack text for a certificate expiry alert."""
    expiry_text = expiry.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return (
        "🚨 *SSL Certificate Expiration Alert*\n"
        f"The SSL certificate for *{domain}* will expire in *{days_remaining}* days "
        f"({expiry_text}).\n"
        f"Threshold reached: {threshold} days\n"
        "Please take action to renew the certificate before it expires."
    )


def format_details(text: str, details: Optional[Dict[str, Any]]) -> str:
    """Append a fenced JSON block of ``details`` to ``text``."""
    if not details:
        return text
    try:
        rendered = json.dumps(details, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return text
    return f"{text}\n```{rendered}```"


class Notifier(ABC):
    """Outbound notification channel."""

    @abstractmethod
    async def send_alert(
        self, domain: str, days_remaining: int, expiry: datetime, threshold: int
    ) -> None:
        """Send a certificate expiry alert. Raises NotifierFailed on failure."""

    @abstractmethod
    async def send_message(self, text: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Send a free-form message. Raises NotifierFailed on failure."""


class SlackNotifier(Notifier):
    """
    Notifier that POSTs ``{"text": ...}`` to a Slack incoming webhook.

    Only an HTTP 200 response counts as delivered.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport
        self.logger = get_logger("notifier")

    async def send_alert(
        self, domain: str, days_remaining: int, expiry: datetime, threshold: int
    ) -> None:
        await self._post(format_alert_message(domain, days_remaining, expiry, threshold))

    async def send_message(self, text: str, details: Optional[Dict[str, Any]] = None) -> None:
        await self._post(format_details(text, details))

    async def _post(self, text: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            raise NotifierFailed(f"Failed to send Slack message: {e}") from e

        if response.status_code != 200:
            body = response.text[:200]
            raise NotifierFailed(
                f"Slack webhook returned status={response.status_code} body={body}",
                status_code=response.status_code,
            )

        self.logger.debug("Slack message delivered")
