"""Outbound notifications for due reminders.

Notifications are published to an ntfy-style topic endpoint:
POST {NOTIFY_BASE_URL}/{NOTIFY_TOPIC} with the message as the request body
and the title in the ``Title`` header.

Delivery is best effort: one attempt, no retry. Failures are logged and
reported to the caller as ``False``; they never raise.
"""

import base64
from typing import Optional

import httpx

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'notifier.log')


def encode_header(value: str) -> str:
    """Encode non-ASCII header values as RFC 2047 (ntfy decodes these)."""
    if value.isascii():
        return value
    encoded = base64.b64encode(value.encode('utf-8')).decode('ascii')
    return f"=?UTF-8?B?{encoded}?="


class Notifier:
    """Send (title, message) notifications to the configured topic."""

    def __init__(
        self,
        enabled: Optional[bool] = None,
        base_url: Optional[str] = None,
        topic: Optional[str] = None,
        tags: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.enabled = settings.NOTIFY_ENABLED if enabled is None else enabled
        self.base_url = (base_url or settings.NOTIFY_BASE_URL).rstrip('/')
        self.topic = topic or settings.NOTIFY_TOPIC
        self.tags = settings.NOTIFY_TAGS if tags is None else tags
        self.timeout = settings.NOTIFY_TIMEOUT if timeout is None else timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.topic}"

    async def send(self, title: str, message: str) -> bool:
        """Publish one notification.

        Args:
            title: Notification title
            message: Notification body (plain text)

        Returns:
            bool: True if delivered (or notifications are disabled), False otherwise
        """
        if not self.enabled:
            logger.debug(f"Notifications disabled, not sending '{title}'")
            return True

        headers = {"Title": encode_header(title)}
        if self.tags:
            headers["Tags"] = self.tags

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, content=message.encode('utf-8'), headers=headers)

            if response.status_code == 200:
                logger.info(f"Notification sent: '{title}'")
                return True

            logger.error(
                f"Notification '{title}' failed. "
                f"Status: {response.status_code}, Response: {response.text}"
            )
            return False

        except httpx.TimeoutException:
            logger.error(f"Timeout while sending notification '{title}'")
            return False
        except httpx.RequestError as e:
            logger.error(f"Network error while sending notification '{title}': {str(e)}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error while sending notification '{title}': {str(e)}")
            return False
