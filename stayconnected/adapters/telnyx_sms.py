"""Telnyx SMS adapter — implements NotificationSender for the sms channel."""

from __future__ import annotations

import logging

from stayconnected.adapters.http_sender import HttpSender
from stayconnected.ports.notification_port import SenderError

logger = logging.getLogger(__name__)

_TELNYX_URL = "https://api.telnyx.com/v2/messages"


class TelnyxSmsSender(HttpSender):
    """Sends text messages through the Telnyx v2 messaging API.

    SMS has no subject line; the subject argument is ignored.
    """

    provider = "Telnyx"

    def __init__(
        self,
        api_key: str,
        from_phone: str,
        timeout: float,
        max_retries: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(timeout=timeout, max_retries=max_retries, **kwargs)
        self._api_key = api_key
        self._from_phone = from_phone

    async def send(self, recipient: str, subject: str, content: str) -> None:
        if not self._from_phone:
            raise SenderError("FROM_PHONE is not configured")
        await self._post(
            _TELNYX_URL,
            {"from": self._from_phone, "to": recipient, "text": content},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        logger.info("SMS sent to %s", recipient)
