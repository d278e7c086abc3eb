"""Expo push adapter — implements NotificationSender for the push channel.

The recipient is an Expo push token registered by the mobile client.
"""

from __future__ import annotations

import logging

from stayconnected.adapters.http_sender import HttpSender
from stayconnected.ports.notification_port import SenderError

logger = logging.getLogger(__name__)

_EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class ExpoPushSender(HttpSender):
    provider = "Expo"

    def __init__(self, access_token: str, timeout: float, max_retries: int = 0, **kwargs) -> None:
        super().__init__(timeout=timeout, max_retries=max_retries, **kwargs)
        self._access_token = access_token

    async def send(self, recipient: str, subject: str, content: str) -> None:
        resp = await self._post(
            _EXPO_PUSH_URL,
            [{"to": recipient, "sound": "default", "title": subject, "body": content}],
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self._access_token}",
            },
        )
        # Expo answers 200 with per-message tickets; a ticket can still be an error
        tickets = resp.json().get("data", [])
        for ticket in tickets if isinstance(tickets, list) else [tickets]:
            if ticket.get("status") == "error":
                raise SenderError(f"Expo push rejected: {ticket.get('message', 'unknown error')}")
        logger.info("Push sent to %s…", recipient[:20])
