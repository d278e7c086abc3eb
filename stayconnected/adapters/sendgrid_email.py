"""SendGrid email adapter — implements NotificationSender for the email channel."""

from __future__ import annotations

import html
import logging

from stayconnected.adapters.http_sender import HttpSender

logger = logging.getLogger(__name__)

_SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridEmailSender(HttpSender):
    """Sends plain-text + HTML mail through the SendGrid v3 API."""

    provider = "SendGrid"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        timeout: float,
        max_retries: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(timeout=timeout, max_retries=max_retries, **kwargs)
        self._api_key = api_key
        self._from_email = from_email

    async def send(self, recipient: str, subject: str, content: str) -> None:
        payload = {
            "personalizations": [{"to": [{"email": recipient}], "subject": subject}],
            "from": {"email": self._from_email},
            "content": [
                {"type": "text/plain", "value": content},
                {
                    "type": "text/html",
                    "value": (
                        f"<h2>{html.escape(subject)}</h2>"
                        f"<p>{html.escape(content)}</p>"
                        "<hr><p><small>This is an automated message from Stay Connected.</small></p>"
                    ),
                },
            ],
        }
        await self._post(
            _SENDGRID_URL,
            payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        logger.info("Email sent to %s", recipient)
