"""Sender factory — builds the channel → sender map from configured keys.

A channel whose provider key is missing is left out of the map. The
dispatcher records attempts on such a channel as failed instead of
aborting the whole run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from stayconnected.data.models import Channel

if TYPE_CHECKING:
    from stayconnected.config import Settings
    from stayconnected.data.models import UserApiKeys
    from stayconnected.ports.notification_port import NotificationSender

logger = logging.getLogger(__name__)


def create_senders(
    config: Settings | None = None,
    api_keys: UserApiKeys | None = None,
) -> dict[Channel, NotificationSender]:
    """Return senders for every channel that has a provider key.

    Args:
        config: Settings to read keys, sender addresses and limits from.
            Defaults to the process settings.
        api_keys: Per-user keys. When given, they replace the global email
            and SMS keys and no push sender is built.
    """
    if config is None:
        from stayconnected.config import settings as config

    if api_keys is not None:
        email_key, sms_key, push_token = api_keys.sendgrid_api_key, api_keys.telnyx_api_key, ""
    else:
        email_key, sms_key, push_token = (
            config.SENDGRID_API_KEY, config.TELNYX_API_KEY, config.EXPO_ACCESS_TOKEN,
        )

    senders: dict[Channel, NotificationSender] = {}

    if email_key:
        from stayconnected.adapters.sendgrid_email import SendGridEmailSender

        senders[Channel.EMAIL] = SendGridEmailSender(
            api_key=email_key,
            from_email=config.FROM_EMAIL,
            timeout=config.channel_timeout("email"),
            max_retries=config.channel_retries("email"),
        )

    if sms_key:
        from stayconnected.adapters.telnyx_sms import TelnyxSmsSender

        senders[Channel.SMS] = TelnyxSmsSender(
            api_key=sms_key,
            from_phone=config.FROM_PHONE,
            timeout=config.channel_timeout("sms"),
            max_retries=config.channel_retries("sms"),
        )

    if push_token:
        from stayconnected.adapters.expo_push import ExpoPushSender

        senders[Channel.PUSH] = ExpoPushSender(
            access_token=push_token,
            timeout=config.channel_timeout("push"),
            max_retries=config.channel_retries("push"),
        )

    missing = [c.value for c in Channel if c not in senders]
    if missing and api_keys is None:
        logger.warning("No provider configured for channel(s): %s", ", ".join(missing))
    return senders
