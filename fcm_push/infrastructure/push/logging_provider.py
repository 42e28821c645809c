from __future__ import annotations

import logging

from fcm_push.infrastructure.push.fcm_v1 import build_push_message
from fcm_push.infrastructure.push.models import PushSender

logger = logging.getLogger(__name__)


class LoggingPushSender(PushSender):
    async def send(self, token: str) -> None:
        message = build_push_message(token)
        logger.info(
            "Sending push (logging provider): token=%s... title=%s body=%s tag=%s",
            token[:16],
            message["notification"]["title"],
            message["notification"]["body"],
            message["android"]["notification"]["tag"],
        )
