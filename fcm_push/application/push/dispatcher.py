from __future__ import annotations

import logging
from typing import Mapping

from fcm_push.application.errors import ValidationError
from fcm_push.domain.value_objects.push_platform import PushPlatform
from fcm_push.infrastructure.push.models import PushSender

logger = logging.getLogger(__name__)


class PushDispatcher:
    """Routes a token to the push backend registered for its platform."""

    def __init__(self, senders: Mapping[PushPlatform, PushSender]) -> None:
        self._senders = dict(senders)

    def sender_for(self, platform: str | PushPlatform) -> PushSender:
        try:
            key = PushPlatform.parse(platform)
        except ValueError as exc:
            raise ValidationError(f"Unknown push platform: {platform}") from exc
        sender = self._senders.get(key)
        if sender is None:
            raise ValidationError(
                f"No push backend configured for platform {key.value}",
                details={"platform": key.value},
            )
        return sender

    async def send(self, platform: str | PushPlatform, token: str) -> None:
        """
        Deliver the notification to ``token`` through the platform's backend.
        PushError subclasses raised by the backend propagate unchanged.
        """
        sender = self.sender_for(platform)
        await sender.send(token)

    async def aclose(self) -> None:
        # The same sender may serve several platforms
        seen: set[int] = set()
        for sender in self._senders.values():
            if id(sender) in seen:
                continue
            seen.add(id(sender))
            await sender.aclose()
        logger.debug("Closed %s push backend(s)", len(seen))
