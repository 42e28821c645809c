from __future__ import annotations


class PushSender:
    """Delivers one notification to one device token.

    Implementations return None on success and raise a
    ``fcm_push.application.errors.PushError`` subclass on failure.
    """

    async def send(self, token: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
