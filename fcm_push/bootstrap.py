from __future__ import annotations

import logging

import httpx

from fcm_push.application.push.dispatcher import PushDispatcher
from fcm_push.config.settings import Settings, get_settings
from fcm_push.domain.value_objects.push_platform import PushPlatform
from fcm_push.infrastructure.push.fcm_v1 import FCMPushSender
from fcm_push.infrastructure.push.logging_provider import LoggingPushSender
from fcm_push.infrastructure.push.models import PushSender

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    root = logging.getLogger()
    # Avoid adding duplicate handlers when called more than once
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    # Align common libraries
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(level)


async def create_push_sender(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PushSender:
    if settings.push_backend == "logging":
        return LoggingPushSender()
    return await FCMPushSender.init(settings, transport=transport)


async def create_push_dispatcher(
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PushDispatcher:
    """
    Build the push dispatcher once at startup.

    FCM delivers to Android, iOS and web tokens alike, so the configured
    backend is registered for every platform. ConfigurationError and
    CertLoadingError from the backend propagate to the caller.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    sender = await create_push_sender(settings, transport=transport)
    logger.info(
        "Push dispatcher ready: environment=%s backend=%s",
        settings.environment,
        settings.push_backend,
    )
    return PushDispatcher({platform: sender for platform in PushPlatform})
