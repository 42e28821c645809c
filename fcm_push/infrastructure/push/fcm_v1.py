from __future__ import annotations

import logging
import ssl
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from fcm_push.application.errors import (
    AuthError,
    CertLoadingError,
    ConfigurationError,
    PushEndpointTemporaryError,
    PushError,
    TokenBlockedError,
    TokenRateLimitedError,
    UnknownPushError,
)
from fcm_push.config.settings import Settings
from fcm_push.infrastructure.push.models import PushSender
from fcm_push.infrastructure.push.service_account import (
    ServiceAccountAuthenticator,
    ServiceAccountKey,
    parse_service_account_key,
    read_service_account_key,
)

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Fedi Alpha"
NOTIFICATION_BODY = "You have new messages"
# Same tag on both platforms so the tray only ever shows one entry
COLLAPSE_TAG = "new_chat_messages"
APNS_COLLAPSE_HEADER = "apns-collapse-id"

FCM_ERROR_DETAIL_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"


class FCMErrorCode(str, Enum):
    UNSPECIFIED_ERROR = "UNSPECIFIED_ERROR"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    UNREGISTERED = "UNREGISTERED"
    SENDER_ID_MISMATCH = "SENDER_ID_MISMATCH"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UNAVAILABLE = "UNAVAILABLE"
    INTERNAL = "INTERNAL"
    THIRD_PARTY_AUTH_ERROR = "THIRD_PARTY_AUTH_ERROR"


_KNOWN_CODES = frozenset(code.value for code in FCMErrorCode)

_ERROR_MAP: dict[FCMErrorCode, type[PushError]] = {
    FCMErrorCode.UNREGISTERED: TokenBlockedError,
    FCMErrorCode.SENDER_ID_MISMATCH: TokenBlockedError,
    FCMErrorCode.QUOTA_EXCEEDED: TokenRateLimitedError,
    FCMErrorCode.UNAVAILABLE: PushEndpointTemporaryError,
    FCMErrorCode.INTERNAL: PushEndpointTemporaryError,
}


class FCMErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = Field(default=None, alias="@type")
    error_code: str | None = Field(default=None, alias="errorCode")


class FCMErrorStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int | None = None
    message: str | None = None
    status: str | None = None
    details: list[FCMErrorDetail] = Field(default_factory=list)


class FCMErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: FCMErrorStatus


def build_push_message(token: str) -> dict[str, Any]:
    return {
        "data": {},
        "token": token,
        "notification": {"title": NOTIFICATION_TITLE, "body": NOTIFICATION_BODY},
        "android": {"notification": {"tag": COLLAPSE_TAG}},
        "apns": {"headers": {APNS_COLLAPSE_HEADER: COLLAPSE_TAG}},
    }


def extract_error_code(body: Any) -> str | None:
    """
    Return the FCM error code carried by an error response body.

    The code normally lives in the FcmError entry of ``error.details``; when
    that entry is absent, ``error.status`` is used if it names an FCM code.
    Returns None when the body does not have the expected shape.
    """
    try:
        parsed = FCMErrorBody.model_validate(body)
    except PydanticValidationError:
        return None
    for detail in parsed.error.details:
        if detail.error_code and (detail.type is None or detail.type == FCM_ERROR_DETAIL_TYPE):
            return detail.error_code
    status = parsed.error.status
    if status in _KNOWN_CODES:
        return status
    return None


def error_for_code(code: str | None, *, status_code: int | None = None) -> PushError:
    details = {"fcm_error_code": code, "http_status": status_code}
    try:
        fcm_code = FCMErrorCode(code) if code else None
    except ValueError:
        fcm_code = None
    error_cls = _ERROR_MAP.get(fcm_code) if fcm_code else None
    if error_cls is None:
        return UnknownPushError(f"FCM error {code or 'unparsable'}", details=details)
    return error_cls(f"FCM error {fcm_code.value}", details=details)


def error_for_response(response: httpx.Response) -> PushError:
    try:
        body = response.json()
    except ValueError:
        # No structured body: treat as a transient transport-level failure
        return PushEndpointTemporaryError(
            f"FCM returned HTTP {response.status_code} without an error body",
            details={"http_status": response.status_code},
        )
    return error_for_code(extract_error_code(body), status_code=response.status_code)


async def _require_https(request: httpx.Request) -> None:
    if request.url.scheme != "https":
        raise httpx.UnsupportedProtocol(
            f"Refusing non-HTTPS request to {request.url}", request=request
        )


def build_https_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """HTTPS-only HTTP/2 client verified against the platform trust store."""
    return httpx.AsyncClient(
        http2=True,
        verify=ssl.create_default_context(),
        timeout=httpx.Timeout(settings.fcm_timeout_seconds),
        event_hooks={"request": [_require_https]},
        transport=transport,
    )


class FCMPushSender(PushSender):
    """Firebase Cloud Messaging HTTP v1 sender bound to one project.

    Build it once with ``await FCMPushSender.init(settings)`` and share it;
    it holds no per-send state.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        authenticator: ServiceAccountAuthenticator,
        parent: str,
        endpoint: str = "https://fcm.googleapis.com",
    ) -> None:
        self.http_client = http_client
        self.authenticator = authenticator
        self.parent = parent
        self.endpoint = endpoint

    @property
    def messages_url(self) -> str:
        return f"{self.endpoint}/v1/{self.parent}/messages:send"

    @classmethod
    async def init(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> FCMPushSender:
        """
        Load the service account key and build a ready-to-use sender.

        Raises:
            ConfigurationError: key missing, unreadable, unparsable or without
                a project id. Not meant to be handled; the process should stop.
            CertLoadingError: the key was read but the authenticator rejected it.
        """
        key = await cls._load_key(settings)

        http_client = build_https_client(settings, transport=transport)
        try:
            authenticator = ServiceAccountAuthenticator(key, http_client=http_client)
        except CertLoadingError as exc:
            logger.error("Could not load FCM service account authenticator: %s", exc)
            await http_client.aclose()
            raise

        if not key.project_id:
            await http_client.aclose()
            raise ConfigurationError("FCM service account key has no project_id")

        logger.info(
            "FCM sender ready: project=%s account=%s", key.project_id, key.client_email
        )
        return cls(
            http_client=http_client,
            authenticator=authenticator,
            parent=f"projects/{key.project_id}",
            endpoint=settings.fcm_endpoint,
        )

    @staticmethod
    async def _load_key(settings: Settings) -> ServiceAccountKey:
        source = settings.fcm_service_account_file
        if not source:
            raise ConfigurationError("FCM_SERVICE_ACCOUNT_FILE is not configured")
        if settings.fcm_service_account_is_inline:
            return parse_service_account_key(source.strip())
        return await read_service_account_key(source.strip())

    async def send(self, token: str) -> None:
        payload = {"message": build_push_message(token)}
        try:
            access_token = await self.authenticator.get_token()
        except AuthError as exc:
            raise PushEndpointTemporaryError(
                "FCM access token unavailable", details={"reason": exc.message}
            ) from exc

        try:
            resp = await self.http_client.post(
                self.messages_url,
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("FCM returned %s (token=%s...)", exc, token[:16])
            raise PushEndpointTemporaryError(f"FCM request failed: {exc}") from exc

        if resp.is_success:
            logger.debug("FCM accepted message for token=%s...", token[:16])
            return None

        error = error_for_response(resp)
        logger.warning(
            "FCM returned %s: %s (token=%s...) -> %s",
            resp.status_code,
            resp.text,
            token[:16],
            error.code,
        )
        raise error

    async def aclose(self) -> None:
        await self.http_client.aclose()
