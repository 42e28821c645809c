from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from fcm_push.application.errors import AuthError, CertLoadingError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


@dataclass(frozen=True, slots=True)
class ServiceAccountKey:
    client_email: str | None
    private_key: str | None
    private_key_id: str | None = None
    project_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ServiceAccountKey:
        return cls(
            client_email=data.get("client_email"),
            private_key=data.get("private_key"),
            private_key_id=data.get("private_key_id"),
            project_id=data.get("project_id") or None,
            token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
        )


def parse_service_account_key(content: str, *, source: str = "<inline>") -> ServiceAccountKey:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Could not parse FCM service account key at {source}: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Could not parse FCM service account key at {source}: expected a JSON object"
        )
    return ServiceAccountKey.from_mapping(data)


async def read_service_account_key(path: str | Path) -> ServiceAccountKey:
    """Read a service account key file without blocking the event loop.

    Raises ConfigurationError when the file is missing, unreadable or not a
    JSON object.
    """
    key_path = Path(path)
    try:
        content = await asyncio.to_thread(key_path.read_text, encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"Could not read FCM service account key at {key_path}: {exc}"
        ) from exc
    return parse_service_account_key(content, source=str(key_path))


class ServiceAccountAuthenticator:
    """OAuth2 JWT-bearer authenticator for a Google service account.

    Construction validates the key material only; the token exchange happens
    on the first call to ``get_token`` and the result is cached until shortly
    before it expires. Safe to share between concurrent tasks.
    """

    GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    ASSERTION_LIFETIME = 3600
    REFRESH_MARGIN = 60

    def __init__(
        self,
        key: ServiceAccountKey,
        *,
        http_client: httpx.AsyncClient,
        scopes: Sequence[str] = (FCM_SCOPE,),
    ) -> None:
        if not key.client_email:
            raise CertLoadingError("Service account key has no client_email")
        if not key.private_key:
            raise CertLoadingError("Service account key has no private_key")
        try:
            # Only an RSA private key can sign, so sign a throwaway payload
            jwt.encode({"iss": key.client_email}, key.private_key, algorithm="RS256")
        except JOSEError as exc:
            raise CertLoadingError(f"Service account private key is not usable: {exc}") from exc
        self.key = key
        self.scopes = tuple(scopes)
        self._http_client = http_client
        self._lock = asyncio.Lock()
        self._cached_token: str | None = None
        self._token_exp: float = 0

    def _build_assertion(self, now: int) -> str:
        headers = {"kid": self.key.private_key_id} if self.key.private_key_id else None
        return jwt.encode(
            {
                "iss": self.key.client_email,
                "scope": " ".join(self.scopes),
                "aud": self.key.token_uri,
                "iat": now,
                "exp": now + self.ASSERTION_LIFETIME,
            },
            self.key.private_key,
            algorithm="RS256",
            headers=headers,
        )

    async def get_token(self) -> str:
        async with self._lock:
            now = int(time.time())
            # Reuse cached token if valid for > REFRESH_MARGIN seconds
            if self._cached_token and now < (self._token_exp - self.REFRESH_MARGIN):
                return self._cached_token

            try:
                data = {"grant_type": self.GRANT_TYPE, "assertion": self._build_assertion(now)}
                resp = await self._http_client.post(self.key.token_uri, data=data)
                resp.raise_for_status()
                payload = resp.json()
                token = payload["access_token"]
                expires_in = int(payload.get("expires_in", self.ASSERTION_LIFETIME))
            except (httpx.HTTPError, JOSEError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Service account token exchange failed: %s", exc)
                raise AuthError(f"Could not obtain access token: {exc}") from exc

            self._cached_token = token
            self._token_exp = now + expires_in
            logger.debug(
                "Obtained access token for %s (expires_in=%s)", self.key.client_email, expires_in
            )
            return token
