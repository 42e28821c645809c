from __future__ import annotations

import json
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

# ruff: noqa: E402
from fcm_push.config.settings import Settings
from fcm_push.infrastructure.push.fcm_v1 import FCMPushSender

TOKEN_URI = "https://oauth2.googleapis.com/token"
PROJECT_ID = "test-project"
ACCESS_TOKEN = "test-access-token"


class FakeFCM:
    """In-memory stand-in for the OAuth2 token endpoint and the FCM v1 API."""

    def __init__(self) -> None:
        self.token_requests: list[httpx.Request] = []
        self.send_requests: list[httpx.Request] = []
        self.token_response: Callable[[httpx.Request], httpx.Response] = lambda request: (
            httpx.Response(200, json={"access_token": ACCESS_TOKEN, "expires_in": 3600})
        )
        self.send_response: Callable[[httpx.Request], httpx.Response] = lambda request: (
            httpx.Response(200, json={"name": f"projects/{PROJECT_ID}/messages/0:1"})
        )

    def reply_with_error(self, status_code: int, error_code: str, status: str = "") -> None:
        body = {
            "error": {
                "code": status_code,
                "message": f"Request failed with {error_code}",
                "status": status,
                "details": [
                    {
                        "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                        "errorCode": error_code,
                    }
                ],
            }
        }
        self.send_response = lambda request: httpx.Response(status_code, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URI:
            self.token_requests.append(request)
            return self.token_response(request)
        self.send_requests.append(request)
        return self.send_response(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_message(self) -> dict[str, Any]:
        return json.loads(self.send_requests[-1].content)["message"]


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture(scope="session")
def ec_private_key_pem() -> str:
    return (
        ec.generate_private_key(ec.SECP256R1())
        .private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        .decode()
    )


@pytest.fixture()
def service_account_data(private_key_pem: str) -> dict[str, Any]:
    return {
        "type": "service_account",
        "project_id": PROJECT_ID,
        "private_key_id": "key-id-1",
        "private_key": private_key_pem,
        "client_email": "push-sender@test-project.iam.gserviceaccount.com",
        "client_id": "1234567890",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": TOKEN_URI,
    }


@pytest.fixture()
def write_service_account(tmp_path) -> Callable[[Any], Path]:
    def _write(data: Any) -> Path:
        path = tmp_path / "service-account.json"
        path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def service_account_file(write_service_account, service_account_data) -> Path:
    return write_service_account(service_account_data)


@pytest.fixture()
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "log_level": "INFO",
            "environment": "test",
            "push_backend": "fcm",
        }
        values.update(overrides)
        return Settings.model_validate(values)

    return _make


@pytest.fixture()
def test_settings(make_settings, service_account_file: Path) -> Settings:
    return make_settings(fcm_service_account_file=str(service_account_file))


@pytest.fixture()
def fake_fcm() -> FakeFCM:
    return FakeFCM()


@pytest.fixture()
async def sender(test_settings: Settings, fake_fcm: FakeFCM) -> AsyncIterator[FCMPushSender]:
    fcm_sender = await FCMPushSender.init(test_settings, transport=fake_fcm.transport)
    try:
        yield fcm_sender
    finally:
        await fcm_sender.aclose()
