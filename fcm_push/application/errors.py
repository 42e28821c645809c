from __future__ import annotations

from typing import Any, Mapping

# Largest value a provider status code can take; carried by UnknownPushError
# when the provider's error has no safe automatic action.
UNKNOWN_ERROR_CODE = 65535


class AppError(Exception):
    code = "app_error"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AuthError(AppError):
    code = "auth_error"


class ValidationError(AppError):
    code = "validation_error"


class ConfigurationError(RuntimeError):
    """Deployment is misconfigured beyond repair; raised at startup and never handled here."""


class PushError(AppError):
    code = "push_error"


class CertLoadingError(PushError):
    code = "cert_loading"


class TokenBlockedError(PushError):
    """Token is permanently invalid; the caller should stop sending to it."""

    code = "token_blocked"


class TokenRateLimitedError(PushError):
    code = "token_rate_limited"


class PushEndpointTemporaryError(PushError):
    code = "push_endpoint_temporary"


class UnknownPushError(PushError):
    code = "push_unknown"

    def __init__(
        self,
        message: str,
        *,
        status_code: int = UNKNOWN_ERROR_CODE,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
