"""Custom exceptions for devopsauth."""

from __future__ import annotations

import json
from typing import Any


class DevOpsAuthError(Exception):
    """Base exception for all devopsauth errors."""

    pass


class ConfigurationError(DevOpsAuthError):
    """Raised when the settings needed for an exchange are missing or invalid."""

    pass


class InvalidKeyError(ConfigurationError):
    """Raised when a key is not part of a store's schema."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f'can\'t set "{key}" on config: "{key}" is not a valid config setting.'
        )


class AuthorizationError(DevOpsAuthError):
    """Raised when no usable refresh token is available or the endpoint rejects it.

    Callers can send the user to ``consent_url`` to grant a new one.
    """

    def __init__(
        self,
        message: str = "",
        consent_url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.consent_url = consent_url
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(DevOpsAuthError):
    """Raised when the token endpoint answers with an unusable body."""

    PREFIX = "malformed response body:\n"

    def __init__(self, body: Any) -> None:
        self.body = body
        super().__init__(self.PREFIX + json.dumps(body))


class TransportError(DevOpsAuthError):
    """Raised when the token endpoint cannot be reached or rejects the request."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        self.cause = cause
        self.status_code = status_code
        super().__init__(message)
