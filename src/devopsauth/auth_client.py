"""Exchange a stored refresh token for a short-lived registry access token.

One exchange per call:
1. Check that the settings name a token endpoint
2. Check that a refresh token is stored
3. Send the refresh token to the endpoint as the ``code`` query parameter
4. Wait until the returned access token's ``nbf`` claim has passed
5. Store the rotated refresh token and return the access token

The stored refresh token is only replaced once every earlier step succeeded.
"""

from __future__ import annotations

import asyncio
import secrets
import ssl
import time
import urllib.parse
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import certifi
import httpx
import jwt
from loguru import logger

from devopsauth.config import ConfigStore
from devopsauth.environment import EnvironmentTokenResolver
from devopsauth.exceptions import (
    AuthorizationError,
    ConfigurationError,
    MalformedResponseError,
    TransportError,
)
from devopsauth.tokenfile import REFRESH_TOKEN_KEY, TokenStore

SSL_CONTEXT = ssl.create_default_context(cafile=certifi.where())
DEFAULT_TIMEOUT = 30.0

CONSENT_BASE_URL = "https://app.vssps.visualstudio.com/oauth2/authorize"
CONSENT_SCOPE = "vso.packaging_write"

# Expired or revoked refresh tokens
REJECTED_STATUS_CODES = frozenset({400, 401})


@dataclass(frozen=True)
class ExchangeResult:
    """A usable token endpoint response.

    Attributes:
        access_token: JWT to hand to the caller.
        refresh_token: Replacement for the refresh token that was spent.
        not_before: The access token's ``nbf`` claim in epoch seconds, or
            None if the token has no such claim.
    """

    access_token: str
    refresh_token: str
    not_before: float | None


@dataclass(frozen=True)
class MalformedResponse:
    """A token endpoint response that cannot be used."""

    body: Any

    def to_error(self) -> MalformedResponseError:
        return MalformedResponseError(self.body)


def decode_exchange_response(body: Any) -> ExchangeResult | MalformedResponse:
    """Validate a token endpoint body and read the access token's claims.

    The access token is decoded without signature verification; the endpoint
    is trusted and only the ``nbf`` claim is needed.
    """
    if not isinstance(body, dict):
        return MalformedResponse(body)

    access_token = body.get("access_token")
    refresh_token = body.get("refresh_token")
    if not (access_token and isinstance(access_token, str)):
        return MalformedResponse(body)
    if not (refresh_token and isinstance(refresh_token, str)):
        return MalformedResponse(body)

    try:
        claims = jwt.decode(
            access_token,
            options={"verify_signature": False, "verify_exp": False, "verify_nbf": False},
        )
        nbf = claims.get("nbf")
        not_before = float(nbf) if nbf is not None else None
    except (jwt.PyJWTError, TypeError, ValueError):
        return MalformedResponse(body)

    return ExchangeResult(
        access_token=access_token,
        refresh_token=refresh_token,
        not_before=not_before,
    )


def build_consent_url(settings: Mapping[str, str], state: str | None = None) -> str:
    """Build the authorize URL where the user grants a new refresh token.

    The redirect target exchanges the grant and shows the user a refresh
    token to store with ``devopsauth token set``.
    """
    params = {
        "client_id": settings.get("clientId", ""),
        "response_type": "Assertion",
        "state": state or secrets.token_hex(16),
        "scope": CONSENT_SCOPE,
        "redirect_uri": settings.get("redirectUri", ""),
    }
    return f"{CONSENT_BASE_URL}?{urllib.parse.urlencode(params)}"


def set_refresh_token(tokenfile: TokenStore, token: str) -> None:
    """Store a refresh token obtained outside of an exchange."""
    tokenfile.set(REFRESH_TOKEN_KEY, token)
    logger.debug(f"Refresh token written to {tokenfile.path}")


class AuthClient:
    """Obtains access tokens from the configured token endpoint.

    Args:
        config: Settings store providing ``tokenEndpoint``.
        tokenfile: Store holding the refresh token.
        http_client: Optional client to send the exchange with. When omitted a
            client is created for each exchange and closed afterwards.
        environment: Resolver for pipeline-injected tokens.
        clock: Returns the current time in epoch seconds.
        sleep: Coroutine used to wait for the ``nbf`` claim.
    """

    def __init__(
        self,
        config: ConfigStore,
        tokenfile: TokenStore,
        http_client: httpx.AsyncClient | None = None,
        environment: EnvironmentTokenResolver | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._tokenfile = tokenfile
        self._http_client = http_client
        self._environment = environment or EnvironmentTokenResolver()
        self._clock = clock
        self._sleep = sleep

    async def get_access_token(self, use_environment: bool = True) -> str:
        """Return an access token, preferring one injected by a build agent.

        Args:
            use_environment: If False, always perform the exchange.
        """
        if use_environment:
            token = self._environment.resolve()
            if token:
                logger.info("Using access token from the environment")
                return token
        return await self.get_user_auth_token()

    async def get_user_auth_token(self) -> str:
        """Exchange the stored refresh token for an access token.

        Raises:
            ConfigurationError: No token endpoint is configured.
            AuthorizationError: No refresh token is stored, or the endpoint rejected it.
            TransportError: The endpoint could not be reached or refused the request.
            MalformedResponseError: The endpoint's answer lacks the expected tokens.
        """
        settings = self._config.get()
        endpoint = settings.get("tokenEndpoint")
        if not endpoint:
            raise ConfigurationError("invalid config, missing tokenEndpoint")

        refresh_token = self._tokenfile.get().get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise AuthorizationError(
                "missing refresh_token",
                consent_url=build_consent_url(settings),
            )

        body = await self._request_exchange(endpoint, refresh_token, settings)

        result = decode_exchange_response(body)
        if isinstance(result, MalformedResponse):
            raise result.to_error()

        if result.not_before is not None:
            await self._wait_until_valid(result.not_before)

        set_refresh_token(self._tokenfile, result.refresh_token)
        logger.info("Refresh token rotated", extra={"tokenfile": str(self._tokenfile.path)})
        return result.access_token

    async def _request_exchange(
        self, endpoint: str, refresh_token: str, settings: Mapping[str, str]
    ) -> Any:
        """GET the token endpoint and return the parsed body.

        A body that is not JSON is returned as text so the decoder rejects it.
        A 400 or 401 means the refresh token was rejected and needs consent.
        """
        logger.debug(f"Exchanging refresh token at {endpoint}")
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    endpoint, params={"code": refresh_token}
                )
            else:
                async with httpx.AsyncClient(
                    verify=SSL_CONTEXT, timeout=DEFAULT_TIMEOUT
                ) as client:
                    response = await client.get(endpoint, params={"code": refresh_token})
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to connect to token endpoint: {e}", cause=e) from e

        if response.status_code in REJECTED_STATUS_CODES:
            raise AuthorizationError(
                f"Refresh token rejected with HTTP {response.status_code}: {response.text}",
                consent_url=build_consent_url(settings),
                status_code=response.status_code,
            )

        if not response.is_success:
            raise TransportError(
                f"Token exchange failed with HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    async def _wait_until_valid(self, not_before: float) -> None:
        delay_ms = max(0.0, not_before * 1000 - self._clock() * 1000)
        if delay_ms <= 0:
            return
        logger.info(f"Access token not valid yet, waiting {delay_ms:.0f} ms")
        await self._sleep(delay_ms / 1000)
