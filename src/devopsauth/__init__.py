"""devopsauth - refresh-token exchange for package registry access tokens.

Exchanges a stored refresh token for a short-lived access token at an
OAuth2-style token endpoint, waits for the token's ``nbf`` claim, and stores
the rotated refresh token. Build agents that already inject
``SYSTEM_ACCESSTOKEN`` skip the exchange entirely.

Example:
    import asyncio

    from devopsauth import AuthClient, ConfigStore, TokenStore

    config = ConfigStore(".devopsauthrc")
    tokenfile = TokenStore(".devopsauthtoken")
    token = asyncio.run(AuthClient(config, tokenfile).get_access_token())
"""

from devopsauth.auth_client import (
    AuthClient,
    ExchangeResult,
    MalformedResponse,
    build_consent_url,
    decode_exchange_response,
    set_refresh_token,
)
from devopsauth.config import SETTINGS_DEFAULTS, SETTINGS_KEYS, ConfigStore
from devopsauth.environment import SYSTEM_ACCESSTOKEN, EnvironmentTokenResolver
from devopsauth.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DevOpsAuthError,
    InvalidKeyError,
    MalformedResponseError,
    TransportError,
)
from devopsauth.tokenfile import REFRESH_TOKEN_KEY, TokenStore

__version__ = "0.1.0"
__all__ = [
    # Client
    "AuthClient",
    "ExchangeResult",
    "MalformedResponse",
    "build_consent_url",
    "decode_exchange_response",
    "set_refresh_token",
    # Stores
    "ConfigStore",
    "SETTINGS_DEFAULTS",
    "SETTINGS_KEYS",
    "TokenStore",
    "REFRESH_TOKEN_KEY",
    # Environment
    "EnvironmentTokenResolver",
    "SYSTEM_ACCESSTOKEN",
    # Exceptions
    "DevOpsAuthError",
    "ConfigurationError",
    "InvalidKeyError",
    "AuthorizationError",
    "MalformedResponseError",
    "TransportError",
]
