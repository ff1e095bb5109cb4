"""Storage for the refresh token.

The token lives in its own file, separate from the settings, and is written
with owner-only permissions.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from devopsauth.config import ConfigStore

REFRESH_TOKEN_KEY = "refresh_token"
DEFAULT_TOKENFILE = {REFRESH_TOKEN_KEY: ""}


class TokenStore:
    """Single-key store holding the current refresh token."""

    def __init__(self, path: str | Path) -> None:
        self._store = ConfigStore(
            path,
            config_keys=(REFRESH_TOKEN_KEY,),
            defaults=DEFAULT_TOKENFILE,
            secure=True,
        )

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def refresh_token(self) -> str:
        """Return the stored refresh token, or an empty string if none."""
        return self.get().get(REFRESH_TOKEN_KEY) or ""

    def is_key_valid(self, key: str) -> bool:
        return self._store.is_key_valid(key)

    def get(self) -> dict[str, str]:
        return self._store.get()

    def set(self, key: str, value: str) -> None:
        self._store.set(key, value)

    def delete(self, key: str) -> None:
        self._store.delete(key)

    def clear(self) -> None:
        self._store.clear()

    def write(self, values: Mapping[str, str]) -> None:
        self._store.write(values)
