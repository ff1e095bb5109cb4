"""Shared test fixtures for devopsauth."""

from __future__ import annotations

from pathlib import Path

import jwt
import pytest

from devopsauth.config import ConfigStore
from devopsauth.tokenfile import TokenStore

TOKEN_ENDPOINT = "https://auth.example.com/token-refresh"


def make_access_token(**claims: object) -> str:
    """Create an HS256 JWT carrying the given claims."""
    return jwt.encode(claims, "test-secret-key-for-hs256-signing", algorithm="HS256")


@pytest.fixture
def config(tmp_path: Path) -> ConfigStore:
    """Settings store pointing at a test token endpoint."""
    store = ConfigStore(tmp_path / ".devopsauthrc")
    store.set("tokenEndpoint", TOKEN_ENDPOINT)
    return store


@pytest.fixture
def tokenfile(tmp_path: Path) -> TokenStore:
    """Token store holding an initial refresh token."""
    store = TokenStore(tmp_path / ".devopsauthtoken")
    store.set("refresh_token", "original-refresh")
    return store
