"""Key-validated settings store backed by an INI file.

Values are kept as strings. Built-in defaults are merged in on every read and
never written to disk, so the file only holds what the user changed.
"""

from __future__ import annotations

import configparser
import contextlib
import json
import os
import stat
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

from loguru import logger

from devopsauth.exceptions import ConfigurationError, InvalidKeyError

SETTINGS_DEFAULTS: dict[str, str] = {
    "clientId": "DE516D90-B63E-4994-BA64-881EA988A9D2",
    "redirectUri": "https://stateless-vsts-oauth.azurewebsites.net/oauth-callback",
    "tokenEndpoint": "https://stateless-vsts-oauth.azurewebsites.net/token-refresh",
    "tokenExpiryGraceInMs": "1800000",
}

# tokenfile overrides the token file location and has no default
SETTINGS_KEYS: tuple[str, ...] = (*SETTINGS_DEFAULTS, "tokenfile")

_ROOT_SECTION = "__root__"


def parse_ini(text: str) -> dict[str, str]:
    """Parse top-level ``key=value`` lines.

    Keys are case-sensitive. Anything under a ``[section]`` header is ignored.
    """
    parser = configparser.ConfigParser(
        delimiters=("=",),
        comment_prefixes=(";", "#"),
        allow_no_value=True,
        strict=False,
        interpolation=None,
        default_section="__defaults__",
    )
    parser.optionxform = str  # type: ignore[assignment, method-assign]
    parser.read_string(f"[{_ROOT_SECTION}]\n{text}")
    return {
        key: _unquote(value) if value is not None else ""
        for key, value in parser.items(_ROOT_SECTION)
    }


def encode_ini(values: Mapping[str, str]) -> str:
    """Serialize a flat mapping to ``key=value`` lines."""
    return "".join(f"{key}={_quote(str(value))}\n" for key, value in values.items())


def _quote(value: str) -> str:
    if value != value.strip() or "\n" in value or "\r" in value or value.startswith(("\"", "'")):
        return json.dumps(value)
    return value


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        if isinstance(decoded, str):
            return decoded
    return value


class ConfigStore:
    """Settings dictionary persisted as an INI file.

    Args:
        path: Location of the backing file. It does not need to exist.
        config_keys: Keys accepted by ``set`` and ``delete``. Defaults to
            the settings schema (``SETTINGS_KEYS``).
        defaults: Values reported by ``get`` for keys missing from the file.
            Defaults to the built-in settings restricted to ``config_keys``.
        secure: Write through a 0600 temporary file that replaces the target,
            for files holding secrets.
    """

    def __init__(
        self,
        path: str | Path,
        config_keys: Iterable[str] | None = None,
        defaults: Mapping[str, str] | None = None,
        secure: bool = False,
    ) -> None:
        self._path = Path(path)
        self._config_keys = frozenset(
            SETTINGS_KEYS if config_keys is None else config_keys
        )
        if defaults is None:
            defaults = {
                key: value
                for key, value in SETTINGS_DEFAULTS.items()
                if key in self._config_keys
            }
        self._defaults = dict(defaults)
        self._secure = secure

    @property
    def path(self) -> Path:
        """Return the path of the backing file."""
        return self._path

    def is_key_valid(self, key: str) -> bool:
        """Check whether a key belongs to this store's schema."""
        return key in self._config_keys

    def get(self) -> dict[str, str]:
        """Read the file and return its values merged over the defaults.

        A missing file reads as empty.

        Raises:
            OSError: If the file exists but cannot be read.
            ConfigurationError: If the file is not valid INI.
        """
        try:
            contents = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No file at {self._path}, using defaults")
            contents = ""

        try:
            on_disk = parse_ini(contents)
        except configparser.Error as e:
            raise ConfigurationError(f"invalid config file {self._path}: {e}") from e

        return {**self._defaults, **on_disk}

    def set(self, key: str, value: str) -> None:
        """Add or update a value and write the whole file."""
        self._validate_key(key)
        values = self.get()
        values[key] = value
        self.write(values)

    def delete(self, key: str) -> None:
        """Remove a key from the file. Removing an absent key is a no-op."""
        self._validate_key(key)
        values = self.get()
        values.pop(key, None)
        self.write(values)

    def clear(self) -> None:
        """Empty the file."""
        self.write({})

    def write(self, values: Mapping[str, str]) -> None:
        """Overwrite the file with the given values."""
        contents = encode_ini(values)
        if self._secure:
            self._write_secure(contents)
        else:
            self._path.write_text(contents, encoding="utf-8")
        logger.debug(f"Wrote {len(values)} setting(s) to {self._path}")

    def _write_secure(self, contents: str) -> None:
        parent = self._path.parent
        if not parent.exists():
            parent.mkdir(parents=True, mode=stat.S_IRWXU)

        # Each writer gets its own temp file; the last replace wins
        fd, temp_name = tempfile.mkstemp(dir=parent, prefix=f"{self._path.name}.", suffix=".tmp")
        try:
            os.fchmod(fd, stat.S_IRUSR | stat.S_IWUSR)  # 0600 before the secret is written
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
            os.replace(temp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_name)
            raise

    def _validate_key(self, key: str) -> None:
        if not self.is_key_valid(key):
            raise InvalidKeyError(key)
