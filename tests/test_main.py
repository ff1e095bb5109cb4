"""Tests for the command-line interface."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from unittest import mock

import pytest

from devopsauth.__main__ import main
from devopsauth.config import SETTINGS_DEFAULTS, ConfigStore
from devopsauth.exceptions import AuthorizationError, TransportError
from devopsauth.tokenfile import TokenStore


@pytest.fixture(autouse=True)
def in_tmp_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every CLI test from an empty working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SYSTEM_ACCESSTOKEN", raising=False)
    return tmp_path


def _mock_auth_client() -> mock.MagicMock:
    client = mock.MagicMock()
    client.get_access_token = mock.AsyncMock()
    client.get_user_auth_token = mock.AsyncMock()
    return client


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_set_then_get(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A value set from the CLI is printed by get."""
        assert main(["config", "set", "clientId", "abc"]) == 0
        assert "clientId=abc" in (tmp_path / ".devopsauthrc").read_text()

        assert main(["config", "get", "clientId"]) == 0
        assert capsys.readouterr().out == "abc\n"

    def test_get_all(self, capsys: pytest.CaptureFixture[str]) -> None:
        """config without a subcommand lists every setting."""
        assert main(["config"]) == 0
        out = capsys.readouterr().out
        for key, value in SETTINGS_DEFAULTS.items():
            assert f"{key}={value}" in out

    def test_set_invalid_key(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """Unknown keys are rejected with exit code 1."""
        assert main(["config", "set", "foo", "bar"]) == 1
        assert "not a valid config setting" in capsys.readouterr().err
        assert not (tmp_path / ".devopsauthrc").exists()

    def test_get_invalid_key(self, capsys: pytest.CaptureFixture[str]) -> None:
        """get rejects unknown keys."""
        assert main(["config", "get", "foo"]) == 1
        assert "not a valid config setting" in capsys.readouterr().err

    def test_delete_key(self, tmp_path: Path) -> None:
        """delete removes a single setting."""
        main(["config", "set", "clientId", "abc"])
        assert main(["config", "delete", "clientId"]) == 0
        assert "clientId" not in (tmp_path / ".devopsauthrc").read_text()

    def test_delete_all_confirmed(self, tmp_path: Path) -> None:
        """delete without a key clears the file after confirmation."""
        main(["config", "set", "clientId", "abc"])
        with mock.patch("builtins.input", return_value="y"):
            assert main(["config", "delete"]) == 0
        assert (tmp_path / ".devopsauthrc").read_text() == ""

    def test_delete_all_declined(self, tmp_path: Path) -> None:
        """Declining the confirmation keeps the file."""
        main(["config", "set", "clientId", "abc"])
        with mock.patch("builtins.input", return_value="n"):
            assert main(["config", "delete"]) == 0
        assert "clientId=abc" in (tmp_path / ".devopsauthrc").read_text()

    def test_config_override_path(self, tmp_path: Path) -> None:
        """-c points the CLI at another config file."""
        other = tmp_path / "other.ini"
        assert main(["-c", str(other), "config", "set", "clientId", "abc"]) == 0
        assert ConfigStore(other).get()["clientId"] == "abc"
        assert not (tmp_path / ".devopsauthrc").exists()


class TestTokenCommands:
    """Tests for the token subcommands."""

    def test_set_then_get(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A stored token is printed by token get."""
        assert main(["token", "set", "refresh-abc"]) == 0
        assert TokenStore(tmp_path / ".devopsauthtoken").refresh_token == "refresh-abc"

        assert main(["token"]) == 0
        assert capsys.readouterr().out == "refresh-abc\n"

    def test_get_empty_prints_nothing(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Nothing is printed when no token is stored."""
        assert main(["token", "get"]) == 0
        assert capsys.readouterr().out == ""

    def test_tokenfile_from_config(self, tmp_path: Path) -> None:
        """The tokenfile setting moves the token file."""
        custom = tmp_path / "elsewhere" / "token"
        main(["config", "set", "tokenfile", str(custom)])
        assert main(["token", "set", "refresh-abc"]) == 0
        assert TokenStore(custom).refresh_token == "refresh-abc"

    def test_tokenfile_argument_wins(self, tmp_path: Path) -> None:
        """--tokenfile overrides the tokenfile setting."""
        main(["config", "set", "tokenfile", str(tmp_path / "from-config")])
        explicit = tmp_path / "explicit"
        assert main(["--tokenfile", str(explicit), "token", "set", "abc"]) == 0
        assert TokenStore(explicit).refresh_token == "abc"
        assert not (tmp_path / "from-config").exists()

    def test_delete_with_yes(self, tmp_path: Path) -> None:
        """--yes clears the token without asking."""
        main(["token", "set", "refresh-abc"])
        assert main(["token", "delete", "--yes"]) == 0
        assert TokenStore(tmp_path / ".devopsauthtoken").refresh_token == ""

    def test_set_rejects_empty_stdin(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An empty line on stdin does not overwrite the stored token."""
        main(["token", "set", "refresh-abc"])

        with mock.patch.object(sys, "stdin", io.StringIO("\n")):
            assert main(["token", "set"]) == 1

        assert "Error: refusing to store an empty refresh token" in capsys.readouterr().err
        assert TokenStore(tmp_path / ".devopsauthtoken").refresh_token == "refresh-abc"

    def test_set_reads_stdin(self, tmp_path: Path) -> None:
        """Without an argument the token is read from stdin."""
        with mock.patch.object(sys, "stdin", io.StringIO("refresh-from-stdin\n")):
            assert main(["token", "set"]) == 0

        assert TokenStore(tmp_path / ".devopsauthtoken").refresh_token == "refresh-from-stdin"


class TestRunCommand:
    """Tests for the default command."""

    def test_prints_access_token(self, capsys: pytest.CaptureFixture[str]) -> None:
        """The access token is printed on stdout."""
        client = _mock_auth_client()
        client.get_access_token.return_value = "access-123"
        with mock.patch("devopsauth.__main__.AuthClient", return_value=client):
            assert main([]) == 0

        assert capsys.readouterr().out == "access-123\n"
        client.get_access_token.assert_awaited_once_with(use_environment=True)

    def test_skip_environment(self) -> None:
        """--skip-environment is passed through."""
        client = _mock_auth_client()
        client.get_access_token.return_value = "access-123"
        with mock.patch("devopsauth.__main__.AuthClient", return_value=client):
            assert main(["--skip-environment"]) == 0

        client.get_access_token.assert_awaited_once_with(use_environment=False)

    def test_transport_error_exit_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Errors are printed and exit with 1."""
        client = _mock_auth_client()
        client.get_access_token.side_effect = TransportError("endpoint down")
        with mock.patch("devopsauth.__main__.AuthClient", return_value=client):
            assert main([]) == 1

        assert "Error: endpoint down" in capsys.readouterr().err

    def test_stack_reraises(self) -> None:
        """--stack re-raises the error."""
        client = _mock_auth_client()
        client.get_access_token.side_effect = TransportError("endpoint down")
        with (
            mock.patch("devopsauth.__main__.AuthClient", return_value=client),
            pytest.raises(TransportError),
        ):
            main(["--stack"])

    def test_consent_non_interactive(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Without a terminal the consent URL is opened and the run fails."""
        client = _mock_auth_client()
        client.get_access_token.side_effect = AuthorizationError(
            "missing refresh_token", consent_url="https://consent.example.com"
        )
        stdin = mock.MagicMock()
        stdin.isatty.return_value = False
        with (
            mock.patch("devopsauth.__main__.AuthClient", return_value=client),
            mock.patch("webbrowser.open", return_value=True) as mock_open,
            mock.patch.object(sys, "stdin", stdin),
        ):
            assert main([]) == 1

        mock_open.assert_called_once_with("https://consent.example.com")
        err = capsys.readouterr().err
        assert "https://consent.example.com" in err
        assert "missing refresh_token" in err
        client.get_user_auth_token.assert_not_awaited()

    def test_consent_interactive_retries(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A refresh token pasted after consent is stored and exchanged."""
        client = _mock_auth_client()
        client.get_access_token.side_effect = AuthorizationError(
            "missing refresh_token", consent_url="https://consent.example.com"
        )
        client.get_user_auth_token.return_value = "access-456"
        stdin = mock.MagicMock()
        stdin.isatty.return_value = True
        with (
            mock.patch("devopsauth.__main__.AuthClient", return_value=client),
            mock.patch("webbrowser.open", return_value=False),
            mock.patch.object(sys, "stdin", stdin),
            mock.patch("builtins.input", return_value="pasted-refresh"),
        ):
            assert main([]) == 0

        assert capsys.readouterr().out == "access-456\n"
        assert TokenStore(tmp_path / ".devopsauthtoken").refresh_token == "pasted-refresh"
        client.get_user_auth_token.assert_awaited_once()
