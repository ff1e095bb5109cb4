"""CLI entry point for devopsauth.

Usage:
    devopsauth                         # Print an access token
    devopsauth config get [key]        # Show settings
    devopsauth config set <key> <val>  # Change a setting
    devopsauth config delete [key]     # Remove a setting, or the whole file
    devopsauth token get|set|delete    # Manage the stored refresh token
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from devopsauth.auth_client import AuthClient, set_refresh_token
from devopsauth.config import ConfigStore
from devopsauth.exceptions import AuthorizationError, ConfigurationError, DevOpsAuthError
from devopsauth.logging import setup_logging
from devopsauth.tokenfile import REFRESH_TOKEN_KEY, TokenStore

CONFIG_FILENAME = ".devopsauthrc"
TOKENFILE_FILENAME = ".devopsauthtoken"


def _confirm(prompt: str) -> bool:
    """Ask a yes/no question on the terminal."""
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# --- config commands ---


def cmd_config_get(args: argparse.Namespace, config: ConfigStore, _tokenfile: TokenStore) -> int:
    """Print one setting, or every setting when no key is given."""
    values = config.get()
    key = getattr(args, "key", None)
    if key:
        if not config.is_key_valid(key):
            print(f'"{key}" is not a valid config setting.', file=sys.stderr)
            return 1
        if values.get(key):
            print(values[key])
        return 0

    for name, value in values.items():
        print(f"{name}={value}")
    return 0


def cmd_config_set(args: argparse.Namespace, config: ConfigStore, _tokenfile: TokenStore) -> int:
    """Set a setting."""
    config.set(args.key, args.value)
    return 0


def cmd_config_delete(
    args: argparse.Namespace, config: ConfigStore, _tokenfile: TokenStore
) -> int:
    """Delete a setting, or clear the config file after confirmation."""
    if args.key:
        config.delete(args.key)
        return 0

    if args.yes or _confirm(f"Are you sure you want to delete your config file ({config.path})?"):
        config.clear()
        print(f"Config cleared: {config.path}")
    return 0


# --- token commands ---


def cmd_token_get(_args: argparse.Namespace, _config: ConfigStore, tokenfile: TokenStore) -> int:
    """Print the stored refresh token."""
    token = tokenfile.refresh_token
    if token:
        print(token)
    return 0


def cmd_token_set(args: argparse.Namespace, _config: ConfigStore, tokenfile: TokenStore) -> int:
    """Store a refresh token, read from stdin when not given as an argument."""
    value = args.value
    if value is None:
        value = sys.stdin.readline().strip()
    if not value.strip():
        raise ConfigurationError("refusing to store an empty refresh token")
    set_refresh_token(tokenfile, value)
    return 0


def cmd_token_delete(args: argparse.Namespace, _config: ConfigStore, tokenfile: TokenStore) -> int:
    """Clear the token file after confirmation."""
    if args.yes or _confirm(f"Are you sure you want to delete your token file ({tokenfile.path})?"):
        tokenfile.clear()
        print(f"Token cleared: {tokenfile.path}")
    return 0


# --- default command ---


def _request_consent(error: AuthorizationError, tokenfile: TokenStore) -> bool:
    """Send the user to the consent page and read back a new refresh token.

    Returns True if a refresh token was stored.
    """
    if not error.consent_url:
        return False

    print("\n" + "=" * 60, file=sys.stderr)
    print("AUTHORIZATION REQUIRED", file=sys.stderr)
    print("=" * 60, file=sys.stderr)
    print(f"\nOpen this URL in your browser:\n\n  {error.consent_url}\n", file=sys.stderr)

    # Try to open browser (may fail in headless environments)
    try:
        import webbrowser

        if webbrowser.open(error.consent_url):
            print("(Browser opened automatically)", file=sys.stderr)
    except Exception as e:
        logger.debug(f"Could not open browser: {e}")

    if not sys.stdin.isatty():
        print(
            f"Then store the refresh token with: devopsauth token set <{REFRESH_TOKEN_KEY}>",
            file=sys.stderr,
        )
        return False

    try:
        value = input("Paste the refresh token shown after sign-in (empty to cancel): ").strip()
    except EOFError:
        return False
    if not value:
        return False

    set_refresh_token(tokenfile, value)
    return True


async def _run(args: argparse.Namespace, config: ConfigStore, tokenfile: TokenStore) -> str:
    client = AuthClient(config, tokenfile)
    try:
        return await client.get_access_token(use_environment=not args.skip_environment)
    except AuthorizationError as e:
        if not _request_consent(e, tokenfile):
            raise
    return await client.get_user_auth_token()


def cmd_run(args: argparse.Namespace, config: ConfigStore, tokenfile: TokenStore) -> int:
    """Obtain an access token and print it."""
    token = asyncio.run(_run(args, config, tokenfile))
    print(token)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devopsauth",
        description="Obtain package registry access tokens from a stored refresh token",
    )
    parser.add_argument(
        "-c",
        "--config",
        help=f"Path to the config file (default: ./{CONFIG_FILENAME})",
    )
    parser.add_argument(
        "--tokenfile",
        help=f"Path to the token file (default: tokenfile setting or ./{TOKENFILE_FILENAME})",
    )
    parser.add_argument(
        "--skip-environment",
        action="store_true",
        help="Always exchange the refresh token, even if SYSTEM_ACCESSTOKEN is set",
    )
    parser.add_argument(
        "--stack",
        action="store_true",
        help="Show the stack trace on error",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.set_defaults(func=cmd_run)
    subparsers = parser.add_subparsers(dest="command")

    # config subcommand
    config_parser = subparsers.add_parser("config", help="Show or modify settings")
    config_parser.set_defaults(func=cmd_config_get, key=None)
    config_sub = config_parser.add_subparsers(dest="config_command")

    get_parser = config_sub.add_parser("get", help="Show a setting, or all settings")
    get_parser.add_argument("key", nargs="?")
    get_parser.set_defaults(func=cmd_config_get)

    set_parser = config_sub.add_parser("set", help="Set a setting")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    set_parser.set_defaults(func=cmd_config_set)

    delete_parser = config_sub.add_parser(
        "delete",
        help="Delete a setting. Without a key, deletes the whole config.",
    )
    delete_parser.add_argument("key", nargs="?")
    delete_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask")
    delete_parser.set_defaults(func=cmd_config_delete)

    # token subcommand
    token_parser = subparsers.add_parser("token", help="Show or modify the refresh token")
    token_parser.set_defaults(func=cmd_token_get)
    token_sub = token_parser.add_subparsers(dest="token_command")

    token_sub.add_parser("get", help="Show the refresh token").set_defaults(func=cmd_token_get)

    token_set_parser = token_sub.add_parser("set", help="Store a refresh token")
    token_set_parser.add_argument("value", nargs="?", help="Token (read from stdin if omitted)")
    token_set_parser.set_defaults(func=cmd_token_set)

    token_delete_parser = token_sub.add_parser("delete", help="Clear the token file")
    token_delete_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask")
    token_delete_parser.set_defaults(func=cmd_token_delete)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = ConfigStore(args.config or Path.cwd() / CONFIG_FILENAME)
        tokenfile_path = (
            args.tokenfile
            or config.get().get("tokenfile")
            or Path.cwd() / TOKENFILE_FILENAME
        )
        return args.func(args, config, TokenStore(tokenfile_path))
    except (DevOpsAuthError, OSError) as e:
        if args.stack:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
