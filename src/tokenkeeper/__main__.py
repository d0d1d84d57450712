"""tokenkeeper command line.

Reads the client configuration from TOKENKEEPER_* environment variables
(or a .env file) and runs one lifecycle operation against the token file.

Changes:
  - 2026-10-19: Added ``url`` command to print the authorization URL only.
  - 2026-10-19: ``url`` persists the PKCE verifier; ``exchange CODE`` completes
    the flow from a pasted code or redirect URL.
  - 2026-10-19: Endpoints can come from OIDC discovery (TOKENKEEPER_ISSUER).
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from tokenkeeper.authorize import extract_code
from tokenkeeper.config import ClientConfig, Settings, get_settings
from tokenkeeper.discovery import discover
from tokenkeeper.errors import ConfigError, TokenKeeperError
from tokenkeeper.logging_setup import setup_logging
from tokenkeeper.manager import TokenLifecycleManager
from tokenkeeper.storage import FileStorage

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("tokenkeeper")
    except PackageNotFoundError:
        return "unknown"


async def _client_config(settings: Settings) -> ClientConfig:
    document = None
    if settings.issuer:
        document = await discover(settings.issuer)
    return settings.to_client_config(discovery=document)


def _format_expiry(expires_at: int | None) -> str:
    if expires_at is None:
        return "unknown"
    return datetime.fromtimestamp(expires_at / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


async def run_command(command: str, settings: Settings, argument: str | None = None) -> int:
    config = await _client_config(settings)
    storage = FileStorage(settings.storage_path)

    async with TokenLifecycleManager(
        config,
        storage=storage,
        timeout=settings.http_timeout,
        window_timeout=settings.window_timeout,
    ) as manager:
        if command == "url":
            print(manager.authorization_url())
        elif command == "login":
            claims = await manager.login()
            print(json.dumps({k: v for k, v in claims.items() if not k.endswith("_token")}, indent=2))
        elif command == "status":
            tokens = manager.tokens
            print(f"client_id:     {config.client_id}")
            print(f"access_token:  {'present' if tokens.access_token else '<missing>'}")
            print(f"refresh_token: {'present' if tokens.refresh_token else '<missing>'}")
            print(f"id_token:      {'present' if tokens.id_token else '<missing>'}")
            print(f"expires:       {_format_expiry(tokens.expires_at)}")
            print(f"valid:         {manager.is_valid()}")
            return 0 if manager.is_valid() else 1
        elif command == "exchange":
            if not argument:
                raise ConfigError("exchange needs the authorization code or redirect URL")
            tokens = await manager.exchange_code(extract_code(argument, config))
            print(f"Tokens stored. Expires: {_format_expiry(tokens.expires_at)}")
        elif command == "refresh":
            tokens = await manager.refresh()
            print(f"Refreshed. Expires: {_format_expiry(tokens.expires_at)}")
        elif command == "userinfo":
            print(json.dumps(await manager.fetch_user_info(), indent=2))
        elif command == "logout":
            await manager.logout()
            print("Logged out.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tokenkeeper",
        description="OAuth 2.0 / OIDC token lifecycle manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tokenkeeper login        Authorize in the browser and store tokens
  tokenkeeper url          Print the authorization URL (PKCE verifier is kept)
  tokenkeeper exchange CODE  Exchange a pasted code or redirect URL
  tokenkeeper status       Show stored tokens and their expiry
  tokenkeeper refresh      Refresh the access token
  tokenkeeper userinfo     Print the userinfo claims
  tokenkeeper logout       Revoke and forget the tokens
""",
    )
    parser.add_argument(
        "command",
        choices=["login", "status", "refresh", "userinfo", "logout", "url", "exchange"],
        help="Operation to run",
    )
    parser.add_argument(
        "argument",
        nargs="?",
        help="Authorization code or redirect URL (exchange only)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    try:
        return asyncio.run(run_command(args.command, get_settings(), args.argument))
    except TokenKeeperError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
