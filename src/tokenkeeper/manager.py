# Token Lifecycle Manager — one client's authorization, tokens and profile.
# Created: 2026-10-19
#
# Composes the authorization orchestrator, token exchange engine and
# userinfo client around a shared storage and transport. Nothing is
# registered globally; construct one manager per client.

from __future__ import annotations

import logging
from typing import Any

import httpx

from tokenkeeper.authorize import (
    AuthorizationOrchestrator,
    AuthState,
    Opener,
)
from tokenkeeper.config import ClientConfig
from tokenkeeper.errors import NoAccessToken, NoValidToken, TokenExchangeFailed
from tokenkeeper.exchange import TokenExchangeEngine
from tokenkeeper.signing import RequestSigner
from tokenkeeper.storage import CODE_VERIFIER_KEY, FileStorage, TokenStorage
from tokenkeeper.tokens import TokenState, now_ms
from tokenkeeper.transport import DEFAULT_TIMEOUT, OAuthTransport
from tokenkeeper.userinfo import UserClaims, UserInfoClient
from tokenkeeper.window import DEFAULT_WINDOW_TIMEOUT, WindowFactory, browser_window_factory

logger = logging.getLogger(__name__)

DEFAULT_LEEWAY = 60  # seconds


class TokenLifecycleManager:
    """OAuth 2.0 / OIDC client token lifecycle.

    Supports:
    - Authorization code flow (PKCE by default) through an opener or window
    - Code exchange, refresh and revocation
    - Validity checks and userinfo

    Args:
        config: Client configuration.
        storage: Key/value store for the token mirror. Defaults to
            :class:`FileStorage` at ``~/.tokenkeeper/tokens.json``.
        opener: Callable handed the authorization URL, returning the code or
            the redirect URL (sync or async).
        window_factory: Opens a pollable :class:`AuthWindow`. Used when no
            opener is given; defaults to the system browser.
        http_client: ``httpx.AsyncClient`` to send requests with. One is
            created (and closed by :meth:`aclose`) when omitted.
    """

    def __init__(
        self,
        config: ClientConfig,
        storage: TokenStorage | None = None,
        opener: Opener | None = None,
        window_factory: WindowFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        window_timeout: float = DEFAULT_WINDOW_TIMEOUT,
    ):
        self.config = config
        self.storage = storage if storage is not None else FileStorage()
        self.transport = OAuthTransport(
            http_client, signer=RequestSigner(config.hmac_secret), timeout=timeout
        )
        self.exchange = TokenExchangeEngine(config, self.storage, self.transport)
        if opener is None and window_factory is None:
            window_factory = browser_window_factory(config.redirect_uri, timeout=window_timeout)
        self.orchestrator = AuthorizationOrchestrator(
            config, self.storage, opener=opener, window_factory=window_factory
        )
        self.userinfo = UserInfoClient(config.userinfo_url, self.transport)

    async def __aenter__(self) -> TokenLifecycleManager:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.orchestrator.abort()
        await self.transport.aclose()

    # -- state ---------------------------------------------------------------

    @property
    def tokens(self) -> TokenState:
        return self.exchange.state

    @property
    def auth_state(self) -> AuthState:
        return self.orchestrator.state

    def is_valid(self) -> bool:
        """True iff the access token has a known expiry in the future."""
        return self.tokens.is_valid()

    def is_valid_or_unknown(self) -> bool:
        """True if the access token is unexpired or its expiry was never reported."""
        return self.tokens.is_valid_or_unknown()

    # -- authorization -------------------------------------------------------

    def authorization_url(self) -> str:
        """Authorization URL for a flow completed outside :meth:`authorize`.

        With PKCE enabled the verifier is persisted, so a later
        :meth:`exchange_code` call with just the code can complete the flow.
        """
        return self.orchestrator.prepare().url

    async def authorize(self) -> TokenState:
        """Run the authorization flow and exchange its code exactly once."""
        result = await self.orchestrator.authorize()
        if self.config.response_type != "code":
            return self.exchange.accept_implicit(result.params)
        return await self.exchange.exchange_code(result.code, code_verifier=result.code_verifier)

    def abort(self) -> bool:
        return self.orchestrator.abort()

    async def login(self) -> dict[str, Any]:
        """Authorize, then return the user's claims merged with the token set."""
        tokens = await self.authorize()
        claims = await self.fetch_user_info()
        return {
            **claims,
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "id_token": tokens.id_token,
            "expires_at": tokens.expires_at,
        }

    # -- token exchange ------------------------------------------------------

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> TokenState:
        """Exchange a code obtained outside :meth:`authorize` (e.g. after a full page redirect)."""
        return await self.exchange.exchange_code(code, code_verifier=code_verifier)

    async def refresh(self) -> TokenState:
        return await self.exchange.refresh()

    async def revoke(self) -> bool:
        return await self.exchange.revoke()

    async def logout(self) -> None:
        """Revoke the session and wipe every persisted key, whatever revoke does."""
        self.orchestrator.abort()
        try:
            await self.exchange.revoke()
        except NoAccessToken:
            logger.debug("Logout without an access token; clearing local state only")
        finally:
            self.exchange.clear()
            self.storage.remove(CODE_VERIFIER_KEY)
        logger.info("Logged out client %s", self.config.client_id)

    async def get_valid_token(self, leeway: float = DEFAULT_LEEWAY) -> str:
        """Get a valid access token, refreshing if it expires within ``leeway`` seconds."""
        tokens = self.tokens
        if tokens.is_valid(now_ms() + int(leeway * 1000)):
            return tokens.access_token

        if tokens.refresh_token:
            try:
                tokens = await self.exchange.refresh()
            except TokenExchangeFailed as exc:
                logger.warning("Token refresh failed: %s", exc)
                raise NoValidToken("Access token expired and refresh failed") from exc
            if tokens.is_valid():
                return tokens.access_token

        raise NoValidToken("No valid access token; log in again")

    # -- userinfo ------------------------------------------------------------

    async def fetch_user_info(self) -> UserClaims:
        return await self.userinfo.fetch(self.tokens)
