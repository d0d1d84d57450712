# Token Exchange — authorization code, refresh and revoke grants.
# Created: 2026-10-19
#
# Each successful exchange replaces the TokenState wholesale (memory and
# storage). A new state is only built once the full response has parsed,
# so a failure midway never leaves a half-updated token set behind.

from __future__ import annotations

import logging

from tokenkeeper.config import ClientConfig
from tokenkeeper.errors import (
    NetworkError,
    NoAccessToken,
    NoRefreshToken,
    TokenExchangeFailed,
)
from tokenkeeper.storage import CODE_VERIFIER_KEY, TokenStorage
from tokenkeeper.tokens import TokenState, now_ms
from tokenkeeper.transport import OAuthTransport, TransportResponse

logger = logging.getLogger(__name__)


class TokenExchangeEngine:
    """Talks to the token and revocation endpoints and owns the TokenState."""

    def __init__(self, config: ClientConfig, storage: TokenStorage, transport: OAuthTransport):
        self.config = config
        self.storage = storage
        self.transport = transport
        self.state = TokenState.load(storage)

    def _replace(self, state: TokenState) -> TokenState:
        state.save(self.storage)
        self.state = state
        return state

    def clear(self) -> None:
        TokenState.clear(self.storage)
        self.state = TokenState()

    def _parse(self, resp: TransportResponse, issued_at: int, previous: TokenState | None = None):
        if not resp.ok:
            raise TokenExchangeFailed(
                "Token endpoint rejected the request", resp.status_code, resp.payload
            )
        try:
            return TokenState.from_response(resp.payload, issued_at=issued_at, previous=previous)
        except ValueError as exc:
            raise TokenExchangeFailed(
                f"Malformed token response: {exc}", resp.status_code, resp.payload
            ) from exc

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> TokenState:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the redirect.
            code_verifier: PKCE verifier. Defaults to the one persisted under
                ``code_verifier`` when PKCE is enabled.

        Returns:
            The new TokenState.
        """
        if code_verifier is None and self.config.with_pkce:
            code_verifier = self.storage.get(CODE_VERIFIER_KEY)

        body = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "client_id": self.config.client_id,
        }
        if self.config.client_secret:
            body["client_secret"] = self.config.client_secret
        if code_verifier:
            body["code_verifier"] = code_verifier

        issued_at = now_ms()
        if self.config.token_request_format == "json":
            resp = await self.transport.post_json(self.config.token_url, body)
        else:
            resp = await self.transport.post_form(self.config.token_url, body)

        state = self._parse(resp, issued_at)
        self._replace(state)
        self.storage.remove(CODE_VERIFIER_KEY)
        logger.info("OAuth tokens obtained for client %s", self.config.client_id)
        return state

    def accept_implicit(self, params: dict[str, str]) -> TokenState:
        """Store tokens delivered directly in the redirect (token / id_token responses)."""
        if params.get("access_token"):
            try:
                state = TokenState.from_response(params)
            except ValueError as exc:
                raise TokenExchangeFailed(f"Malformed implicit response: {exc}", None, params) from exc
        elif params.get("id_token"):
            state = TokenState(id_token=params["id_token"])
        else:
            raise TokenExchangeFailed("Redirect carried no tokens", None, params)

        self._replace(state)
        logger.info("Implicit-flow tokens stored for client %s", self.config.client_id)
        return state

    async def refresh(self) -> TokenState:
        """Obtain a new access token with the stored refresh token.

        The refresh token is kept unless the server rotates it.
        """
        previous = self.state
        if not previous.refresh_token:
            raise NoRefreshToken("No refresh token available")

        body = {
            "grant_type": "refresh_token",
            "refresh_token": previous.refresh_token,
            "client_id": self.config.client_id,
        }
        if self.config.client_secret:
            body["client_secret"] = self.config.client_secret

        issued_at = now_ms()
        resp = await self.transport.post_json(self.config.token_url, body)
        state = self._parse(resp, issued_at, previous=previous)
        self._replace(state)

        rotated = state.refresh_token != previous.refresh_token
        logger.info(
            "Refreshed OAuth token for client %s%s",
            self.config.client_id,
            " (refresh token rotated)" if rotated else "",
        )
        return state

    async def revoke(self) -> bool:
        """Revoke the access token and clear local state.

        Local state is cleared even when the server call fails; the failure
        is logged. Returns True if the server acknowledged the revocation.
        """
        access_token = self.state.access_token
        if not access_token:
            raise NoAccessToken("No access token available")

        body = {
            "token": access_token,
            "token_type_hint": "access_token",
            "client_id": self.config.client_id,
        }
        acknowledged = False
        try:
            resp = await self.transport.post_json(self.config.revoke_url, body)
            acknowledged = resp.ok
            if not resp.ok:
                logger.warning(
                    "Token revocation failed (HTTP %d): %r", resp.status_code, resp.payload
                )
        except NetworkError as exc:
            logger.warning("Token revocation request failed: %s", exc)
        finally:
            self.clear()

        if acknowledged:
            logger.info("Access token revoked for client %s", self.config.client_id)
        return acknowledged
