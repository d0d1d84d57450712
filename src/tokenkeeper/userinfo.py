# UserInfo Client — OIDC profile claims for the current access token.
# Created: 2026-10-19

from __future__ import annotations

import logging
from typing import Any

from tokenkeeper.errors import NoValidToken, UserInfoFailed
from tokenkeeper.tokens import TokenState
from tokenkeeper.transport import OAuthTransport

logger = logging.getLogger(__name__)

UserClaims = dict[str, Any]


class UserInfoClient:
    """Fetches claims from the userinfo endpoint.

    Claims are returned as-is; ``sub``, ``email`` and any provider-specific
    fields pass through untouched.
    """

    def __init__(self, userinfo_url: str, transport: OAuthTransport):
        self.userinfo_url = userinfo_url
        self.transport = transport

    async def fetch(self, tokens: TokenState) -> UserClaims:
        if not tokens.is_valid():
            raise NoValidToken("No valid access token; refresh or log in first")

        resp = await self.transport.get(
            self.userinfo_url,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        if not resp.ok:
            raise UserInfoFailed("Userinfo request failed", resp.status_code, resp.payload)
        if not isinstance(resp.payload, dict):
            raise UserInfoFailed("Userinfo response is not a JSON object", resp.status_code, resp.payload)

        logger.debug("Fetched %d userinfo claims", len(resp.payload))
        return resp.payload
