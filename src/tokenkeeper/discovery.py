# OIDC Discovery — fetch an issuer's openid-configuration document.
# Created: 2026-10-19

from __future__ import annotations

import logging
from typing import Any

import httpx

from tokenkeeper.errors import DiscoveryFailed
from tokenkeeper.transport import OAuthTransport

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url(issuer: str) -> str:
    return issuer.rstrip("/") + WELL_KNOWN_PATH


async def discover(issuer: str, client: httpx.AsyncClient | None = None) -> dict[str, Any]:
    """Fetch the discovery document for ``issuer``.

    Raises:
        NetworkError: the request could not be sent.
        DiscoveryFailed: non-2xx status or a body that is not a JSON object.
    """
    transport = OAuthTransport(client)
    try:
        resp = await transport.get(discovery_url(issuer))
    finally:
        await transport.aclose()

    if not resp.ok:
        raise DiscoveryFailed("Discovery request failed", resp.status_code, resp.payload)
    if not isinstance(resp.payload, dict):
        raise DiscoveryFailed("Discovery document is not a JSON object", resp.status_code, resp.payload)

    logger.info("Loaded OIDC discovery document for %s", issuer)
    return resp.payload
