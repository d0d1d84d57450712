# Transport — thin httpx seam for the token, revoke and userinfo endpoints.
# Created: 2026-10-19
#
# Bodies are serialized here (not by httpx) so the HMAC signature covers
# the exact bytes on the wire. Transport failures surface as NetworkError;
# HTTP error statuses are returned to the caller to interpret.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from tokenkeeper.errors import NetworkError
from tokenkeeper.signing import RequestSigner

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    payload: Any  # parsed JSON, or raw text when the body is not JSON

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def encode_form(data: dict[str, str]) -> bytes:
    return urlencode(data).encode()


def encode_json(data: dict[str, Any]) -> bytes:
    return json.dumps(data, separators=(",", ":")).encode()


class OAuthTransport:
    """Sends signed requests and returns parsed responses.

    An injected ``httpx.AsyncClient`` is used as-is and left open on
    :meth:`aclose`; a client created here is owned and closed here.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        signer: RequestSigner | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.signer = signer or RequestSigner()

    async def post_form(self, url: str, data: dict[str, str]) -> TransportResponse:
        return await self.send(
            "POST",
            url,
            content=encode_form(data),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    async def post_json(self, url: str, data: dict[str, Any]) -> TransportResponse:
        return await self.send(
            "POST",
            url,
            content=encode_json(data),
            headers={"Content-Type": "application/json"},
        )

    async def get(self, url: str, headers: dict[str, str] | None = None) -> TransportResponse:
        return await self.send("GET", url, headers=headers)

    async def send(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        all_headers = {"Accept": "application/json", **(headers or {})}
        try:
            request = self._client.build_request(method, url, content=content, headers=all_headers)
            self.signer.apply(request)
            resp = await self._client.send(request)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        try:
            payload: Any = resp.json()
        except ValueError:
            payload = resp.text

        logger.debug("%s %s -> %d", method, url, resp.status_code)
        return TransportResponse(status_code=resp.status_code, payload=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
