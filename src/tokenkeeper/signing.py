"""HMAC-SHA256 request signing.

When a shared secret is configured out of band, every outbound request
carries ``X-HMAC-Signature: {hex_hmac}`` computed over the exact request
body bytes. Requests without a body (userinfo GET) sign the bearer token.
This is an integrity check on top of TLS, not a replacement for it.
"""

import hashlib
import hmac

import httpx

__all__ = ["SIGNATURE_HEADER", "RequestSigner", "sign"]

SIGNATURE_HEADER = "X-HMAC-Signature"


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class RequestSigner:
    """Adds the signature header to requests when a secret is set."""

    def __init__(self, secret: str | None = None):
        self._secret = secret or None

    @property
    def enabled(self) -> bool:
        return self._secret is not None

    def apply(self, request: httpx.Request) -> httpx.Request:
        if self._secret is None:
            return request

        body = request.content
        if not body:
            auth = request.headers.get("Authorization", "")
            scheme, _, credential = auth.partition(" ")
            body = credential.encode() if scheme.lower() == "bearer" else b""

        request.headers[SIGNATURE_HEADER] = sign(self._secret, body)
        return request

    def verify(self, body: bytes, signature: str) -> bool:
        """Check a signature produced for ``body`` (used by receiving ends and tests)."""
        if self._secret is None:
            return False
        return hmac.compare_digest(sign(self._secret, body), signature)
