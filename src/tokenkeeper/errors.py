# Errors — exception hierarchy for the token lifecycle.
# Created: 2026-10-19

from __future__ import annotations

from typing import Any


class TokenKeeperError(Exception):
    """Base class for every error raised by tokenkeeper."""


class ConfigError(TokenKeeperError):
    """Client configuration is missing a required value or is malformed."""


class CryptoUnavailable(TokenKeeperError):
    """No secure random source or SHA-256 primitive is reachable."""


class UserCancelled(TokenKeeperError):
    """The authorization window was closed before the redirect arrived."""


class AuthorizationError(TokenKeeperError):
    """The authorization server redirected back with an error or a bad state."""

    def __init__(self, message: str, error: str | None = None, description: str | None = None):
        super().__init__(message)
        self.error = error
        self.description = description


class AuthorizationInProgress(TokenKeeperError):
    pass


class AuthorizationAborted(TokenKeeperError):
    pass


class PopupBlocked(TokenKeeperError):
    """The authorization window could not be opened."""


class NoRefreshToken(TokenKeeperError):
    pass


class NoAccessToken(TokenKeeperError):
    pass


class NoValidToken(TokenKeeperError):
    pass


class NetworkError(TokenKeeperError):
    """The transport failed before an HTTP response was received."""


class _HTTPFailure(TokenKeeperError):
    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return f"{base}: {self.payload!r}"
        return f"{base} (HTTP {self.status_code}): {self.payload!r}"


class TokenExchangeFailed(_HTTPFailure):
    """Token endpoint rejected the request or returned a malformed body.

    ``payload`` holds the raw server response (parsed JSON when possible,
    text otherwise) for diagnostics.
    """


class UserInfoFailed(_HTTPFailure):
    pass


class DiscoveryFailed(_HTTPFailure):
    pass
