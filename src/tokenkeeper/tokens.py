# Token State — the access/refresh/ID token record and its validity rules.
# Created: 2026-10-19

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from tokenkeeper.storage import (
    ACCESS_TOKEN_KEY,
    EXPIRY_KEY,
    ID_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_KEYS,
    TokenStorage,
)

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} is not a string")
    return value


@dataclass(frozen=True)
class TokenState:
    """OAuth 2.0 token set held by one manager.

    ``expires_at`` is epoch milliseconds, always computed locally as
    issue time + ``expires_in``. ``None`` means the expiry is unknown.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: int | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    @classmethod
    def from_response(
        cls,
        data: Any,
        issued_at: int | None = None,
        previous: TokenState | None = None,
    ) -> TokenState:
        """Build a state from a token endpoint response body.

        With ``previous`` (refresh grant), refresh and ID tokens the server did
        not reissue are carried over. Raises ``ValueError`` on a malformed body.
        """
        if not isinstance(data, dict):
            raise ValueError("token response is not a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response missing access_token")

        expires_at = None
        expires_in = data.get("expires_in")
        if expires_in is not None:
            if isinstance(expires_in, bool):
                raise ValueError("expires_in is not numeric")
            try:
                seconds = float(expires_in)
            except (TypeError, ValueError):
                raise ValueError(f"expires_in is not numeric: {expires_in!r}") from None
            if not math.isfinite(seconds):
                raise ValueError(f"expires_in is not finite: {expires_in!r}")
            issued = issued_at if issued_at is not None else now_ms()
            expires_at = issued + int(seconds * 1000)

        refresh_token = _optional_str(data, "refresh_token")
        id_token = _optional_str(data, "id_token")
        token_type = _optional_str(data, "token_type")
        scope = _optional_str(data, "scope")
        if previous is not None:
            refresh_token = refresh_token or previous.refresh_token
            id_token = id_token or previous.id_token

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            id_token=id_token,
            expires_at=expires_at,
            token_type=token_type or "Bearer",
            scope=scope or (previous.scope if previous else None),
        )

    @classmethod
    def load(cls, storage: TokenStorage) -> TokenState:
        """Rehydrate from the persisted mirror."""
        raw_expiry = storage.get(EXPIRY_KEY)
        expires_at = None
        if raw_expiry:
            try:
                expires_at = int(raw_expiry)
            except ValueError:
                logger.warning("Ignoring unparseable stored expiry %r", raw_expiry)

        return cls(
            access_token=storage.get(ACCESS_TOKEN_KEY),
            refresh_token=storage.get(REFRESH_TOKEN_KEY),
            id_token=storage.get(ID_TOKEN_KEY),
            expires_at=expires_at,
        )

    def save(self, storage: TokenStorage) -> None:
        """Write every token key, removing the ones this state lacks."""
        values = {
            ACCESS_TOKEN_KEY: self.access_token,
            REFRESH_TOKEN_KEY: self.refresh_token,
            ID_TOKEN_KEY: self.id_token,
            EXPIRY_KEY: str(self.expires_at) if self.expires_at is not None else None,
        }
        for key, value in values.items():
            if value is None:
                storage.remove(key)
            else:
                storage.set(key, value)

    @staticmethod
    def clear(storage: TokenStorage) -> None:
        for key in TOKEN_KEYS:
            storage.remove(key)

    @property
    def is_empty(self) -> bool:
        return not (self.access_token or self.refresh_token or self.id_token)

    def is_valid(self, now: int | None = None) -> bool:
        """True iff an expiry is known and lies strictly in the future.

        An unknown expiry counts as invalid.
        """
        if not self.access_token or self.expires_at is None:
            return False
        current = now if now is not None else now_ms()
        return self.expires_at > current

    def is_valid_or_unknown(self, now: int | None = None) -> bool:
        """Like :meth:`is_valid`, but an access token with no known expiry passes."""
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return self.is_valid(now)

    def expires_in(self, now: int | None = None) -> float | None:
        """Seconds until expiry (negative once expired), or None when unknown."""
        if self.expires_at is None:
            return None
        current = now if now is not None else now_ms()
        return (self.expires_at - current) / 1000

    def __repr__(self) -> str:
        # Never echo token material
        return (
            f"TokenState(access_token={'***' if self.access_token else None}, "
            f"refresh_token={'***' if self.refresh_token else None}, "
            f"id_token={'***' if self.id_token else None}, "
            f"expires_at={self.expires_at!r})"
        )
