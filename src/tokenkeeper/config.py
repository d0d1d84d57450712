# Configuration — client identity, endpoints and environment settings.
# Created: 2026-10-19
#
# ClientConfig is the immutable per-client configuration handed to the
# manager. Settings reads the same values from TOKENKEEPER_* environment
# variables (or a .env file) for the CLI.

from __future__ import annotations

import secrets
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tokenkeeper.errors import ConfigError

ResponseType = Literal["code", "token", "id_token"]
RequestFormat = Literal["form", "json"]

# Endpoint layout of a django-oauth-toolkit style provider, relative to its base URL
DEFAULT_ENDPOINT_PATHS: dict[str, str] = {
    "authorize_url": "o/authorize/",
    "token_url": "o/token/",
    "revoke_url": "o/revoke-token/",
    "userinfo_url": "o/userinfo/",
}

# OIDC discovery document keys for each endpoint field
DISCOVERY_KEYS: dict[str, str] = {
    "authorize_url": "authorization_endpoint",
    "token_url": "token_endpoint",
    "revoke_url": "revocation_endpoint",
    "userinfo_url": "userinfo_endpoint",
}


def get_config_dir() -> Path:
    """Get/create the tokenkeeper config directory (~/.tokenkeeper)."""
    d = Path.home() / ".tokenkeeper"
    d.mkdir(exist_ok=True)
    return d


class ClientConfig(BaseModel):
    """Static configuration of one OAuth 2.0 / OIDC client.

    Immutable after construction. ``client_id`` and ``redirect_uri`` must be
    non-empty; any validation failure is raised as :class:`ConfigError`.

    ``scope`` accepts a space-separated string or any iterable of strings and
    is kept as an ordered, de-duplicated tuple.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: str
    client_secret: str | None = None
    redirect_uri: str
    scope: tuple[str, ...] = ()
    state: str = Field(default_factory=lambda: secrets.token_urlsafe(16))
    response_type: ResponseType = "code"
    authorize_url: str
    token_url: str
    revoke_url: str
    userinfo_url: str
    with_pkce: bool = True
    pkce_fallback: bool = False
    token_request_format: RequestFormat = "form"
    hmac_secret: str | None = None
    poll_interval: float = Field(default=0.5, gt=0)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise ConfigError(f"Invalid client configuration ({fields}): {exc}") from exc

    @field_validator("client_id", "redirect_uri")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("scope", mode="before")
    @classmethod
    def _split_scope(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split()
        return tuple(dict.fromkeys(s for s in value if s))

    @field_validator("response_type", mode="before")
    @classmethod
    def _normalize_response_type(cls, value: Any) -> Any:
        return "code" if value == "authorization_code" else value

    @property
    def scope_string(self) -> str:
        return " ".join(self.scope)

    @property
    def is_confidential(self) -> bool:
        return bool(self.client_secret)

    @classmethod
    def from_base_url(cls, base_url: str, **kwargs: Any) -> ClientConfig:
        """Build a config whose endpoints hang off a provider base URL.

        Explicit endpoint keyword arguments win over the derived ones.
        """
        base = base_url if base_url.endswith("/") else base_url + "/"
        endpoints = {field: urljoin(base, path) for field, path in DEFAULT_ENDPOINT_PATHS.items()}
        endpoints.update({k: v for k, v in kwargs.items() if k in endpoints and v})
        rest = {k: v for k, v in kwargs.items() if k not in endpoints}
        return cls(**endpoints, **rest)

    @classmethod
    def from_discovery(cls, document: dict[str, Any], **kwargs: Any) -> ClientConfig:
        """Build a config from an OIDC discovery document.

        Providers without a revocation or userinfo endpoint leave those
        empty; calling the matching operation then fails at the transport.
        """
        endpoints = {field: document.get(key) or "" for field, key in DISCOVERY_KEYS.items()}
        if not endpoints["authorize_url"] or not endpoints["token_url"]:
            raise ConfigError("Discovery document lacks authorization or token endpoint")
        endpoints.update({k: v for k, v in kwargs.items() if k in endpoints and v})
        rest = {k: v for k, v in kwargs.items() if k not in endpoints}
        return cls(**endpoints, **rest)


class Settings(BaseSettings):
    """Environment-driven settings (TOKENKEEPER_* variables or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENKEEPER_",
        env_file=".env",
        extra="ignore",
    )

    client_id: str = ""
    client_secret: str | None = None
    redirect_uri: str = "http://localhost:8765/callback"
    scope: str = "openid profile email"
    state: str | None = None
    response_type: str = "code"

    # Either a base URL, an OIDC issuer, or explicit endpoints
    base_url: str | None = None
    issuer: str | None = None
    authorize_url: str | None = None
    token_url: str | None = None
    revoke_url: str | None = None
    userinfo_url: str | None = None

    with_pkce: bool = True
    pkce_fallback: bool = False
    token_request_format: RequestFormat = "form"
    hmac_secret: str | None = None
    http_timeout: float = 15.0
    window_timeout: float = 300.0
    storage_path: Path | None = None

    def to_client_config(self, discovery: dict[str, Any] | None = None) -> ClientConfig:
        """Build a :class:`ClientConfig`.

        Endpoint resolution order: explicit URLs, then the discovery
        document, then ``base_url``.
        """
        kwargs: dict[str, Any] = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "response_type": self.response_type,
            "with_pkce": self.with_pkce,
            "pkce_fallback": self.pkce_fallback,
            "token_request_format": self.token_request_format,
            "hmac_secret": self.hmac_secret,
            "authorize_url": self.authorize_url,
            "token_url": self.token_url,
            "revoke_url": self.revoke_url,
            "userinfo_url": self.userinfo_url,
        }
        if self.state:
            kwargs["state"] = self.state

        if discovery is not None:
            return ClientConfig.from_discovery(discovery, **kwargs)
        if self.base_url:
            return ClientConfig.from_base_url(self.base_url, **kwargs)
        return ClientConfig(**kwargs)


@lru_cache
def get_settings() -> Settings:
    return Settings()
