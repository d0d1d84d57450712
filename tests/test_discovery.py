# Tests for discovery.py and discovery-driven configuration.
# Created: 2026-10-19

import httpx
import pytest

from tokenkeeper.config import Settings
from tokenkeeper.discovery import discover, discovery_url
from tokenkeeper.errors import DiscoveryFailed, NetworkError

ISSUER = "https://id.example.com"
DOCUMENT = {
    "issuer": ISSUER,
    "authorization_endpoint": f"{ISSUER}/authorize",
    "token_endpoint": f"{ISSUER}/token",
    "revocation_endpoint": f"{ISSUER}/revoke",
    "userinfo_endpoint": f"{ISSUER}/userinfo",
}


def test_discovery_url():
    assert discovery_url(ISSUER) == f"{ISSUER}/.well-known/openid-configuration"
    assert discovery_url(ISSUER + "/") == f"{ISSUER}/.well-known/openid-configuration"


async def test_discover(provider):
    provider.responses["/.well-known/openid-configuration"] = (200, DOCUMENT)
    client = provider.client()

    assert await discover(ISSUER, client=client) == DOCUMENT
    assert not client.is_closed
    await client.aclose()


@pytest.mark.parametrize(
    "entry",
    [(404, {"error": "not_found"}), (200, "<html></html>"), (200, ["a"])],
)
async def test_discover_failures(provider, entry):
    provider.responses["/.well-known/openid-configuration"] = entry
    with pytest.raises(DiscoveryFailed):
        await discover(ISSUER, client=provider.client())


async def test_discover_network_error(provider):
    provider.responses["/.well-known/openid-configuration"] = httpx.ConnectError("down")
    with pytest.raises(NetworkError):
        await discover(ISSUER, client=provider.client())


class TestDiscoveryConfig:
    def test_settings_prefer_discovery_over_base_url(self, monkeypatch):
        monkeypatch.setenv("TOKENKEEPER_CLIENT_ID", "env-client")
        monkeypatch.setenv("TOKENKEEPER_BASE_URL", "https://base.example.com")
        settings = Settings(_env_file=None)

        config = settings.to_client_config(discovery=DOCUMENT)
        assert config.client_id == "env-client"
        assert config.authorize_url == f"{ISSUER}/authorize"
