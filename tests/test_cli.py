# Tests for the tokenkeeper command line.
# Created: 2026-10-19

import json
from functools import partial
from pathlib import Path

import pytest
from conftest import TOKEN_PATH, FakeProvider, body_of

from tokenkeeper import __main__ as cli
from tokenkeeper.config import Settings
from tokenkeeper.manager import TokenLifecycleManager
from tokenkeeper.tokens import now_ms


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    s = Settings(
        _env_file=None,
        client_id="cli-client",
        base_url="https://id.example.com",
        state="cli-state",
        storage_path=tmp_path / "tokens.json",
    )
    monkeypatch.setattr(cli, "get_settings", lambda: s)
    return s


def test_url(settings, capsys):
    assert cli.main(["url"]) == 0
    out = capsys.readouterr().out.strip()
    assert out.startswith("https://id.example.com/o/authorize/?client_id=cli-client")
    assert "state=cli-state" in out


def test_url_keeps_verifier_for_exchange(settings, capsys, monkeypatch):
    provider = FakeProvider()
    provider.responses[TOKEN_PATH] = (200, {"access_token": "A", "expires_in": 3600})
    monkeypatch.setattr(
        cli, "TokenLifecycleManager", partial(TokenLifecycleManager, http_client=provider.client())
    )

    assert cli.main(["url"]) == 0
    stored = json.loads(settings.storage_path.read_text())
    assert "code_challenge=" in capsys.readouterr().out

    assert cli.main(["exchange", "https://app.example.com/cb?code=pasted&state=cli-state"]) == 0
    body = body_of(provider.calls(TOKEN_PATH)[0])
    assert body["code"] == "pasted"
    assert body["code_verifier"] == stored["code_verifier"]
    assert json.loads(settings.storage_path.read_text())["access_token"] == "A"


def test_exchange_without_code(settings):
    assert cli.main(["exchange"]) == 1


def test_status_without_tokens(settings, capsys):
    assert cli.main(["status"]) == 1
    out = capsys.readouterr().out
    assert "access_token:  <missing>" in out
    assert "valid:         False" in out


def test_status_with_valid_tokens(settings, capsys):
    settings.storage_path.write_text(
        json.dumps({"access_token": "A", "expiry": str(now_ms() + 600_000)})
    )
    assert cli.main(["status"]) == 0
    assert "valid:         True" in capsys.readouterr().out


def test_refresh_without_token_fails(settings):
    assert cli.main(["refresh"]) == 1


def test_missing_client_id(tmp_path, monkeypatch):
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    s = Settings(_env_file=None, base_url="https://id.example.com", storage_path=tmp_path / "t.json")
    monkeypatch.setattr(cli, "get_settings", lambda: s)
    assert cli.main(["status"]) == 1


def test_unknown_command(settings):
    with pytest.raises(SystemExit):
        cli.main(["dance"])
