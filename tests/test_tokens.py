# Tests for tokens.py
# Created: 2026-10-19

import pytest

from tokenkeeper.storage import MemoryStorage
from tokenkeeper.tokens import TokenState, now_ms

NOW = 1_700_000_000_000


class TestFromResponse:
    def test_full_response(self):
        state = TokenState.from_response(
            {
                "access_token": "A",
                "refresh_token": "R",
                "id_token": "I",
                "expires_in": 3600,
                "token_type": "Bearer",
                "scope": "openid",
            },
            issued_at=NOW,
        )
        assert state.access_token == "A"
        assert state.refresh_token == "R"
        assert state.id_token == "I"
        assert state.expires_at == NOW + 3_600_000
        assert state.scope == "openid"

    def test_expiry_is_relative_to_issue_time(self):
        # A server-supplied absolute expiry is ignored
        state = TokenState.from_response(
            {"access_token": "A", "expires_in": 60, "expires_at": 1}, issued_at=NOW
        )
        assert state.expires_at == NOW + 60_000

    def test_string_expires_in(self):
        state = TokenState.from_response({"access_token": "A", "expires_in": "120"}, issued_at=NOW)
        assert state.expires_at == NOW + 120_000

    def test_no_expires_in(self):
        state = TokenState.from_response({"access_token": "A"})
        assert state.expires_at is None

    def test_default_issue_time_is_now(self):
        before = now_ms()
        state = TokenState.from_response({"access_token": "A", "expires_in": 10})
        assert before + 10_000 <= state.expires_at <= now_ms() + 10_000

    @pytest.mark.parametrize(
        "body",
        [
            None,
            [],
            "access_token=A",
            {},
            {"access_token": ""},
            {"access_token": 5},
            {"access_token": "A", "expires_in": "soon"},
            {"access_token": "A", "expires_in": True},
            {"access_token": "A", "expires_in": float("inf")},
            {"access_token": "A", "expires_in": "inf"},
            {"access_token": "A", "expires_in": "1e400"},
            {"access_token": "A", "expires_in": float("nan")},
            {"access_token": "A", "refresh_token": 42},
            {"access_token": "A", "id_token": {"nested": True}},
            {"access_token": "A", "token_type": ["Bearer"]},
            {"access_token": "A", "scope": 7},
        ],
    )
    def test_malformed(self, body):
        with pytest.raises(ValueError):
            TokenState.from_response(body)

    def test_previous_tokens_carried_over(self):
        previous = TokenState(access_token="old", refresh_token="R1", id_token="I1")
        state = TokenState.from_response({"access_token": "new"}, previous=previous)
        assert state.access_token == "new"
        assert state.refresh_token == "R1"
        assert state.id_token == "I1"

    def test_rotation_replaces_refresh_token(self):
        previous = TokenState(access_token="old", refresh_token="R1")
        state = TokenState.from_response(
            {"access_token": "new", "refresh_token": "R2"}, previous=previous
        )
        assert state.refresh_token == "R2"


class TestPersistence:
    def test_save_and_load(self):
        storage = MemoryStorage()
        state = TokenState(access_token="A", refresh_token="R", id_token="I", expires_at=NOW)
        state.save(storage)

        assert storage.get("expiry") == str(NOW)
        loaded = TokenState.load(storage)
        assert loaded.access_token == "A"
        assert loaded.refresh_token == "R"
        assert loaded.id_token == "I"
        assert loaded.expires_at == NOW

    def test_save_removes_absent_keys(self):
        storage = MemoryStorage({"refresh_token": "stale", "expiry": "1"})
        TokenState(access_token="A").save(storage)
        assert storage.get("refresh_token") is None
        assert storage.get("expiry") is None

    def test_load_empty(self):
        state = TokenState.load(MemoryStorage())
        assert state.is_empty
        assert state.expires_at is None

    def test_load_bad_expiry(self):
        state = TokenState.load(MemoryStorage({"access_token": "A", "expiry": "tomorrow"}))
        assert state.access_token == "A"
        assert state.expires_at is None

    def test_clear(self):
        storage = MemoryStorage({"access_token": "A", "code_verifier": "v"})
        TokenState.clear(storage)
        assert storage.keys() == ["code_verifier"]


class TestValidity:
    def test_no_expiry_is_invalid(self):
        assert not TokenState(access_token="A").is_valid(NOW)

    def test_before_expiry(self):
        assert TokenState(access_token="A", expires_at=NOW + 1).is_valid(NOW)

    def test_at_expiry_is_invalid(self):
        assert not TokenState(access_token="A", expires_at=NOW).is_valid(NOW)

    def test_after_expiry(self):
        assert not TokenState(access_token="A", expires_at=NOW - 1).is_valid(NOW)

    def test_no_access_token(self):
        assert not TokenState(expires_at=NOW + 1000).is_valid(NOW)

    def test_valid_or_unknown(self):
        assert TokenState(access_token="A").is_valid_or_unknown(NOW)
        assert not TokenState(access_token="A", expires_at=NOW - 1).is_valid_or_unknown(NOW)
        assert not TokenState().is_valid_or_unknown(NOW)

    def test_expires_in(self):
        assert TokenState(access_token="A", expires_at=NOW + 1500).expires_in(NOW) == 1.5
        assert TokenState(access_token="A").expires_in(NOW) is None

    def test_repr_hides_tokens(self):
        text = repr(TokenState(access_token="secret-a", refresh_token="secret-r"))
        assert "secret" not in text
