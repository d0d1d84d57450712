# Token Storage — key/value persistence for the token mirror.
# Created: 2026-10-19
#
# The manager only needs get/set/remove on string keys. MemoryStorage keeps
# values for the life of the process, FileStorage persists them to a JSON
# file at ~/.tokenkeeper/tokens.json (chmod 0600).

from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path
from typing import Protocol, runtime_checkable

from tokenkeeper.config import get_config_dir

logger = logging.getLogger(__name__)

# Persisted keys
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
ID_TOKEN_KEY = "id_token"
EXPIRY_KEY = "expiry"
CODE_VERIFIER_KEY = "code_verifier"

TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, ID_TOKEN_KEY, EXPIRY_KEY)
ALL_KEYS = TOKEN_KEYS + (CODE_VERIFIER_KEY,)


@runtime_checkable
class TokenStorage(Protocol):
    """Key/value store holding the serialized token mirror."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage. Values vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


def _default_path() -> Path:
    return get_config_dir() / "tokens.json"


class FileStorage:
    """JSON file storage, owner-only read/write.

    The file is re-read on every call so that several processes sharing the
    same file see each other's writes.
    """

    def __init__(self, path: Path | None = None):
        self._path = path

    @property
    def path(self) -> Path:
        if self._path is not None:
            return self._path
        return _default_path()

    def _load(self) -> dict[str, str]:
        path = self.path
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read token storage %s: %s", path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed token storage %s", path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
