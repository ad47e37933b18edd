"""Favorite sessions, persisted through an injected key/value storage.

The set is stored as a JSON array under FAVORITES_STORAGE_KEY. It is read
once when the store is created and rewritten on every change. Missing or
corrupt data starts an empty set instead of failing.
"""

import json
from pathlib import Path
from typing import Protocol

from src.agenda.config import FAVORITES_STORAGE_KEY
from src.agenda.logging import get_logger

logger = get_logger(__name__)


class Storage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage, used in tests and one-shot CLI runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class JsonFileStorage:
    """Storage kept in one JSON object file on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("storage_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


class FavoriteSet:
    def __init__(self, storage: Storage, key: str = FAVORITES_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._ids: list[str] = self._restore()

    def _restore(self) -> list[str]:
        raw = self._storage.get(self._key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("favorites_corrupt", key=self._key, reason="invalid_json")
            return []
        if not isinstance(data, list) or not all(isinstance(i, str) for i in data):
            logger.warning("favorites_corrupt", key=self._key, reason="not_a_string_list")
            return []
        # dict.fromkeys drops repeats but keeps order
        return list(dict.fromkeys(data))

    def _persist(self, ids: list[str]) -> bool:
        try:
            self._storage.set(self._key, json.dumps(ids))
        except OSError as e:
            logger.warning("favorites_persist_failed", key=self._key, error=str(e))
            return False
        return True

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def toggle(self, session_id: str) -> bool:
        """Add or remove `session_id`. Returns True if it is now a favorite.

        The change is kept only once storage accepted it; otherwise the set
        stays as it was.
        """
        added = session_id not in self._ids
        if added:
            updated = [*self._ids, session_id]
        else:
            updated = [i for i in self._ids if i != session_id]
        if not self._persist(updated):
            return not added
        self._ids = updated
        logger.debug("favorite_toggled", session_id=session_id, favorite=added)
        return added
