"""Local key-value storage backends."""
from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Process-local storage, mainly for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage:
    """String key-value store persisted as a single JSON object on disk.

    Every write rewrites the file synchronously. A missing or corrupt file
    is treated as empty storage.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._items = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed storage file %s", self.path)
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp, "w") as f:
                json.dump(self._items, f, indent=2, sort_keys=True)
            tmp.replace(self.path)
        except OSError as e:
            logger.error("Failed to save storage to %s: %s", self.path, e)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._write()

    def keys(self) -> list[str]:
        return list(self._items)
