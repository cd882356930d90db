"""Small key/value stores used to avoid downloading the same source twice.

`MemoryStore` lives for one process; `JsonFileStore` persists every entry
in a single JSON file. Values are kept JSON-serialized in both, so a value
read back is always a fresh copy.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable

logger = logging.getLogger(__name__)


class MemoryStore:
    def __init__(self):
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data = {}


class JsonFileStore(MemoryStore):
    """MemoryStore backed by a JSON file, rewritten on every change."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as fh:
                self._data = json.load(fh)

    def _write(self) -> None:
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as fh:
            json.dump(self._data, fh, ensure_ascii=False)

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._write()

    def remove_item(self, key: str) -> None:
        super().remove_item(key)
        self._write()

    def clear(self) -> None:
        super().clear()
        self._write()


def set_value(store: MemoryStore, key: str, value: Any) -> Any:
    """Store `value` (or the result of calling it) under `key` and return it."""
    if callable(value):
        value = value()
    try:
        store.set_item(key, json.dumps(value, ensure_ascii=False))
    except (TypeError, OSError) as e:
        logger.error("Could not store %r: %s", key, e)
    return value


def get_or_set(store: MemoryStore, key: str, default: Any | Callable[[], Any] = None) -> Any:
    """Return the decoded value for `key`; compute and store `default` when missing."""
    raw = store.get_item(key)
    if raw is None:
        return set_value(store, key, default)
    return json.loads(raw)
