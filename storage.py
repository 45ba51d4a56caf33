"""Key-value stores holding JSON-serializable values.

``JsonFileStore`` persists to one JSON file in the data directory and is the
default persistent store. ``MemoryStore`` lives only as long as the process
and backs the session-scoped vault key.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import tempfile
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

import app_paths

logger = logging.getLogger(__name__)

STORAGE_FILE_NAME = "storage.json"

Listener = Callable[[str, Any], None]


def _copy(value: Any) -> Any:
    # Round-trip through JSON so callers never share mutable state with the store.
    return json.loads(json.dumps(value))


class KeyValueStore(abc.ABC):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._listeners: List[Listener] = []

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return _copy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        """Write several keys as one change."""
        copies = {key: _copy(value) for key, value in values.items()}
        with self._lock:
            staged = dict(self._data)
            staged.update(copies)
            self._flush(staged)
            self._data = staged
        for key, value in copies.items():
            self._notify(key, value)

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            staged = dict(self._data)
            del staged[key]
            self._flush(staged)
            self._data = staged
        self._notify(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(key, new_value)``; returns a function that unsubscribes."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key, value)
            except Exception:
                logger.exception("Storage listener failed for key %s", key)

    @abc.abstractmethod
    def _flush(self, data: Dict[str, Any]) -> None:
        """Persist ``data``; memory only takes the new state once this returns."""


class MemoryStore(KeyValueStore):
    def _flush(self, data: Dict[str, Any]) -> None:
        pass

    def clear(self) -> None:
        with self._lock:
            keys = list(self._data)
            self._data.clear()
        for key in keys:
            self._notify(key, None)


class JsonFileStore(KeyValueStore):
    def __init__(self, path: Optional[str] = None) -> None:
        super().__init__()
        self.path = path or app_paths.get_storage_path(STORAGE_FILE_NAME)
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading %s, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring %s: top level is not an object", self.path)
            return {}
        return data

    def _flush(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".storage-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
