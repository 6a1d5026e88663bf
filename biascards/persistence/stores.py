"""Key-value persistence adapters for activity snapshots.

The engine only needs ``save(key, value)`` and ``load(key)``; adapters
give no transactional guarantees and are last-write-wins.
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from biascards.exceptions import StorageError

logger = logging.getLogger(__name__)


class PersistenceAdapter(ABC):
    """Base class for snapshot stores."""

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """
        Store a JSON-serializable value under a key, replacing any previous one.

        Raises:
            StorageError: If the value cannot be written
        """
        pass

    @abstractmethod
    def load(self, key: str) -> Any | None:
        """
        Return the value stored under a key, or None if there is none.

        Raises:
            StorageError: If stored data exists but cannot be read
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if something was deleted."""
        pass

    @abstractmethod
    def list_keys(self) -> list[str]:
        """Return all stored keys, sorted."""
        pass

    def exists(self, key: str) -> bool:
        return key in self.list_keys()


class MemoryStore(PersistenceAdapter):
    """In-process store; values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def save(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def load(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def list_keys(self) -> list[str]:
        return sorted(self._data)

    def exists(self, key: str) -> bool:
        return key in self._data


class JsonFileStore(PersistenceAdapter):
    """Stores each key as ``<key>.json`` in a directory.

    Writes go to a temporary file that is then renamed over the target, and
    are serialized through a lock so concurrent saves from one process
    cannot interleave.

    Directory Structure:
        session/
        ├── bias-cards-activity-3f2a9c1b7d4e.json
        └── bias-cards-activity-9d0e8a7c6b5f.json
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid storage key: {key!r}", "resolve")
        return self.directory / f"{key}{self.SUFFIX}"

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            content = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON-serializable: {e}", "save") from e

        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                tmp_path = path.with_suffix(".json.tmp")
                tmp_path.write_text(content)
                tmp_path.replace(path)
            except OSError as e:
                raise StorageError(f"Failed to write {path}: {e}", "save") from e

        logger.debug(f"Saved '{key}' to {path}")

    def load(self, key: str) -> Any | None:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text())
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupted JSON in {path}: {e}", "load") from e
            except OSError as e:
                raise StorageError(f"Failed to read {path}: {e}", "load") from e

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StorageError(f"Failed to delete {path}: {e}", "delete") from e
        logger.info(f"Deleted '{key}' from {self.directory}")
        return True

    def list_keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob(f"*{self.SUFFIX}"))

    def exists(self, key: str) -> bool:
        return self._path(key).exists()
