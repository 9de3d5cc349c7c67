"""
Key-value storage backends for the client token cache.

The cache lives for the lifetime of a browsing session; MemoryStorage covers
that, JsonFileStorage lets a long-running client survive restarts.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Abstract base class for string key-value storage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value."""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a value if present."""
        pass


class MemoryStorage(KeyValueStorage):
    """Process-local storage."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """Storage persisted to a single JSON file, written atomically."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = RLock()
        self._items: Dict[str, str] = {}
        self._load_from_disk()

    def _load_from_disk(self) -> None:
        """Load persisted items; a missing or corrupt file starts empty."""
        if not os.path.exists(self.path):
            logger.debug("No storage file found at %s", self.path)
            return
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse storage file: %s", e)
            return
        except IOError as e:
            logger.warning("Failed to read storage file: %s", e)
            return

        if not isinstance(data, dict):
            logger.warning("Invalid storage file format, ignoring")
            return
        self._items = {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save_to_disk(self) -> None:
        """Persist items atomically. Caller must hold lock."""
        target_dir = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(target_dir, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=target_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self._items, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value
            self._save_to_disk()

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._save_to_disk()
