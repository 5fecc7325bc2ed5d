"""
Per-device key-value cache persisted as a single JSON file.

The store assumes one writer per file. ``append_to_list`` is a plain
read-modify-write and concurrent writers can lose updates.
"""

import json
import logging
import os
import tempfile
from typing import Any, List, Optional

from driver_portal.exceptions import LocalStoreWriteError

logger = logging.getLogger(__name__)


class LocalCacheStore:
    """Synchronous JSON-file key-value store"""

    def __init__(self, path: str, quota_bytes: Optional[int] = None):
        self.path = path
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Any:
        """
        Return the value stored under key, or None.

        Never raises: a missing, unreadable or corrupt file reads as empty.
        """
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        """
        Persist value under key, replacing any previous value.

        Raises:
            LocalStoreWriteError: if the value cannot be serialized, the quota
                would be exceeded or the file cannot be written
        """
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def list_keys_with_prefix(self, prefix: str) -> List[str]:
        return [key for key in self._load() if key.startswith(prefix)]

    def append_to_list(self, key: str, item: Any) -> List[Any]:
        """Append item to the list at key (created empty if absent) and return the new list"""
        data = self._load()
        items = data.get(key)
        if not isinstance(items, list):
            items = []
        items.append(item)
        data[key] = items
        self._save(data)
        return items

    def _load(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Local cache at {self.path} is unreadable, treating as empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        try:
            payload = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise LocalStoreWriteError(f"Value is not JSON serializable: {e}")

        size = len(payload.encode("utf-8"))
        if self.quota_bytes is not None and size > self.quota_bytes:
            raise LocalStoreWriteError(
                f"Local cache quota exceeded ({size} > {self.quota_bytes} bytes)"
            )

        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".local_cache.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise LocalStoreWriteError(f"Failed to write local cache: {e}")
