"""Key-value persistence with ``section.key`` composite keys (``apps.<identity>``)."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class JsonFileStore:
    """JSON document on disk; every write replaces the file atomically."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read store %s, starting empty: %s", self.path, e)
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".store_", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _split(key: str) -> Tuple[Optional[str], str]:
        # Only the first dot separates; identities may contain dots themselves.
        section, sep, leaf = key.partition(".")
        if not sep:
            return None, key
        return section, leaf

    def _section(self, section: Optional[str]) -> Optional[Dict[str, Any]]:
        if section is None:
            return self._data
        node = self._data.get(section)
        return node if isinstance(node, dict) else None

    def _ensure_section(self, section: Optional[str]) -> Dict[str, Any]:
        node = self._section(section)
        if node is None:
            node = {}
            self._data[section] = node
        return node

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            section, leaf = self._split(key)
            parent = self._section(section)
            if parent is None:
                return default
            value = parent.get(leaf, _MISSING)
            if value is _MISSING:
                return default
            return json.loads(json.dumps(value))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            section, leaf = self._split(key)
            self._ensure_section(section)[leaf] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            section, leaf = self._split(key)
            parent = self._section(section)
            if parent is None or leaf not in parent:
                return
            del parent[leaf]
            self._flush()

    def clear(self) -> None:
        with self._lock:
            self._data = {}
            self._flush()
