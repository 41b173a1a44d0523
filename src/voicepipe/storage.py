"""Key-value stores for preferences and flags that outlive a single session."""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from .logging_utils import setup_logger

logger = setup_logger("voicepipe.storage")


class KeyValueStore(ABC):
    """String-keyed, string-valued persistent store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    """Process-local store; nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = str(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data)


class JSONFileStore(KeyValueStore):
    """All keys kept in one JSON object on disk.

    The file is read lazily on first access and rewritten atomically on every
    change. A corrupt file is logged and treated as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()
        self._cache: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        if self._cache is not None:
            return self._cache

        data: Dict[str, str] = {}
        if self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    data = {str(k): str(v) for k, v in raw.items()}
                else:
                    logger.warning(f"Ignoring non-object state file {self._path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load state from {self._path}: {e}, starting empty")
        self._cache = data
        return data

    def _save(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except Exception:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        logger.debug(f"Saved {len(data)} keys to {self._path}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = dict(self._load())
            data[key] = str(value)
            self._save(data)
            self._cache = data

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            data = dict(data)
            del data[key]
            self._save(data)
            self._cache = data


__all__ = ["KeyValueStore", "MemoryStore", "JSONFileStore"]
