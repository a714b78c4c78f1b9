"""Key/value backings for the local store.

Each key holds one serialized collection, read in full and written in full.
"""

import os
import re
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from sqlalchemy import Engine

from outreach_queue.core.db.engine import create_db_engine, create_session_factory
from outreach_queue.core.db.models import LocalStoreEntry

QUEUE_KEY = "messaging_queue"
DAILY_STATS_KEY = "daily_outreach_stats"


class StorageBacking(ABC):
    """Interface for local key/value persistence."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never written."""
        pass

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Replace the value stored under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryStorage(StorageBacking):
    """Process-local backing, used in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStorage(StorageBacking):
    """One JSON file per key inside a directory.

    Writes go to a temp file first and are renamed into place, so a crash
    mid-write leaves the previous collection intact.
    """

    _SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")

    def __init__(self, directory: Union[str, Path]):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not self._SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._dir / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class SqlStorage(StorageBacking):
    """SQLAlchemy-backed key/value table (SQLite by default)."""

    def __init__(self, engine_or_url: Union[Engine, str]):
        if isinstance(engine_or_url, str):
            self._engine = create_db_engine(engine_or_url)
        else:
            self._engine = engine_or_url
        self._session_factory = create_session_factory(self._engine)

    def read(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.get(LocalStoreEntry, key)
            return row.value if row else None

    def write(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            session.merge(LocalStoreEntry(key=key, value=value, updated_at=time.time()))
            session.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(LocalStoreEntry, key)
            if row:
                session.delete(row)
                session.commit()


def create_storage(backend: str, url: str = "", directory: str = "") -> StorageBacking:
    """Build the backing named in config (`sqlite`, `file` or `memory`)."""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "file":
        return JsonFileStorage(directory)
    if backend == "sqlite":
        if url.startswith("sqlite:///"):
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        return SqlStorage(url)
    raise ValueError(f"Unknown storage backend: {backend}")
