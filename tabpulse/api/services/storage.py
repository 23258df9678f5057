"""Key/value session storage used by the state stores.

Values are whole records: a read returns a copy and a write replaces the value
under the key. Field level merging is done by the stores on top of this layer.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class StoreUnavailableError(RuntimeError):
    """The storage backend could not be reached."""


class SessionStorage(ABC):
    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return a copy of the value stored under ``key`` (``None`` if absent)."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""


class MemorySessionStorage(SessionStorage):
    """In-process storage, lost on restart."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileSessionStorage(SessionStorage):
    """Storage persisted to a single JSON document on disk.

    Every store shares the one document, so each read-modify-write of it runs
    under ``_lock`` and each write goes through its own temporary file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            msg = f"cannot read {self.path}: {e}"
            raise StoreUnavailableError(msg) from e
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                json.dump(data, f)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            msg = f"cannot write {self.path}: {e}"
            raise StoreUnavailableError(msg) from e

    def _get(self, key: str) -> Any:
        with self._lock:
            return self._read_all().get(key)

    def _set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    async def get(self, key: str) -> Any:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set, key, value)


def create_storage(path: Path | None) -> SessionStorage:
    if path is None:
        return MemorySessionStorage()
    return JsonFileSessionStorage(path)
