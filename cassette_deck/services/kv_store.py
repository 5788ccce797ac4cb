"""Durable key-value stores used to persist the offline queue.

WHY: Queued operations must survive an app restart. The queue only needs
"read a string by key" and "write a string by key", so the storage is a
small protocol with a file-backed and an in-memory implementation.

HOW: JsonFileKeyValueStore keeps one file per key in a directory. Writes
go to a temp file in the same directory and are moved into place with
os.replace(), so a crash never leaves a half-written value. Blocking
file work runs in the default executor.

RULES:
- get() returns None for unknown keys
- set() returns only after the value is durably on disk
- Keys are used as filenames and must be simple identifiers
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from cassette_deck.config import QUEUE_STATE_DIR


class KeyValueStore(Protocol):
    """Minimal async string store."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local store for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileKeyValueStore:
    """One file per key under a directory, written atomically.

    RULES:
    - directory defaults to QUEUE_STATE_DIR and is created on first write
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self._directory = Path(directory) if directory is not None else QUEUE_STATE_DIR

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, self._path_for(key))

    async def set(self, key: str, value: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, self._path_for(key), value)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _write(path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise
