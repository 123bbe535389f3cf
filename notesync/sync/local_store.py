"""Local key-value store consumed by the sync engine.

The engine only depends on the ``LocalStore`` protocol. ``JsonFileStore`` is
a small file-backed implementation used by the command line tool and tests.

Stored as: <base_dir>/store.json
    {"documents": {"<id>": {...}}, "todos": {"todoData": {...}}, "chats": {...}}
"""

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DOCUMENTS = "documents"
TODOS = "todos"
CHATS = "chats"

TODO_KEY = "todoData"


class LocalStore(Protocol):
    """Async record store keyed by ``id`` within named collections."""

    async def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    async def put(self, collection: str, record: dict[str, Any]) -> None: ...

    async def get_all(self, collection: str) -> list[dict[str, Any]]: ...

    async def delete(self, collection: str, key: str) -> None: ...


class JsonFileStore:
    """LocalStore backed by a single JSON file.

    Each operation runs under a lock and rewrites the file atomically, which
    gives every call its own transaction.
    """

    def __init__(self, base_dir: Path):
        """Initialize store.

        Args:
            base_dir: Directory holding store.json (e.g., ~/.notesync)
        """
        self.base_dir = Path(base_dir)
        self.store_file = self.base_dir / "store.json"
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self.store_file.exists():
            logger.debug(f"No local store found at {self.store_file}")
            self._data = {}
            return
        try:
            with open(self.store_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._data = data if isinstance(data, dict) else {}
            logger.debug(f"Loaded local store with {len(self._data)} collections")
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to load local store: {e}")
            self._data = {}

    def _save(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        tmp_file = self.store_file.with_suffix(".json.tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_file, self.store_file)

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        async with self._lock:
            self._load()
            record = self._data.get(collection, {}).get(str(key))
            return copy.deepcopy(record)

    async def put(self, collection: str, record: dict[str, Any]) -> None:
        if "id" not in record:
            raise ValueError(f"Record for {collection} has no id")
        async with self._lock:
            self._load()
            self._data.setdefault(collection, {})[str(record["id"])] = copy.deepcopy(
                record
            )
            await asyncio.to_thread(self._save)

    async def get_all(self, collection: str) -> list[dict[str, Any]]:
        async with self._lock:
            self._load()
            return [copy.deepcopy(r) for r in self._data.get(collection, {}).values()]

    async def delete(self, collection: str, key: str) -> None:
        async with self._lock:
            self._load()
            if self._data.get(collection, {}).pop(str(key), None) is not None:
                await asyncio.to_thread(self._save)
