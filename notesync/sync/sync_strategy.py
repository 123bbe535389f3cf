"""Sync strategy interface.

Callers hold a ``SyncStrategy`` and never check whether sync is configured:
an unconfigured setup gets ``NoOpSync``, which does nothing and never raises.
"""

from abc import ABC, abstractmethod
from typing import Optional

from notesync.sync.local_store import DOCUMENTS
from notesync.sync.models import Document, RemoteObject, SyncOutcome
from notesync.sync.sync_config import SyncConfig


class SyncStrategy(ABC):
    """Abstract interface for document synchronization."""

    config: SyncConfig

    @abstractmethod
    async def run(self) -> list[SyncOutcome]:
        """Sync every eligible document and aggregate once."""

    @abstractmethod
    async def sync_document(
        self, document: Document, collection: str = DOCUMENTS, snapshot_time=None
    ) -> Optional[SyncOutcome]:
        """Sync a single document, never raising for per-document errors."""

    @abstractmethod
    async def force_sync(
        self, document_id: str, collection: str = DOCUMENTS
    ) -> Optional[SyncOutcome]:
        """Sync one document now, regardless of its timestamps."""

    @abstractmethod
    async def list_recent(self) -> list[RemoteObject]:
        """List remote documents in the current and previous month shards."""

    @abstractmethod
    async def fetch(self, path: str) -> Optional[str]:
        """Read and decode a remote document."""

    @abstractmethod
    def retire(self) -> None:
        """Stop accepting results; in-flight calls finish but are discarded."""

    @abstractmethod
    async def close(self) -> None:
        """Retire and release network resources."""


class NoOpSync(SyncStrategy):
    """No-op implementation - sync is disabled.

    Used when no token or repository is configured.
    """

    def __init__(self, config: SyncConfig | None = None):
        self.config = config or SyncConfig()

    async def run(self) -> list[SyncOutcome]:
        return []

    async def sync_document(
        self, document: Document, collection: str = DOCUMENTS, snapshot_time=None
    ) -> None:
        return None

    async def force_sync(self, document_id: str, collection: str = DOCUMENTS) -> None:
        return None

    async def list_recent(self) -> list[RemoteObject]:
        return []

    async def fetch(self, path: str) -> None:
        return None

    def retire(self) -> None:
        pass

    async def close(self) -> None:
        pass
