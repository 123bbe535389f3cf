"""Remote document synchronization.

This module provides:
- SyncEngine: push local documents, todos and chats to a GitHub repository
- SyncScheduler: run an engine on a timer with a non-overlapping run guard
- SyncConfig: immutable configuration, NoOpSync when unconfigured
- PathResolver, ContentCodec, ChangeDetector, ConflictResolver: engine parts
"""

from notesync.sync.change_detector import ChangeDetector
from notesync.sync.client import RemoteStoreClient
from notesync.sync.codec import ContentCodec
from notesync.sync.conflict_resolver import ConflictResolver
from notesync.sync.engine import SyncEngine, create_sync_engine
from notesync.sync.exceptions import (
    CodecError,
    ConflictError,
    NotConfiguredError,
    NotFoundError,
    RemoteError,
    SyncError,
)
from notesync.sync.local_store import JsonFileStore, LocalStore
from notesync.sync.models import Document, DocumentKind, SyncOutcome, SyncStatus
from notesync.sync.paths import PathResolver
from notesync.sync.scheduler import SyncScheduler
from notesync.sync.sync_config import SyncConfig
from notesync.sync.sync_strategy import NoOpSync, SyncStrategy

__all__ = [
    # Engine
    "SyncEngine",
    "SyncScheduler",
    "SyncStrategy",
    "NoOpSync",
    "create_sync_engine",
    # Parts
    "ChangeDetector",
    "ConflictResolver",
    "ContentCodec",
    "PathResolver",
    "RemoteStoreClient",
    # Config and storage
    "SyncConfig",
    "LocalStore",
    "JsonFileStore",
    # Models
    "Document",
    "DocumentKind",
    "SyncOutcome",
    "SyncStatus",
    # Exceptions
    "SyncError",
    "NotConfiguredError",
    "NotFoundError",
    "ConflictError",
    "RemoteError",
    "CodecError",
]
