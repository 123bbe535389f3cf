"""Shared fixtures for sync engine tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from notesync.sync.conflict_resolver import ConflictResolver
from notesync.sync.engine import SyncEngine
from notesync.sync.local_store import JsonFileStore
from notesync.sync.sync_config import SyncConfig

FIXED_NOW = datetime(2024, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """A configured SyncConfig."""
    return SyncConfig(token="test-token", repo="me/notes", branch="main")


@pytest.fixture
def store(tmp_path):
    """A JsonFileStore in a temporary directory."""
    return JsonFileStore(tmp_path)


@pytest.fixture
def mock_client():
    """A RemoteStoreClient stand-in: nothing exists remotely, writes succeed."""
    client = MagicMock()
    client.get_version_tag = AsyncMock(return_value=None)
    client.put_object = AsyncMock(return_value="sha-new")
    client.ensure_container = AsyncMock(return_value=None)
    client.list_objects = AsyncMock(return_value=[])
    client.get_object = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def engine(config, mock_client, store):
    """A SyncEngine wired to the mock client with a fixed clock."""
    return SyncEngine(
        config,
        mock_client,
        store,
        conflict_resolver=ConflictResolver(mock_client),
        clock=lambda: FIXED_NOW,
    )
