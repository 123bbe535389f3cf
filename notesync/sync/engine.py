"""Sync engine: push local documents to the remote store.

Per document the engine moves through Evaluating -> Syncing -> Persisting.
Every per-document failure is caught here, logged, and reported as a failed
outcome; the document keeps its old ``last_synced`` and is retried on the
next run.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from notesync.sync.aggregator import chat_document, todo_document
from notesync.sync.change_detector import ChangeDetector
from notesync.sync.client import RemoteStoreClient
from notesync.sync.codec import ContentCodec
from notesync.sync.conflict_resolver import ConflictResolver
from notesync.sync.exceptions import NotConfiguredError, NotFoundError, SyncError
from notesync.sync.local_store import CHATS, DOCUMENTS, TODO_KEY, TODOS, LocalStore
from notesync.sync.models import (
    Document,
    DocumentKind,
    RemoteObject,
    SyncOutcome,
    SyncStatus,
    format_timestamp,
    utcnow,
)
from notesync.sync.paths import PathResolver
from notesync.sync.sync_config import SyncConfig
from notesync.sync.sync_strategy import NoOpSync, SyncStrategy

logger = logging.getLogger(__name__)


class SyncEngine(SyncStrategy):
    """Reconcile local documents against the remote store.

    The engine holds no state between runs except what it writes back to the
    local store. Documents are processed one at a time, so at most one remote
    write is in flight.
    """

    def __init__(
        self,
        config: SyncConfig,
        client: RemoteStoreClient,
        store: LocalStore,
        paths: PathResolver | None = None,
        detector: ChangeDetector | None = None,
        conflict_resolver: ConflictResolver | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize sync engine.

        Args:
            config: Immutable sync configuration
            client: Remote store client built from the same config
            store: Local store holding documents and aggregate snapshots
            paths: Path resolver (default: standard layout)
            detector: Change detector (default: standard placeholder rules)
            conflict_resolver: Upsert strategy (default: one retry on conflict)
            clock: Source of "now", injectable for tests
        """
        self.config = config
        self.client = client
        self.store = store
        self.paths = paths or PathResolver()
        self.detector = detector or ChangeDetector()
        self.conflict_resolver = conflict_resolver or ConflictResolver(client)
        self.clock = clock
        self._retired = False

    @property
    def retired(self) -> bool:
        return self._retired

    def retire(self) -> None:
        self._retired = True

    async def close(self) -> None:
        self.retire()
        await self.client.close()

    def _outcome(
        self, document: Document, status: SyncStatus, **kwargs: Any
    ) -> SyncOutcome:
        return SyncOutcome(document_id=document.id, status=status, **kwargs)

    def _load_document(self, collection: str, record: dict[str, Any]) -> Document:
        if collection == TODOS:
            return todo_document(record)
        if collection == CHATS:
            return chat_document(record)
        return Document.from_dict(record)

    def _wants_sync(self, document: Document) -> bool:
        # Aggregates bypass the name rules; their category is the collection
        if document.kind == DocumentKind.AGGREGATE:
            return self.detector.needs_sync(document)
        return self.detector.should_sync(document)

    async def _enumerate(self) -> list[tuple[str, dict[str, Any]]]:
        records = [(DOCUMENTS, r) for r in await self.store.get_all(DOCUMENTS)]
        todo_record = await self.store.get(TODOS, TODO_KEY)
        if todo_record:
            records.append((TODOS, todo_record))
        records.extend((CHATS, r) for r in await self.store.get_all(CHATS))
        return records

    async def run(self) -> list[SyncOutcome]:
        """Sync every eligible document and aggregate once.

        Returns:
            One outcome per enumerated record, in enumeration order
        """
        if self._retired or not self.config.is_configured:
            return []

        snapshot_time = self.clock()
        try:
            records = await self._enumerate()
        except Exception as e:
            logger.error(f"Failed to enumerate local documents: {e}")
            return []

        outcomes = []
        for collection, record in records:
            if self._retired:
                logger.info("Sync engine retired mid-run, stopping")
                break
            outcomes.append(await self._process(collection, record, snapshot_time))

        succeeded = sum(1 for o in outcomes if o.status == SyncStatus.SUCCESS)
        failed = sum(1 for o in outcomes if o.status == SyncStatus.FAILED)
        logger.info(
            f"Sync run complete: {succeeded} synced, {failed} failed, "
            f"{len(outcomes) - succeeded - failed} skipped"
        )
        return outcomes

    async def _process(
        self, collection: str, record: dict[str, Any], snapshot_time: datetime
    ) -> SyncOutcome:
        record_id = str(record.get("id", "?"))
        try:
            document = self._load_document(collection, record)
        except Exception as e:
            logger.warning(f"Skipping malformed {collection} record {record_id}: {e}")
            return SyncOutcome(record_id, SyncStatus.FAILED, error=str(e))

        if not self._wants_sync(document):
            logger.debug(f"No sync needed for {document.name!r}")
            return self._outcome(document, SyncStatus.SKIPPED)

        try:
            return await self.sync_document(document, collection, snapshot_time)
        except Exception as e:
            logger.warning(f"Sync failed for {document.name!r}: {e}")
            return self._outcome(document, SyncStatus.FAILED, error=str(e))

    async def _locate(self, document: Document) -> tuple[str, str | None, bool]:
        """Find where the document lives remotely.

        Returns:
            (path, version tag, whether the tag was just read)
        """
        candidates = self.paths.candidate_paths(
            document.name, document.kind, self.clock(), document.id
        )
        if document.remote_path in candidates:
            return document.remote_path, document.remote_version_tag, False

        if document.remote_path:
            if self.paths.matches(
                document.remote_path, document.name, document.kind, document.id
            ):
                reason = "is outside the current month shards"
            else:
                reason = "no longer matches its name"
            logger.debug(
                f"{document.remote_path} {reason} for {document.name!r}, "
                "discarding cached version tag"
            )

        for path in candidates:
            tag = await self.client.get_version_tag(path)
            if tag is not None:
                return path, tag, True
        return candidates[0], None, True

    async def sync_document(
        self,
        document: Document,
        collection: str = DOCUMENTS,
        snapshot_time: datetime | None = None,
    ) -> SyncOutcome:
        """Write one document and record the result locally.

        ``snapshot_time`` is when the document's content was read; it becomes
        ``last_synced`` so that edits made during the write are picked up by
        the next run.
        """
        snapshot_time = snapshot_time or self.clock()
        if self._retired:
            return self._outcome(document, SyncStatus.SKIPPED)

        # Syncing
        try:
            encoded = ContentCodec.encode(document.content)
            path, tag, tag_is_current = await self._locate(document)
            if tag is None:
                await self.client.ensure_container(path)
            new_tag = await self.conflict_resolver.upsert(
                path, encoded, tag, tag_is_current=tag_is_current
            )
        except NotConfiguredError:
            logger.debug("Remote store not configured, skipping sync")
            return self._outcome(document, SyncStatus.SKIPPED)
        except SyncError as e:
            logger.warning(f"Sync failed for {document.name!r}: {e}")
            return self._outcome(document, SyncStatus.FAILED, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error syncing {document.name!r}: {e}")
            return self._outcome(document, SyncStatus.FAILED, error=str(e))

        if self._retired:
            logger.info(
                f"Discarding result for {document.name!r}: engine was reconfigured"
            )
            return self._outcome(document, SyncStatus.SKIPPED, path=path)

        # Persisting
        try:
            await self._persist(collection, document.id, path, new_tag, snapshot_time)
        except Exception as e:
            logger.warning(f"Wrote {path} but failed to record sync state: {e}")
            return self._outcome(document, SyncStatus.FAILED, path=path, error=str(e))

        logger.info(f"Synced {document.name!r} to {path}")
        return self._outcome(
            document, SyncStatus.SUCCESS, path=path, new_version_tag=new_tag
        )

    async def _persist(
        self,
        collection: str,
        key: str,
        path: str,
        tag: str,
        synced_at: datetime,
    ) -> None:
        fields = {
            "last_synced": format_timestamp(synced_at),
            "remote_version_tag": tag,
            "remote_path": path,
            "force_sync": False,
        }
        if await self._update_fields(collection, key, fields) is None:
            logger.info(f"{collection}/{key} was removed during sync, not recording")

    async def _update_fields(
        self, collection: str, key: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        # Re-read so that only ``fields`` are written over concurrent edits
        record = await self.store.get(collection, key)
        if record is None:
            return None
        record.update(fields)
        await self.store.put(collection, record)
        return record

    async def force_sync(
        self, document_id: str, collection: str = DOCUMENTS
    ) -> Optional[SyncOutcome]:
        """Sync one document now, regardless of its timestamps.

        The force flag is stored first so that a failed attempt is retried
        by the next scheduled run.

        Returns:
            The outcome, or None if the document does not exist
        """
        if self._retired or not self.config.is_configured:
            return None

        snapshot_time = self.clock()
        record = await self.store.get(collection, document_id)
        if record is None:
            logger.warning(f"Cannot force sync {collection}/{document_id}: not found")
            return None

        document = self._load_document(collection, record)
        if document.kind != DocumentKind.AGGREGATE and not self.detector.is_eligible(
            document.name
        ):
            logger.info(f"{document.name!r} is a placeholder document, not syncing")
            return self._outcome(document, SyncStatus.SKIPPED)

        record = await self._update_fields(
            collection, document_id, {"force_sync": True}
        )
        if record is None:
            logger.warning(f"{collection}/{document_id} was removed before force sync")
            return None
        document = self._load_document(collection, record)
        return await self.sync_document(document, collection, snapshot_time)

    async def list_recent(self) -> list[RemoteObject]:
        """List remote documents in the current and previous month shards."""
        if not self.config.is_configured:
            return []

        objects: list[RemoteObject] = []
        for path in self.paths.candidate_paths("x", DocumentKind.TEXT, self.clock()):
            prefix = path.rsplit("/", 1)[0]
            try:
                objects.extend(await self.client.list_objects(prefix))
            except SyncError as e:
                logger.warning(f"Failed to list {prefix}: {e}")
        return objects

    async def fetch(self, path: str) -> Optional[str]:
        """Read and decode a remote document. None if it does not exist.

        Raises:
            RemoteError, CodecError: On any other failure
        """
        if not self.config.is_configured:
            return None
        try:
            remote = await self.client.get_object(path)
        except NotFoundError:
            return None
        return remote.content


def create_sync_engine(
    config: SyncConfig,
    store: LocalStore,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SyncStrategy:
    """Build a real engine when configured, otherwise a no-op one."""
    if not config.is_configured:
        logger.debug("Sync not configured (missing token or repo), using NoOpSync")
        return NoOpSync(config)

    try:
        client = RemoteStoreClient(config, transport=transport)
    except Exception as e:
        logger.warning(f"Failed to create remote store client: {e}, using NoOpSync")
        return NoOpSync(config)
    return SyncEngine(config, client, store)
