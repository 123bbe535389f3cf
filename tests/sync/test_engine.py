"""Tests for SyncEngine."""

import base64
from unittest.mock import AsyncMock, call

import pytest

from notesync.sync.engine import SyncEngine
from notesync.sync.exceptions import ConflictError, NotFoundError, RemoteError
from notesync.sync.local_store import CHATS, DOCUMENTS, TODO_KEY, TODOS
from notesync.sync.models import RemoteObject, SyncStatus
from notesync.sync.paths import short_id
from notesync.sync.sync_config import SyncConfig

SYNCED_AT = "2024-03-02T12:00:00+00:00"


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


async def add_doc(store, doc_id="doc-1", name="notes.md", content="hello", **extra):
    record = {
        "id": doc_id,
        "name": name,
        "kind": "text",
        "content": content,
        "last_modified": "2024-03-02T10:00:00+00:00",
        **extra,
    }
    await store.put(DOCUMENTS, record)
    return record


class TestRun:
    """Tests for SyncEngine.run."""

    @pytest.mark.asyncio
    async def test_new_document_is_created(self, engine, store, mock_client):
        await add_doc(store)

        outcomes = await engine.run()

        assert len(outcomes) == 1
        assert outcomes[0].status == SyncStatus.SUCCESS
        assert outcomes[0].path == "2024/03/notes.md"
        assert outcomes[0].new_version_tag == "sha-new"
        mock_client.ensure_container.assert_awaited_once_with("2024/03/notes.md")
        mock_client.put_object.assert_awaited_once_with(
            "2024/03/notes.md", b64("hello"), None
        )

        record = await store.get(DOCUMENTS, "doc-1")
        assert record["last_synced"] == SYNCED_AT
        assert record["remote_version_tag"] == "sha-new"
        assert record["remote_path"] == "2024/03/notes.md"
        assert record["force_sync"] is False
        assert record["content"] == "hello"

    @pytest.mark.asyncio
    async def test_looks_up_current_then_previous_month(self, engine, store, mock_client):
        await add_doc(store)

        await engine.run()

        assert mock_client.get_version_tag.await_args_list == [
            call("2024/03/notes.md"),
            call("2024/02/notes.md"),
        ]

    @pytest.mark.asyncio
    async def test_second_run_skips_unchanged(self, engine, store, mock_client):
        await add_doc(store)
        await engine.run()
        mock_client.put_object.reset_mock()

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.SKIPPED
        mock_client.put_object.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_previous_month_object_is_updated_in_place(
        self, engine, store, mock_client
    ):
        mock_client.get_version_tag.side_effect = lambda path: (
            "sha-feb" if path == "2024/02/notes.md" else None
        )
        await add_doc(store)

        outcomes = await engine.run()

        assert outcomes[0].path == "2024/02/notes.md"
        mock_client.ensure_container.assert_not_awaited()
        mock_client.put_object.assert_awaited_once_with(
            "2024/02/notes.md", b64("hello"), "sha-feb"
        )

    @pytest.mark.asyncio
    async def test_cached_path_and_tag_are_reused(self, engine, store, mock_client):
        await add_doc(
            store,
            last_synced="2024-02-10T00:00:00+00:00",
            remote_path="2024/02/notes.md",
            remote_version_tag="sha-feb",
        )

        outcomes = await engine.run()

        assert outcomes[0].path == "2024/02/notes.md"
        mock_client.get_version_tag.assert_not_awaited()
        mock_client.put_object.assert_awaited_once_with(
            "2024/02/notes.md", b64("hello"), "sha-feb"
        )

    @pytest.mark.asyncio
    async def test_cached_path_from_older_month_is_not_reused(
        self, engine, store, mock_client
    ):
        """Only the current and previous month shards are written to."""
        await add_doc(
            store,
            last_synced="2023-06-10T00:00:00+00:00",
            remote_path="2023/06/notes.md",
            remote_version_tag="sha-june",
        )

        outcomes = await engine.run()

        assert outcomes[0].path == "2024/03/notes.md"
        assert mock_client.get_version_tag.await_args_list == [
            call("2024/03/notes.md"),
            call("2024/02/notes.md"),
        ]
        mock_client.put_object.assert_awaited_once_with(
            "2024/03/notes.md", b64("hello"), None
        )
        record = await store.get(DOCUMENTS, "doc-1")
        assert record["remote_path"] == "2024/03/notes.md"

    @pytest.mark.asyncio
    async def test_renamed_document_gets_new_path(self, engine, store, mock_client):
        await add_doc(
            store,
            name="renamed.md",
            last_synced="2024-03-01T00:00:00+00:00",
            remote_path="2024/03/notes.md",
            remote_version_tag="sha-old",
        )

        outcomes = await engine.run()

        assert outcomes[0].path == "2024/03/renamed.md"
        mock_client.put_object.assert_awaited_once_with(
            "2024/03/renamed.md", b64("hello"), None
        )
        record = await store.get(DOCUMENTS, "doc-1")
        assert record["remote_path"] == "2024/03/renamed.md"

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, engine, store, mock_client):
        async def put_object(path, content, tag):
            if path.endswith("bad.md"):
                raise RemoteError(500, "boom")
            return "sha-" + path.rsplit("/", 1)[-1]

        mock_client.put_object.side_effect = put_object
        await add_doc(store, "d1", "a.md")
        await add_doc(store, "d2", "bad.md")
        await add_doc(store, "d3", "c.md")

        outcomes = await engine.run()

        statuses = {o.document_id: o.status for o in outcomes}
        assert statuses == {
            "d1": SyncStatus.SUCCESS,
            "d2": SyncStatus.FAILED,
            "d3": SyncStatus.SUCCESS,
        }
        failed = await store.get(DOCUMENTS, "d2")
        assert failed.get("last_synced") is None
        assert (await store.get(DOCUMENTS, "d3"))["remote_version_tag"] == "sha-c.md"

    @pytest.mark.asyncio
    async def test_malformed_record_fails_that_record(self, engine, store):
        await store.put(CHATS, {"id": "c1", "title": "Bad", "messages": "oops"})
        await add_doc(store)

        outcomes = await engine.run()

        statuses = {o.document_id: o.status for o in outcomes}
        assert statuses == {"doc-1": SyncStatus.SUCCESS, "c1": SyncStatus.FAILED}

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_that_document(self, engine, store, mock_client):
        mock_client.put_object.side_effect = RuntimeError("kaboom")
        await add_doc(store)

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.FAILED
        assert "kaboom" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_persistent_conflict_fails_document(self, engine, store, mock_client):
        mock_client.put_object.side_effect = ConflictError("conflict")
        await add_doc(store)

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.FAILED
        assert mock_client.put_object.await_count == 2

    @pytest.mark.asyncio
    async def test_placeholder_documents_skipped(self, engine, store, mock_client):
        await add_doc(store, "d1", "untitled.md")
        await add_doc(store, "d2", "Note 4")

        outcomes = await engine.run()

        assert all(o.status == SyncStatus.SKIPPED for o in outcomes)
        mock_client.put_object.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_edit_during_write_is_kept_and_resynced(
        self, engine, store, mock_client
    ):
        """Only sync fields are written back; a concurrent edit survives."""
        await add_doc(store)

        async def put_object(path, content, tag):
            record = await store.get(DOCUMENTS, "doc-1")
            record["content"] = "edited while writing"
            record["last_modified"] = "2024-03-02T12:00:01+00:00"
            await store.put(DOCUMENTS, record)
            return "sha-new"

        mock_client.put_object.side_effect = put_object

        await engine.run()

        record = await store.get(DOCUMENTS, "doc-1")
        assert record["content"] == "edited while writing"
        assert record["last_synced"] == SYNCED_AT
        assert engine.detector.should_sync(engine._load_document(DOCUMENTS, record))

    @pytest.mark.asyncio
    async def test_document_deleted_during_write(self, engine, store, mock_client):
        await add_doc(store)

        async def put_object(path, content, tag):
            await store.delete(DOCUMENTS, "doc-1")
            return "sha-new"

        mock_client.put_object.side_effect = put_object

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.SUCCESS
        assert await store.get(DOCUMENTS, "doc-1") is None

    @pytest.mark.asyncio
    async def test_persist_failure_reported(self, engine, store, mock_client):
        await add_doc(store)
        store.put = AsyncMock(side_effect=OSError("disk full"))

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.FAILED
        assert outcomes[0].path == "2024/03/notes.md"
        assert "disk full" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_enumeration_failure_returns_empty(self, engine, store):
        store.get_all = AsyncMock(side_effect=OSError("unreadable"))

        assert await engine.run() == []


class TestAggregates:
    """Todo and chat collections are synced as rendered Markdown."""

    @pytest.mark.asyncio
    async def test_todo_collection(self, engine, store, mock_client):
        await store.put(
            TODOS,
            {
                "id": TODO_KEY,
                "data": {"inbox": [{"text": "buy milk"}]},
                "last_modified": "2024-03-02T10:00:00+00:00",
            },
        )

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.SUCCESS
        assert outcomes[0].path == "todos/2024/03/todo.md"
        path, encoded, _ = mock_client.put_object.await_args.args
        assert path == "todos/2024/03/todo.md"
        assert "- [ ] buy milk" in base64.b64decode(encoded).decode("utf-8")

        record = await store.get(TODOS, TODO_KEY)
        assert record["last_synced"] == SYNCED_AT
        assert record["data"] == {"inbox": [{"text": "buy milk"}]}

    @pytest.mark.asyncio
    async def test_chat_session(self, engine, store, mock_client):
        await store.put(
            CHATS,
            {
                "id": "chat-1",
                "title": "Trip Plans",
                "updated_at": "2024-03-02T10:00:00+00:00",
                "messages": [
                    {"role": "user", "content": "Where to?"},
                    {"role": "assistant", "content": [{"type": "text", "text": "Lisbon"}]},
                ],
            },
        )

        outcomes = await engine.run()

        assert outcomes[0].path == f"chats/2024/03/trip-plans-{short_id('chat-1')}.md"
        _, encoded, _ = mock_client.put_object.await_args.args
        text = base64.b64decode(encoded).decode("utf-8")
        assert "## User\n\nWhere to?" in text
        assert "## Assistant\n\nLisbon" in text
        assert (await store.get(CHATS, "chat-1"))["remote_version_tag"] == "sha-new"

    @pytest.mark.asyncio
    async def test_same_title_chats_get_separate_objects(
        self, engine, store, mock_client
    ):
        for chat_id in ("c1", "c2"):
            await store.put(
                CHATS,
                {
                    "id": chat_id,
                    "title": "New Chat",
                    "updated_at": "2024-03-02T10:00:00+00:00",
                    "messages": [{"role": "user", "content": f"from {chat_id}"}],
                },
            )

        outcomes = await engine.run()

        paths = [o.path for o in outcomes]
        assert all(o.status == SyncStatus.SUCCESS for o in outcomes)
        assert len(set(paths)) == 2
        assert all(p.startswith("chats/2024/03/new-chat-") for p in paths)
        written = [c.args[0] for c in mock_client.put_object.await_args_list]
        assert written == paths

    @pytest.mark.asyncio
    async def test_todo_document_named_todo_is_not_synced(self, engine, store, mock_client):
        """A regular document named "Todo" is excluded; the collection is not."""
        await add_doc(store, "d1", "Todo")

        outcomes = await engine.run()

        assert outcomes[0].status == SyncStatus.SKIPPED


class TestForceSync:
    @pytest.mark.asyncio
    async def test_syncs_unchanged_document(self, engine, store, mock_client):
        await add_doc(
            store,
            last_synced="2024-03-02T11:00:00+00:00",
            remote_path="2024/03/notes.md",
            remote_version_tag="sha-1",
        )

        outcome = await engine.force_sync("doc-1")

        assert outcome.status == SyncStatus.SUCCESS
        mock_client.put_object.assert_awaited_once()
        assert (await store.get(DOCUMENTS, "doc-1"))["force_sync"] is False

    @pytest.mark.asyncio
    async def test_flag_survives_failure(self, engine, store, mock_client):
        mock_client.put_object.side_effect = RemoteError(502, "bad gateway")
        await add_doc(store, last_synced="2024-03-02T11:00:00+00:00")

        outcome = await engine.force_sync("doc-1")

        assert outcome.status == SyncStatus.FAILED
        assert (await store.get(DOCUMENTS, "doc-1"))["force_sync"] is True

        mock_client.put_object.side_effect = None
        outcomes = await engine.run()
        assert outcomes[0].status == SyncStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_missing_document(self, engine):
        assert await engine.force_sync("nope") is None

    @pytest.mark.asyncio
    async def test_placeholder_skipped(self, engine, store, mock_client):
        await add_doc(store, name="untitled.md")

        outcome = await engine.force_sync("doc-1")

        assert outcome.status == SyncStatus.SKIPPED
        mock_client.put_object.assert_not_awaited()
        assert not (await store.get(DOCUMENTS, "doc-1")).get("force_sync")

    @pytest.mark.asyncio
    async def test_edit_before_flag_is_stored_is_kept(self, engine, store, mock_client):
        """Setting the force flag writes only that field over a fresh read."""
        await add_doc(
            store,
            last_synced="2024-03-02T11:00:00+00:00",
            remote_path="2024/03/notes.md",
            remote_version_tag="sha-1",
        )
        read_record = store.get
        reads = []

        async def get(collection, key):
            record = await read_record(collection, key)
            if not reads:
                reads.append(key)
                await store.put(collection, dict(record, content="edited"))
            return record

        store.get = get

        outcome = await engine.force_sync("doc-1")

        assert outcome.status == SyncStatus.SUCCESS
        mock_client.put_object.assert_awaited_once_with(
            "2024/03/notes.md", b64("edited"), "sha-1"
        )
        record = await read_record(DOCUMENTS, "doc-1")
        assert record["content"] == "edited"
        assert record["force_sync"] is False

    @pytest.mark.asyncio
    async def test_todo_collection(self, engine, store):
        await store.put(
            TODOS,
            {
                "id": TODO_KEY,
                "data": {"inbox": [{"text": "a"}]},
                "last_synced": "2024-03-02T11:00:00+00:00",
            },
        )

        outcome = await engine.force_sync(TODO_KEY, TODOS)

        assert outcome.status == SyncStatus.SUCCESS


class TestRetire:
    """A retired engine never records results."""

    @pytest.mark.asyncio
    async def test_retired_engine_does_nothing(self, engine, store, mock_client):
        await add_doc(store)
        engine.retire()

        assert await engine.run() == []
        assert await engine.force_sync("doc-1") is None
        mock_client.put_object.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_result_of_in_flight_write_is_discarded(
        self, engine, store, mock_client
    ):
        await add_doc(store, "d1", "a.md")
        await add_doc(store, "d2", "b.md")

        async def put_object(path, content, tag):
            engine.retire()
            return "sha-new"

        mock_client.put_object.side_effect = put_object

        outcomes = await engine.run()

        assert len(outcomes) == 1
        assert outcomes[0].status == SyncStatus.SKIPPED
        assert (await store.get(DOCUMENTS, "d1")).get("last_synced") is None
        assert mock_client.put_object.await_count == 1

    @pytest.mark.asyncio
    async def test_close_retires_and_closes_client(self, engine, mock_client):
        await engine.close()

        assert engine.retired
        mock_client.close.assert_awaited_once()


class TestNotConfigured:
    @pytest.mark.asyncio
    async def test_unconfigured_engine_is_inert(self, mock_client, store):
        engine = SyncEngine(SyncConfig(), mock_client, store)
        await add_doc(store)

        assert await engine.run() == []
        assert await engine.force_sync("doc-1") is None
        assert await engine.list_recent() == []
        assert await engine.fetch("2024/03/notes.md") is None
        mock_client.put_object.assert_not_awaited()


class TestRemoteReads:
    @pytest.mark.asyncio
    async def test_list_recent(self, engine, mock_client):
        march = RemoteObject("a.md", "2024/03/a.md", "1")
        feb = RemoteObject("b.md", "2024/02/b.md", "2")
        mock_client.list_objects.side_effect = [[march], [feb]]

        objects = await engine.list_recent()

        assert objects == [march, feb]
        assert mock_client.list_objects.await_args_list == [
            call("2024/03"),
            call("2024/02"),
        ]

    @pytest.mark.asyncio
    async def test_list_recent_tolerates_errors(self, engine, mock_client):
        feb = RemoteObject("b.md", "2024/02/b.md", "2")
        mock_client.list_objects.side_effect = [RemoteError(500, "boom"), [feb]]

        assert await engine.list_recent() == [feb]

    @pytest.mark.asyncio
    async def test_fetch(self, engine, mock_client):
        mock_client.get_object.return_value = RemoteObject(
            "a.md", "2024/03/a.md", "1", content="remote text"
        )

        assert await engine.fetch("2024/03/a.md") == "remote text"

    @pytest.mark.asyncio
    async def test_fetch_missing(self, engine, mock_client):
        mock_client.get_object.side_effect = NotFoundError("missing")

        assert await engine.fetch("2024/03/a.md") is None
