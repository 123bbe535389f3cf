"""Data model for the sync engine.

Documents and aggregate snapshots are stored as plain dicts in the local
store; the dataclasses here convert to and from that representation.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp.

    Accepts datetimes, ISO 8601 strings (including a trailing ``Z``) and
    epoch milliseconds. Returns None for empty values.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    raise ValueError(f"Not a timestamp: {value!r}")


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class DocumentKind(str, Enum):
    TEXT = "text"
    DRAWING = "drawing"
    AGGREGATE = "aggregate"

    @classmethod
    def from_value(cls, value: Any) -> "DocumentKind":
        """Map stored kind strings (including editor tab types) to a kind."""
        if isinstance(value, cls):
            return value
        if value in ("tldraw", "excalidraw", "drawing"):
            return cls.DRAWING
        if value == "aggregate":
            return cls.AGGREGATE
        return cls.TEXT


@dataclass
class Document:
    """A locally-owned unit of content.

    Timestamps are kept as they came from the store (usually ISO strings) so
    that a malformed value reaches the change detector instead of failing on
    load.
    """

    id: str
    name: str
    kind: DocumentKind = DocumentKind.TEXT
    content: str = ""
    last_modified: Any = None
    last_synced: Any = None
    remote_version_tag: str | None = None
    remote_path: str | None = None
    force_sync: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            kind=DocumentKind.from_value(data.get("kind", data.get("type"))),
            content=data.get("content") or "",
            last_modified=data.get("last_modified"),
            last_synced=data.get("last_synced"),
            remote_version_tag=data.get("remote_version_tag"),
            remote_path=data.get("remote_path"),
            force_sync=bool(data.get("force_sync", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        def _ts(value):
            return format_timestamp(value) if isinstance(value, datetime) else value

        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "content": self.content,
            "last_modified": _ts(self.last_modified),
            "last_synced": _ts(self.last_synced),
            "remote_version_tag": self.remote_version_tag,
            "remote_path": self.remote_path,
            "force_sync": self.force_sync,
        }


class SyncStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncOutcome:
    """Result of one sync attempt. Logged and returned, never persisted."""

    document_id: str
    status: SyncStatus
    path: str | None = None
    new_version_tag: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.SUCCESS


@dataclass
class RemoteObject:
    """An object in the remote store as reported by a listing or a read."""

    name: str
    path: str
    version_tag: str
    size: int = 0
    content: str | None = None

    @property
    def month(self) -> str | None:
        """Month shard segment of the path (``"03"`` for ``2024/03/x.md``)."""
        parts = self.path.split("/")
        return parts[-2] if len(parts) >= 2 else None


# Todo collection


@dataclass
class TodoTask:
    text: str
    completed: bool = False
    due_date: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TodoTask":
        return cls(
            text=str(data.get("text", "")),
            completed=bool(data.get("completed", False)),
            due_date=data.get("due_date", data.get("dueDate")) or None,
            notes=data.get("notes") or None,
        )


@dataclass
class TodoCollection:
    inbox: list[TodoTask] = field(default_factory=list)
    projects: dict[str, list[TodoTask]] = field(default_factory=dict)
    archive: list[TodoTask] = field(default_factory=list)
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TodoCollection":
        projects = data.get("projects") or {}
        return cls(
            inbox=[TodoTask.from_dict(t) for t in data.get("inbox") or []],
            projects={
                name: [TodoTask.from_dict(t) for t in tasks or []]
                for name, tasks in projects.items()
            },
            archive=[TodoTask.from_dict(t) for t in data.get("archive") or []],
            updated_at=data.get("updated_at"),
        )


# Chat transcripts


@dataclass(frozen=True)
class ContentBlock:
    type: str
    text: str


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class BlockContent:
    blocks: tuple[ContentBlock, ...]


MessageContent = TextContent | BlockContent


def _flatten(value: Any) -> str:
    """Flatten a nested content object into text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n\n".join(t for t in (_flatten(v) for v in value) if t)
    if isinstance(value, dict):
        if isinstance(value.get("text"), str):
            return value["text"]
        if "content" in value:
            return _flatten(value["content"])
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def parse_message_content(raw: Any) -> MessageContent:
    """Resolve a raw message content value into a MessageContent variant.

    Vendors deliver plain strings, lists of typed blocks, or nested objects;
    this is the only place those shapes are inspected.
    """
    if isinstance(raw, (TextContent, BlockContent)):
        return raw
    if isinstance(raw, str):
        return TextContent(raw)
    if isinstance(raw, list):
        blocks = []
        for item in raw:
            if isinstance(item, dict):
                block_type = str(item.get("type", "text"))
            else:
                block_type = "text"
            blocks.append(ContentBlock(type=block_type, text=_flatten(item)))
        return BlockContent(tuple(blocks))
    return TextContent(_flatten(raw))


@dataclass
class ChatMessage:
    role: str
    content: MessageContent

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            role=str(data.get("role") or "user"),
            content=parse_message_content(data.get("content")),
        )


@dataclass
class ChatSession:
    id: str
    title: str
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatSession":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "Chat",
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
