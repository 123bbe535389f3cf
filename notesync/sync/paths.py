"""Remote path derivation.

Documents are sharded by year and month so that no remote directory grows
without bound:

    2024/03/notes.md
    todos/2024/03/todo.md
    chats/2024/03/planning-the-offsite-<short id>.md
"""

import hashlib
import posixpath
import re
import unicodedata
from datetime import datetime, timezone

from notesync.sync.models import DocumentKind

TODO_ROOT = "todos"
CHAT_ROOT = "chats"
TODO_FILENAME = "todo.md"

DEFAULT_EXTENSION = ".md"
MAX_SLUG_LENGTH = 80

_UNSAFE_CHARS = re.compile(r"[\x00-\x1f\x7f/\\]+")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def sanitize_name(name: str) -> str:
    """Make a document name safe to use as a single path segment."""
    cleaned = _UNSAFE_CHARS.sub("-", name or "")
    cleaned = _WHITESPACE.sub(" ", cleaned).strip().lstrip(".").strip()
    return cleaned or "untitled"


def slugify(title: str) -> str:
    """Lowercase ASCII slug of a chat title (``Ünïcode Chat!`` -> ``unicode-chat``)."""
    ascii_title = (
        unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode()
    )
    slug = _NON_SLUG.sub("-", ascii_title.lower()).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "chat"


def short_id(document_id: str) -> str:
    """Stable eight character tag that keeps same-titled chats apart."""
    return hashlib.md5(str(document_id).encode()).hexdigest()[:8]


def previous_month(when: datetime) -> datetime:
    """First day of the month before ``when``."""
    if when.month == 1:
        return when.replace(year=when.year - 1, month=12, day=1)
    return when.replace(month=when.month - 1, day=1)


class PathResolver:
    """Derives deterministic remote paths. Pure: no I/O, no error cases."""

    def __init__(self, todo_root: str = TODO_ROOT, chat_root: str = CHAT_ROOT):
        self.todo_root = todo_root.strip("/")
        self.chat_root = chat_root.strip("/")

    def filename_for(
        self,
        name: str,
        kind: DocumentKind = DocumentKind.TEXT,
        document_id: str | None = None,
    ) -> str:
        if kind == DocumentKind.AGGREGATE:
            if self._is_todo(name):
                return TODO_FILENAME
            slug = slugify(self._chat_title(name))
            if document_id:
                slug = f"{slug}-{short_id(document_id)}"
            return slug + DEFAULT_EXTENSION

        filename = sanitize_name(name)
        if "." not in filename:
            filename += DEFAULT_EXTENSION
        return filename

    def resolve(
        self,
        name: str,
        kind: DocumentKind = DocumentKind.TEXT,
        when: datetime | None = None,
        document_id: str | None = None,
    ) -> str:
        """Remote path for a document at reference date ``when`` (default: now).

        Chat aggregates need ``document_id`` so that two sessions with the
        same title get different objects.
        """
        when = when or datetime.now(timezone.utc)
        shard = f"{when.year:04d}/{when.month:02d}"
        root = self._root_for(name, kind)
        filename = self.filename_for(name, kind, document_id)
        parts = [p for p in (root, shard, filename) if p]
        return "/".join(parts)

    def candidate_paths(
        self,
        name: str,
        kind: DocumentKind = DocumentKind.TEXT,
        when: datetime | None = None,
        document_id: str | None = None,
    ) -> list[str]:
        """Paths to check for an existing object: current month, then previous."""
        when = when or datetime.now(timezone.utc)
        return [
            self.resolve(name, kind, when, document_id),
            self.resolve(name, kind, previous_month(when), document_id),
        ]

    def matches(
        self,
        path: str | None,
        name: str,
        kind: DocumentKind = DocumentKind.TEXT,
        document_id: str | None = None,
    ) -> bool:
        """Whether a previously used path still belongs to ``name``.

        The month shard is ignored; a renamed document no longer matches.
        """
        if not path:
            return False
        directory, filename = posixpath.split(path)
        if filename != self.filename_for(name, kind, document_id):
            return False
        root = self._root_for(name, kind)
        segments = directory.split("/")
        if root:
            return len(segments) == 3 and segments[0] == root
        return len(segments) == 2

    def _root_for(self, name: str, kind: DocumentKind) -> str:
        if kind != DocumentKind.AGGREGATE:
            return ""
        return self.todo_root if self._is_todo(name) else self.chat_root

    @staticmethod
    def _is_todo(name: str) -> bool:
        return name.strip().lower() in ("todo", "todos", TODO_FILENAME)

    @staticmethod
    def _chat_title(name: str) -> str:
        # Aggregate chat documents are named "chat:<title>"
        return name.split(":", 1)[1] if name.startswith("chat:") else name
