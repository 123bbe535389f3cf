"""Flatten structured collections into Markdown documents.

Both renderers are pure functions of the snapshot they are given.
"""

import re
from typing import Any

from notesync.sync.local_store import TODO_KEY
from notesync.sync.models import (
    BlockContent,
    ChatSession,
    Document,
    DocumentKind,
    MessageContent,
    TextContent,
    TodoCollection,
    TodoTask,
)

TODO_DOCUMENT_NAME = "Todo"

_FENCE = re.compile(r"^\s*(```|~~~)")


def render_task(task: TodoTask) -> str:
    status = "[x]" if task.completed else "[ ]"
    line = f"- {status} {task.text}"
    if task.due_date:
        line += f" (Due: {task.due_date})"
    if task.notes:
        line += f"\n  Notes: {task.notes}"
    return line


def render_todos(collection: TodoCollection) -> str:
    """Render a todo collection as Markdown, one section per non-empty list."""
    sections = [("Inbox", collection.inbox)]
    sections.extend(collection.projects.items())
    sections.append(("Archive", collection.archive))

    lines = ["# Todo List", ""]
    if collection.updated_at:
        lines.extend([f"Last updated: {collection.updated_at}", ""])

    for title, tasks in sections:
        if not tasks:
            continue
        lines.extend([f"## {title}", ""])
        lines.extend(render_task(task) for task in tasks)
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def normalize_text(text: str) -> str:
    """Collapse blank-line runs outside fenced code blocks.

    Lines inside a fence are kept verbatim, including blank ones.
    """
    out: list[str] = []
    in_fence = False
    for line in text.replace("\r\n", "\n").split("\n"):
        if _FENCE.match(line):
            in_fence = not in_fence
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        line = line.rstrip()
        if not line and (not out or not out[-1]):
            continue
        out.append(line)

    while out and not out[-1]:
        out.pop()
    return "\n".join(out)


def render_content(content: MessageContent) -> str:
    if isinstance(content, TextContent):
        return normalize_text(content.text)
    if isinstance(content, BlockContent):
        parts = []
        for block in content.blocks:
            text = normalize_text(block.text)
            if not text and block.type != "text":
                text = f"[{block.type}]"
            if text:
                parts.append(text)
        return "\n\n".join(parts)
    raise TypeError(f"Unknown message content: {content!r}")


def render_chat(session: ChatSession) -> str:
    """Render a chat session as Markdown, one heading block per message."""
    lines = [f"# {session.title}", ""]
    if session.created_at:
        lines.extend([f"Created: {session.created_at}", ""])

    for message in session.messages:
        lines.extend([f"## {message.role.capitalize()}", ""])
        body = render_content(message.content)
        if body:
            lines.extend([body, ""])

    return "\n".join(lines).rstrip("\n") + "\n"


def _sync_fields(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "last_synced": record.get("last_synced"),
        "remote_version_tag": record.get("remote_version_tag"),
        "remote_path": record.get("remote_path"),
        "force_sync": bool(record.get("force_sync", False)),
    }


def todo_document(record: dict[str, Any]) -> Document:
    """Wrap a stored todo snapshot into a synthetic aggregate document."""
    data = record.get("data") or {}
    collection = TodoCollection.from_dict(data)
    return Document(
        id=record.get("id", TODO_KEY),
        name=TODO_DOCUMENT_NAME,
        kind=DocumentKind.AGGREGATE,
        content=render_todos(collection),
        last_modified=record.get("last_modified") or collection.updated_at,
        **_sync_fields(record),
    )


def chat_document(record: dict[str, Any]) -> Document:
    """Wrap a stored chat session into a synthetic aggregate document."""
    session = ChatSession.from_dict(record)
    return Document(
        id=session.id,
        name=f"chat:{session.title}",
        kind=DocumentKind.AGGREGATE,
        content=render_chat(session),
        last_modified=record.get("last_modified") or session.updated_at,
        **_sync_fields(record),
    )
