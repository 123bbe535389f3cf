"""Decide whether a document needs a sync attempt."""

import logging
from typing import Iterable

from notesync.sync.models import Document, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_PREFIXES = ("untitled", "Note", "Code")
DEFAULT_EXCLUDED_NAMES = ("Todo",)


class ChangeDetector:
    """Conservative staleness check: every ambiguous case answers "sync"."""

    def __init__(
        self,
        placeholder_prefixes: Iterable[str] = DEFAULT_PLACEHOLDER_PREFIXES,
        excluded_names: Iterable[str] = DEFAULT_EXCLUDED_NAMES,
    ):
        self.placeholder_prefixes = tuple(placeholder_prefixes)
        self.excluded_names = frozenset(excluded_names)

    def is_eligible(self, name: str) -> bool:
        """Name-based rules: placeholders and aggregate categories never sync here."""
        if not name or not name.strip():
            return False
        if name.startswith(self.placeholder_prefixes):
            return False
        return name not in self.excluded_names

    def needs_sync(self, document: Document) -> bool:
        """Timestamp and force-flag rules, shared with aggregate documents."""
        if document.force_sync:
            return True
        if document.last_synced in (None, ""):
            return True
        if document.last_modified in (None, ""):
            return False

        try:
            modified = parse_timestamp(document.last_modified)
            synced = parse_timestamp(document.last_synced)
            return modified > synced
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Cannot compare timestamps for {document.name!r} "
                f"({document.last_modified!r} vs {document.last_synced!r}): {e}"
            )
            return True

    def should_sync(self, document: Document) -> bool:
        return self.is_eligible(document.name) and self.needs_sync(document)
