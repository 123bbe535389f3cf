"""Optimistic-concurrency upsert with a single retry.

A conflict means the remote object changed since its tag was read. The retry
re-reads the tag and writes again, so the local content wins at the object
level. Content is never merged.
"""

import logging

from notesync.sync.exceptions import ConflictError

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Perform one logical upsert with at most one silent retry."""

    def __init__(self, client):
        """Initialize resolver.

        Args:
            client: RemoteStoreClient (or anything with get_version_tag/put_object)
        """
        self.client = client

    async def upsert(
        self,
        path: str,
        encoded_content: str,
        cached_tag: str | None = None,
        *,
        tag_is_current: bool = False,
    ) -> str:
        """Write ``encoded_content`` to ``path``.

        Args:
            path: Remote object path
            encoded_content: Content already encoded by ContentCodec
            cached_tag: Last known version tag for the object
            tag_is_current: The caller has just read the tag (None means
                the object is known to be absent), so skip the initial read

        Returns:
            The new version tag

        Raises:
            ConflictError: Still conflicting after the retry
            RemoteError, NotConfiguredError: Propagated from the client
        """
        expected = cached_tag
        if expected is None and not tag_is_current:
            expected = await self.client.get_version_tag(path)

        try:
            return await self.client.put_object(path, encoded_content, expected)
        except ConflictError as e:
            logger.info(f"Conflict writing {path}, retrying with fresh tag: {e}")

        current = await self.client.get_version_tag(path)
        return await self.client.put_object(path, encoded_content, current)
