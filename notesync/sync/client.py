"""Async HTTP client for the GitHub repository contents API."""

import logging
import posixpath
from typing import Any, Optional
from urllib.parse import quote

import httpx

from notesync.sync.codec import ContentCodec
from notesync.sync.exceptions import (
    ConflictError,
    NotConfiguredError,
    NotFoundError,
    RemoteError,
)
from notesync.sync.models import RemoteObject
from notesync.sync.sync_config import SyncConfig

logger = logging.getLogger(__name__)

CONTAINER_MARKER = ".gitkeep"


class RemoteStoreClient:
    """Client for the subset of the contents API the sync engine uses.

    Every method maps to one REST call (``ensure_container`` to at most two).
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            config: Sync configuration (token, repo, branch, api_url, timeout)
            transport: Optional httpx transport, used by tests
        """
        self.config = config
        self._ensured_dirs: set[str] = set()

        headers = {"Accept": "application/vnd.github.v3+json"}
        if config.token:
            headers["Authorization"] = f"token {config.token}"

        self.client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.config.repo}/contents/{quote(path.strip('/'), safe='/')}"

    def _require_config(self) -> None:
        if not self.is_configured:
            raise NotConfiguredError("Remote store token or repository not configured")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, self._contents_url(path), **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(0, f"{method} {path} failed: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason_phrase or response.text
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return response.reason_phrase

    async def _get_contents(self, path: str) -> Any:
        self._require_config()
        response = await self._request(
            "GET", path, params={"ref": self.config.branch}
        )
        if response.status_code == 404:
            raise NotFoundError(f"Remote object not found: {path}")
        if not response.is_success:
            raise RemoteError(response.status_code, self._error_message(response))
        return response.json()

    async def get_version_tag(self, path: str) -> str | None:
        """Get the current version tag (sha) of an object.

        Returns:
            The tag, or None if the object does not exist

        Raises:
            NotConfiguredError: No credentials
            RemoteError: Any other non-success status
        """
        try:
            data = await self._get_contents(path)
        except NotFoundError:
            return None
        if not isinstance(data, dict):
            # A directory listing lives at this path
            raise RemoteError(409, f"{path} is a directory")
        return data.get("sha")

    async def get_object(self, path: str) -> RemoteObject:
        """Read an object and decode its content.

        Raises:
            NotFoundError: Object does not exist
            CodecError: Content is not valid base64 UTF-8
        """
        data = await self._get_contents(path)
        if not isinstance(data, dict):
            raise RemoteError(409, f"{path} is a directory")
        return RemoteObject(
            name=data.get("name", posixpath.basename(path)),
            path=data.get("path", path),
            version_tag=data.get("sha", ""),
            size=data.get("size", 0),
            content=ContentCodec.decode(data.get("content", "")),
        )

    async def put_object(
        self,
        path: str,
        encoded_content: str,
        expected_version_tag: str | None = None,
        message: str | None = None,
    ) -> str:
        """Create or update an object.

        Args:
            path: Object path
            encoded_content: Content already encoded by ContentCodec
            expected_version_tag: Current tag for updates, None to create
            message: Commit message (defaults to "<commit_prefix> <path>")

        Returns:
            The new version tag

        Raises:
            NotConfiguredError: No credentials
            ConflictError: The remote tag no longer matches
            RemoteError: Any other non-success status
        """
        self._require_config()
        body = {
            "message": message or f"{self.config.commit_prefix} {path}",
            "content": encoded_content,
            "branch": self.config.branch,
        }
        if expected_version_tag:
            body["sha"] = expected_version_tag

        response = await self._request("PUT", path, json=body)

        if response.status_code in (200, 201):
            return response.json()["content"]["sha"]

        error_message = self._error_message(response)
        if response.status_code == 409:
            raise ConflictError(f"Version conflict on {path}: {error_message}", path)
        if response.status_code == 422 and "sha" in error_message:
            # Created concurrently: the object exists but no sha was sent
            raise ConflictError(f"Version conflict on {path}: {error_message}", path)
        raise RemoteError(response.status_code, error_message)

    async def list_objects(self, prefix: str) -> list[RemoteObject]:
        """List files directly under a directory prefix. Missing prefix -> []."""
        try:
            data = await self._get_contents(prefix)
        except NotFoundError:
            return []
        if not isinstance(data, list):
            return []
        return [
            RemoteObject(
                name=item["name"],
                path=item["path"],
                version_tag=item.get("sha", ""),
                size=item.get("size", 0),
            )
            for item in data
            if item.get("type") == "file"
        ]

    async def ensure_container(self, path: str) -> None:
        """Best-effort creation of the directory that will hold ``path``.

        Git has no empty directories, so a marker file is written. Failures
        are logged; a missing directory surfaces later as a failed write.
        """
        directory = posixpath.dirname(path.strip("/"))
        if not directory or directory in self._ensured_dirs:
            return

        marker = f"{directory}/{CONTAINER_MARKER}"
        try:
            if await self.get_version_tag(marker) is None:
                await self.put_object(
                    marker,
                    ContentCodec.encode(""),
                    message=f"Create {directory} directory",
                )
                logger.debug(f"Created remote directory {directory}")
            self._ensured_dirs.add(directory)
        except Exception as e:
            logger.warning(f"Failed to create remote directory {directory}: {e}")

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
