"""
Exceptions for the sync engine.
"""


class SyncError(Exception):
    """Base exception for sync operations."""


class NotConfiguredError(SyncError):
    """Raised when the remote store has no credentials or repository."""


class NotFoundError(SyncError):
    """Raised when a remote object does not exist."""


class ConflictError(SyncError):
    """Raised when the remote version tag no longer matches the expected one."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class RemoteError(SyncError):
    """Raised for any other non-success response from the remote store."""

    def __init__(self, status: int, message: str):
        super().__init__(f"Remote store error {status}: {message}")
        self.status = status
        self.message = message


class CodecError(SyncError):
    """Raised when content cannot be encoded or decoded for transport."""
