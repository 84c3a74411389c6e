"""
Exception hierarchy for taskmaster-sync.

All errors raised by the sync engine derive from TaskSyncError so callers can
catch the whole family at once. Each error carries a human readable message
and an optional underlying cause.

Hierarchy:
    TaskSyncError
    ├── ConfigError
    ├── AuthenticationError
    ├── RemoteError
    │   ├── TransientError
    │   └── RemoteApplicationError
    ├── StorageError
    │   └── DocumentParseError
    ├── InvalidTaskFormatError
    │   └── TagNotFoundError
    ├── DependencyCycleError
    ├── FieldSchemaError
    └── SyncDirectionNotSupportedError
"""

from __future__ import annotations


class TaskSyncError(Exception):
    """Base exception for all taskmaster-sync errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(self._format())

    def _format(self) -> str:
        if self.cause is not None:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


# =============================================================================
# Configuration
# =============================================================================


class ConfigError(TaskSyncError):
    """Missing or invalid configuration (empty organization, unknown mapping)."""


class AuthenticationError(TaskSyncError):
    """No usable credentials, or the remote service rejected them."""


# =============================================================================
# Remote store
# =============================================================================


class RemoteError(TaskSyncError):
    """Failure reported by, or while talking to, the remote project store."""

    def __init__(
        self,
        message: str,
        item_id: str | None = None,
        cause: BaseException | None = None,
    ):
        self.item_id = item_id
        super().__init__(message, cause=cause)


class TransientError(RemoteError):
    """
    Transport-level failure that may succeed on retry.

    Connection resets, timeouts and gateway errors land here.
    """


class RemoteApplicationError(RemoteError):
    """
    Error returned by the remote service itself.

    These are never retried: the same request would fail the same way.
    """

    def __init__(
        self,
        message: str,
        item_id: str | None = None,
        cause: BaseException | None = None,
        errors: list[dict] | None = None,
    ):
        self.errors = errors or []
        super().__init__(message, item_id=item_id, cause=cause)


# =============================================================================
# Local persistence
# =============================================================================


class StorageError(TaskSyncError):
    """I/O failure reading or writing a persisted document."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        cause: BaseException | None = None,
    ):
        self.path = path
        super().__init__(message, cause=cause)


class DocumentParseError(StorageError):
    """A persisted JSON document exists but cannot be parsed."""


# =============================================================================
# Task data
# =============================================================================


class InvalidTaskFormatError(TaskSyncError):
    """The task file, or a task inside it, has an unexpected shape."""


class TagNotFoundError(InvalidTaskFormatError):
    """The requested tag does not exist in the task file."""

    def __init__(self, tag: str, available: list[str] | None = None):
        self.tag = tag
        self.available = available or []
        message = f"Tag '{tag}' not found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class DependencyCycleError(TaskSyncError):
    """A cycle was found in the parent/child task hierarchy."""

    def __init__(self, path: list[str]):
        self.path = list(path)
        super().__init__(f"Cycle detected in task hierarchy: {' -> '.join(self.path)}")


class FieldSchemaError(TaskSyncError):
    """A field mapping pairs a value type with an incompatible transformer."""


class SyncDirectionNotSupportedError(TaskSyncError):
    """The requested sync direction is not implemented."""
