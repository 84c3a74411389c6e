"""
Exit Codes - Process exit codes for the taskmaster-sync CLI.

Per-task failures during a sync do not change the exit code; they are
reported in the summary instead. Only failures that stop a run map to a
non-zero code.
"""

from enum import IntEnum

from taskmaster_sync.core.exceptions import (
    AuthenticationError,
    ConfigError,
    DependencyCycleError,
    InvalidTaskFormatError,
    RemoteError,
    StorageError,
    SyncDirectionNotSupportedError,
)


class ExitCode(IntEnum):
    """
    Exit codes returned by ``main()``.

    Attributes:
        SUCCESS: Run finished (possibly with per-task errors).
        ERROR: Unexpected failure.
        CONFIG_ERROR: Missing or invalid configuration.
        FILE_NOT_FOUND: Task file or config file missing.
        CONNECTION_ERROR: GitHub unreachable or returned an error.
        AUTH_ERROR: No token, or GitHub rejected it.
        VALIDATION_ERROR: Task data is malformed or cyclic.
        INTERRUPTED: Ctrl+C.
    """

    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    FILE_NOT_FOUND = 3
    CONNECTION_ERROR = 4
    AUTH_ERROR = 5
    VALIDATION_ERROR = 6
    INTERRUPTED = 130

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ExitCode":
        """Pick the exit code for an exception that ended a run."""
        if isinstance(exc, KeyboardInterrupt):
            return cls.INTERRUPTED
        if isinstance(exc, AuthenticationError):
            return cls.AUTH_ERROR
        if isinstance(exc, (ConfigError, SyncDirectionNotSupportedError)):
            return cls.CONFIG_ERROR
        if isinstance(exc, FileNotFoundError):
            return cls.FILE_NOT_FOUND
        if isinstance(exc, StorageError) and isinstance(exc.cause, FileNotFoundError):
            return cls.FILE_NOT_FOUND
        if isinstance(exc, (InvalidTaskFormatError, DependencyCycleError)):
            return cls.VALIDATION_ERROR
        if isinstance(exc, RemoteError):
            return cls.CONNECTION_ERROR
        return cls.ERROR
