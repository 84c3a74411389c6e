"""
Tests for exit code selection.
"""

import pytest

from taskmaster_sync.cli.exit_codes import ExitCode
from taskmaster_sync.core.exceptions import (
    AuthenticationError,
    ConfigError,
    DependencyCycleError,
    DocumentParseError,
    InvalidTaskFormatError,
    RemoteApplicationError,
    StorageError,
    SyncDirectionNotSupportedError,
    TagNotFoundError,
    TransientError,
)


class TestFromException:
    """Tests for ExitCode.from_exception."""

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (KeyboardInterrupt(), ExitCode.INTERRUPTED),
            (AuthenticationError("no token"), ExitCode.AUTH_ERROR),
            (ConfigError("bad"), ExitCode.CONFIG_ERROR),
            (SyncDirectionNotSupportedError("nope"), ExitCode.CONFIG_ERROR),
            (FileNotFoundError("x"), ExitCode.FILE_NOT_FOUND),
            (StorageError("missing", cause=FileNotFoundError("x")), ExitCode.FILE_NOT_FOUND),
            (StorageError("disk full", cause=OSError("x")), ExitCode.ERROR),
            (DocumentParseError("broken"), ExitCode.ERROR),
            (InvalidTaskFormatError("bad task"), ExitCode.VALIDATION_ERROR),
            (TagNotFoundError("backend"), ExitCode.VALIDATION_ERROR),
            (DependencyCycleError(["1", "1"]), ExitCode.VALIDATION_ERROR),
            (TransientError("timeout"), ExitCode.CONNECTION_ERROR),
            (RemoteApplicationError("graphql"), ExitCode.CONNECTION_ERROR),
            (RuntimeError("boom"), ExitCode.ERROR),
        ],
    )
    def test_mapping(self, exc, expected):
        assert ExitCode.from_exception(exc) == expected

    def test_values(self):
        assert ExitCode.SUCCESS == 0
        assert ExitCode.INTERRUPTED == 130
