"""
Sync State - Persistent mapping from Taskmaster ids to project items.

The state file (``.taskmaster/sync-state-<tag>.json``) remembers which
remote item each task was synced to, so later runs update instead of
creating duplicates. It is loaded once per run, mutated in memory and saved
once at the end.

StateTracker is the one sync component shared across threads (a foreground
sync and a watch-triggered one may run side by side), so every access goes
through a reader/writer lock.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.exceptions import DocumentParseError, StorageError


def _to_unix(value: datetime) -> int:
    return int(value.timestamp())


def _from_unix(value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DocumentParseError(f"Expected unix timestamp, got {value!r}")
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class ReadWriteLock:
    """
    Many readers or one writer.

    A waiting writer blocks new readers, so a steady stream of reads cannot
    starve writes. Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass
class TaskMetadata:
    """What the last sync pushed for one task."""

    github_item_id: str
    title: str
    status: str
    last_updated: datetime = field(default_factory=_now)
    draft_issue_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "github_item_id": self.github_item_id,
            "draft_issue_id": self.draft_issue_id,
            "title": self.title,
            "status": self.status,
            "last_updated": _to_unix(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Any) -> TaskMetadata:
        if not isinstance(data, dict):
            raise DocumentParseError(f"Task metadata must be a JSON object, got {type(data).__name__}")
        try:
            return cls(
                github_item_id=data["github_item_id"],
                draft_issue_id=data.get("draft_issue_id"),
                title=data["title"],
                status=data["status"],
                last_updated=_from_unix(data["last_updated"]),
            )
        except KeyError as e:
            raise DocumentParseError(f"Task metadata is missing {e}") from e


@dataclass
class SyncState:
    """
    The persisted document.

    Invariant: a task id maps to at most one item id.
    """

    task_mappings: dict[str, str] = field(default_factory=dict)
    synced_tasks: set[str] = field(default_factory=set)
    task_metadata: dict[str, TaskMetadata] = field(default_factory=dict)
    last_sync: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_mappings": dict(self.task_mappings),
            "synced_tasks": sorted(self.synced_tasks),
            "task_metadata": {task_id: meta.to_dict() for task_id, meta in self.task_metadata.items()},
            "last_sync": _to_unix(self.last_sync) if self.last_sync else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> SyncState:
        if not isinstance(data, dict):
            raise DocumentParseError("Sync state must be a JSON object")
        mappings = data.get("task_mappings", {})
        synced = data.get("synced_tasks", [])
        metadata = data.get("task_metadata", {})
        if not isinstance(mappings, dict) or not isinstance(synced, list) or not isinstance(metadata, dict):
            raise DocumentParseError("Sync state has unexpected field types")
        for task_id, item_id in mappings.items():
            if not isinstance(item_id, str) or not item_id:
                raise DocumentParseError(f"Task {task_id} maps to invalid item id {item_id!r}")
        last_sync = data.get("last_sync")
        return cls(
            task_mappings={str(k): v for k, v in mappings.items()},
            synced_tasks={str(task_id) for task_id in synced},
            task_metadata={str(k): TaskMetadata.from_dict(v) for k, v in metadata.items()},
            last_sync=_from_unix(last_sync) if last_sync is not None else None,
        )


@dataclass
class StateStats:
    """Counts reported by ``status``."""

    total_synced: int
    total_mapped: int
    last_sync: datetime | None


class StateTracker:
    """
    Thread-safe access to the sync state of one tag.

    Reads may run concurrently; writes are exclusive. Every write stamps
    ``last_sync``. Nothing touches the disk until ``save()``.
    """

    def __init__(self, state_file: str | Path, autoload: bool = True):
        self.state_file = Path(state_file)
        self.logger = logging.getLogger("StateTracker")
        self._lock = ReadWriteLock()
        self._state = SyncState()
        if autoload:
            self.load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """
        Replace in-memory state with the file's contents.

        A missing file is an empty state.

        Raises:
            DocumentParseError: If the file is not a valid state document
            StorageError: If the file cannot be read
        """
        if not self.state_file.exists():
            self.logger.debug(f"No state file at {self.state_file}, starting empty")
            with self._lock.write_locked():
                self._state = SyncState()
            return

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DocumentParseError(
                f"Malformed sync state file: {self.state_file}", path=str(self.state_file), cause=e
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to read sync state: {self.state_file}", path=str(self.state_file), cause=e
            ) from e

        state = SyncState.from_dict(data)
        with self._lock.write_locked():
            self._state = state
        self.logger.debug(f"Loaded state for {len(state.task_mappings)} tasks from {self.state_file}")

    def save(self) -> None:
        """
        Write the whole document, replacing the previous file atomically.

        Raises:
            StorageError: If the file cannot be written
        """
        with self._lock.read_locked():
            payload = json.dumps(self._state.to_dict(), indent=2)

        directory = self.state_file.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".sync-state-", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.state_file)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(
                f"Failed to save sync state: {self.state_file}", path=str(self.state_file), cause=e
            ) from e
        self.logger.debug(f"Saved sync state to {self.state_file}")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def is_synced(self, task_id: str) -> bool:
        with self._lock.read_locked():
            return task_id in self._state.synced_tasks

    def get_remote_id(self, task_id: str) -> str | None:
        with self._lock.read_locked():
            return self._state.task_mappings.get(task_id)

    def get_metadata(self, task_id: str) -> TaskMetadata | None:
        with self._lock.read_locked():
            return self._state.task_metadata.get(task_id)

    def get_synced_ids(self) -> set[str]:
        with self._lock.read_locked():
            return set(self._state.synced_tasks)

    def get_mapped_remote_ids(self) -> set[str]:
        with self._lock.read_locked():
            return set(self._state.task_mappings.values())

    def find_orphaned_items(self, current_tasks: Iterable[Task]) -> list[str]:
        """Synced ids that no longer appear in ``current_tasks``, sorted."""
        current_ids = {task.id for task in current_tasks}
        with self._lock.read_locked():
            return sorted(self._state.synced_tasks - current_ids)

    def get_stats(self) -> StateStats:
        with self._lock.read_locked():
            return StateStats(
                total_synced=len(self._state.synced_tasks),
                total_mapped=len(self._state.task_mappings),
                last_sync=self._state.last_sync,
            )

    def snapshot(self) -> dict[str, Any]:
        """Serializable copy of the current state."""
        with self._lock.read_locked():
            return self._state.to_dict()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _record(self, task_id: str, remote_id: str, secondary_id: str | None, task: Task) -> None:
        self._state.task_mappings[task_id] = remote_id
        self._state.synced_tasks.add(task_id)
        self._state.task_metadata[task_id] = TaskMetadata(
            github_item_id=remote_id,
            draft_issue_id=secondary_id,
            title=task.title,
            status=task.status,
        )

    def record_synced(self, task_id: str, remote_id: str, secondary_id: str | None, task: Task) -> None:
        """Map a task to its item, replacing any previous mapping."""
        with self._lock.write_locked():
            self._record(task_id, remote_id, secondary_id, task)
            self._state.last_sync = _now()

    def batch_record_synced(self, entries: Iterable[tuple[str, str, str | None, Task]]) -> None:
        """Record several mappings under a single write lock."""
        with self._lock.write_locked():
            for task_id, remote_id, secondary_id, task in entries:
                self._record(task_id, remote_id, secondary_id, task)
            self._state.last_sync = _now()

    def update_metadata(self, task_id: str, task: Task) -> bool:
        """
        Refresh title/status for an already-mapped task.

        Returns:
            False if the task has no metadata to update
        """
        with self._lock.write_locked():
            metadata = self._state.task_metadata.get(task_id)
            if metadata is not None:
                metadata.title = task.title
                metadata.status = task.status
                metadata.last_updated = _now()
            self._state.last_sync = _now()
            return metadata is not None

    def remove(self, task_id: str) -> None:
        with self._lock.write_locked():
            self._state.task_mappings.pop(task_id, None)
            self._state.synced_tasks.discard(task_id)
            self._state.task_metadata.pop(task_id, None)
            self._state.last_sync = _now()

    def clear(self) -> None:
        with self._lock.write_locked():
            self._state = SyncState(last_sync=_now())
