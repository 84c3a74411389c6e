"""
Delta Sync - Detect which tasks changed since the previous run.

Each run fingerprints the tag's top-level tasks and compares the result with
the snapshot persisted by the run before. Only added and modified tasks need
to be pushed; removed tasks need their remote items deleted.

Snapshots live at ``.taskmaster/snapshots/<tag>-snapshot.json``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import ChangeKind
from taskmaster_sync.core.domain.timestamps import format_rfc3339, parse_rfc3339
from taskmaster_sync.core.exceptions import StorageError, TagNotFoundError


# Attributes compared on top of the content hash.
FINGERPRINT_METADATA = ("title", "status", "priority", "assignee", "dependencies")


_SIMPLE_ESCAPES = {"\0": "\\0", "\t": "\\t", "\r": "\\r", "\n": "\\n", '"': '\\"', "\\": "\\\\"}
_UNPRINTABLE_CATEGORIES = frozenset({"Cc", "Cf", "Cn", "Co", "Cs", "Zl", "Zp", "Zs"})


def _quote(value: str) -> str:
    """
    Double-quote a string the way snapshots written by earlier releases did.

    Quotes, backslashes, NUL, tab, CR and LF get short escapes; other
    unprintable characters (controls including DEL, format and separator
    characters other than the plain space, unassigned code points) and a
    leading combining mark become ``\\u{hex}``. Printability follows the
    Unicode database shipped with Python, so code points whose category
    differs between Unicode versions can still digest differently.
    """
    out = []
    for i, char in enumerate(value):
        if char in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[char])
            continue
        category = unicodedata.category(char)
        if (category in _UNPRINTABLE_CATEGORIES and char != " ") or (i == 0 and category in ("Mn", "Me")):
            out.append(f"\\u{{{ord(char):x}}}")
        else:
            out.append(char)
    return '"' + "".join(out) + '"'


def _debug_str(value: str | None, optional: bool = True) -> str:
    if value is None:
        return "None"
    quoted = _quote(value)
    return f"Some({quoted})" if optional else quoted


def compute_content_hash(task: Task) -> str:
    """
    Digest of the task's body fields and subtask count.

    Title, status, priority, assignee and dependencies are deliberately not
    part of the digest; the fingerprint tracks them as separate attributes.
    """
    content = ":".join(
        [
            _debug_str(task.description, optional=False),
            _debug_str(task.details),
            _debug_str(task.test_strategy),
            str(len(task.subtasks)),
        ]
    )
    return hashlib.md5(content.encode("utf-8")).hexdigest()  # noqa: S324


# =============================================================================
# Fingerprints and snapshots
# =============================================================================


@dataclass(frozen=True)
class TaskFingerprint:
    """Compact, comparable digest of one task."""

    id: str
    title: str
    status: str
    priority: str | None
    assignee: str | None
    dependencies: tuple[str, ...]
    content_hash: str

    @classmethod
    def from_task(cls, task: Task) -> TaskFingerprint:
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            priority=task.priority,
            assignee=task.assignee,
            dependencies=tuple(task.dependencies),
            content_hash=compute_content_hash(task),
        )

    def diff(self, other: TaskFingerprint) -> list[str]:
        """Names of the attributes that differ, "content" for the hash."""
        changed = [name for name in FINGERPRINT_METADATA if getattr(self, name) != getattr(other, name)]
        if self.content_hash != other.content_hash:
            changed.append("content")
        return changed

    def to_task(self, body_from: Task | None = None) -> Task:
        """
        Rebuild a Task from the fingerprint.

        Body fields are not stored in the snapshot; they are taken from
        ``body_from`` when given and left empty otherwise.
        """
        return Task(
            id=self.id,
            title=self.title,
            status=self.status,
            priority=self.priority,
            assignee=self.assignee,
            dependencies=list(self.dependencies),
            description=body_from.description if body_from else "",
            details=body_from.details if body_from else None,
            test_strategy=body_from.test_strategy if body_from else None,
            subtasks=list(body_from.subtasks) if body_from else [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
            "dependencies": list(self.dependencies),
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskFingerprint:
        return cls(
            id=str(data["id"]),
            title=data["title"],
            status=data["status"],
            priority=data.get("priority"),
            assignee=data.get("assignee"),
            dependencies=tuple(str(dep) for dep in data.get("dependencies", [])),
            content_hash=data["content_hash"],
        )


@dataclass
class TaskSnapshot:
    """Fingerprints of every top-level task of one tag at a point in time."""

    tasks: dict[str, TaskFingerprint] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskSnapshot:
        return cls(tasks={task.id: TaskFingerprint.from_task(task) for task in tasks})

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": {task_id: fp.to_dict() for task_id, fp in self.tasks.items()},
            "timestamp": format_rfc3339(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskSnapshot:
        return cls(
            tasks={
                str(task_id): TaskFingerprint.from_dict(fp)
                for task_id, fp in data.get("tasks", {}).items()
            },
            timestamp=parse_rfc3339(data["timestamp"]),
        )


class SnapshotStore:
    """
    Persists one TaskSnapshot per tag as pretty-printed JSON.
    """

    def __init__(self, snapshot_dir: str | Path = ".taskmaster/snapshots"):
        self.snapshot_dir = Path(snapshot_dir)
        self.logger = logging.getLogger("SnapshotStore")

    def path_for(self, tag: str) -> Path:
        return self.snapshot_dir / f"{tag}-snapshot.json"

    def load(self, tag: str) -> TaskSnapshot | None:
        """
        Load the previous snapshot for a tag.

        Any read or parse problem means "no previous snapshot": the next
        run simply treats every task as added.
        """
        path = self.path_for(tag)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return TaskSnapshot.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.debug(f"Ignoring unreadable snapshot {path}: {e}")
            return None

    def save(self, tag: str, snapshot: TaskSnapshot) -> Path:
        """
        Replace the snapshot for a tag.

        Raises:
            StorageError: If the file cannot be written
        """
        path = self.path_for(tag)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            tmp_path.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to save snapshot for tag '{tag}'", path=str(path), cause=e) from e
        self.logger.debug(f"Saved snapshot with {len(snapshot.tasks)} tasks to {path}")
        return path


# =============================================================================
# Changes
# =============================================================================


@dataclass(frozen=True)
class TaskChange:
    """
    One task's classification between two snapshots.

    For MODIFIED changes ``old_task`` carries the previous title, status,
    priority, assignee and dependencies; its body fields are the current ones
    because snapshots do not store bodies.
    """

    kind: ChangeKind
    task: Task
    old_task: Task | None = None
    changed_fields: tuple[str, ...] = ()

    @classmethod
    def added(cls, task: Task) -> TaskChange:
        return cls(ChangeKind.ADDED, task)

    @classmethod
    def modified(cls, old_task: Task, new_task: Task, changed_fields: Iterable[str] = ()) -> TaskChange:
        return cls(ChangeKind.MODIFIED, new_task, old_task, tuple(changed_fields))

    @classmethod
    def removed(cls, task: Task) -> TaskChange:
        return cls(ChangeKind.REMOVED, task)

    @property
    def task_id(self) -> str:
        return self.task.id


@dataclass
class ChangeSet:
    """Ordered changes plus the ids they affect, one dependency hop out."""

    changes: list[TaskChange] = field(default_factory=list)
    impacted_task_ids: set[str] = field(default_factory=set)

    def _of_kind(self, kind: ChangeKind) -> list[TaskChange]:
        return [c for c in self.changes if c.kind == kind]

    @property
    def added(self) -> list[TaskChange]:
        return self._of_kind(ChangeKind.ADDED)

    @property
    def modified(self) -> list[TaskChange]:
        return self._of_kind(ChangeKind.MODIFIED)

    @property
    def removed(self) -> list[TaskChange]:
        return self._of_kind(ChangeKind.REMOVED)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def changed_task_ids(self) -> set[str]:
        """Ids of added and modified tasks, the ones that need pushing."""
        return {c.task_id for c in self.changes if c.kind != ChangeKind.REMOVED}

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.modified)} modified, "
            f"{len(self.removed)} removed, {len(self.impacted_task_ids)} impacted"
        )


class ChangeDetector:
    """
    Diff the current task list of a tag against its previous snapshot.
    """

    def __init__(self, snapshot_store: SnapshotStore):
        self.snapshot_store = snapshot_store
        self.logger = logging.getLogger("ChangeDetector")

    def detect_changes(self, all_tasks_by_tag: Mapping[str, list[Task]], tag: str) -> ChangeSet:
        """
        Classify the tag's tasks and persist the new snapshot.

        The snapshot is replaced on every call, whatever the outcome of
        the comparison.

        Raises:
            TagNotFoundError: If the tag is not in ``all_tasks_by_tag``
            StorageError: If the new snapshot cannot be saved
        """
        change_set, current = self._compare(all_tasks_by_tag, tag)
        self.snapshot_store.save(tag, current)
        return change_set

    def preview_changes(self, all_tasks_by_tag: Mapping[str, list[Task]], tag: str) -> ChangeSet:
        """Same comparison as detect_changes, without touching the snapshot."""
        change_set, _ = self._compare(all_tasks_by_tag, tag)
        return change_set

    def _compare(
        self, all_tasks_by_tag: Mapping[str, list[Task]], tag: str
    ) -> tuple[ChangeSet, TaskSnapshot]:
        if tag not in all_tasks_by_tag:
            raise TagNotFoundError(tag, available=list(all_tasks_by_tag))
        tasks = all_tasks_by_tag[tag]

        previous = self.snapshot_store.load(tag)
        current = TaskSnapshot.from_tasks(tasks)

        if previous is None:
            self.logger.info(f"No previous snapshot for tag '{tag}', treating all tasks as added")
            changes = [TaskChange.added(task) for task in tasks]
        else:
            changes = compare_snapshots(previous, current, tasks)

        change_set = ChangeSet(changes=changes, impacted_task_ids=calculate_impacted_tasks(changes, tasks))
        self.logger.info(f"Change detection for '{tag}': {change_set.summary()}")
        return change_set, current


def compare_snapshots(previous: TaskSnapshot, current: TaskSnapshot, tasks: Iterable[Task]) -> list[TaskChange]:
    """
    Classify tasks by id.

    Modified and removed tasks come first, in the previous snapshot's order,
    followed by added tasks in current order.
    """
    by_id = {task.id: task for task in tasks}
    changes: list[TaskChange] = []

    for task_id, old_fp in previous.tasks.items():
        new_fp = current.tasks.get(task_id)
        if new_fp is None:
            changes.append(TaskChange.removed(old_fp.to_task()))
        elif new_fp != old_fp:
            task = by_id[task_id]
            changes.append(TaskChange.modified(old_fp.to_task(body_from=task), task, old_fp.diff(new_fp)))

    for task_id in current.tasks:
        if task_id not in previous.tasks:
            changes.append(TaskChange.added(by_id[task_id]))

    return changes


def calculate_impacted_tasks(changes: Iterable[TaskChange], tasks: Iterable[Task]) -> set[str]:
    """Touched ids plus tasks that directly depend on one of them. One hop only."""
    touched = {change.task_id for change in changes}
    impacted = set(touched)
    for task in tasks:
        if touched.intersection(task.dependencies):
            impacted.add(task.id)
    return impacted
