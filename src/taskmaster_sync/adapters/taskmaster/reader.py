"""
Taskmaster Reader - Loads tasks from ``.taskmaster/tasks/tasks.json``.

Two file layouts exist in the wild:

- legacy: ``{"tasks": [...]}``, a single unnamed list exposed as tag "master"
- tagged: ``{"<tag>": {"tasks": [...], "metadata": {...}}, ...}``

The layout is decided by inspecting the parsed document's structure, never
by attempting one parse and falling back to the other on failure.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.exceptions import InvalidTaskFormatError, StorageError
from taskmaster_sync.core.ports.task_source import TaskSourcePort


LEGACY_TAG = "master"

# Top-level keys that never name a tag.
RESERVED_KEYS = frozenset({"version"})


class TaskFileFormat(Enum):
    LEGACY = "legacy"
    TAGGED = "tagged"


@dataclass
class TagMetadata:
    created: str | None = None
    updated: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> TagMetadata:
        if not isinstance(data, dict):
            return cls()
        return cls(
            created=data.get("created"),
            updated=data.get("updated"),
            description=data.get("description"),
        )


@dataclass
class TaggedTasks:
    tasks: list[Task] = field(default_factory=list)
    metadata: TagMetadata = field(default_factory=TagMetadata)


@dataclass
class LegacyTaskFile:
    tasks: list[Task]

    def by_tag(self) -> dict[str, TaggedTasks]:
        return {LEGACY_TAG: TaggedTasks(tasks=self.tasks)}


@dataclass
class TaggedTaskFile:
    tags: dict[str, TaggedTasks]

    def by_tag(self) -> dict[str, TaggedTasks]:
        return self.tags


TaskFile = Union[LegacyTaskFile, TaggedTaskFile]


def detect_format(document: Any) -> TaskFileFormat:
    """
    Decide the file layout from the document's shape.

    Raises:
        InvalidTaskFormatError: If the document fits neither layout
    """
    if not isinstance(document, dict):
        raise InvalidTaskFormatError("Task file root must be a JSON object")

    if isinstance(document.get("tasks"), list):
        return TaskFileFormat.LEGACY

    tag_keys = [key for key in document if key not in RESERVED_KEYS]
    for key in tag_keys:
        value = document[key]
        if not isinstance(value, dict):
            raise InvalidTaskFormatError(f"Tag '{key}' must be an object")
        if not isinstance(value.get("tasks"), list):
            raise InvalidTaskFormatError(f"Tag '{key}' must contain a 'tasks' array")
    return TaskFileFormat.TAGGED


def _parse_task_list(raw_tasks: list[Any], where: str) -> list[Task]:
    tasks = []
    for index, raw in enumerate(raw_tasks):
        if not isinstance(raw, dict):
            raise InvalidTaskFormatError(f"{where}: task #{index} must be an object")
        tasks.append(Task.from_dict(raw, index=index))
    return tasks


def parse_task_file(document: Any) -> TaskFile:
    """Turn a parsed tasks.json document into a LegacyTaskFile or TaggedTaskFile."""
    if detect_format(document) == TaskFileFormat.LEGACY:
        return LegacyTaskFile(tasks=_parse_task_list(document["tasks"], "tasks"))

    tags = {}
    for key, value in document.items():
        if key in RESERVED_KEYS:
            continue
        tags[key] = TaggedTasks(
            tasks=_parse_task_list(value["tasks"], f"tag '{key}'"),
            metadata=TagMetadata.from_dict(value.get("metadata")),
        )
    return TaggedTaskFile(tags=tags)


class TaskmasterReader(TaskSourcePort):
    """
    Reads the task file of a Taskmaster project.

    The file is re-read on every ``load_tasks`` call.
    """

    def __init__(self, project_root: str | Path = "."):
        self.project_root = Path(project_root)
        self.tasks_path = self.project_root / ".taskmaster" / "tasks" / "tasks.json"
        self.logger = logging.getLogger("TaskmasterReader")

    def exists(self) -> bool:
        return self.tasks_path.is_file()

    def load_file(self) -> TaskFile:
        """
        Read and parse the task file.

        Raises:
            StorageError: If the file is missing or unreadable
            InvalidTaskFormatError: If it is not valid JSON or has the wrong shape
        """
        try:
            with open(self.tasks_path, encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            raise StorageError(
                f"Task file not found: {self.tasks_path}", path=str(self.tasks_path), cause=e
            ) from e
        except json.JSONDecodeError as e:
            raise InvalidTaskFormatError(f"Task file is not valid JSON: {self.tasks_path}", cause=e) from e
        except OSError as e:
            raise StorageError(
                f"Failed to read task file: {self.tasks_path}", path=str(self.tasks_path), cause=e
            ) from e

        task_file = parse_task_file(document)
        self.logger.debug(f"Loaded {self.tasks_path} ({type(task_file).__name__})")
        return task_file

    def load_tagged(self) -> dict[str, TaggedTasks]:
        return self.load_file().by_tag()

    def load_tasks(self) -> dict[str, list[Task]]:
        return {tag: tagged.tasks for tag, tagged in self.load_tagged().items()}
