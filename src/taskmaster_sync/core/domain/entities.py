"""
Domain Entities - Tasks as read from a Taskmaster task file.

A Task is owned by the local task store; the sync engine only reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..exceptions import InvalidTaskFormatError


# Taskmaster JSON key -> Task attribute, for fields addressed by name.
_FIELD_ALIASES = {
    "testStrategy": "test_strategy",
    "test-strategy": "test_strategy",
}

DONE_STATUSES = frozenset({"done", "completed"})


def _coerce_id(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidTaskFormatError(f"Invalid task id: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _optional_text(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidTaskFormatError(f"Task {data['id']}: '{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass
class Task:
    """
    A task in a Taskmaster tag.

    Ids are always strings, even when the task file stores them as numbers.
    Subtasks are Tasks too and may nest arbitrarily deep.
    """

    id: str
    title: str
    description: str = ""
    status: str = "pending"
    priority: str | None = None
    dependencies: list[str] = field(default_factory=list)
    details: str | None = None
    test_strategy: str | None = None
    assignee: str | None = None
    subtasks: list[Task] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        return self.status.lower() in DONE_STATUSES

    def field_value(self, name: str) -> Any:
        """
        Look up a field by its Taskmaster name.

        Accepts both the JSON key ("testStrategy") and the attribute name
        ("test_strategy"). Unknown names return None.
        """
        attr = _FIELD_ALIASES.get(name, name)
        if attr == "subtasks" or attr.startswith("_"):
            return None
        return getattr(self, attr, None)

    def walk(self):
        """Yield this task and every descendant, depth first."""
        yield self
        for subtask in self.subtasks:
            yield from subtask.walk()

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> Task:
        """
        Build a Task from its Taskmaster JSON form.

        A bare string is accepted as a subtask title (older task files store
        subtasks that way); it gets a positional id and "pending" status.
        """
        if isinstance(data, str):
            return cls(id=f"subtask-{index}", title=data, status="pending")
        if not isinstance(data, dict):
            raise InvalidTaskFormatError(f"Task entry must be an object, got {type(data).__name__}")

        if "id" not in data or "title" not in data:
            raise InvalidTaskFormatError(f"Task entry is missing 'id' or 'title': {data!r}")

        raw_deps = data.get("dependencies") or []
        if not isinstance(raw_deps, list):
            raise InvalidTaskFormatError(f"Task {data['id']}: 'dependencies' must be a list")

        raw_subtasks = data.get("subtasks") or []
        if not isinstance(raw_subtasks, list):
            raise InvalidTaskFormatError(f"Task {data['id']}: 'subtasks' must be a list")

        return cls(
            id=_coerce_id(data["id"]),
            title=str(data["title"]),
            description=_optional_text(data, "description") or "",
            status=_optional_text(data, "status") or "pending",
            priority=_optional_text(data, "priority"),
            dependencies=[_coerce_id(dep) for dep in raw_deps],
            details=_optional_text(data, "details"),
            test_strategy=_optional_text(data, "testStrategy"),
            assignee=_optional_text(data, "assignee"),
            subtasks=[cls.from_dict(sub, index=i) for i, sub in enumerate(raw_subtasks)],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the Taskmaster JSON form, omitting absent optional fields."""
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "dependencies": list(self.dependencies),
        }
        if self.priority is not None:
            result["priority"] = self.priority
        if self.details is not None:
            result["details"] = self.details
        if self.test_strategy is not None:
            result["testStrategy"] = self.test_strategy
        if self.assignee is not None:
            result["assignee"] = self.assignee
        if self.subtasks:
            result["subtasks"] = [sub.to_dict() for sub in self.subtasks]
        return result
