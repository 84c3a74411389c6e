"""
Task Source Port - Abstract interface for the local task store.

Implementations:
- TaskmasterReader: .taskmaster/tasks/tasks.json
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..domain.entities import Task
from ..exceptions import TagNotFoundError


class TaskSourcePort(ABC):
    """Read-only access to tasks grouped by tag."""

    @abstractmethod
    def load_tasks(self) -> dict[str, list[Task]]:
        """
        Load every tag's task list.

        Raises:
            StorageError: If the task file cannot be read
            InvalidTaskFormatError: If the file is not a recognised task file
        """
        ...

    def list_tags(self) -> list[str]:
        """List tag names in file order."""
        return list(self.load_tasks())

    def get_tasks(self, tag: str) -> list[Task]:
        """
        Get the ordered task list for one tag.

        Raises:
            TagNotFoundError: If the tag does not exist
        """
        tasks_by_tag = self.load_tasks()
        if tag not in tasks_by_tag:
            raise TagNotFoundError(tag, available=list(tasks_by_tag))
        return tasks_by_tag[tag]
