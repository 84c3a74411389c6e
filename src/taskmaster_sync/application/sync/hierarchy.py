"""
Subtask Hierarchy - Decide how subtasks appear on the project board.

Simple subtasks become checklist lines in their parent's body. Subtasks
that carry enough weight of their own (own subtasks, an assignee, details)
can instead be pushed as independent items that reference their parent.

Tasks are loaded into an arena: nodes refer to each other by index, so
walking the tree never follows an aliased object and always terminates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import SubtaskMode
from taskmaster_sync.core.exceptions import DependencyCycleError
from taskmaster_sync.core.ports.config_provider import SubtaskConfig


@dataclass
class TaskNode:
    """A task in the arena. Parent and children are arena indexes."""

    index: int
    task: Task
    qualified_id: str
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    depth: int = 0


class TaskArena:
    """Flat storage for a task tree."""

    def __init__(self) -> None:
        self.nodes: list[TaskNode] = []
        self.roots: list[int] = []

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskArena:
        arena = cls()
        for task in tasks:
            arena.roots.append(arena._add(task, None))
        return arena

    def _add(self, task: Task, parent: int | None) -> int:
        self._check_not_ancestor(task, parent)
        index = len(self.nodes)
        if parent is None:
            qualified_id, depth = task.id, 0
        else:
            parent_node = self.nodes[parent]
            qualified_id, depth = f"{parent_node.qualified_id}.{task.id}", parent_node.depth + 1
        self.nodes.append(TaskNode(index=index, task=task, qualified_id=qualified_id, parent=parent, depth=depth))
        for subtask in task.subtasks:
            child = self._add(subtask, index)
            self.nodes[index].children.append(child)
        return index

    def _check_not_ancestor(self, task: Task, parent: int | None) -> None:
        # A Task object nested inside itself would otherwise recurse forever.
        path = []
        current = parent
        while current is not None:
            node = self.nodes[current]
            path.append(node.qualified_id)
            if node.task is task:
                raise DependencyCycleError(list(reversed(path)) + [task.id])
            current = node.parent

    def parent_child_map(self) -> dict[str, list[str]]:
        """Qualified id -> qualified ids of direct children."""
        return {
            node.qualified_id: [self.nodes[child].qualified_id for child in node.children]
            for node in self.nodes
        }

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass
class WorkUnit:
    """
    One thing to push to the board: a top-level task, or a subtask that is
    processed as its own item.
    """

    task: Task
    parent: Task | None = None
    separate_children: list[Task] = field(default_factory=list)
    inline_children: list[Task] = field(default_factory=list)

    @property
    def task_id(self) -> str:
        if self.parent is None:
            return self.task.id
        return f"{self.parent.id}.{self.task.id}"

    @property
    def title(self) -> str:
        if self.parent is None:
            return self.task.title
        return f"{self.task.title} [{self.parent.title}]"

    @property
    def is_subtask(self) -> bool:
        return self.parent is not None

    def as_task(self) -> Task:
        """The unit as a Task carrying its qualified id and display title."""
        if self.parent is None:
            return self.task
        return Task(
            id=self.task_id,
            title=self.title,
            description=self.task.description,
            status=self.task.status,
            priority=self.task.priority or self.parent.priority,
            dependencies=list(self.task.dependencies),
            details=self.task.details,
            test_strategy=self.task.test_strategy,
            assignee=self.task.assignee,
            subtasks=list(self.task.subtasks),
        )


class HierarchyManager:
    """
    Splits subtasks into inline checklist entries and separate items, renders
    item bodies and validates that the hierarchy is acyclic.
    """

    def __init__(self, config: SubtaskConfig | None = None):
        self.config = config or SubtaskConfig()
        self.logger = logging.getLogger("HierarchyManager")

    def should_create_separate_issue(self, subtask: Task, config: SubtaskConfig | None = None) -> bool:
        config = config or self.config
        description_length = len(subtask.description)
        if description_length < config.complexity_threshold:
            return False
        if config.create_separate_if_has_subtasks and subtask.subtasks:
            return True
        if config.create_separate_if_has_assignee and subtask.assignee is not None:
            return True
        if config.create_separate_if_complex:
            if subtask.details is not None or subtask.test_strategy is not None:
                return True
            if description_length > config.complexity_threshold:
                return True
        return False

    def split_subtasks(self, task: Task, mode: SubtaskMode) -> tuple[list[Task], list[Task]]:
        """(inline, separate) subtasks of a task under the given mode."""
        if mode == SubtaskMode.NESTED:
            return list(task.subtasks), []
        inline: list[Task] = []
        separate: list[Task] = []
        for subtask in task.subtasks:
            (separate if self.should_create_separate_issue(subtask) else inline).append(subtask)
        return inline, separate

    def expand(self, tasks: Iterable[Task], mode: SubtaskMode = SubtaskMode.NESTED) -> list[WorkUnit]:
        """
        Work units in input order.

        In separate mode each qualifying subtask follows its parent as its
        own unit. Only direct subtasks are split out; deeper levels render
        inside the subtask's body.
        """
        units: list[WorkUnit] = []
        for task in tasks:
            inline, separate = self.split_subtasks(task, mode)
            units.append(WorkUnit(task=task, separate_children=separate, inline_children=inline))
            for subtask in separate:
                sub_inline = list(subtask.subtasks)
                units.append(WorkUnit(task=subtask, parent=task, inline_children=sub_inline))
        return units

    # -------------------------------------------------------------------------
    # Bodies
    # -------------------------------------------------------------------------

    def render_body(self, unit: WorkUnit) -> str:
        """
        Markdown body for a unit's item.

        Layout: description, parent reference (subtask units), Details,
        Test Strategy, inline subtask checklist, then the names of subtasks
        that have their own items.
        """
        task = unit.task
        body = task.description

        if unit.parent is not None:
            body += f"\n\n**Parent Task:** {unit.parent.title}"
        if task.details:
            body += f"\n\n## Details\n{task.details}"
        if task.test_strategy:
            body += f"\n\n## Test Strategy\n{task.test_strategy}"

        if unit.inline_children or unit.separate_children:
            body += "\n\n## Subtasks\n"
            for number, subtask in enumerate(unit.inline_children, start=1):
                checkbox = "[x]" if subtask.is_done else "[ ]"
                body += f"{number}. {checkbox} {subtask.title} - {subtask.status}\n"
            if unit.separate_children:
                body += "\n### Complex Subtasks (Separate Issues)\n"
                for subtask in unit.separate_children:
                    body += f"- {subtask.title} _(will be created as separate issue)_\n"

        return body

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_hierarchy(self, tasks: Iterable[Task]) -> TaskArena:
        """
        Build the arena for ``tasks`` and check it for cycles.

        Raises:
            DependencyCycleError: If some task is its own ancestor
        """
        arena = TaskArena.from_tasks(tasks)
        validate_parent_child_map(arena.parent_child_map(), roots=[arena.nodes[i].qualified_id for i in arena.roots])
        self.logger.debug(f"Hierarchy valid: {len(arena)} nodes")
        return arena


def validate_parent_child_map(mapping: Mapping[str, list[str]], roots: Iterable[str] | None = None) -> None:
    """
    Depth-first search for cycles in a parent -> children map.

    An id may appear under several independent branches; it is a cycle only
    when it shows up again while still on the current path.

    Raises:
        DependencyCycleError: With the offending path
    """
    finished: set[str] = set()
    starts = list(roots) if roots is not None else list(mapping)

    for root in starts:
        if root in finished:
            continue
        on_path: set[str] = set()
        path: list[str] = []
        # Iterative DFS; each frame is (node, iterator over its children).
        stack = [(root, iter(mapping.get(root, ())))]
        on_path.add(root)
        path.append(root)
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                on_path.discard(node)
                path.pop()
                finished.add(node)
                continue
            if child in on_path:
                raise DependencyCycleError(path[path.index(child):] + [child])
            if child in finished:
                continue
            on_path.add(child)
            path.append(child)
            stack.append((child, iter(mapping.get(child, ()))))

    # Cycles unreachable from the given roots.
    if roots is not None:
        remaining = {key: value for key, value in mapping.items() if key not in finished}
        if remaining:
            validate_parent_child_map(remaining)
