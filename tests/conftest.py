"""
Shared pytest fixtures for the taskmaster-sync test suite.

Fixture Categories:
- Tracker: in-memory GitHub Projects board
- Data: sample tasks and task files on disk
- Configuration: SyncConfig pointing at a temporary project root
- Orchestrator: factory wired to the fake tracker
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from taskmaster_sync.adapters.taskmaster import TaskmasterReader
from taskmaster_sync.application.sync import SyncOrchestrator
from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import FieldDataType
from taskmaster_sync.core.exceptions import RemoteApplicationError
from taskmaster_sync.core.ports.config_provider import ProjectMapping, SyncConfig
from taskmaster_sync.core.ports.project_tracker import (
    CreatedItem,
    FieldOption,
    FieldValue,
    ProjectField,
    ProjectTrackerPort,
    RemoteItem,
)


# =============================================================================
# Fake tracker
# =============================================================================


class FakeProjectTracker(ProjectTrackerPort):
    """
    In-memory project board.

    Every call is recorded in ``calls`` as (method, args). Failures are
    injected through ``fail_create_titles``, ``fail_field_names`` and
    ``fail_methods``.
    """

    PROJECT_ID = "PVT_1"

    def __init__(self) -> None:
        self.fields: dict[str, ProjectField] = {}
        self.items: dict[str, RemoteItem] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.assignees: dict[str, list[str]] = {}
        self.fail_create_titles: set[str] = set()
        self.fail_field_names: set[str] = set()
        self.fail_methods: dict[str, Exception] = {}
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if method in self.fail_methods:
            raise self.fail_methods[method]

    def calls_to(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    @property
    def mutation_count(self) -> int:
        readonly = {"get_project_id", "list_items", "get_fields"}
        return len([name for name, _ in self.calls if name not in readonly])

    # Test helpers -------------------------------------------------------------

    def add_field(
        self, name: str, data_type: FieldDataType = FieldDataType.TEXT, options: Iterable[str] = ()
    ) -> ProjectField:
        field = ProjectField(
            id=self._next("FIELD"),
            name=name,
            data_type=data_type,
            options=[FieldOption(id=self._next("OPT"), name=o) for o in options],
        )
        self.fields[name] = field
        return field

    def add_item(self, title: str, body: str = "", tm_id: str | None = None) -> RemoteItem:
        item = RemoteItem(
            id=self._next("ITEM"),
            title=title,
            body=body,
            content_id=self._next("DI"),
            content_type="DraftIssue",
        )
        if tm_id is not None:
            item.field_values.append(FieldValue(field_id="", field_name="TM_ID", value=tm_id))
        self.items[item.id] = item
        return item

    def item_for(self, tm_id: str) -> RemoteItem | None:
        for item in self.items.values():
            if item.get_field_value("TM_ID") == tm_id:
                return item
        return None

    def field_value(self, item_id: str, field_name: str) -> Any:
        return self.items[item_id].get_field_value(field_name)

    # Port ---------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "Fake"

    def get_project_id(self, organization: str, number: int) -> str:
        self._record("get_project_id", organization, number)
        return self.PROJECT_ID

    def list_items(self, project_id: str) -> list[RemoteItem]:
        self._record("list_items", project_id)
        return copy.deepcopy(list(self.items.values()))

    def get_fields(self, project_id: str) -> list[ProjectField]:
        self._record("get_fields", project_id)
        return copy.deepcopy(list(self.fields.values()))

    def create_field(self, project_id, name, data_type, options=None) -> str:
        self._record("create_field", project_id, name, data_type)
        field = self.add_field(name, data_type, [o.name for o in options or []])
        return field.id

    def create_field_option(self, project_id, field, name, color="GRAY") -> None:
        self._record("create_field_option", project_id, field.name, name)
        self.fields[field.name].options.append(FieldOption(id=self._next("OPT"), name=name, color=color))

    def create_draft_item(self, project_id, title, body) -> CreatedItem:
        self._record("create_draft_item", project_id, title, body)
        if title in self.fail_create_titles:
            raise RemoteApplicationError(f"cannot create '{title}'")
        item = self.add_item(title, body)
        return CreatedItem(item_id=item.id, content_id=item.content_id, content_type="DraftIssue")

    def create_issue_item(self, project_id, repository, title, body, assignees=None) -> CreatedItem:
        self._record("create_issue_item", project_id, repository, title, body)
        if title in self.fail_create_titles:
            raise RemoteApplicationError(f"cannot create '{title}'")
        item = self.add_item(title, body)
        item.content_type = "Issue"
        self.assignees[item.id] = list(assignees or [])
        return CreatedItem(item_id=item.id, content_id=item.content_id, content_type="Issue")

    def update_item_content(self, content_id, content_type, title, body) -> None:
        self._record("update_item_content", content_id, content_type, title, body)
        for item in self.items.values():
            if item.content_id == content_id:
                item.title, item.body = title, body
                return
        raise RemoteApplicationError(f"no content {content_id}")

    def update_field_value(self, project_id, item_id, field_id, value) -> None:
        self._record("update_field_value", project_id, item_id, field_id, value)
        field = next((f for f in self.fields.values() if f.id == field_id), None)
        if field is None:
            raise RemoteApplicationError(f"no field {field_id}")
        if field.name in self.fail_field_names:
            raise RemoteApplicationError(f"cannot set {field.name}")
        item = self.items.get(item_id)
        if item is None:
            raise RemoteApplicationError(f"no item {item_id}", item_id=item_id)

        if "singleSelectOptionId" in value:
            option = next(o for o in field.options if o.id == value["singleSelectOptionId"])
            stored: Any = option.name
        else:
            stored = next(iter(value.values()))
        item.field_values = [v for v in item.field_values if v.field_name != field.name]
        item.field_values.append(FieldValue(field_id=field.id, field_name=field.name, value=stored))

    def delete_item(self, project_id, item_id) -> None:
        self._record("delete_item", project_id, item_id)
        self.items.pop(item_id, None)


@pytest.fixture
def tracker() -> FakeProjectTracker:
    """Empty project board; required fields get created by the first sync."""
    return FakeProjectTracker()


# =============================================================================
# Sample data
# =============================================================================


def sample_task_dicts() -> list[dict[str, Any]]:
    return [
        {
            "id": 1,
            "title": "Set up repository",
            "description": "Create the repo and CI",
            "status": "done",
            "priority": "high",
            "dependencies": [],
            "testStrategy": "CI is green",
        },
        {
            "id": 2,
            "title": "Build API",
            "description": "REST endpoints",
            "status": "in-progress",
            "priority": "medium",
            "dependencies": [1],
            "details": "Use the existing auth middleware",
            "subtasks": [
                {"id": 1, "title": "Routes", "status": "done"},
                {"id": 2, "title": "Validation", "status": "pending"},
            ],
        },
        {
            "id": 3,
            "title": "Write docs",
            "description": "User guide",
            "status": "pending",
            "priority": "low",
            "dependencies": [2],
        },
    ]


@pytest.fixture
def task_dicts() -> list[dict[str, Any]]:
    return sample_task_dicts()


@pytest.fixture
def sample_tasks(task_dicts) -> list[Task]:
    return [Task.from_dict(d) for d in task_dicts]


def write_task_file(root: Path, tasks: list[dict[str, Any]], tag: str = "master", legacy: bool = False) -> Path:
    path = root / ".taskmaster" / "tasks" / "tasks.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    if legacy:
        document: dict[str, Any] = {"tasks": tasks}
    else:
        document = {tag: {"tasks": tasks, "metadata": {"description": f"{tag} tasks"}}}
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def project_root(tmp_path, task_dicts) -> Path:
    """Temporary project with a tagged task file for tag 'master'."""
    write_task_file(tmp_path, task_dicts)
    return tmp_path


# =============================================================================
# Configuration & orchestrator
# =============================================================================


@pytest.fixture
def sync_config(project_root) -> SyncConfig:
    return SyncConfig(
        organization="acme",
        project_mappings={"master": ProjectMapping(project_number=7, project_id=FakeProjectTracker.PROJECT_ID)},
        project_root=project_root,
    )


@pytest.fixture
def make_orchestrator(tracker, sync_config) -> Callable[..., SyncOrchestrator]:
    """Factory: a fresh orchestrator (fresh state load) per call."""

    def factory(tag: str = "master", **kwargs: Any) -> SyncOrchestrator:
        return SyncOrchestrator(
            tracker=kwargs.pop("tracker", tracker),
            task_source=TaskmasterReader(sync_config.project_root),
            config=kwargs.pop("config", sync_config),
            tag=tag,
            field_update_delay=0,
            sleep=lambda _: None,
            **kwargs,
        )

    return factory
