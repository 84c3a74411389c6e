"""
Sync Orchestrator - Coordinates one sync run of a tag into its project.

This is the main entry point for sync operations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import FieldDataType, SyncDirection
from taskmaster_sync.core.exceptions import (
    ConfigError,
    FieldSchemaError,
    SyncDirectionNotSupportedError,
    TagNotFoundError,
    TaskSyncError,
)
from taskmaster_sync.core.ports.config_provider import ProjectMapping, SyncConfig
from taskmaster_sync.core.ports.project_tracker import (
    CreatedItem,
    FieldValue,
    ProjectTrackerPort,
    RemoteItem,
)
from taskmaster_sync.core.ports.task_source import TaskSourcePort

from .delta import ChangeDetector, ChangeSet, SnapshotStore
from .field_mapping import IDENTITY_FIELD, FieldMapper
from .hierarchy import HierarchyManager, WorkUnit
from .state import StateTracker


@dataclass
class SyncOptions:
    """Options for one sync run."""

    dry_run: bool = False
    force_full: bool = False
    use_delta: bool = True
    direction: SyncDirection = SyncDirection.TO_GITHUB
    quiet: bool = False

    @property
    def delta_enabled(self) -> bool:
        return self.use_delta and not self.force_full


@dataclass
class FailedOperation:
    """
    Details of a failed operation during sync.
    """

    operation: str  # "create", "update", "delete"
    task_id: str
    error: str
    item_id: str = ""

    def __str__(self) -> str:
        if self.item_id:
            return f"[{self.operation}] task {self.task_id} (item {self.item_id}): {self.error}"
        return f"[{self.operation}] task {self.task_id}: {self.error}"


@dataclass
class SyncResult:
    """
    Result of a sync run.

    Per-task failures do not abort the run; they are collected here and the
    counters still describe everything that did succeed.

    Attributes:
        tag: Tag that was synced.
        dry_run: Whether mutating calls were suppressed.
        mode: "delta" or "full".
        created: Items created.
        updated: Items updated (including title-matched duplicates).
        deleted: Items removed from the project.
        skipped: Units that a dry run would have touched.
        unchanged: Tasks left out of a delta run because they did not change.
        total_tasks: Top-level tasks in the tag.
        planned_operations: What a dry run would have done.
        fields_created: Project fields created during setup.
        changed_task_ids: Added and modified ids (delta mode).
        impacted_task_ids: Changed ids plus direct dependents (delta mode).
    """

    tag: str = ""
    dry_run: bool = False
    mode: str = "full"

    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    unchanged: int = 0
    total_tasks: int = 0

    failed_operations: list[FailedOperation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    planned_operations: list[str] = field(default_factory=list)
    fields_created: list[str] = field(default_factory=list)
    changed_task_ids: set[str] = field(default_factory=set)
    impacted_task_ids: set[str] = field(default_factory=set)

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def add_failed_operation(self, operation: str, task_id: str, error: str, item_id: str = "") -> None:
        failed = FailedOperation(operation=operation, task_id=task_id, error=error, item_id=item_id)
        self.failed_operations.append(failed)
        self.errors.append(str(failed))

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def plan(self, operation: str) -> None:
        self.planned_operations.append(operation)
        self.skipped += 1

    def summary(self) -> str:
        """
        Generate a human-readable summary of the sync result.
        """
        lines = []
        if self.dry_run:
            lines.append("DRY RUN - No changes made")

        if self.success:
            lines.append(f"✓ Sync of '{self.tag}' completed ({self.mode} mode)")
        else:
            lines.append(f"⚠ Sync of '{self.tag}' completed with {len(self.errors)} error(s)")

        lines.append(f"  Created: {self.created}")
        lines.append(f"  Updated: {self.updated}")
        lines.append(f"  Deleted: {self.deleted}")
        lines.append(f"  Skipped: {self.skipped}")
        if self.mode == "delta":
            lines.append(f"  Unchanged: {self.unchanged}")
        lines.append(f"  Errors: {len(self.errors)}")
        lines.append(f"  Duration: {self.duration_seconds:.1f}s")

        if self.failed_operations:
            lines.append("")
            lines.append("Failed operations:")
            for failed in self.failed_operations[:10]:
                lines.append(f"  • {failed}")
            if len(self.failed_operations) > 10:
                lines.append(f"  ... and {len(self.failed_operations) - 10} more")

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for warning in self.warnings[:5]:
                lines.append(f"  • {warning}")
            if len(self.warnings) > 5:
                lines.append(f"  ... and {len(self.warnings) - 5} more")

        return "\n".join(lines)


class RemoteIndex:
    """
    Lookup tables over the project's items for one run.

    Items are found by their identity field value or by exact title. An item
    is "claimed" once some task maps to it; claimed items are never picked
    up again by title matching.
    """

    def __init__(self, items: list[RemoteItem], mapped_remote_ids: set[str]):
        self.logger = logging.getLogger("RemoteIndex")
        self.by_item_id: dict[str, RemoteItem] = {}
        self.by_task_id: dict[str, RemoteItem] = {}
        self.by_title: dict[str, list[RemoteItem]] = {}
        self.claimed: set[str] = set(mapped_remote_ids)
        for item in items:
            self.add(item)

    def add(self, item: RemoteItem, task_id: str | None = None) -> None:
        self.by_item_id[item.id] = item
        self.by_title.setdefault(item.title, []).append(item)
        identity = task_id or item.get_field_value(IDENTITY_FIELD)
        if identity:
            identity = str(identity)
            if identity in self.by_task_id and self.by_task_id[identity].id != item.id:
                self.logger.warning(
                    f"Several items carry {IDENTITY_FIELD}={identity}; using {self.by_task_id[identity].id}"
                )
            else:
                self.by_task_id[identity] = item
            self.claimed.add(item.id)

    def claim(self, item: RemoteItem, task_id: str) -> None:
        self.by_task_id[task_id] = item
        self.claimed.add(item.id)

    def find_mapped(self, task_id: str, state_remote_id: str | None) -> RemoteItem | None:
        item = self.by_task_id.get(task_id)
        if item is None and state_remote_id:
            item = self.by_item_id.get(state_remote_id)
        return item

    def untracked_title_matches(self, title: str) -> list[RemoteItem]:
        return [item for item in self.by_title.get(title, []) if item.id not in self.claimed]


class SyncOrchestrator:
    """
    Orchestrates the synchronization of one tag into its GitHub project.

    Phases:
    1. Load the tag's tasks and validate the hierarchy
    2. Ensure required project fields exist
    3. Index existing project items by task id and title
    4. Build the work set (delta or full) and handle removals
    5. Create or update an item per work unit
    6. Reconcile orphans (full mode) and persist state
    """

    def __init__(
        self,
        tracker: ProjectTrackerPort,
        task_source: TaskSourcePort,
        config: SyncConfig,
        tag: str,
        state_tracker: StateTracker | None = None,
        change_detector: ChangeDetector | None = None,
        field_mapper: FieldMapper | None = None,
        hierarchy: HierarchyManager | None = None,
        field_update_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        State is loaded here, once; it is saved at the end of a successful
        non-dry run.

        Raises:
            ConfigError: If the organization is empty or the tag has no mapping
        """
        if not config.organization:
            raise ConfigError("organization is required")

        self.tracker = tracker
        self.task_source = task_source
        self.config = config
        self.tag = tag
        self.mapping: ProjectMapping = config.get_mapping(tag)
        self.logger = logging.getLogger("SyncOrchestrator")

        self.state = state_tracker or StateTracker(config.state_file(tag))
        self.change_detector = change_detector or ChangeDetector(SnapshotStore(config.snapshot_dir))
        self.field_mapper = field_mapper or FieldMapper()
        if field_mapper is None and self.mapping.field_mappings:
            self.field_mapper.init_mappings(self.mapping.field_mappings)
        self.hierarchy = hierarchy or HierarchyManager(config.subtasks)
        self.agent_mapping = {
            name: agent.github_username for name, agent in config.agent_mapping.items() if agent.github_username
        }

        self.field_update_delay = field_update_delay
        self._sleep = sleep
        self._project_id = self.mapping.project_id
        self._missing_fields_refreshed: set[str] = set()

    # -------------------------------------------------------------------------
    # Main Entry Point
    # -------------------------------------------------------------------------

    def sync(
        self,
        options: SyncOptions | None = None,
        progress_callback: Callable[[str, int, int], None] | None = None,
    ) -> SyncResult:
        """
        Run one sync of the tag.

        Raises:
            SyncDirectionNotSupportedError: For FROM_GITHUB / BIDIRECTIONAL
            TagNotFoundError: If the tag is not in the task file
            DependencyCycleError: If the hierarchy has a cycle
            StorageError: If snapshot or state cannot be persisted
            RemoteError: If setup calls (fields, listing) fail
        """
        options = options or SyncOptions()
        if options.direction != SyncDirection.TO_GITHUB:
            raise SyncDirectionNotSupportedError(
                f"Sync direction '{options.direction.value}' is not implemented"
            )

        result = SyncResult(
            tag=self.tag,
            dry_run=options.dry_run,
            mode="delta" if options.delta_enabled else "full",
        )

        # Phase 1: tasks
        self._report_progress(progress_callback, "Loading tasks", 1, 6)
        all_tasks = self.task_source.load_tasks()
        if self.tag not in all_tasks:
            raise TagNotFoundError(self.tag, available=list(all_tasks))
        tasks = all_tasks[self.tag]
        result.total_tasks = len(tasks)
        self.hierarchy.validate_hierarchy(tasks)
        self.logger.info(f"Loaded {len(tasks)} tasks for tag '{self.tag}'")

        # Phase 2: fields
        self._report_progress(progress_callback, "Checking project fields", 2, 6)
        project_id = self._resolve_project_id()
        result.fields_created = self.field_mapper.ensure_required_fields(
            self.tracker, project_id, dry_run=options.dry_run
        )
        if result.fields_created and options.dry_run:
            for name in result.fields_created:
                result.planned_operations.append(f"create field '{name}'")

        # Phase 3: index
        self._report_progress(progress_callback, "Listing project items", 3, 6)
        items = self.tracker.list_items(project_id)
        index = RemoteIndex(items, self.state.get_mapped_remote_ids())
        self.logger.info(f"Found {len(items)} existing items in project {self.mapping.project_number}")

        # Phase 4: work set
        self._report_progress(progress_callback, "Detecting changes", 4, 6)
        if options.delta_enabled:
            work_tasks = self._delta_work_set(all_tasks, tasks, index, options, result)
        else:
            work_tasks = list(tasks)
        units = self.hierarchy.expand(work_tasks, self.mapping.subtask_mode)

        # Phase 5: per-unit loop, strictly sequential
        self._report_progress(progress_callback, "Syncing tasks", 5, 6)
        for unit in units:
            self._sync_unit(unit, index, options, result)

        # Phase 6: orphans and state
        self._report_progress(progress_callback, "Saving state", 6, 6)
        if not options.delta_enabled:
            all_units = self.hierarchy.expand(tasks, self.mapping.subtask_mode)
            self._reconcile_orphans([u.as_task() for u in all_units], index, options, result)

        if not options.dry_run:
            self.state.save()

        if result.errors and options.delta_enabled:
            result.add_warning("Some tasks failed; run a full sync to retry them")

        result.finished_at = datetime.now(timezone.utc)
        self.logger.info(
            f"Sync complete: {result.created} created, {result.updated} updated, "
            f"{result.deleted} deleted, {result.skipped} skipped, {len(result.errors)} errors"
        )
        return result

    # -------------------------------------------------------------------------
    # Work set
    # -------------------------------------------------------------------------

    def _delta_work_set(
        self,
        all_tasks: dict[str, list[Task]],
        tasks: list[Task],
        index: RemoteIndex,
        options: SyncOptions,
        result: SyncResult,
    ) -> list[Task]:
        """
        Detect changes and delete items of removed tasks.

        Dry runs preview the change set so the snapshot is left alone.

        Returns:
            Tasks added or modified since the last snapshot, in file order
        """
        if options.dry_run:
            change_set = self.change_detector.preview_changes(all_tasks, self.tag)
        else:
            change_set = self.change_detector.detect_changes(all_tasks, self.tag)

        changed = change_set.changed_task_ids()
        result.changed_task_ids = changed
        result.impacted_task_ids = change_set.impacted_task_ids
        result.unchanged = len([t for t in tasks if t.id not in changed])

        self._delete_removed(change_set, index, options, result)
        return [task for task in tasks if task.id in changed]

    def _delete_removed(self, change_set: ChangeSet, index: RemoteIndex, options: SyncOptions, result: SyncResult) -> None:
        """Delete the items of removed tasks, including their separate subtask items."""
        for change in change_set.removed:
            task_id = change.task_id
            # Separate subtask items of a removed task go with it.
            prefix = f"{task_id}."
            ids = [task_id] + sorted(i for i in self.state.get_synced_ids() if i.startswith(prefix))
            for removed_id in ids:
                self._delete_task_item(removed_id, index, options, result)

    def _reconcile_orphans(self, current: list[Task], index: RemoteIndex, options: SyncOptions, result: SyncResult) -> None:
        """Delete items of tasks that are still in state but no longer in the task file."""
        orphaned = self.state.find_orphaned_items(current)
        if orphaned:
            self.logger.info(f"Found {len(orphaned)} orphaned tasks: {', '.join(orphaned)}")
        for task_id in orphaned:
            self._delete_task_item(task_id, index, options, result)

    def _delete_task_item(self, task_id: str, index: RemoteIndex, options: SyncOptions, result: SyncResult) -> None:
        """
        Delete the item mapped to a task and forget the task.

        A task with no item left in the project is only dropped from state.
        A failed delete is recorded and the task stays in state.

        Args:
            task_id: Local task id
            index: Items of the project, indexed by task id
            options: Current sync options
            result: Result to record the outcome in
        """
        item = index.find_mapped(task_id, self.state.get_remote_id(task_id))

        if options.dry_run:
            target = item.id if item else "no item"
            result.plan(f"delete task {task_id} ({target})")
            return

        if item is None:
            self.logger.debug(f"Task {task_id} has no item in the project; dropping it from state")
            self.state.remove(task_id)
            return

        try:
            self.tracker.delete_item(self._project_id, item.id)
        except TaskSyncError as e:
            self.logger.error(f"Failed to delete item for task {task_id}: {e}")
            result.add_failed_operation("delete", task_id, str(e), item_id=item.id)
            return
        self.state.remove(task_id)
        result.deleted += 1
        self.logger.info(f"Deleted item {item.id} for removed task {task_id}")

    # -------------------------------------------------------------------------
    # Per-unit sync
    # -------------------------------------------------------------------------

    def _sync_unit(self, unit: WorkUnit, index: RemoteIndex, options: SyncOptions, result: SyncResult) -> None:
        """
        Create or update the item for one work unit.

        Lookup order is TM_ID, then the state mapping, then a single
        untracked item with the same title. Remote failures are recorded on
        the result and do not stop the run.
        """
        task = unit.as_task()
        body = self.hierarchy.render_body(unit)

        existing = index.find_mapped(task.id, self.state.get_remote_id(task.id))
        recovered = False
        if existing is None:
            matches = index.untracked_title_matches(task.title)
            if len(matches) == 1:
                existing, recovered = matches[0], True
                self.logger.info(f"Task {task.id} matches untracked item '{task.title}' by title; reusing it")
            elif len(matches) > 1:
                self.logger.warning(
                    f"Task {task.id}: {len(matches)} untracked items titled '{task.title}'; creating a new one"
                )
                result.add_warning(f"Task {task.id}: several items titled '{task.title}', created another")

        if options.dry_run:
            if existing is not None:
                how = " (title match)" if recovered else ""
                result.plan(f"update task {task.id} -> item {existing.id}{how}")
                index.claim(existing, task.id)
            else:
                result.plan(f"create task {task.id} '{task.title}'")
            return

        operation = "update" if existing is not None else "create"
        try:
            if existing is not None:
                self._update_item(existing, task, body, index, result)
            else:
                self._create_item(task, body, index, result)
        except TaskSyncError as e:
            self.logger.error(f"Failed to {operation} task {task.id}: {e}")
            result.add_failed_operation(operation, task.id, str(e), item_id=existing.id if existing else "")

    def _create_item(self, task: Task, body: str, index: RemoteIndex, result: SyncResult) -> None:
        """Create a draft item, or an issue when the tag maps to a repository, then set its fields."""
        if self.mapping.repository:
            assignee = self.field_mapper.resolve_assignee(task, self.agent_mapping)
            created = self.tracker.create_issue_item(
                self._project_id,
                self.mapping.repository,
                task.title,
                body,
                assignees=[assignee] if assignee else [],
            )
        else:
            created = self.tracker.create_draft_item(self._project_id, task.title, body)

        # Record before touching fields so a later failure cannot lose the item.
        self.state.record_synced(task.id, created.item_id, created.content_id, task)
        index.add(self._as_remote_item(created, task, body), task_id=task.id)
        result.created += 1
        self.logger.info(f"Created item {created.item_id} for task {task.id}")

        written = self._apply_fields(created.item_id, task, result)
        if IDENTITY_FIELD not in written:
            self._retry_identity_field(created.item_id, task, result)

    def _update_item(self, item: RemoteItem, task: Task, body: str, index: RemoteIndex, result: SyncResult) -> None:
        """
        Rewrite title, body and fields of an existing item.

        The content id recorded in state wins over the one listed for the
        item, as long as state points at the same item.

        Args:
            item: Existing project item
            task: Task the item represents
            body: Rendered item body
            index: Project item index; the item is claimed for the task
            result: Result to record the outcome in
        """
        metadata = self.state.get_metadata(task.id)
        content_id = None
        if metadata is not None and metadata.github_item_id == item.id:
            content_id = metadata.draft_issue_id
        content_id = content_id or item.content_id

        if content_id:
            self.tracker.update_item_content(content_id, item.content_type or "DraftIssue", task.title, body)
        else:
            self.logger.warning(f"Item {item.id} has no editable content; title and body left as they are")
            result.add_warning(f"Task {task.id}: title/body of item {item.id} not updated")

        if self.state.get_remote_id(task.id) == item.id and metadata is not None:
            self.state.update_metadata(task.id, task)
        else:
            self.state.record_synced(task.id, item.id, content_id, task)
        index.claim(item, task.id)

        self._apply_fields(item.id, task, result)
        result.updated += 1
        self.logger.info(f"Updated item {item.id} for task {task.id}")

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def _field_id(self, name: str) -> str | None:
        """Field id by name; an unknown name refreshes the cache once per run."""
        field_id = self.field_mapper.cache.get_field_id(name)
        if field_id is None and name not in self._missing_fields_refreshed:
            self._missing_fields_refreshed.add(name)
            self.logger.debug(f"Field '{name}' not cached; refreshing fields")
            self.field_mapper.refresh_fields(self.tracker, self._project_id)
            field_id = self.field_mapper.cache.get_field_id(name)
        return field_id

    def _write_field(self, item_id: str, name: str, value: str) -> bool:
        """
        Set one field value on an item.

        Returns:
            False if the field does not exist in the project

        Raises:
            TaskSyncError: If the option cannot be created or the update fails
        """
        field_id = self._field_id(name)
        if field_id is None:
            self.logger.warning(f"Field '{name}' does not exist in the project")
            return False
        payload = self.field_mapper.format_field_value(self.tracker, self._project_id, name, value)
        self.tracker.update_field_value(self._project_id, item_id, field_id, payload)
        return True

    def _apply_fields(self, item_id: str, task: Task, result: SyncResult) -> set[str]:
        """
        Write every mapped field. Failures are reported as warnings.

        Returns:
            Names of the fields that were written
        """
        written: set[str] = set()
        mapping_errors: list[FieldSchemaError] = []
        values = self.field_mapper.map_task_to_github(task, errors=mapping_errors)
        for e in mapping_errors:
            self.logger.error(f"Failed to map a field of task {task.id}: {e}")
            result.add_warning(f"Task {task.id}: {e}")

        first = True
        for name, value in values.items():
            cached = self.field_mapper.cache.get(name)
            if value == "" and cached is not None and cached.data_type == FieldDataType.SINGLE_SELECT:
                continue
            if not first:
                self._sleep(self.field_update_delay)
            first = False
            try:
                if self._write_field(item_id, name, value):
                    written.add(name)
            except TaskSyncError as e:
                self.logger.error(f"Failed to set field '{name}' on item {item_id}: {e}")
                result.add_warning(f"Task {task.id}: field '{name}' not set: {e}")
        return written

    def _retry_identity_field(self, item_id: str, task: Task, result: SyncResult) -> None:
        """Second attempt at TM_ID; without it the next run would duplicate the item."""
        self.logger.warning(f"{IDENTITY_FIELD} not set on item {item_id}; retrying")
        self._sleep(self.field_update_delay)
        try:
            if self._write_field(item_id, IDENTITY_FIELD, task.id):
                return
        except TaskSyncError as e:
            self.logger.error(f"Retry of {IDENTITY_FIELD} on item {item_id} failed: {e}")
        self.logger.critical(
            f"Item {item_id} for task {task.id} has no {IDENTITY_FIELD}; it will be duplicated on the next run"
        )
        result.add_warning(f"CRITICAL: task {task.id} item {item_id} is missing {IDENTITY_FIELD}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve_project_id(self) -> str:
        if not self._project_id:
            self._project_id = self.tracker.get_project_id(self.config.organization, self.mapping.project_number)
            self.logger.info(f"Resolved project {self.mapping.project_number} to {self._project_id}")
        return self._project_id

    @staticmethod
    def _as_remote_item(created: CreatedItem, task: Task, body: str) -> RemoteItem:
        return RemoteItem(
            id=created.item_id,
            title=task.title,
            body=body,
            content_id=created.content_id,
            content_type=created.content_type,
            field_values=[FieldValue(field_id="", field_name=IDENTITY_FIELD, value=task.id)],
        )

    def _report_progress(
        self,
        callback: Callable[[str, int, int], None] | None,
        phase: str,
        current: int,
        total: int,
    ) -> None:
        if callback:
            callback(phase, current, total)
        self.logger.debug(f"Phase {current}/{total}: {phase}")
