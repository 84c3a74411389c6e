"""
Project Maintenance - Prepare a project for syncing and clean up after it.

``setup_project`` creates the required fields and the QA workflow status
options without syncing any task. ``clean_duplicates`` finds items that
represent the same task more than once (repeated identity values, or an
untracked copy of a tracked item's title) and optionally deletes the extra
copies. Neither operation reads the task file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from taskmaster_sync.core.exceptions import ConfigError, TaskSyncError
from taskmaster_sync.core.ports.config_provider import ProjectMapping, SyncConfig
from taskmaster_sync.core.ports.project_tracker import FieldOption, ProjectTrackerPort, RemoteItem

from .field_mapping import DEFAULT_FIELD_OPTIONS, IDENTITY_FIELD, FieldMapper
from .state import StateTracker


STATUS_FIELD = "Status"


def identity_of(item: RemoteItem) -> str | None:
    value = item.get_field_value(IDENTITY_FIELD)
    return str(value) if value not in (None, "") else None


@dataclass
class DuplicateReport:
    """
    Duplicate analysis of one project.

    ``by_identity`` and ``by_title`` only hold groups with more than one
    item. ``redundant`` lists the items a cleanup deletes, in order.
    """

    total_items: int = 0
    without_identity: list[RemoteItem] = field(default_factory=list)
    by_identity: dict[str, list[RemoteItem]] = field(default_factory=dict)
    by_title: dict[str, list[RemoteItem]] = field(default_factory=dict)
    redundant: list[RemoteItem] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.by_identity and not self.by_title and not self.without_identity


def find_duplicates(items: list[RemoteItem], keep_ids: set[str] | None = None) -> DuplicateReport:
    """
    Group items by identity value and by title.

    Within an identity group the item in ``keep_ids`` survives, else the
    first listed one. An item without an identity value is redundant when
    another item with the same title carries one. Items in ``keep_ids`` are
    never redundant.

    Args:
        items: Every item of the project
        keep_ids: Item ids the sync state maps a task to
    """
    keep_ids = keep_ids or set()
    identity_groups: dict[str, list[RemoteItem]] = {}
    title_groups: dict[str, list[RemoteItem]] = {}
    report = DuplicateReport(total_items=len(items))

    for item in items:
        identity = identity_of(item)
        if identity is None:
            report.without_identity.append(item)
        else:
            identity_groups.setdefault(identity, []).append(item)
        title_groups.setdefault(item.title, []).append(item)

    for identity, group in identity_groups.items():
        if len(group) < 2:
            continue
        report.by_identity[identity] = group
        keep = next((item for item in group if item.id in keep_ids), group[0])
        report.redundant.extend(item for item in group if item is not keep and item.id not in keep_ids)

    for item in report.without_identity:
        if item.id in keep_ids:
            continue
        if any(identity_of(other) for other in title_groups[item.title]):
            report.redundant.append(item)

    report.by_title = {title: group for title, group in title_groups.items() if len(group) > 1}
    return report


@dataclass
class CleanupResult:
    """Outcome of ``clean_duplicates``."""

    report: DuplicateReport
    dry_run: bool = True
    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class SetupResult:
    """Outcome of ``setup_project``."""

    project_id: str
    fields_created: list[str] = field(default_factory=list)
    options_added: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ProjectMaintenance:
    """
    Maintenance operations on the project a tag is mapped to.

    Raises:
        ConfigError: If the organization is empty or the tag has no mapping
    """

    def __init__(
        self,
        tracker: ProjectTrackerPort,
        config: SyncConfig,
        tag: str,
        field_mapper: FieldMapper | None = None,
        state_tracker: StateTracker | None = None,
    ):
        if not config.organization:
            raise ConfigError("organization is required")
        self.tracker = tracker
        self.config = config
        self.tag = tag
        self.mapping: ProjectMapping = config.get_mapping(tag)
        self.field_mapper = field_mapper or FieldMapper()
        self.state = state_tracker or StateTracker(config.state_file(tag))
        self.logger = logging.getLogger("ProjectMaintenance")
        self._project_id = self.mapping.project_id

    @property
    def project_id(self) -> str:
        if not self._project_id:
            self._project_id = self.tracker.get_project_id(self.config.organization, self.mapping.project_number)
            self.logger.info(f"Resolved project {self.mapping.project_number} to {self._project_id}")
        return self._project_id

    def setup_project(self) -> SetupResult:
        """
        Create missing required fields and QA workflow status options.

        A project's built-in Status field already exists, so it is not
        recreated; only the options it lacks are added. A failed option is a
        warning, since it can be added by hand in the GitHub UI.

        Raises:
            RemoteError: If listing or creating fields fails
        """
        result = SetupResult(project_id=self.project_id)
        result.fields_created = self.field_mapper.ensure_required_fields(self.tracker, self.project_id)

        status = self.field_mapper.cache.get(STATUS_FIELD)
        if status is None:
            result.warnings.append(f"Field '{STATUS_FIELD}' not found in the project")
            return result

        for option in DEFAULT_FIELD_OPTIONS[STATUS_FIELD]:
            if status.find_option(option.name) is not None:
                continue
            try:
                self.tracker.create_field_option(self.project_id, status, option.name, color=option.color)
            except TaskSyncError as e:
                self.logger.warning(f"Could not add status option '{option.name}': {e}")
                result.warnings.append(f"Add the '{option.name}' status option manually: {e}")
                continue
            # The next option update resends this list.
            status.options.append(FieldOption(id="", name=option.name, color=option.color))
            result.options_added.append(option.name)
            self.logger.info(f"Added status option '{option.name}'")

        if result.options_added:
            self.field_mapper.refresh_fields(self.tracker, self.project_id)
        return result

    def find_duplicates(self) -> DuplicateReport:
        items = self.tracker.list_items(self.project_id)
        return find_duplicates(items, keep_ids=self.state.get_mapped_remote_ids())

    def clean_duplicates(self, delete: bool = False) -> CleanupResult:
        """
        Analyse duplicates and, with ``delete``, remove the redundant items.

        Failed deletions are collected; the remaining items are still tried.
        """
        report = self.find_duplicates()
        result = CleanupResult(report=report, dry_run=not delete)
        if not delete:
            return result

        for item in report.redundant:
            try:
                self.tracker.delete_item(self.project_id, item.id)
            except TaskSyncError as e:
                self.logger.error(f"Failed to delete duplicate item {item.id} '{item.title}': {e}")
                result.errors.append(f"{item.id} '{item.title}': {e}")
                continue
            result.deleted.append(item.id)
            self.logger.info(f"Deleted duplicate item {item.id} '{item.title}'")
        return result
