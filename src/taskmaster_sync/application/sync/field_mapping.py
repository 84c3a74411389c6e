"""
Field Mapping - Translate Taskmaster task fields into project field values.

A FieldMapping says which project field a task field lands in, what type
that field has and how the value is transformed on the way. The mapper also
owns a cache of the project's field schema and creates single-select
options on demand, since GitHub rejects values that are not registered
options.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import FieldDataType, TransformerKind
from taskmaster_sync.core.exceptions import FieldSchemaError, InvalidTaskFormatError
from taskmaster_sync.core.ports.project_tracker import FieldOption, ProjectField, ProjectTrackerPort


IDENTITY_FIELD = "TM_ID"

STATUS_MAP = {
    "pending": "Todo",
    "in-progress": "In Progress",
    "review": "QA Review",
    "qa": "QA Review",
    "qa-review": "QA Review",
    # Automation never marks work Done; a human moves it out of QA Review.
    "done": "QA Review",
    "completed": "QA Review",
    "blocked": "Blocked",
}

DEFAULT_FIELD_OPTIONS: dict[str, list[FieldOption]] = {
    "Priority": [
        FieldOption(id="", name="high", color="RED"),
        FieldOption(id="", name="medium", color="YELLOW"),
        FieldOption(id="", name="low", color="GREEN"),
    ],
    "Status": [
        FieldOption(id="", name="Todo", color="GRAY"),
        FieldOption(id="", name="In Progress", color="YELLOW"),
        FieldOption(id="", name="QA Review", color="BLUE"),
        FieldOption(id="", name="Done", color="GREEN"),
        FieldOption(id="", name="Blocked", color="RED"),
    ],
    "Agent": [FieldOption(id="", name="Unassigned", color="GRAY")],
}
FALLBACK_OPTIONS = [FieldOption(id="", name="Default", color="GRAY")]


def default_options_for(field_name: str) -> list[FieldOption]:
    """Initial options for a new single-select field, chosen by its name."""
    return [FieldOption(id="", name=o.name, color=o.color) for o in DEFAULT_FIELD_OPTIONS.get(field_name, FALLBACK_OPTIONS)]


@dataclass(frozen=True)
class FieldTransformer:
    """Transformation applied to a value before it is written."""

    kind: TransformerKind
    name: str | None = None

    @classmethod
    def custom(cls, name: str) -> FieldTransformer:
        return cls(TransformerKind.CUSTOM, name)

    def __str__(self) -> str:
        if self.kind == TransformerKind.CUSTOM:
            return f"custom:{self.name}"
        return self.kind.value


STATUS_MAPPER = FieldTransformer(TransformerKind.STATUS)
PRIORITY_MAPPER = FieldTransformer(TransformerKind.PRIORITY)
DATE_FORMATTER = FieldTransformer(TransformerKind.DATE)


# Which transformers each field type accepts; None means "no transformer".
COMPATIBLE_TRANSFORMERS: dict[FieldDataType, frozenset[TransformerKind | None]] = {
    FieldDataType.TEXT: frozenset({None, TransformerKind.DATE, TransformerKind.CUSTOM}),
    FieldDataType.NUMBER: frozenset({None}),
    FieldDataType.DATE: frozenset({None, TransformerKind.DATE}),
    FieldDataType.SINGLE_SELECT: frozenset({None, TransformerKind.STATUS, TransformerKind.PRIORITY}),
    FieldDataType.ITERATION: frozenset({None}),
}


@dataclass(frozen=True)
class FieldMapping:
    """Where one task field goes on the project board."""

    local_field: str
    remote_field: str
    data_type: FieldDataType
    transformer: FieldTransformer | None = None


@dataclass(frozen=True)
class RequiredField:
    name: str
    data_type: FieldDataType
    description: str


REQUIRED_FIELDS = (
    RequiredField(IDENTITY_FIELD, FieldDataType.TEXT, "Taskmaster task id"),
    RequiredField("Dependencies", FieldDataType.TEXT, "Comma-separated task ids"),
    RequiredField("Test Strategy", FieldDataType.TEXT, "How the task is verified"),
    RequiredField("Priority", FieldDataType.SINGLE_SELECT, "Task priority"),
    RequiredField("Agent", FieldDataType.SINGLE_SELECT, "Assigned agent"),
    RequiredField("Status", FieldDataType.SINGLE_SELECT, "Workflow status"),
)

DEFAULT_MAPPINGS = (
    FieldMapping("id", IDENTITY_FIELD, FieldDataType.TEXT),
    FieldMapping("status", "Status", FieldDataType.SINGLE_SELECT, STATUS_MAPPER),
    FieldMapping("priority", "Priority", FieldDataType.SINGLE_SELECT, PRIORITY_MAPPER),
    FieldMapping("dependencies", "Dependencies", FieldDataType.TEXT),
    FieldMapping("testStrategy", "Test Strategy", FieldDataType.TEXT),
    FieldMapping("assignee", "Agent", FieldDataType.SINGLE_SELECT),
)

SINGLE_SELECT_FIELDS = frozenset({"Status", "Priority", "Agent"})


def transform_status(status: str) -> str:
    """Map a Taskmaster status to a board status; unknown values pass through."""
    return STATUS_MAP.get(status.lower(), status)


def transform_priority(priority: str) -> str:
    return priority.lower()


def format_date(value: Any) -> str:
    """Render a date, datetime or ISO string as YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return text


class FieldCache:
    """
    Project field schema, keyed by field name.

    Populated from the remote side and refreshed on misses.
    """

    def __init__(self) -> None:
        self._fields: dict[str, ProjectField] = {}
        self.loaded = False

    def set_fields(self, fields: list[ProjectField]) -> None:
        self._fields = {f.name: f for f in fields}
        self.loaded = True

    def get(self, name: str) -> ProjectField | None:
        return self._fields.get(name)

    def get_field_id(self, name: str) -> str | None:
        field = self._fields.get(name)
        return field.id if field else None

    def get_option_id(self, field_name: str, option_name: str) -> str | None:
        field = self._fields.get(field_name)
        if field is None:
            return None
        option = field.find_option(option_name)
        return option.id if option else None

    def names(self) -> set[str]:
        return set(self._fields)

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)


class FieldMapper:
    """
    Registry of field mappings plus the project's field cache.

    Example:
        >>> mapper = FieldMapper()
        >>> mapper.map_task_to_github(Task(id="1", title="t", status="done"))
        {'TM_ID': '1', 'Status': 'QA Review', 'Dependencies': ''}
    """

    def __init__(
        self,
        mappings: list[FieldMapping] | None = None,
        custom_transformers: dict[str, Callable[[Any], str]] | None = None,
    ):
        self.logger = logging.getLogger("FieldMapper")
        self.custom_transformers = dict(custom_transformers or {})
        self.cache = FieldCache()
        self._mappings: dict[str, FieldMapping] = {}
        for mapping in mappings if mappings is not None else DEFAULT_MAPPINGS:
            self.add_mapping(mapping)

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def validate_mapping(self, mapping: FieldMapping) -> None:
        """
        Check that the mapping's type and transformer go together.

        Raises:
            FieldSchemaError: On an incompatible pair, an unknown custom
                transformer, or an identity field fed by anything but the task id
        """
        if mapping.remote_field == IDENTITY_FIELD and (mapping.local_field != "id" or mapping.transformer):
            raise FieldSchemaError(f"Field '{IDENTITY_FIELD}' can only hold the untransformed task id")
        kind = mapping.transformer.kind if mapping.transformer else None
        if kind not in COMPATIBLE_TRANSFORMERS[mapping.data_type]:
            raise FieldSchemaError(
                f"Field '{mapping.remote_field}': transformer '{mapping.transformer}' "
                f"is not compatible with type {mapping.data_type.value}"
            )
        if kind == TransformerKind.CUSTOM and mapping.transformer.name not in self.custom_transformers:
            raise FieldSchemaError(
                f"Field '{mapping.remote_field}': unknown custom transformer '{mapping.transformer.name}'"
            )

    def add_mapping(self, mapping: FieldMapping) -> None:
        """Add or replace the mapping that feeds ``mapping.remote_field``."""
        self.validate_mapping(mapping)
        self._mappings[mapping.remote_field] = mapping

    def register_transformer(self, name: str, func: Callable[[Any], str]) -> None:
        self.custom_transformers[name] = func

    def get_mapping(self, local_field: str) -> FieldMapping | None:
        for mapping in self._mappings.values():
            if mapping.local_field == local_field:
                return mapping
        return None

    def find_by_remote_field(self, remote_field: str) -> FieldMapping | None:
        return self._mappings.get(remote_field)

    @property
    def mappings(self) -> list[FieldMapping]:
        return list(self._mappings.values())

    def init_mappings(self, field_mappings: dict[str, str]) -> None:
        """
        Replace the registry with mappings from configuration.

        Status, Priority and Agent become single-select fields with their
        usual transformer; every other field is plain text.
        """
        self._mappings = {}
        for local_field, remote_field in field_mappings.items():
            if remote_field in SINGLE_SELECT_FIELDS:
                transformer = {"Status": STATUS_MAPPER, "Priority": PRIORITY_MAPPER}.get(remote_field)
                mapping = FieldMapping(local_field, remote_field, FieldDataType.SINGLE_SELECT, transformer)
            else:
                mapping = FieldMapping(local_field, remote_field, FieldDataType.TEXT)
            self.add_mapping(mapping)
        if IDENTITY_FIELD not in self._mappings:
            self.logger.warning(f"Configured field mappings do not include {IDENTITY_FIELD}; adding it")
            self.add_mapping(FieldMapping("id", IDENTITY_FIELD, FieldDataType.TEXT))

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def _apply_transformer(self, transformer: FieldTransformer | None, value: Any) -> str:
        if transformer is None:
            return str(value)
        if transformer.kind == TransformerKind.STATUS:
            return transform_status(str(value))
        if transformer.kind == TransformerKind.PRIORITY:
            return transform_priority(str(value))
        if transformer.kind == TransformerKind.DATE:
            return format_date(value)
        try:
            return str(self.custom_transformers[transformer.name](value))
        except Exception as e:
            raise FieldSchemaError(f"Custom transformer '{transformer.name}' failed on {value!r}", cause=e) from e

    def map_task_to_github(self, task: Task, errors: list[FieldSchemaError] | None = None) -> dict[str, str]:
        """
        Project field name -> value for every mapped field the task has.

        Absent optional values are left out rather than defaulted.
        Dependencies are joined with commas.

        Args:
            task: Task to map
            errors: When given, fields whose transformer fails are left out
                and their errors appended here instead of raised

        Raises:
            FieldSchemaError: If a transformer fails and ``errors`` is None
        """
        values: dict[str, str] = {}
        for mapping in self._mappings.values():
            raw = task.field_value(mapping.local_field)
            if raw is None:
                continue
            if isinstance(raw, list):
                raw = ",".join(str(item) for item in raw)
            try:
                values[mapping.remote_field] = self._apply_transformer(mapping.transformer, raw)
            except FieldSchemaError as e:
                if errors is None:
                    raise
                errors.append(e)
        return values

    @staticmethod
    def resolve_assignee(task: Task, agent_mapping: dict[str, str]) -> str | None:
        """
        GitHub login an issue should be assigned to.

        Tasks waiting in QA Review go to the "qa" agent's account.
        """
        if transform_status(task.status) == "QA Review" and "qa" in agent_mapping:
            return agent_mapping["qa"]
        if task.assignee:
            return agent_mapping.get(task.assignee)
        return None

    # -------------------------------------------------------------------------
    # Remote schema
    # -------------------------------------------------------------------------

    def refresh_fields(self, tracker: ProjectTrackerPort, project_id: str) -> None:
        self.cache.set_fields(tracker.get_fields(project_id))
        self.logger.debug(f"Field cache refreshed: {len(self.cache)} fields")

    def missing_required_fields(self) -> list[RequiredField]:
        return [f for f in REQUIRED_FIELDS if f.name not in self.cache]

    def ensure_required_fields(self, tracker: ProjectTrackerPort, project_id: str, dry_run: bool = False) -> list[str]:
        """
        Create any required field the project lacks.

        Returns:
            Names of the fields created (or that would be, in dry-run)
        """
        if not self.cache.loaded:
            self.refresh_fields(tracker, project_id)

        missing = self.missing_required_fields()
        if not missing:
            return []
        if dry_run:
            for required in missing:
                self.logger.info(f"[DRY-RUN] Would create field '{required.name}'")
            return [f.name for f in missing]

        for required in missing:
            options = default_options_for(required.name) if required.data_type == FieldDataType.SINGLE_SELECT else None
            tracker.create_field(project_id, required.name, required.data_type, options)
            self.logger.info(f"Created field '{required.name}' ({required.data_type.value})")
        self.refresh_fields(tracker, project_id)
        return [f.name for f in missing]

    def ensure_option_exists(self, tracker: ProjectTrackerPort, project_id: str, field_name: str, value: str) -> str:
        """
        Option id for ``value`` on a single-select field, creating it if needed.

        Raises:
            FieldSchemaError: If the field does not exist, or the option is
                still missing after creation
        """
        option_id = self.cache.get_option_id(field_name, value)
        if option_id:
            return option_id

        field = self.cache.get(field_name)
        if field is None:
            raise FieldSchemaError(f"Field '{field_name}' does not exist in the project")

        self.logger.info(f"Creating option '{value}' on field '{field_name}'")
        tracker.create_field_option(project_id, field, value, color="GRAY")
        self.refresh_fields(tracker, project_id)

        option_id = self.cache.get_option_id(field_name, value)
        if not option_id:
            raise FieldSchemaError(f"Option '{value}' was not created on field '{field_name}'")
        return option_id

    def format_field_value(
        self, tracker: ProjectTrackerPort, project_id: str, field_name: str, value: str
    ) -> dict[str, Any]:
        """
        Build the typed value payload for a field.

        Raises:
            FieldSchemaError: If the field is unknown
            InvalidTaskFormatError: If a number field receives a non-number
        """
        field = self.cache.get(field_name)
        if field is None:
            raise FieldSchemaError(f"Field '{field_name}' does not exist in the project")

        data_type = field.data_type
        if data_type == FieldDataType.SINGLE_SELECT:
            return {"singleSelectOptionId": self.ensure_option_exists(tracker, project_id, field_name, value)}
        if data_type == FieldDataType.NUMBER:
            try:
                return {"number": float(value)}
            except ValueError as e:
                raise InvalidTaskFormatError(f"Field '{field_name}' expects a number, got '{value}'") from e
        if data_type == FieldDataType.DATE:
            return {"date": format_date(value)}
        if data_type == FieldDataType.ITERATION:
            return {"iterationId": value}
        return {"text": value}
