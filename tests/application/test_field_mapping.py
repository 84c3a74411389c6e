"""
Tests for field mapping and the project field schema.
"""

from datetime import date, datetime, timezone

import pytest

from taskmaster_sync.application.sync.field_mapping import (
    DATE_FORMATTER,
    REQUIRED_FIELDS,
    STATUS_MAPPER,
    FieldMapper,
    FieldMapping,
    FieldTransformer,
    default_options_for,
    format_date,
    transform_priority,
    transform_status,
)
from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import FieldDataType
from taskmaster_sync.core.exceptions import FieldSchemaError, InvalidTaskFormatError


PROJECT = "PVT_1"


@pytest.fixture
def mapper():
    return FieldMapper()


# =============================================================================
# Transformers
# =============================================================================


class TestTransformers:
    """Tests for the built-in value transformers."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("pending", "Todo"),
            ("in-progress", "In Progress"),
            ("review", "QA Review"),
            ("qa-review", "QA Review"),
            ("done", "QA Review"),
            ("completed", "QA Review"),
            ("blocked", "Blocked"),
            ("DONE", "QA Review"),
        ],
    )
    def test_status(self, status, expected):
        assert transform_status(status) == expected

    def test_unknown_status_passes_through(self):
        assert transform_status("deferred") == "deferred"

    def test_priority_is_lowercased(self):
        assert transform_priority("HIGH") == "high"

    @pytest.mark.parametrize(
        "value,expected",
        [
            (date(2026, 3, 4), "2026-03-04"),
            (datetime(2026, 3, 4, 23, 0, tzinfo=timezone.utc), "2026-03-04"),
            ("2026-03-04T10:00:00Z", "2026-03-04"),
            ("next week", "next week"),
        ],
    )
    def test_format_date(self, value, expected):
        assert format_date(value) == expected

    def test_transformer_str(self):
        assert str(STATUS_MAPPER) == "status"
        assert str(FieldTransformer.custom("upper")) == "custom:upper"

    def test_default_options(self):
        assert [o.name for o in default_options_for("Status")] == [
            "Todo",
            "In Progress",
            "QA Review",
            "Done",
            "Blocked",
        ]
        assert [o.name for o in default_options_for("Size")] == ["Default"]


# =============================================================================
# Registry
# =============================================================================


class TestMappingRegistry:
    """Tests for mapping validation and configuration."""

    def test_defaults_cover_identity_field(self, mapper):
        assert mapper.get_mapping("id").remote_field == "TM_ID"
        assert mapper.find_by_remote_field("Agent").local_field == "assignee"

    def test_incompatible_transformer_rejected(self, mapper):
        with pytest.raises(FieldSchemaError, match="not compatible"):
            mapper.add_mapping(FieldMapping("estimate", "Estimate", FieldDataType.NUMBER, STATUS_MAPPER))

    def test_date_transformer_on_text(self, mapper):
        mapper.add_mapping(FieldMapping("due", "Due", FieldDataType.TEXT, DATE_FORMATTER))
        assert mapper.get_mapping("due").transformer == DATE_FORMATTER

    def test_unknown_custom_transformer_rejected(self, mapper):
        with pytest.raises(FieldSchemaError, match="unknown custom transformer"):
            mapper.add_mapping(FieldMapping("title", "Title", FieldDataType.TEXT, FieldTransformer.custom("upper")))

    def test_registered_custom_transformer(self, mapper):
        mapper.register_transformer("upper", str.upper)
        mapper.add_mapping(FieldMapping("title", "Title", FieldDataType.TEXT, FieldTransformer.custom("upper")))
        assert mapper.map_task_to_github(Task(id="1", title="abc"))["Title"] == "ABC"

    def test_second_mapping_of_id_keeps_identity_field(self, mapper):
        mapper.add_mapping(FieldMapping("id", "Task Number", FieldDataType.TEXT))

        values = mapper.map_task_to_github(Task(id="7", title="t"))
        assert values["TM_ID"] == "7"
        assert values["Task Number"] == "7"

    @pytest.mark.parametrize(
        "mapping",
        [
            FieldMapping("title", "TM_ID", FieldDataType.TEXT),
            FieldMapping("id", "TM_ID", FieldDataType.TEXT, DATE_FORMATTER),
        ],
    )
    def test_identity_field_only_holds_task_id(self, mapper, mapping):
        with pytest.raises(FieldSchemaError, match="TM_ID"):
            mapper.add_mapping(mapping)
        assert mapper.find_by_remote_field("TM_ID").local_field == "id"

    def test_failing_custom_transformer_raises_schema_error(self, mapper):
        def reject(value):
            raise ValueError("bad value")

        mapper.register_transformer("reject", reject)
        mapper.add_mapping(FieldMapping("title", "Notes", FieldDataType.TEXT, FieldTransformer.custom("reject")))

        with pytest.raises(FieldSchemaError, match="reject") as exc_info:
            mapper.map_task_to_github(Task(id="1", title="t"))
        assert isinstance(exc_info.value.cause, ValueError)

    def test_failing_custom_transformer_collected(self, mapper):
        mapper.register_transformer("reject", lambda value: 1 / 0)
        mapper.add_mapping(FieldMapping("title", "Notes", FieldDataType.TEXT, FieldTransformer.custom("reject")))
        errors = []

        values = mapper.map_task_to_github(Task(id="1", title="t"), errors=errors)

        assert "Notes" not in values
        assert values["TM_ID"] == "1"
        assert len(errors) == 1

    def test_init_mappings_adds_identity_field(self, mapper):
        mapper.init_mappings({"status": "Status", "title": "Title"})

        assert {m.remote_field for m in mapper.mappings} == {"Status", "Title", "TM_ID"}
        status = mapper.find_by_remote_field("Status")
        assert status.data_type == FieldDataType.SINGLE_SELECT
        assert status.transformer == STATUS_MAPPER
        assert mapper.find_by_remote_field("Title").data_type == FieldDataType.TEXT


# =============================================================================
# Task values
# =============================================================================


class TestMapTaskToGithub:
    """Tests for map_task_to_github."""

    def test_full_task(self, mapper, sample_tasks):
        assert mapper.map_task_to_github(sample_tasks[0]) == {
            "TM_ID": "1",
            "Status": "QA Review",
            "Priority": "high",
            "Dependencies": "",
            "Test Strategy": "CI is green",
        }

    def test_dependencies_joined_with_commas(self, mapper):
        task = Task(id="5", title="t", dependencies=["1", "3"])
        assert mapper.map_task_to_github(task)["Dependencies"] == "1,3"

    def test_absent_values_are_omitted(self, mapper):
        values = mapper.map_task_to_github(Task(id="1", title="t"))
        assert "Priority" not in values
        assert "Agent" not in values
        assert "Test Strategy" not in values


class TestResolveAssignee:
    """Tests for resolve_assignee."""

    AGENTS = {"claude": "claude-bot", "qa": "qa-bot"}

    def test_done_task_goes_to_qa(self):
        task = Task(id="1", title="t", status="done", assignee="claude")
        assert FieldMapper.resolve_assignee(task, self.AGENTS) == "qa-bot"

    def test_active_task_uses_assignee(self):
        task = Task(id="1", title="t", status="in-progress", assignee="claude")
        assert FieldMapper.resolve_assignee(task, self.AGENTS) == "claude-bot"

    def test_unmapped_assignee(self):
        task = Task(id="1", title="t", assignee="someone")
        assert FieldMapper.resolve_assignee(task, self.AGENTS) is None

    def test_review_without_qa_agent(self):
        task = Task(id="1", title="t", status="review", assignee="claude")
        assert FieldMapper.resolve_assignee(task, {"claude": "claude-bot"}) == "claude-bot"


# =============================================================================
# Remote schema
# =============================================================================


class TestEnsureRequiredFields:
    """Tests for ensure_required_fields."""

    def test_creates_missing_fields(self, mapper, tracker):
        created = mapper.ensure_required_fields(tracker, PROJECT)

        assert created == [f.name for f in REQUIRED_FIELDS]
        assert len(tracker.calls_to("create_field")) == 6
        assert [o.name for o in tracker.fields["Priority"].options] == ["high", "medium", "low"]
        assert mapper.cache.get_field_id("TM_ID") == tracker.fields["TM_ID"].id

    def test_existing_fields_untouched(self, mapper, tracker):
        tracker.add_field("TM_ID")
        tracker.add_field("Status", FieldDataType.SINGLE_SELECT, ["Todo"])

        created = mapper.ensure_required_fields(tracker, PROJECT)

        assert "TM_ID" not in created
        assert "Status" not in created
        assert len(created) == 4

    def test_nothing_missing(self, mapper, tracker):
        for required in REQUIRED_FIELDS:
            tracker.add_field(required.name, required.data_type)
        assert mapper.ensure_required_fields(tracker, PROJECT) == []
        assert tracker.mutation_count == 0

    def test_dry_run_creates_nothing(self, mapper, tracker):
        created = mapper.ensure_required_fields(tracker, PROJECT, dry_run=True)
        assert len(created) == 6
        assert tracker.mutation_count == 0


class TestEnsureOptionExists:
    """Tests for ensure_option_exists."""

    @pytest.fixture
    def agent_field(self, mapper, tracker):
        field = tracker.add_field("Agent", FieldDataType.SINGLE_SELECT, ["Unassigned"])
        mapper.refresh_fields(tracker, PROJECT)
        return field

    def test_existing_option_case_insensitive(self, mapper, tracker, agent_field):
        assert mapper.ensure_option_exists(tracker, PROJECT, "Agent", "unassigned") == agent_field.options[0].id
        assert tracker.calls_to("create_field_option") == []

    def test_missing_option_created(self, mapper, tracker, agent_field):
        option_id = mapper.ensure_option_exists(tracker, PROJECT, "Agent", "claude")

        assert tracker.calls_to("create_field_option") == [(PROJECT, "Agent", "claude")]
        assert option_id == tracker.fields["Agent"].find_option("claude").id

        mapper.ensure_option_exists(tracker, PROJECT, "Agent", "claude")
        assert len(tracker.calls_to("create_field_option")) == 1

    def test_unknown_field(self, mapper, tracker):
        mapper.refresh_fields(tracker, PROJECT)
        with pytest.raises(FieldSchemaError):
            mapper.ensure_option_exists(tracker, PROJECT, "Agent", "claude")


class TestFormatFieldValue:
    """Tests for format_field_value payloads."""

    @pytest.fixture(autouse=True)
    def schema(self, mapper, tracker):
        tracker.add_field("Notes")
        tracker.add_field("Estimate", FieldDataType.NUMBER)
        tracker.add_field("Due", FieldDataType.DATE)
        tracker.add_field("Sprint", FieldDataType.ITERATION)
        tracker.add_field("Priority", FieldDataType.SINGLE_SELECT, ["high"])
        mapper.refresh_fields(tracker, PROJECT)

    def test_text(self, mapper, tracker):
        assert mapper.format_field_value(tracker, PROJECT, "Notes", "hi") == {"text": "hi"}

    def test_number(self, mapper, tracker):
        assert mapper.format_field_value(tracker, PROJECT, "Estimate", "3") == {"number": 3.0}

    def test_bad_number(self, mapper, tracker):
        with pytest.raises(InvalidTaskFormatError):
            mapper.format_field_value(tracker, PROJECT, "Estimate", "three")

    def test_date(self, mapper, tracker):
        assert mapper.format_field_value(tracker, PROJECT, "Due", "2026-05-01T08:00:00Z") == {"date": "2026-05-01"}

    def test_iteration(self, mapper, tracker):
        assert mapper.format_field_value(tracker, PROJECT, "Sprint", "IT_1") == {"iterationId": "IT_1"}

    def test_single_select(self, mapper, tracker):
        option_id = tracker.fields["Priority"].options[0].id
        assert mapper.format_field_value(tracker, PROJECT, "Priority", "high") == {"singleSelectOptionId": option_id}

    def test_unknown_field(self, mapper, tracker):
        with pytest.raises(FieldSchemaError):
            mapper.format_field_value(tracker, PROJECT, "Missing", "x")
