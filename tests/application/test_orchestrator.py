"""
Tests for SyncOrchestrator - end-to-end runs against an in-memory board.
"""

import pytest
from conftest import FakeProjectTracker, sample_task_dicts, write_task_file

from taskmaster_sync.adapters.taskmaster import TaskmasterReader
from taskmaster_sync.application.sync import SyncOptions, SyncOrchestrator, SyncResult
from taskmaster_sync.application.sync.field_mapping import FieldMapper, FieldMapping, FieldTransformer
from taskmaster_sync.application.sync.state import StateTracker
from taskmaster_sync.core.domain.entities import Task
from taskmaster_sync.core.domain.enums import FieldDataType, SubtaskMode, SyncDirection
from taskmaster_sync.core.exceptions import (
    ConfigError,
    DependencyCycleError,
    SyncDirectionNotSupportedError,
    TagNotFoundError,
)
from taskmaster_sync.core.ports.config_provider import AgentMapping, ProjectMapping, SyncConfig
from taskmaster_sync.core.ports.task_source import TaskSourcePort


FULL = SyncOptions(force_full=True)


class StaticTaskSource(TaskSourcePort):
    def __init__(self, tasks):
        self.tasks = tasks

    def load_tasks(self):
        return self.tasks


# =============================================================================
# Options & result
# =============================================================================


class TestSyncOptions:
    """Tests for SyncOptions."""

    @pytest.mark.parametrize(
        "force_full,use_delta,expected",
        [(False, True, True), (True, True, False), (False, False, False)],
    )
    def test_delta_enabled(self, force_full, use_delta, expected):
        assert SyncOptions(force_full=force_full, use_delta=use_delta).delta_enabled is expected


class TestSyncResult:
    """Tests for SyncResult bookkeeping."""

    def test_failed_operation_is_an_error(self):
        result = SyncResult(tag="master")
        result.add_failed_operation("create", "2", "boom")
        assert not result.success
        assert result.errors == ["[create] task 2: boom"]

    def test_plan_counts_as_skipped(self):
        result = SyncResult(dry_run=True)
        result.plan("create task 1")
        assert result.skipped == 1
        assert result.planned_operations == ["create task 1"]

    def test_summary(self):
        result = SyncResult(tag="master", mode="delta", created=2, unchanged=1)
        summary = result.summary()
        assert "Sync of 'master' completed (delta mode)" in summary
        assert "Created: 2" in summary
        assert "Unchanged: 1" in summary


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    """Tests for orchestrator preconditions."""

    def test_empty_organization(self, tracker, sync_config):
        sync_config.organization = ""
        with pytest.raises(ConfigError, match="organization"):
            SyncOrchestrator(tracker, TaskmasterReader(sync_config.project_root), sync_config, "master")

    def test_unmapped_tag(self, make_orchestrator):
        with pytest.raises(ConfigError, match="backend"):
            make_orchestrator(tag="backend")

    def test_configured_field_mappings(self, make_orchestrator, sync_config):
        sync_config.project_mappings["master"].field_mappings = {"status": "Status"}
        orchestrator = make_orchestrator()
        assert {m.remote_field for m in orchestrator.field_mapper.mappings} == {"Status", "TM_ID"}


# =============================================================================
# First and repeated runs
# =============================================================================


class TestFirstSync:
    """A first run against an empty board."""

    def test_creates_fields_and_items(self, make_orchestrator, tracker):
        result = make_orchestrator().sync()

        assert result.success
        assert result.created == 3
        assert result.mode == "delta"
        assert len(result.fields_created) == 6
        assert [args[2] for args in tracker.calls_to("create_draft_item")] == [
            "Set up repository",
            "Build API",
            "Write docs",
        ]

    def test_field_values(self, make_orchestrator, tracker):
        make_orchestrator().sync()

        first = tracker.item_for("1")
        assert tracker.field_value(first.id, "Status") == "QA Review"
        assert tracker.field_value(first.id, "Priority") == "high"
        assert tracker.field_value(first.id, "Test Strategy") == "CI is green"
        second = tracker.item_for("2")
        assert tracker.field_value(second.id, "Status") == "In Progress"
        assert tracker.field_value(second.id, "Dependencies") == "1"

    def test_body_contains_subtask_checklist(self, make_orchestrator, tracker):
        make_orchestrator().sync()
        assert "1. [x] Routes - done" in tracker.item_for("2").body

    def test_state_persisted(self, make_orchestrator, tracker, sync_config):
        make_orchestrator().sync()

        state = StateTracker(sync_config.state_file("master"))
        assert state.get_synced_ids() == {"1", "2", "3"}
        assert state.get_remote_id("1") == tracker.item_for("1").id
        assert state.get_metadata("1").draft_issue_id == tracker.item_for("1").content_id

    def test_snapshot_persisted(self, make_orchestrator, sync_config):
        make_orchestrator().sync()
        assert (sync_config.snapshot_dir / "master-snapshot.json").exists()

    def test_progress_phases(self, make_orchestrator):
        phases = []
        make_orchestrator().sync(progress_callback=lambda msg, cur, total: phases.append((cur, total)))
        assert phases == [(n, 6) for n in range(1, 7)]

    def test_project_id_resolved_when_not_stored(self, make_orchestrator, tracker, sync_config):
        sync_config.project_mappings["master"].project_id = ""
        make_orchestrator().sync()
        assert tracker.calls_to("get_project_id") == [("acme", 7)]


class TestRepeatedSync:
    """Idempotence of repeated runs."""

    def test_delta_rerun_is_a_no_op(self, make_orchestrator, tracker):
        make_orchestrator().sync()
        mutations = tracker.mutation_count

        result = make_orchestrator().sync()

        assert (result.created, result.updated, result.deleted) == (0, 0, 0)
        assert result.unchanged == 3
        assert tracker.mutation_count == mutations

    def test_full_rerun_updates_instead_of_creating(self, make_orchestrator, tracker):
        make_orchestrator().sync()

        result = make_orchestrator().sync(FULL)

        assert result.mode == "full"
        assert (result.created, result.updated) == (0, 3)
        assert len(tracker.items) == 3

    def test_found_by_identity_without_state(self, make_orchestrator, tracker, sync_config):
        make_orchestrator().sync()
        sync_config.state_file("master").unlink()

        result = make_orchestrator().sync(FULL)

        assert (result.created, result.updated) == (0, 3)
        assert len(tracker.items) == 3

    def test_edited_task_is_updated(self, make_orchestrator, tracker, project_root):
        make_orchestrator().sync()
        tasks = sample_task_dicts()
        tasks[2]["title"] = "Write the user guide"
        tasks[2]["status"] = "done"
        write_task_file(project_root, tasks)

        result = make_orchestrator().sync()

        assert (result.created, result.updated, result.unchanged) == (0, 1, 2)
        assert result.changed_task_ids == {"3"}
        item = tracker.item_for("3")
        assert item.title == "Write the user guide"
        assert tracker.field_value(item.id, "Status") == "QA Review"
        update = tracker.calls_to("update_item_content")[0]
        assert update[:3] == (item.content_id, "DraftIssue", "Write the user guide")


# =============================================================================
# Duplicate avoidance
# =============================================================================


class TestTitleMatching:
    """Reusing untracked items that carry a task's title."""

    def test_single_untracked_match_is_reused(self, make_orchestrator, tracker):
        existing = tracker.add_item("Set up repository", body="old body")

        result = make_orchestrator().sync()

        assert (result.created, result.updated) == (2, 1)
        assert len(tracker.items) == 3
        assert tracker.item_for("1").id == existing.id

    def test_several_matches_create_a_new_item(self, make_orchestrator, tracker):
        tracker.add_item("Set up repository")
        tracker.add_item("Set up repository")

        result = make_orchestrator().sync()

        assert result.created == 3
        assert len(tracker.items) == 5
        assert any("several items titled 'Set up repository'" in w for w in result.warnings)

    def test_item_claimed_by_another_task_is_not_reused(self, make_orchestrator, tracker):
        tracker.add_item("Set up repository", tm_id="99")
        result = make_orchestrator().sync()
        assert result.created == 3


# =============================================================================
# Dry run
# =============================================================================


class TestDryRun:
    """Dry runs read but never write."""

    def test_first_dry_run(self, make_orchestrator, tracker, sync_config):
        result = make_orchestrator().sync(SyncOptions(dry_run=True))

        assert result.dry_run
        assert tracker.mutation_count == 0
        assert result.created == 0
        assert result.skipped == 3
        assert "create field 'TM_ID'" in result.planned_operations
        assert "create task 2 'Build API'" in result.planned_operations
        assert not sync_config.state_file("master").exists()
        assert not sync_config.snapshot_dir.exists()

    def test_dry_run_leaves_files_untouched(self, make_orchestrator, tracker, sync_config, project_root):
        make_orchestrator().sync()
        state_before = sync_config.state_file("master").read_bytes()
        snapshot_path = sync_config.snapshot_dir / "master-snapshot.json"
        snapshot_before = snapshot_path.read_bytes()
        mutations = tracker.mutation_count

        tasks = sample_task_dicts()
        tasks[0]["status"] = "pending"
        del tasks[2]
        write_task_file(project_root, tasks)

        result = make_orchestrator().sync(SyncOptions(dry_run=True))

        assert tracker.mutation_count == mutations
        assert sync_config.state_file("master").read_bytes() == state_before
        assert snapshot_path.read_bytes() == snapshot_before
        assert result.skipped == 2
        assert any(op.startswith("update task 1 -> item") for op in result.planned_operations)
        assert any(op.startswith("delete task 3") for op in result.planned_operations)

    def test_full_dry_run_plans_orphans(self, make_orchestrator, tracker, project_root):
        make_orchestrator().sync()
        write_task_file(project_root, sample_task_dicts()[:2])

        result = make_orchestrator().sync(SyncOptions(dry_run=True, force_full=True))

        assert result.deleted == 0
        assert result.skipped == 3
        assert tracker.item_for("3") is not None


# =============================================================================
# Removal
# =============================================================================


class TestRemoval:
    """Items whose tasks disappeared."""

    def test_delta_deletes_removed_task(self, make_orchestrator, tracker, sync_config, project_root):
        make_orchestrator().sync()
        write_task_file(project_root, sample_task_dicts()[:2])

        result = make_orchestrator().sync()

        assert result.deleted == 1
        assert tracker.item_for("3") is None
        assert not StateTracker(sync_config.state_file("master")).is_synced("3")

    def test_full_sync_deletes_orphans(self, make_orchestrator, tracker, project_root):
        make_orchestrator().sync()
        write_task_file(project_root, sample_task_dicts()[:2])

        result = make_orchestrator().sync(FULL)

        assert (result.updated, result.deleted) == (2, 1)
        assert len(tracker.items) == 2

    def test_orphan_without_item_is_dropped_from_state(self, make_orchestrator, tracker, sync_config, project_root):
        make_orchestrator().sync()
        tracker.items.pop(tracker.item_for("3").id)
        write_task_file(project_root, sample_task_dicts()[:2])

        result = make_orchestrator().sync(FULL)

        assert result.deleted == 0
        assert tracker.calls_to("delete_item") == []
        assert not StateTracker(sync_config.state_file("master")).is_synced("3")


# =============================================================================
# Failures
# =============================================================================


class TestFailureTolerance:
    """Per-task failures never abort the run."""

    def test_failed_create_is_collected(self, make_orchestrator, tracker):
        tracker.fail_create_titles = {"Build API"}

        result = make_orchestrator().sync()

        assert not result.success
        assert result.created == 2
        assert [(f.operation, f.task_id) for f in result.failed_operations] == [("create", "2")]
        assert "Some tasks failed; run a full sync to retry them" in result.warnings

    def test_full_sync_retries_failed_task(self, make_orchestrator, tracker):
        tracker.fail_create_titles = {"Build API"}
        make_orchestrator().sync()
        tracker.fail_create_titles = set()

        assert make_orchestrator().sync().created == 0
        assert make_orchestrator().sync(FULL).created == 1
        assert tracker.item_for("2") is not None

    def test_identity_field_failure_is_critical(self, make_orchestrator, tracker):
        tracker.fail_field_names = {"TM_ID"}

        result = make_orchestrator().sync()

        assert result.created == 3
        assert result.success
        critical = [w for w in result.warnings if w.startswith("CRITICAL:")]
        assert len(critical) == 3
        assert len(tracker.calls_to("update_field_value")) > 0

    def test_other_field_failure_is_a_warning(self, make_orchestrator, tracker):
        tracker.fail_field_names = {"Priority"}

        result = make_orchestrator().sync()

        assert result.success
        assert not any(w.startswith("CRITICAL:") for w in result.warnings)
        assert any("field 'Priority' not set" in w for w in result.warnings)

    def test_failing_custom_transformer_is_a_warning(self, make_orchestrator, tracker, sync_config):
        def notes(title):
            if title == "Build API":
                raise ValueError("bad value")
            return title.lower()

        mapper = FieldMapper()
        mapper.register_transformer("notes", notes)
        mapper.add_mapping(FieldMapping("title", "Notes", FieldDataType.TEXT, FieldTransformer.custom("notes")))
        tracker.add_field("Notes")

        result = make_orchestrator(field_mapper=mapper).sync(FULL)

        assert result.created == 3
        assert any("Custom transformer 'notes' failed" in w for w in result.warnings)
        assert tracker.field_value(tracker.item_for("1").id, "Notes") == "set up repository"
        assert tracker.field_value(tracker.item_for("2").id, "Notes") is None
        assert StateTracker(sync_config.state_file("master")).get_remote_id("2") == tracker.item_for("2").id

    def test_direction_not_supported(self, make_orchestrator, tracker):
        with pytest.raises(SyncDirectionNotSupportedError):
            make_orchestrator().sync(SyncOptions(direction=SyncDirection.BIDIRECTIONAL))
        assert tracker.calls == []

    def test_unknown_tag_in_file(self, make_orchestrator, sync_config):
        sync_config.project_mappings["backend"] = ProjectMapping(project_number=8, project_id="PVT_1")
        with pytest.raises(TagNotFoundError):
            make_orchestrator(tag="backend").sync()

    def test_hierarchy_cycle_aborts(self, tracker, sync_config):
        task = Task(id="1", title="loop")
        task.subtasks.append(task)
        orchestrator = SyncOrchestrator(
            tracker, StaticTaskSource({"master": [task]}), sync_config, "master", sleep=lambda _: None
        )

        with pytest.raises(DependencyCycleError):
            orchestrator.sync()
        assert tracker.calls == []


# =============================================================================
# Mapping variants
# =============================================================================


class TestRepositoryMode:
    """Projects backed by a repository get real issues."""

    @pytest.fixture
    def repo_config(self, sync_config):
        sync_config.project_mappings["master"].repository = "acme/api"
        sync_config.agent_mapping = {
            "qa": AgentMapping(github_username="qa-bot"),
            "claude": AgentMapping(github_username="claude-bot"),
        }
        return sync_config

    def test_issues_created_with_assignees(self, make_orchestrator, tracker, repo_config, project_root):
        tasks = sample_task_dicts()
        tasks[2]["assignee"] = "claude"
        write_task_file(project_root, tasks)

        result = make_orchestrator().sync()

        assert result.created == 3
        assert tracker.calls_to("create_draft_item") == []
        assert [args[1] for args in tracker.calls_to("create_issue_item")] == ["acme/api"] * 3
        assert tracker.assignees[tracker.item_for("1").id] == ["qa-bot"]
        assert tracker.assignees[tracker.item_for("2").id] == []
        assert tracker.assignees[tracker.item_for("3").id] == ["claude-bot"]


class TestSeparateSubtasks:
    """Subtasks pushed as their own items."""

    @pytest.fixture
    def separate_project(self, sync_config, project_root):
        sync_config.project_mappings["master"].subtask_mode = SubtaskMode.SEPARATE
        write_task_file(
            project_root,
            [
                {
                    "id": 1,
                    "title": "Parent",
                    "description": "Top level",
                    "status": "in-progress",
                    "subtasks": [
                        {"id": 1, "title": "Big", "description": "x" * 120, "status": "pending"},
                        {"id": 2, "title": "Small", "status": "done"},
                    ],
                }
            ],
        )
        return project_root

    def test_subtask_gets_its_own_item(self, make_orchestrator, tracker, separate_project):
        result = make_orchestrator().sync()

        assert result.created == 2
        sub = tracker.item_for("1.1")
        assert sub.title == "Big [Parent]"
        assert "**Parent Task:** Parent" in sub.body
        assert tracker.field_value(sub.id, "Status") == "Todo"

        parent_body = tracker.item_for("1").body
        assert "1. [x] Small - done" in parent_body
        assert "- Big _(will be created as separate issue)_" in parent_body

    def test_removing_parent_removes_subtask_items(self, make_orchestrator, tracker, separate_project):
        make_orchestrator().sync()
        write_task_file(separate_project, [])

        result = make_orchestrator().sync()

        assert result.deleted == 2
        assert tracker.items == {}

    def test_full_sync_keeps_subtask_items(self, make_orchestrator, tracker, separate_project):
        make_orchestrator().sync()
        result = make_orchestrator().sync(FULL)
        assert (result.updated, result.deleted) == (2, 0)
