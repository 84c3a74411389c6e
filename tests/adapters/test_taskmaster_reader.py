"""
Tests for the Taskmaster task file reader.
"""

import json

import pytest
from conftest import write_task_file

from taskmaster_sync.adapters.taskmaster import (
    LegacyTaskFile,
    TaggedTaskFile,
    TaskFileFormat,
    TaskmasterReader,
    detect_format,
    parse_task_file,
)
from taskmaster_sync.core.exceptions import InvalidTaskFormatError, StorageError, TagNotFoundError


def write_raw(root, content):
    path = root / ".taskmaster" / "tasks" / "tasks.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content if isinstance(content, str) else json.dumps(content))
    return path


# =============================================================================
# Format detection
# =============================================================================


class TestDetectFormat:
    """Tests for detect_format."""

    def test_legacy(self):
        assert detect_format({"tasks": []}) == TaskFileFormat.LEGACY

    def test_tagged(self):
        assert detect_format({"master": {"tasks": []}, "version": "1"}) == TaskFileFormat.TAGGED

    def test_empty_document_is_tagged(self):
        assert parse_task_file({}) == TaggedTaskFile(tags={})

    @pytest.mark.parametrize(
        "document,message",
        [
            ([], "root must be a JSON object"),
            ({"master": []}, "must be an object"),
            ({"master": {"metadata": {}}}, "must contain a 'tasks' array"),
            ({"tasks": "nope"}, "must be an object"),
        ],
    )
    def test_invalid(self, document, message):
        with pytest.raises(InvalidTaskFormatError, match=message):
            detect_format(document)


class TestParseTaskFile:
    """Tests for parse_task_file."""

    def test_legacy_exposed_as_master(self, task_dicts):
        task_file = parse_task_file({"tasks": task_dicts})
        assert isinstance(task_file, LegacyTaskFile)
        assert list(task_file.by_tag()) == ["master"]

    def test_tag_order_and_metadata(self, task_dicts):
        task_file = parse_task_file(
            {
                "backend": {"tasks": task_dicts[:1], "metadata": {"created": "2026-01-01", "description": "API"}},
                "version": "0.2",
                "master": {"tasks": task_dicts},
            }
        )
        tags = task_file.by_tag()
        assert list(tags) == ["backend", "master"]
        assert tags["backend"].metadata.description == "API"
        assert tags["master"].metadata.description is None

    def test_non_object_task(self):
        with pytest.raises(InvalidTaskFormatError, match="task #1 must be an object"):
            parse_task_file({"tasks": [{"id": 1, "title": "a"}, "b"]})

    def test_string_subtasks(self):
        task_file = parse_task_file({"tasks": [{"id": 1, "title": "a", "subtasks": ["first", "second"]}]})
        subtasks = task_file.by_tag()["master"].tasks[0].subtasks
        assert [(s.id, s.title, s.status) for s in subtasks] == [
            ("subtask-0", "first", "pending"),
            ("subtask-1", "second", "pending"),
        ]


# =============================================================================
# Reader
# =============================================================================


class TestTaskmasterReader:
    """Tests for TaskmasterReader."""

    def test_tagged_file(self, project_root):
        tasks = TaskmasterReader(project_root).load_tasks()
        assert list(tasks) == ["master"]
        assert [t.id for t in tasks["master"]] == ["1", "2", "3"]
        assert tasks["master"][1].dependencies == ["1"]
        assert tasks["master"][0].test_strategy == "CI is green"

    def test_legacy_file(self, tmp_path, task_dicts):
        write_task_file(tmp_path, task_dicts, legacy=True)
        assert [t.title for t in TaskmasterReader(tmp_path).get_tasks("master")] == [
            "Set up repository",
            "Build API",
            "Write docs",
        ]

    def test_tag_metadata(self, project_root):
        assert TaskmasterReader(project_root).load_tagged()["master"].metadata.description == "master tasks"

    def test_reread_on_every_call(self, project_root, task_dicts):
        reader = TaskmasterReader(project_root)
        assert len(reader.get_tasks("master")) == 3
        write_task_file(project_root, task_dicts[:1])
        assert len(reader.get_tasks("master")) == 1

    def test_unknown_tag(self, project_root):
        with pytest.raises(TagNotFoundError) as exc_info:
            TaskmasterReader(project_root).get_tasks("backend")
        assert exc_info.value.available == ["master"]

    def test_list_tags(self, tmp_path, task_dicts):
        write_raw(tmp_path, {"b": {"tasks": []}, "a": {"tasks": task_dicts}})
        assert TaskmasterReader(tmp_path).list_tags() == ["b", "a"]

    def test_missing_file(self, tmp_path):
        reader = TaskmasterReader(tmp_path)
        assert not reader.exists()
        with pytest.raises(StorageError) as exc_info:
            reader.load_tasks()
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_invalid_json(self, tmp_path):
        write_raw(tmp_path, "{not json")
        with pytest.raises(InvalidTaskFormatError, match="not valid JSON"):
            TaskmasterReader(tmp_path).load_tasks()

    def test_float_ids_normalized(self, tmp_path):
        write_raw(tmp_path, {"tasks": [{"id": 4.0, "title": "t", "dependencies": [1.0, "2"]}]})
        task = TaskmasterReader(tmp_path).get_tasks("master")[0]
        assert (task.id, task.dependencies) == ("4", ["1", "2"])
