"""
Taskmaster adapter - Reads .taskmaster/tasks/tasks.json.
"""

from .reader import (
    LegacyTaskFile,
    TaggedTaskFile,
    TaggedTasks,
    TaskFileFormat,
    TaskmasterReader,
    detect_format,
    parse_task_file,
)


__all__ = [
    "LegacyTaskFile",
    "TaggedTaskFile",
    "TaggedTasks",
    "TaskFileFormat",
    "TaskmasterReader",
    "detect_format",
    "parse_task_file",
]
