"""
Domain layer - Task model and enumerations.
"""

from .entities import Task
from .enums import ChangeKind, FieldDataType, SubtaskMode, SyncDirection, TransformerKind


__all__ = [
    "ChangeKind",
    "FieldDataType",
    "SubtaskMode",
    "SyncDirection",
    "Task",
    "TransformerKind",
]
