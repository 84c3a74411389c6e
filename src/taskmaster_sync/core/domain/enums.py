"""
Domain enums - Field types, transformers, sync modes.
"""

from __future__ import annotations

from enum import Enum


class FieldDataType(Enum):
    """Data type of a GitHub Projects field, named as the GraphQL API names it."""

    TEXT = "TEXT"
    NUMBER = "NUMBER"
    DATE = "DATE"
    SINGLE_SELECT = "SINGLE_SELECT"
    ITERATION = "ITERATION"

    @classmethod
    def from_string(cls, value: str) -> FieldDataType:
        """
        Parse a data type from config or API text.

        Accepts "SINGLE_SELECT", "single-select", "SingleSelect" and friends.
        Unknown values fall back to TEXT.
        """
        normalized = value.strip().upper().replace("-", "_").replace(" ", "_")
        if normalized == "SINGLESELECT":
            normalized = "SINGLE_SELECT"
        for member in cls:
            if member.value == normalized:
                return member
        return cls.TEXT


class TransformerKind(Enum):
    """Value transformation applied before a field is written."""

    STATUS = "status"
    PRIORITY = "priority"
    DATE = "date"
    CUSTOM = "custom"


class SubtaskMode(Enum):
    """How subtasks are represented on the project board."""

    NESTED = "nested"
    SEPARATE = "separate"

    @classmethod
    def from_string(cls, value: str) -> SubtaskMode:
        value = value.strip().lower()
        if value in ("separate", "separate-issues", "items"):
            return cls.SEPARATE
        return cls.NESTED


class SyncDirection(Enum):
    """Direction of a sync run."""

    TO_GITHUB = "to_github"
    FROM_GITHUB = "from_github"
    BIDIRECTIONAL = "bidirectional"


class ChangeKind(Enum):
    """Classification of a task between two snapshots."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
