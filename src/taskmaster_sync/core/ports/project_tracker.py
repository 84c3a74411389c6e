"""
Project Tracker Port - Abstract interface for the remote project board.

Implementations:
- GitHubProjectsAdapter: GitHub Projects (v2) over GraphQL
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..domain.enums import FieldDataType


@dataclass
class FieldOption:
    """An option of a single-select field."""

    id: str
    name: str
    color: str = "GRAY"


@dataclass
class ProjectField:
    """A field in the project's schema."""

    id: str
    name: str
    data_type: FieldDataType = FieldDataType.TEXT
    options: list[FieldOption] = field(default_factory=list)

    def find_option(self, name: str) -> FieldOption | None:
        """Find an option by name, ignoring case."""
        wanted = name.lower()
        for option in self.options:
            if option.name.lower() == wanted:
                return option
        return None


@dataclass
class FieldValue:
    """A typed value set on an item, tagged with the field it belongs to."""

    field_id: str
    field_name: str
    value: str | float | None


@dataclass
class RemoteItem:
    """
    An item on the project board.

    content_id/content_type identify the draft issue or repository issue
    behind the item; the title and body live on that content.
    """

    id: str
    title: str
    body: str = ""
    content_id: str | None = None
    content_type: str | None = None  # "DraftIssue" or "Issue"
    field_values: list[FieldValue] = field(default_factory=list)

    def get_field_value(self, field_name: str) -> Any:
        for value in self.field_values:
            if value.field_name == field_name:
                return value.value
        return None


@dataclass
class CreatedItem:
    """Identifiers returned when an item is created."""

    item_id: str
    content_id: str | None = None
    content_type: str = "DraftIssue"


class ProjectTrackerPort(ABC):
    """
    Abstract interface for a remote project board.

    Every mutating call may raise TransientError (already retried by the
    adapter) or RemoteApplicationError (never retried).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tracker name."""
        ...

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_project_id(self, organization: str, number: int) -> str:
        """Resolve an organization project number to its node id."""
        ...

    @abstractmethod
    def list_items(self, project_id: str) -> list[RemoteItem]:
        """
        List every item in the project.

        Pagination happens inside the adapter; the full list is returned.
        """
        ...

    @abstractmethod
    def get_fields(self, project_id: str) -> list[ProjectField]:
        """Get the project's field schema, including single-select options."""
        ...

    # -------------------------------------------------------------------------
    # Schema Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_field(
        self,
        project_id: str,
        name: str,
        data_type: FieldDataType,
        options: list[FieldOption] | None = None,
    ) -> str:
        """
        Create a field.

        Args:
            project_id: Project node id
            name: Field name
            data_type: TEXT, NUMBER, DATE or SINGLE_SELECT
            options: Initial options for single-select fields

        Returns:
            The new field id
        """
        ...

    @abstractmethod
    def create_field_option(
        self,
        project_id: str,
        field: ProjectField,
        name: str,
        color: str = "GRAY",
    ) -> None:
        """
        Add an option to a single-select field, keeping the existing ones.

        Option ids may change as a result; callers refresh the schema afterwards.
        """
        ...

    # -------------------------------------------------------------------------
    # Item Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_draft_item(self, project_id: str, title: str, body: str) -> CreatedItem:
        """Create a draft issue item on the board."""
        ...

    @abstractmethod
    def create_issue_item(
        self,
        project_id: str,
        repository: str,
        title: str,
        body: str,
        assignees: list[str] | None = None,
    ) -> CreatedItem:
        """Create a repository issue ("owner/name") and add it to the board."""
        ...

    @abstractmethod
    def update_item_content(
        self,
        content_id: str,
        content_type: str,
        title: str,
        body: str,
    ) -> None:
        """Update the title and body of an item's draft issue or issue."""
        ...

    @abstractmethod
    def update_field_value(
        self,
        project_id: str,
        item_id: str,
        field_id: str,
        value: dict[str, Any],
    ) -> None:
        """
        Set a field value on an item.

        Args:
            value: Typed payload, e.g. {"text": "..."} or {"singleSelectOptionId": "..."}
        """
        ...

    @abstractmethod
    def delete_item(self, project_id: str, item_id: str) -> None:
        """Remove an item from the project."""
        ...
