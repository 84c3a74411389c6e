"""
Configuration Provider Port - Abstract interface for configuration.

Implementations:
- FileConfigProvider: .taskmaster/sync-config.json (or YAML) plus env overrides
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..domain.enums import SubtaskMode
from ..exceptions import ConfigError


CONFIG_VERSION = "1.0.0"
TASKMASTER_DIR = ".taskmaster"


@dataclass
class SubtaskConfig:
    """Rules deciding when a subtask becomes its own board item."""

    create_separate_if_has_subtasks: bool = True
    create_separate_if_has_assignee: bool = True
    create_separate_if_complex: bool = True
    complexity_threshold: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubtaskConfig:
        defaults = cls()
        return cls(
            create_separate_if_has_subtasks=bool(
                data.get("create_separate_if_has_subtasks", defaults.create_separate_if_has_subtasks)
            ),
            create_separate_if_has_assignee=bool(
                data.get("create_separate_if_has_assignee", defaults.create_separate_if_has_assignee)
            ),
            create_separate_if_complex=bool(
                data.get("create_separate_if_complex", defaults.create_separate_if_complex)
            ),
            complexity_threshold=int(data.get("complexity_threshold", defaults.complexity_threshold)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "create_separate_if_has_subtasks": self.create_separate_if_has_subtasks,
            "create_separate_if_has_assignee": self.create_separate_if_has_assignee,
            "create_separate_if_complex": self.create_separate_if_complex,
            "complexity_threshold": self.complexity_threshold,
        }


@dataclass
class ProjectMapping:
    """Which GitHub project a tag syncs into, and how."""

    project_number: int
    project_id: str = ""
    repository: str | None = None  # "owner/name"; items become real issues when set
    subtask_mode: SubtaskMode = SubtaskMode.NESTED
    field_mappings: dict[str, str] | None = None

    def validate(self, tag: str) -> list[str]:
        errors = []
        if self.project_number <= 0:
            errors.append(f"project_mappings.{tag}: project_number must be positive")
        if self.repository is not None and self.repository.count("/") != 1:
            errors.append(f"project_mappings.{tag}: repository must look like 'owner/name'")
        return errors

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectMapping:
        try:
            number = int(data.get("project_number", 0))
        except (TypeError, ValueError) as e:
            raise ConfigError("project_number must be an integer", cause=e) from e
        return cls(
            project_number=number,
            project_id=data.get("project_id") or "",
            repository=data.get("repository") or None,
            subtask_mode=SubtaskMode.from_string(data.get("subtask_mode") or "nested"),
            field_mappings=data.get("field_mappings"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "project_number": self.project_number,
            "project_id": self.project_id,
            "subtask_mode": self.subtask_mode.value,
        }
        if self.repository:
            result["repository"] = self.repository
        if self.field_mappings:
            result["field_mappings"] = dict(self.field_mappings)
        return result


@dataclass
class AgentMapping:
    """GitHub account that a Taskmaster agent name stands for."""

    github_username: str
    services: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentMapping:
        return cls(
            github_username=data.get("github_username", ""),
            services=list(data.get("services") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"github_username": self.github_username, "services": list(self.services)}


@dataclass
class SyncConfig:
    """
    Complete sync configuration.

    project_root is not persisted; it anchors every .taskmaster path.
    """

    organization: str = ""
    project_mappings: dict[str, ProjectMapping] = field(default_factory=dict)
    agent_mapping: dict[str, AgentMapping] = field(default_factory=dict)
    last_sync: dict[str, datetime] = field(default_factory=dict)
    subtasks: SubtaskConfig = field(default_factory=SubtaskConfig)
    version: str = CONFIG_VERSION
    project_root: Path = field(default_factory=Path.cwd)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    @property
    def taskmaster_dir(self) -> Path:
        return self.project_root / TASKMASTER_DIR

    @property
    def tasks_file(self) -> Path:
        return self.taskmaster_dir / "tasks" / "tasks.json"

    @property
    def snapshot_dir(self) -> Path:
        return self.taskmaster_dir / "snapshots"

    def state_file(self, tag: str) -> Path:
        return self.taskmaster_dir / f"sync-state-{tag}.json"

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_mapping(self, tag: str) -> ProjectMapping:
        """
        Get the project mapping for a tag.

        Raises:
            ConfigError: If the tag has no mapping
        """
        mapping = self.project_mappings.get(tag)
        if mapping is None:
            raise ConfigError(f"No project mapping configured for tag '{tag}'")
        return mapping

    def github_username_for(self, agent: str) -> str | None:
        mapping = self.agent_mapping.get(agent)
        if mapping and mapping.github_username:
            return mapping.github_username
        return None

    def validate(self) -> list[str]:
        """Validate configuration. Returns a list of errors, empty when valid."""
        errors = []
        if not self.organization:
            errors.append("organization is required")
        for tag, mapping in self.project_mappings.items():
            errors.extend(mapping.validate(tag))
        if self.subtasks.complexity_threshold < 0:
            errors.append("subtasks.complexity_threshold must not be negative")
        return errors

    def require_valid(self) -> None:
        """Raise ConfigError listing every validation failure."""
        errors = self.validate()
        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))


class ConfigProviderPort(ABC):
    """
    Abstract interface for configuration providers.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the provider name."""
        ...

    @abstractmethod
    def load(self) -> SyncConfig:
        """
        Load configuration from source.

        Returns:
            Complete sync configuration
        """
        ...

    @abstractmethod
    def save(self, config: SyncConfig) -> None:
        """Persist configuration back to its source."""
        ...

    @abstractmethod
    def validate(self) -> list[str]:
        """
        Validate loaded configuration.

        Returns:
            List of validation errors
        """
        ...
