"""
File Configuration Provider - Loads sync settings from the .taskmaster directory.

Search order when no explicit path is given:
1. .taskmaster/sync-config.json
2. .taskmaster/sync-config.yaml
3. .taskmaster/sync-config.yml

Environment variables override file values:
- TASKMASTER_SYNC_ORG: organization
- TASKMASTER_SYNC_PROJECT_ROOT: project root holding .taskmaster

CLI overrides (passed in by the CLI) win over both.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from taskmaster_sync.core.domain.timestamps import format_rfc3339, parse_rfc3339
from taskmaster_sync.core.exceptions import ConfigError
from taskmaster_sync.core.ports.config_provider import (
    CONFIG_VERSION,
    TASKMASTER_DIR,
    AgentMapping,
    ConfigProviderPort,
    ProjectMapping,
    SubtaskConfig,
    SyncConfig,
)


CONFIG_FILE_NAMES = ("sync-config.json", "sync-config.yaml", "sync-config.yml")

ENV_ORGANIZATION = "TASKMASTER_SYNC_ORG"
ENV_PROJECT_ROOT = "TASKMASTER_SYNC_PROJECT_ROOT"


class FileConfigProvider(ConfigProviderPort):
    """
    Configuration provider backed by a JSON or YAML file.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        project_root: str | Path | None = None,
        cli_overrides: dict[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ):
        """
        Initialize the provider.

        Args:
            config_path: Explicit config file; must exist when given
            project_root: Directory holding .taskmaster (default: cwd)
            cli_overrides: Values from the command line ("organization", "project_root")
            env: Environment mapping (default: os.environ)
        """
        self._env = os.environ if env is None else env
        self._cli_overrides = cli_overrides or {}
        self._explicit_path = Path(config_path) if config_path else None
        self.logger = logging.getLogger("FileConfigProvider")

        root = self._cli_overrides.get("project_root") or project_root or self._env.get(ENV_PROJECT_ROOT)
        self.project_root = Path(root) if root else Path.cwd()

        self._raw: dict[str, Any] = {}
        self._config: SyncConfig | None = None

    @property
    def name(self) -> str:
        return "file"

    @property
    def config_file_path(self) -> Path | None:
        """The file that will be (or was) loaded, if any exists."""
        if self._explicit_path is not None:
            return self._explicit_path
        base = self.project_root / TASKMASTER_DIR
        for file_name in CONFIG_FILE_NAMES:
            candidate = base / file_name
            if candidate.is_file():
                return candidate
        return None

    @property
    def default_config_path(self) -> Path:
        return self.project_root / TASKMASTER_DIR / CONFIG_FILE_NAMES[0]

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _read_file(self, path: Path) -> dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}", cause=e) from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file: {path}", cause=e) from e

        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(text) or {}
            else:
                data = json.loads(text) if text.strip() else {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {path}", cause=e) from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON syntax in {path}", cause=e) from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain an object at the top level")
        return data

    def load(self) -> SyncConfig:
        """
        Load configuration.

        A project without a config file gets defaults (which do not validate
        until an organization is set).

        Raises:
            ConfigError: If an explicit file is missing or a file is malformed
        """
        path = self.config_file_path
        if path is None:
            self.logger.debug("No sync config file found, using defaults")
            raw: dict[str, Any] = {}
        else:
            raw = self._read_file(path)
            self.logger.debug(f"Loaded config from {path}")

        org = self._env.get(ENV_ORGANIZATION)
        if org:
            raw["organization"] = org
        if self._cli_overrides.get("organization"):
            raw["organization"] = self._cli_overrides["organization"]

        self._raw = raw
        self._config = config_from_dict(raw, project_root=self.project_root)
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a raw value by dot-separated key."""
        if self._config is None:
            self.load()
        current: Any = self._raw
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def validate(self) -> list[str]:
        try:
            config = self._config or self.load()
        except ConfigError as e:
            return [str(e)]
        return config.validate()

    def save(self, config: SyncConfig) -> None:
        """
        Write the configuration, as JSON unless the loaded file was YAML.

        Raises:
            ConfigError: If the file cannot be written
        """
        path = self.config_file_path or self.default_config_path
        data = config_to_dict(config)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.suffix in (".yaml", ".yml"):
                text = yaml.safe_dump(data, sort_keys=False)
            else:
                text = json.dumps(data, indent=2) + "\n"
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot write config file: {path}", cause=e) from e
        self._config = config
        self._raw = data
        self.logger.info(f"Saved config to {path}")


# =============================================================================
# Serialization
# =============================================================================


def config_from_dict(data: dict[str, Any], project_root: Path | None = None) -> SyncConfig:
    """
    Build a SyncConfig from its file form.

    Raises:
        ConfigError: On values of the wrong type
    """
    mappings_raw = data.get("project_mappings") or {}
    agents_raw = data.get("agent_mapping") or {}
    last_sync_raw = data.get("last_sync") or {}
    if not isinstance(mappings_raw, dict) or not isinstance(agents_raw, dict) or not isinstance(last_sync_raw, dict):
        raise ConfigError("project_mappings, agent_mapping and last_sync must be objects")

    last_sync = {}
    for tag, value in last_sync_raw.items():
        try:
            last_sync[tag] = parse_rfc3339(str(value))
        except ValueError as e:
            raise ConfigError(f"last_sync.{tag}: invalid timestamp '{value}'", cause=e) from e

    config = SyncConfig(
        organization=data.get("organization") or "",
        project_mappings={tag: ProjectMapping.from_dict(m or {}) for tag, m in mappings_raw.items()},
        agent_mapping={name: AgentMapping.from_dict(a or {}) for name, a in agents_raw.items()},
        last_sync=last_sync,
        subtasks=SubtaskConfig.from_dict(data.get("subtasks") or {}),
        version=str(data.get("version") or CONFIG_VERSION),
    )
    if project_root is not None:
        config.project_root = project_root
    return config


def config_to_dict(config: SyncConfig) -> dict[str, Any]:
    return {
        "version": config.version,
        "organization": config.organization,
        "project_mappings": {tag: m.to_dict() for tag, m in config.project_mappings.items()},
        "last_sync": {tag: format_rfc3339(ts) for tag, ts in config.last_sync.items()},
        "agent_mapping": {name: a.to_dict() for name, a in config.agent_mapping.items()},
        "subtasks": config.subtasks.to_dict(),
    }
