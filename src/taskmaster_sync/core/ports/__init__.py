"""
Ports - Abstract interfaces for external dependencies.

Ports define the contracts that adapters must implement.
This enables dependency inversion and easy testing.
"""

from .config_provider import (
    AgentMapping,
    ConfigProviderPort,
    ProjectMapping,
    SubtaskConfig,
    SyncConfig,
)
from .project_tracker import (
    CreatedItem,
    FieldOption,
    FieldValue,
    ProjectField,
    ProjectTrackerPort,
    RemoteItem,
)
from .rate_limiting import RetryConfig, calculate_backoff_delay, is_retryable_exception
from .task_source import TaskSourcePort


__all__ = [
    "AgentMapping",
    "ConfigProviderPort",
    "CreatedItem",
    "FieldOption",
    "FieldValue",
    "ProjectField",
    "ProjectMapping",
    "ProjectTrackerPort",
    "RemoteItem",
    "RetryConfig",
    "SubtaskConfig",
    "SyncConfig",
    "TaskSourcePort",
    "calculate_backoff_delay",
    "is_retryable_exception",
]
