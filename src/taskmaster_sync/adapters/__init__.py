"""
Adapters - Implementations of the core ports.

- taskmaster: reads .taskmaster/tasks/tasks.json (TaskSourcePort)
- github: GitHub Projects v2 over GraphQL (ProjectTrackerPort)
- config: sync-config file (ConfigProviderPort)
"""

from .config import FileConfigProvider
from .github import GitHubGraphQLClient, GitHubProjectsAdapter
from .taskmaster import TaskmasterReader


__all__ = [
    "FileConfigProvider",
    "GitHubGraphQLClient",
    "GitHubProjectsAdapter",
    "TaskmasterReader",
]
