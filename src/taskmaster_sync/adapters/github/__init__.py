"""
GitHub adapter - GitHub Projects (v2) over GraphQL.
"""

from .adapter import GitHubProjectsAdapter, parse_project_url
from .auth import resolve_github_token
from .client import GitHubGraphQLClient


__all__ = [
    "GitHubGraphQLClient",
    "GitHubProjectsAdapter",
    "parse_project_url",
    "resolve_github_token",
]
