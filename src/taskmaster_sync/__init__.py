"""
taskmaster-sync - Incremental sync of Taskmaster task lists to GitHub Projects.

Architecture:
- core/: Domain entities, ports (interfaces) and exceptions
- application/: Sync engine (change detection, state, field mapping, hierarchy)
- adapters/: Taskmaster reader, GitHub GraphQL adapter, config provider
- cli/: Command-line interface
"""

__version__ = "1.0.0"
