"""
Sync Module - Incremental synchronization of Taskmaster tasks to GitHub Projects.
"""

from .delta import (
    ChangeDetector,
    ChangeSet,
    SnapshotStore,
    TaskChange,
    TaskFingerprint,
    TaskSnapshot,
    calculate_impacted_tasks,
    compute_content_hash,
)
from .field_mapping import (
    IDENTITY_FIELD,
    FieldCache,
    FieldMapper,
    FieldMapping,
    FieldTransformer,
    transform_priority,
    transform_status,
)
from .hierarchy import HierarchyManager, TaskArena, TaskNode, WorkUnit, validate_parent_child_map
from .maintenance import CleanupResult, DuplicateReport, ProjectMaintenance, SetupResult, find_duplicates
from .orchestrator import FailedOperation, RemoteIndex, SyncOptions, SyncOrchestrator, SyncResult
from .state import ReadWriteLock, StateStats, StateTracker, SyncState, TaskMetadata


__all__ = [
    "IDENTITY_FIELD",
    "ChangeDetector",
    "ChangeSet",
    "CleanupResult",
    "DuplicateReport",
    "FailedOperation",
    "FieldCache",
    "FieldMapper",
    "FieldMapping",
    "FieldTransformer",
    "HierarchyManager",
    "ProjectMaintenance",
    "ReadWriteLock",
    "RemoteIndex",
    "SetupResult",
    "SnapshotStore",
    "StateStats",
    "StateTracker",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "TaskArena",
    "TaskChange",
    "TaskFingerprint",
    "TaskMetadata",
    "TaskNode",
    "TaskSnapshot",
    "WorkUnit",
    "calculate_impacted_tasks",
    "compute_content_hash",
    "find_duplicates",
    "transform_priority",
    "transform_status",
    "validate_parent_child_map",
]
