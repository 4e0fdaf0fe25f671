"""Data models for cluster state, updates and orchestration runs."""

from node_maintainer.models.cluster import (
    ClusterGroup,
    ClusterNode,
    DrainStatus,
    NodeState,
    SharedVolume,
    StorageHealth,
    StorageJob,
    StorageSubsystem,
    VirtualDisk,
    find_node,
)
from node_maintainer.models.run import (
    EventRecord,
    MaintenanceState,
    OrchestrationRun,
    Phase,
    RunOutcome,
)
from node_maintainer.models.updates import (
    InstallItemResult,
    InstallResult,
    UpdateDescriptor,
    UpdateSet,
)

__all__ = [
    "ClusterGroup",
    "ClusterNode",
    "DrainStatus",
    "NodeState",
    "SharedVolume",
    "StorageHealth",
    "StorageJob",
    "StorageSubsystem",
    "VirtualDisk",
    "find_node",
    "EventRecord",
    "MaintenanceState",
    "OrchestrationRun",
    "Phase",
    "RunOutcome",
    "InstallItemResult",
    "InstallResult",
    "UpdateDescriptor",
    "UpdateSet",
]
