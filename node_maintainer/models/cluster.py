"""Data models for failover cluster and storage state."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class NodeState(str, Enum):
    """Cluster membership state of a node."""

    UP = "Up"
    DOWN = "Down"
    PAUSED = "Paused"
    JOINING = "Joining"


class DrainStatus(str, Enum):
    """Role drain progress reported for a node."""

    NOT_INITIATED = "NotInitiated"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ClusterNode(BaseModel):
    """Failover cluster node."""

    name: str
    state: NodeState
    drain_status: DrainStatus = DrainStatus.NOT_INITIATED

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate node name is not empty."""
        if not v or not v.strip():
            raise ValueError("node name cannot be empty")
        return v.strip()

    def is_named(self, name: str) -> bool:
        """Compare node names the way Windows does (case-insensitive)."""
        return self.name.casefold() == name.casefold()


class ClusterGroup(BaseModel):
    """Cluster role (resource group) and the node that owns it."""

    name: str
    owner_node: str
    state: str = "Unknown"


class SharedVolume(BaseModel):
    """Cluster Shared Volume and its current coordinator node."""

    name: str
    owner_node: str
    state: str = "Online"

    def is_owned_by(self, node_name: str) -> bool:
        return self.owner_node.casefold() == node_name.casefold()


class VirtualDisk(BaseModel):
    """Storage Spaces virtual disk health."""

    friendly_name: str
    health_status: str  # Healthy, Warning, Unhealthy, Unknown
    operational_status: str  # OK, Degraded, InService, Detached, ...

    @property
    def is_healthy(self) -> bool:
        return self.health_status == "Healthy" and self.operational_status == "OK"


class StorageSubsystem(BaseModel):
    """Clustered storage subsystem health."""

    friendly_name: str
    health_status: str

    @property
    def is_unhealthy(self) -> bool:
        return self.health_status == "Unhealthy"


class StorageHealth(BaseModel):
    """Point-in-time snapshot of storage subsystem and virtual disk health."""

    subsystems: list[StorageSubsystem] = Field(default_factory=list)
    virtual_disks: list[VirtualDisk] = Field(default_factory=list)

    def unhealthy_disks(self) -> list[VirtualDisk]:
        return [d for d in self.virtual_disks if not d.is_healthy]

    def unhealthy_subsystems(self) -> list[StorageSubsystem]:
        return [s for s in self.subsystems if s.is_unhealthy]

    @property
    def is_healthy(self) -> bool:
        return not self.unhealthy_disks() and not self.unhealthy_subsystems()


class StorageJob(BaseModel):
    """Storage repair/rebalance job."""

    name: str
    job_state: str  # New, Running, Suspended, Completed, ...
    percent_complete: int = 0

    @property
    def is_running(self) -> bool:
        return self.job_state not in ("Completed", "Exception", "Killed", "ShutDown")


def find_node(nodes: list[ClusterNode], name: str) -> ClusterNode | None:
    """Return the node called ``name`` from ``nodes``, if present."""
    for node in nodes:
        if node.is_named(name):
            return node
    return None
