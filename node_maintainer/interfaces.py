"""Capability interfaces for the external systems the orchestrator drives.

Production adapters live in ``cluster``, ``updates``, ``continuation`` and
``reboot``. Tests provide in-memory implementations of the same protocols.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from node_maintainer.models.cluster import (
    ClusterGroup,
    ClusterNode,
    SharedVolume,
    StorageHealth,
    StorageJob,
    VirtualDisk,
)
from node_maintainer.models.updates import InstallResult, UpdateSet


class ClusterStateReader(Protocol):
    """Read-only snapshots of cluster membership and storage state."""

    def list_nodes(self) -> list[ClusterNode]: ...

    def list_groups(self) -> list[ClusterGroup]: ...

    def list_shared_volumes(self) -> list[SharedVolume]: ...

    def get_storage_health(self) -> StorageHealth: ...

    def get_virtual_disks(self) -> list[VirtualDisk]: ...

    def list_storage_jobs(self) -> list[StorageJob]: ...


class ClusterNodeControl(Protocol):
    """Membership changes for a single node."""

    def suspend_node(self, name: str, wait_seconds: int) -> None: ...

    def resume_node(self, name: str, failback: str) -> None: ...


class VolumeMover(Protocol):
    """Shared volume ownership moves."""

    def move_shared_volume(self, volume: str, target: str, wait_seconds: int) -> None: ...


class UpdateDriver(Protocol):
    """Discovers and installs pending updates."""

    def discover(self) -> UpdateSet: ...

    def install(self, update_set: UpdateSet) -> InstallResult: ...


class TaskScheduler(Protocol):
    """OS scheduler capable of running a command at next system startup."""

    def task_exists(self, name: str) -> bool: ...

    def delete_task(self, name: str) -> None: ...

    def register_startup_task(self, name: str, command: Sequence[str], description: str) -> None: ...


class RegistryReader(Protocol):
    """Read access to HKEY_LOCAL_MACHINE. Paths are relative to HKLM."""

    def key_exists(self, path: str) -> bool: ...

    def get_value(self, path: str, name: str) -> Any: ...


class Restarter(Protocol):
    """Schedules an operating system restart."""

    def restart(self, delay_seconds: int) -> None: ...
