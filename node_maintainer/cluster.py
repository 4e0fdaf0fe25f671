"""Failover cluster and Storage Spaces Direct access through PowerShell."""

from pydantic import ValidationError

from node_maintainer.exceptions import ClusterError, PowerShellError
from node_maintainer.logging_config import get_logger
from node_maintainer.models.cluster import (
    ClusterGroup,
    ClusterNode,
    SharedVolume,
    StorageHealth,
    StorageJob,
    StorageSubsystem,
    VirtualDisk,
)
from node_maintainer.powershell import PowerShellRunner, ps_quote

logger = get_logger(__name__)

# Enum-typed properties are stringified explicitly: Windows PowerShell 5.1
# serializes enums as integers in ConvertTo-Json.
LIST_NODES = (
    "@(Get-ClusterNode | Select-Object Name, "
    "@{n='State';e={\"$($_.State)\"}}, "
    "@{n='DrainStatus';e={\"$($_.DrainStatus)\"}}) | ConvertTo-Json -Compress"
)

LIST_GROUPS = (
    "@(Get-ClusterGroup | Select-Object Name, "
    "@{n='OwnerNode';e={\"$($_.OwnerNode.Name)\"}}, "
    "@{n='State';e={\"$($_.State)\"}}) | ConvertTo-Json -Compress"
)

LIST_SHARED_VOLUMES = (
    "@(Get-ClusterSharedVolume | Select-Object Name, "
    "@{n='OwnerNode';e={\"$($_.OwnerNode.Name)\"}}, "
    "@{n='State';e={\"$($_.State)\"}}) | ConvertTo-Json -Compress"
)

LIST_SUBSYSTEMS = (
    "@(Get-StorageSubSystem -FriendlyName 'Clustered*' | Select-Object FriendlyName, "
    "@{n='HealthStatus';e={\"$($_.HealthStatus)\"}}) | ConvertTo-Json -Compress"
)

LIST_VIRTUAL_DISKS = (
    "@(Get-VirtualDisk | Select-Object FriendlyName, "
    "@{n='HealthStatus';e={\"$($_.HealthStatus)\"}}, "
    "@{n='OperationalStatus';e={\"$($_.OperationalStatus)\"}}) | ConvertTo-Json -Compress"
)

LIST_STORAGE_JOBS = (
    "@(Get-StorageJob | Select-Object Name, "
    "@{n='JobState';e={\"$($_.JobState)\"}}, PercentComplete) | ConvertTo-Json -Compress"
)


class FailoverClusterBackend:
    """Reads and changes cluster state with FailoverClusters and Storage cmdlets."""

    def __init__(self, runner: PowerShellRunner | None = None):
        self.runner = runner or PowerShellRunner()

    def _query(self, script: str, what: str) -> list[dict]:
        try:
            return self.runner.run_json_list(script)
        except PowerShellError as e:
            raise ClusterError(f"Failed to query {what}", e.format_message())

    def _invoke(self, script: str, what: str, timeout: float | None) -> None:
        try:
            self.runner.run(script, timeout=timeout)
        except PowerShellError as e:
            raise ClusterError(f"Failed to {what}", e.format_message())

    def _parse_rows(self, rows: list[dict], parse, what: str) -> list:
        parsed = []
        for row in rows:
            try:
                parsed.append(parse(row))
            except (KeyError, TypeError, AttributeError, ValidationError) as e:
                raise ClusterError(f"Unexpected {what} data", f"Could not parse {row!r}: {e}")
        return parsed

    def list_nodes(self) -> list[ClusterNode]:
        """
        List cluster nodes in the order the cluster returns them.

        Raises:
            ClusterError: If the query fails or returns an unknown node state.
        """
        rows = self._query(LIST_NODES, "cluster nodes")
        nodes = self._parse_rows(
            rows,
            lambda r: ClusterNode(
                name=r["Name"],
                state=r["State"],
                drain_status=r.get("DrainStatus") or "NotInitiated",
            ),
            "cluster node",
        )
        logger.debug(f"Found {len(nodes)} cluster nodes")
        return nodes

    def list_groups(self) -> list[ClusterGroup]:
        rows = self._query(LIST_GROUPS, "cluster groups")
        return self._parse_rows(
            rows,
            lambda r: ClusterGroup(
                name=r["Name"], owner_node=r.get("OwnerNode") or "", state=r.get("State") or "Unknown"
            ),
            "cluster group",
        )

    def list_shared_volumes(self) -> list[SharedVolume]:
        rows = self._query(LIST_SHARED_VOLUMES, "cluster shared volumes")
        return self._parse_rows(
            rows,
            lambda r: SharedVolume(
                name=r["Name"], owner_node=r.get("OwnerNode") or "", state=r.get("State") or "Unknown"
            ),
            "shared volume",
        )

    def get_virtual_disks(self) -> list[VirtualDisk]:
        rows = self._query(LIST_VIRTUAL_DISKS, "virtual disks")
        return self._parse_rows(
            rows,
            lambda r: VirtualDisk(
                friendly_name=r["FriendlyName"],
                health_status=r.get("HealthStatus") or "Unknown",
                operational_status=r.get("OperationalStatus") or "Unknown",
            ),
            "virtual disk",
        )

    def get_storage_health(self) -> StorageHealth:
        rows = self._query(LIST_SUBSYSTEMS, "storage subsystem")
        if not rows:
            raise ClusterError(
                "No clustered storage subsystem found",
                "Storage Spaces Direct does not appear to be enabled on this cluster",
            )
        subsystems = self._parse_rows(
            rows,
            lambda r: StorageSubsystem(
                friendly_name=r["FriendlyName"], health_status=r.get("HealthStatus") or "Unknown"
            ),
            "storage subsystem",
        )
        return StorageHealth(subsystems=subsystems, virtual_disks=self.get_virtual_disks())

    def list_storage_jobs(self) -> list[StorageJob]:
        rows = self._query(LIST_STORAGE_JOBS, "storage jobs")
        return self._parse_rows(
            rows,
            lambda r: StorageJob(
                name=r["Name"],
                job_state=r.get("JobState") or "Unknown",
                percent_complete=r.get("PercentComplete") or 0,
            ),
            "storage job",
        )

    def move_shared_volume(self, volume: str, target: str, wait_seconds: int) -> None:
        logger.info(f"Moving shared volume '{volume}' to {target}")
        script = (
            f"Move-ClusterSharedVolume -Name {ps_quote(volume)} -Node {ps_quote(target)} "
            f"-Wait {int(wait_seconds)} | Out-Null"
        )
        # leave PowerShell time to report its own timeout before killing it
        self._invoke(script, f"move shared volume '{volume}' to {target}", timeout=wait_seconds + 60)

    def suspend_node(self, name: str, wait_seconds: int) -> None:
        logger.info(f"Suspending cluster node {name} with role drain")
        script = f"Suspend-ClusterNode -Name {ps_quote(name)} -Drain -Wait | Out-Null"
        self._invoke(script, f"suspend cluster node {name}", timeout=wait_seconds)

    def resume_node(self, name: str, failback: str) -> None:
        logger.info(f"Resuming cluster node {name} (failback: {failback})")
        script = f"Resume-ClusterNode -Name {ps_quote(name)} -Failback {failback} | Out-Null"
        self._invoke(script, f"resume cluster node {name}", timeout=self.runner.timeout)
