"""Entering and leaving cluster maintenance (node pause/resume)."""

import time
from collections.abc import Callable

from node_maintainer.exceptions import ClusterError, MaintenanceEntryError, MaintenanceExitError
from node_maintainer.interfaces import ClusterNodeControl, ClusterStateReader
from node_maintainer.logging_config import get_logger
from node_maintainer.models.cluster import ClusterNode, DrainStatus, NodeState, find_node

logger = get_logger(__name__)


class MaintenanceController:
    """Suspends and resumes the local node's cluster membership."""

    def __init__(
        self,
        reader: ClusterStateReader,
        control: ClusterNodeControl,
        suspend_timeout: int = 1800,
        resume_timeout: int = 900,
        poll_interval: float = 10,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.reader = reader
        self.control = control
        self.suspend_timeout = suspend_timeout
        self.resume_timeout = resume_timeout
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.clock = clock

    def get_node(self, node_name: str) -> ClusterNode:
        node = find_node(self.reader.list_nodes(), node_name)
        if node is None:
            raise ClusterError(f"Node {node_name} is not a member of the cluster")
        return node

    def _wait_for(
        self,
        node_name: str,
        done: Callable[[ClusterNode], bool],
        timeout: float,
        failed: Callable[[ClusterNode], bool] | None = None,
    ) -> ClusterNode | None:
        """Poll the node until ``done`` holds. Returns None on timeout or when ``failed`` holds."""
        deadline = self.clock() + timeout
        while True:
            node = self.get_node(node_name)
            if done(node):
                return node
            if failed is not None and failed(node):
                return None
            if self.clock() >= deadline:
                return None
            logger.debug(
                f"Waiting for {node_name}: state={node.state.value}, drain={node.drain_status.value}"
            )
            self.sleep(self.poll_interval)

    def suspend(self, node_name: str) -> None:
        """
        Pause the node and drain its roles, blocking until the drain completes.

        Raises:
            MaintenanceEntryError: If the cluster rejects the pause, the drain
                fails, or it does not complete in time.
        """
        try:
            node = self.get_node(node_name)
            if node.state == NodeState.PAUSED and node.drain_status == DrainStatus.COMPLETED:
                logger.info(f"{node_name} is already paused and drained, skipping suspend")
                return

            self.control.suspend_node(node_name, self.suspend_timeout)
            node = self._wait_for(
                node_name,
                lambda n: n.state == NodeState.PAUSED and n.drain_status == DrainStatus.COMPLETED,
                self.suspend_timeout,
                failed=lambda n: n.drain_status == DrainStatus.FAILED,
            )
            if node is None:
                current = self.get_node(node_name)
                raise MaintenanceEntryError(
                    f"{node_name} did not finish draining roles",
                    f"State: {current.state.value}, drain status: {current.drain_status.value}. "
                    "Check Get-ClusterGroup for roles that could not be moved.",
                )
        except ClusterError as e:
            raise MaintenanceEntryError(f"Failed to suspend {node_name}", e.format_message())

        logger.info(f"{node_name} is paused and drained")

    def resume(self, node_name: str, failback: str = "Immediate") -> bool:
        """
        Resume the node. Safe to call when the node is already Up.

        Returns:
            True if the node was resumed, False if it was already Up

        Raises:
            MaintenanceExitError: If the node does not rejoin or resume fails.
        """
        try:
            # after a reboot the cluster service may still be starting
            node = self._wait_for(
                node_name,
                lambda n: n.state in (NodeState.UP, NodeState.PAUSED),
                self.resume_timeout,
            )
            if node is None:
                current = self.get_node(node_name)
                raise MaintenanceExitError(
                    f"{node_name} did not rejoin the cluster",
                    f"Still {current.state.value} after {self.resume_timeout} seconds. "
                    "Check the Cluster service (ClusSvc) on the node.",
                )

            if node.state == NodeState.UP:
                logger.info(f"{node_name} is already Up, skipping resume")
                return False

            self.control.resume_node(node_name, failback)
            node = self._wait_for(node_name, lambda n: n.state == NodeState.UP, self.resume_timeout)
            if node is None:
                raise MaintenanceExitError(
                    f"{node_name} did not return to Up after resume",
                    f"Waited {self.resume_timeout} seconds. Run Resume-ClusterNode manually.",
                )
        except ClusterError as e:
            raise MaintenanceExitError(f"Failed to resume {node_name}", e.format_message())

        logger.info(f"{node_name} resumed")
        return True
