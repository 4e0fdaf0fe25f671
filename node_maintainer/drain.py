"""Moving shared volume ownership off a node before it is suspended."""

from node_maintainer.exceptions import ClusterError, DrainError, NoPartnerError
from node_maintainer.interfaces import ClusterStateReader, VolumeMover
from node_maintainer.logging_config import get_logger
from node_maintainer.models.cluster import ClusterNode, NodeState

logger = get_logger(__name__)

DEFAULT_MOVE_TIMEOUT = 300


class DrainCoordinator:
    """Selects a partner node and migrates locally owned shared volumes to it."""

    def __init__(
        self,
        reader: ClusterStateReader,
        mover: VolumeMover,
        move_timeout: int = DEFAULT_MOVE_TIMEOUT,
    ):
        """Initialize the coordinator.

        Args:
            reader: Cluster state source
            mover: Performs the actual ownership moves
            move_timeout: Seconds to wait for each volume move
        """
        self.reader = reader
        self.mover = mover
        self.move_timeout = move_timeout

    def select_partner(self, node_name: str) -> ClusterNode:
        """
        Pick the first Up node, in cluster order, other than ``node_name``.

        Raises:
            NoPartnerError: If no other node is Up.
            ClusterError: If the node list cannot be read.
        """
        nodes = self.reader.list_nodes()
        for node in nodes:
            if not node.is_named(node_name) and node.state == NodeState.UP:
                logger.debug(f"Selected {node.name} as drain partner for {node_name}")
                return node

        others = ", ".join(f"{n.name}={n.state.value}" for n in nodes if not n.is_named(node_name))
        raise NoPartnerError(
            f"No partner node is Up to take over volumes from {node_name}",
            f"Other nodes: {others or 'none'}",
        )

    def drain(self, node_name: str, partner: ClusterNode | None = None) -> int:
        """
        Move every shared volume owned by ``node_name`` to ``partner``.

        A failed move stops the drain. Volumes already moved stay on the partner.

        Returns:
            Number of volumes moved

        Raises:
            DrainError: If listing or moving a volume fails, or the node still
                owns volumes afterwards.
        """
        try:
            if partner is None:
                partner = self.select_partner(node_name)
            volumes = [v for v in self.reader.list_shared_volumes() if v.is_owned_by(node_name)]
        except NoPartnerError:
            raise
        except ClusterError as e:
            raise DrainError(f"Failed to list shared volumes owned by {node_name}", e.format_message())

        logger.info(f"Draining {len(volumes)} shared volume(s) from {node_name} to {partner.name}")

        moved: list[str] = []
        for volume in volumes:
            try:
                self.mover.move_shared_volume(volume.name, partner.name, self.move_timeout)
            except ClusterError as e:
                logger.error(
                    f"Moving '{volume.name}' failed after {len(moved)} of {len(volumes)} volume(s) moved"
                )
                raise DrainError(
                    f"Failed to move shared volume '{volume.name}' to {partner.name}",
                    f"Already moved: {', '.join(moved) or 'none'}\n{e.format_message()}",
                    moved_volumes=moved,
                )
            moved.append(volume.name)
            logger.info(f"Moved '{volume.name}' to {partner.name}")

        try:
            remaining = [v.name for v in self.reader.list_shared_volumes() if v.is_owned_by(node_name)]
        except ClusterError as e:
            raise DrainError(
                "Failed to verify shared volume ownership after drain",
                e.format_message(),
                moved_volumes=moved,
            )
        if remaining:
            raise DrainError(
                f"{node_name} still owns shared volumes after drain",
                f"Remaining: {', '.join(remaining)}",
                moved_volumes=moved,
            )

        return len(moved)
