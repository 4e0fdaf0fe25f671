"""Property-based tests for drain partner selection and volume migration."""

from hypothesis import given
from hypothesis import strategies as st

from fakes import LOCAL, FakeCluster
from node_maintainer.drain import DrainCoordinator
from node_maintainer.exceptions import DrainError, NoPartnerError
from node_maintainer.models.cluster import NodeState


@st.composite
def membership(draw):
    """Local node plus up to five peers in arbitrary states, in cluster order."""
    peers = draw(st.lists(st.sampled_from(list(NodeState)), max_size=5))
    local_position = draw(st.integers(min_value=0, max_value=len(peers)))
    nodes = [(f"NODE{i + 2}", s) for i, s in enumerate(peers)]
    nodes.insert(local_position, (LOCAL, draw(st.sampled_from(list(NodeState)))))
    return nodes


@given(nodes=membership())
def test_partner_is_first_up_peer(nodes):
    cluster = FakeCluster(nodes)
    expected = next((name for name, state in nodes if name != LOCAL and state == NodeState.UP), None)

    try:
        partner = DrainCoordinator(cluster, cluster).select_partner(LOCAL)
    except NoPartnerError:
        assert expected is None
    else:
        assert partner.name == expected
        assert partner.state == NodeState.UP


@given(
    owners=st.lists(st.sampled_from([LOCAL, "NODE2", "NODE3"]), max_size=8),
    fail_at=st.one_of(st.none(), st.integers(min_value=0, max_value=7)),
)
def test_drain_moves_local_volumes_in_order(owners, fail_at):
    volumes = [(f"Cluster Virtual Disk (Vol{i})", owner) for i, owner in enumerate(owners)]
    cluster = FakeCluster(
        [(LOCAL, NodeState.UP), ("NODE2", NodeState.UP), ("NODE3", NodeState.UP)],
        volumes=volumes,
    )
    local = [name for name, owner in volumes if owner == LOCAL]
    if fail_at is not None and fail_at < len(local):
        cluster.fail_moves = {local[fail_at]}

    try:
        moved = DrainCoordinator(cluster, cluster).drain(LOCAL)
    except DrainError as e:
        assert fail_at is not None
        assert e.moved_volumes == local[:fail_at]
        # nothing after the failed volume was attempted
        assert [c[1] for c in cluster.calls("move")] == local[: fail_at + 1]
    else:
        assert moved == len(local)
        assert [c[1] for c in cluster.calls("move")] == local
        assert all(target == "NODE2" for _, _, target in cluster.calls("move"))
        assert not any(v.is_owned_by(LOCAL) for v in cluster.volumes)
