"""Tests for partner selection and shared volume migration."""

import pytest

from fakes import LOCAL, FakeCluster
from node_maintainer.drain import DrainCoordinator
from node_maintainer.exceptions import DrainError, NoPartnerError, PreconditionError
from node_maintainer.models.cluster import NodeState


def test_select_partner_skips_local_and_non_up_nodes():
    cluster = FakeCluster(
        [(LOCAL, NodeState.UP), ("NODE2", NodeState.PAUSED), ("NODE3", NodeState.DOWN), ("NODE4", NodeState.UP)]
    )

    partner = DrainCoordinator(cluster, cluster).select_partner(LOCAL)

    assert partner.name == "NODE4"


def test_select_partner_is_case_insensitive():
    cluster = FakeCluster([("node1", NodeState.UP), ("NODE2", NodeState.UP)])

    assert DrainCoordinator(cluster, cluster).select_partner("NODE1").name == "NODE2"


def test_no_partner_is_a_precondition_failure():
    cluster = FakeCluster([(LOCAL, NodeState.UP), ("NODE2", NodeState.DOWN)])

    with pytest.raises(NoPartnerError) as exc_info:
        DrainCoordinator(cluster, cluster).select_partner(LOCAL)

    assert isinstance(exc_info.value, PreconditionError)
    assert "NODE2=Down" in exc_info.value.details


def test_drain_moves_only_local_volumes(cluster):
    moved = DrainCoordinator(cluster, cluster).drain(LOCAL)

    assert moved == 2
    assert [c[1] for c in cluster.calls("move")] == ["Cluster Virtual Disk (Vol1)", "Cluster Virtual Disk (Vol2)"]
    assert all(not v.is_owned_by(LOCAL) for v in cluster.volumes)


def test_drain_with_no_local_volumes(cluster):
    for v in cluster.volumes:
        v.owner_node = "NODE3"

    assert DrainCoordinator(cluster, cluster).drain(LOCAL) == 0
    assert cluster.calls("move") == []


def test_drain_uses_configured_timeout(cluster):
    waits = []
    original = cluster.move_shared_volume

    def recording_move(volume, target, wait_seconds):
        waits.append(wait_seconds)
        original(volume, target, wait_seconds)

    cluster.move_shared_volume = recording_move
    DrainCoordinator(cluster, cluster, move_timeout=120).drain(LOCAL)

    assert waits == [120, 120]


def test_drain_stops_at_first_failure(cluster):
    cluster.fail_moves = {"Cluster Virtual Disk (Vol1)"}

    with pytest.raises(DrainError) as exc_info:
        DrainCoordinator(cluster, cluster).drain(LOCAL)

    assert exc_info.value.moved_volumes == []
    assert len(cluster.calls("move")) == 1


def test_drain_failure_reports_moved_volumes(cluster):
    cluster.fail_moves = {"Cluster Virtual Disk (Vol2)"}

    with pytest.raises(DrainError) as exc_info:
        DrainCoordinator(cluster, cluster).drain(LOCAL)

    assert exc_info.value.moved_volumes == ["Cluster Virtual Disk (Vol1)"]
    assert "Cluster Virtual Disk (Vol1)" in exc_info.value.details
    assert cluster.owner_of("Cluster Virtual Disk (Vol1)") == "NODE2"


def test_drain_detects_volume_left_behind(cluster):
    def move_without_effect(volume, target, wait_seconds):
        cluster.journal.append(("move", volume, target))

    cluster.move_shared_volume = move_without_effect

    with pytest.raises(DrainError) as exc_info:
        DrainCoordinator(cluster, cluster).drain(LOCAL)

    assert "still owns" in exc_info.value.message
    assert len(exc_info.value.moved_volumes) == 2


def test_drain_listing_failure(cluster):
    coordinator = DrainCoordinator(cluster, cluster)
    partner = coordinator.select_partner(LOCAL)
    cluster.fail_queries = True

    with pytest.raises(DrainError):
        coordinator.drain(LOCAL, partner)
