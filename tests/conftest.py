"""Pytest configuration and shared fixtures."""

import logging

import pytest
from hypothesis import Verbosity, settings

from fakes import LOCAL, FakeCluster, FakeRegistry, FakeTaskScheduler, Harness, healthy_cluster
from node_maintainer.models.cluster import NodeState

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() so handlers do not leak between tests."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def harness():
    """Orchestrator wired to fakes: three Up nodes, two local volumes, two reboot-required updates."""
    return Harness()


@pytest.fixture
def cluster():
    """Healthy three-node cluster; NODE1 owns two shared volumes."""
    return healthy_cluster()


@pytest.fixture
def paused_cluster():
    """Cluster as seen after a maintenance reboot: the local node is still paused."""
    return FakeCluster(
        [(LOCAL, NodeState.PAUSED), ("NODE2", NodeState.UP), ("NODE3", NodeState.UP)],
        volumes=[("Cluster Virtual Disk (Vol1)", "NODE2")],
    )


@pytest.fixture
def scheduler():
    return FakeTaskScheduler()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def sample_config_data():
    """Sample configuration file contents."""
    return {
        "node_name": "HCI-NODE-01",
        "task_name": "HciMaintenanceResume",
        "restart_delay_seconds": 60,
        "volume_move_timeout_seconds": 300,
        "failback": "Immediate",
        "wait_for_storage_jobs": False,
    }
