"""Maintenance state machine for a single cluster node.

The orchestrator is started fresh for every phase. ``pre-reboot`` validates
the cluster, drains and pauses the node, installs updates and then either
restarts or resumes. ``post-reboot`` is launched by the continuation task and
only resumes the node and removes the task. ``schedule-only`` arms the task.

Nothing is persisted between phases: everything the post-reboot run needs is
read back from the live cluster.
"""

import time
from collections.abc import Callable, Sequence
from datetime import datetime

from node_maintainer.cluster import FailoverClusterBackend
from node_maintainer.config import MaintenanceConfig
from node_maintainer.continuation import ContinuationManager, ScheduledTaskBackend
from node_maintainer.drain import DrainCoordinator
from node_maintainer.events import EventLog
from node_maintainer.exceptions import (
    ClusterError,
    ContinuationError,
    DrainError,
    InstallError,
    MaintainerError,
    MaintenanceEntryError,
    MaintenanceExitError,
    PreconditionError,
    RestartError,
    UpdateError,
)
from node_maintainer.interfaces import ClusterStateReader, Restarter, UpdateDriver
from node_maintainer.logging_config import get_logger
from node_maintainer.maintenance import MaintenanceController
from node_maintainer.models.cluster import ClusterNode, NodeState, find_node
from node_maintainer.models.run import MaintenanceState, OrchestrationRun, Phase, RunOutcome
from node_maintainer.powershell import PowerShellRunner
from node_maintainer.reboot import RebootPendingDetector, SystemRestarter
from node_maintainer.updates import WindowsUpdateDriver

logger = get_logger(__name__)


class MaintenanceOrchestrator:
    """Sequences drain, pause, update and reboot-or-resume for one node."""

    def __init__(
        self,
        node_name: str,
        self_command: Sequence[str],
        reader: ClusterStateReader,
        drain: DrainCoordinator,
        maintenance: MaintenanceController,
        continuation: ContinuationManager,
        updates: UpdateDriver,
        detector: RebootPendingDetector,
        restarter: Restarter,
        failback: str = "Immediate",
        restart_delay: int = 30,
        wait_for_storage_jobs: bool = False,
        storage_job_timeout: float = 3600,
        poll_interval: float = 10,
        events: EventLog | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the orchestrator.

        Args:
            node_name: Cluster name of the node being maintained
            self_command: Command line that re-invokes this program; the
                continuation appends the post-reboot phase to it
            reader: Cluster and storage state source
            drain: Moves shared volumes off the node
            maintenance: Pauses and resumes the node
            continuation: Arms and disarms the post-reboot task
            updates: Discovers and installs updates
            detector: Re-checks whether a reboot is pending after install
            restarter: Restart primitive
            failback: Failback mode used when resuming
            restart_delay: Grace period in seconds before the restart
            wait_for_storage_jobs: After a post-reboot resume, wait for storage
                repair jobs to finish before reporting completion
            storage_job_timeout: Maximum seconds to wait for storage jobs
            poll_interval: Seconds between storage job checks
        """
        self.node_name = node_name
        self.self_command = list(self_command)
        self.reader = reader
        self.drain = drain
        self.maintenance = maintenance
        self.continuation = continuation
        self.updates = updates
        self.detector = detector
        self.restarter = restarter
        self.failback = failback
        self.restart_delay = restart_delay
        self.wait_for_storage_jobs = wait_for_storage_jobs
        self.storage_job_timeout = storage_job_timeout
        self.poll_interval = poll_interval
        self.events = events or EventLog(clock=now)
        self.sleep = sleep
        self.clock = clock
        self.now = now

    @classmethod
    def from_config(cls, config: MaintenanceConfig, self_command: Sequence[str]) -> "MaintenanceOrchestrator":
        """Build an orchestrator wired to the real Windows collaborators."""
        runner = PowerShellRunner(config.powershell_executable, timeout=config.command_timeout_seconds)
        backend = FailoverClusterBackend(runner)
        return cls(
            node_name=config.local_node_name(),
            self_command=self_command,
            reader=backend,
            drain=DrainCoordinator(backend, backend, move_timeout=config.volume_move_timeout_seconds),
            maintenance=MaintenanceController(
                backend,
                backend,
                suspend_timeout=config.suspend_timeout_seconds,
                resume_timeout=config.resume_timeout_seconds,
                poll_interval=config.poll_interval_seconds,
            ),
            continuation=ContinuationManager(ScheduledTaskBackend(runner), config.task_name),
            updates=WindowsUpdateDriver(runner),
            detector=RebootPendingDetector(),
            restarter=SystemRestarter(),
            failback=config.failback,
            restart_delay=config.restart_delay_seconds,
            wait_for_storage_jobs=config.wait_for_storage_jobs,
            storage_job_timeout=config.storage_job_timeout_seconds,
            poll_interval=config.poll_interval_seconds,
        )

    def run(self, phase: Phase) -> OrchestrationRun:
        """Execute one phase and return its record. Always reaches an outcome."""
        run = OrchestrationRun(phase=phase, computer=self.node_name, started_at=self.now())
        first_event = len(self.events.records)
        self.events.info("Start", f"phase={phase.value} computer={self.node_name}")

        handlers = {
            Phase.PRE_REBOOT: self._run_pre_reboot,
            Phase.POST_REBOOT: self._run_post_reboot,
            Phase.SCHEDULE_ONLY: self._run_schedule_only,
        }
        handlers[phase](run)

        run.finished_at = self.now()
        run.events = list(self.events.records[first_event:])
        return run

    # -- state bookkeeping -------------------------------------------------

    def _enter(self, run: OrchestrationRun, state: MaintenanceState) -> None:
        logger.debug(f"{run.state.value} -> {state.value}")
        run.state = state
        run.states.append(state)

    def _finish(
        self,
        run: OrchestrationRun,
        outcome: RunOutcome,
        error: MaintainerError | None = None,
    ) -> OrchestrationRun:
        run.outcome = outcome
        if error is not None:
            run.error = error.message
            run.error_type = type(error).__name__
        self._enter(run, MaintenanceState.DONE if outcome == RunOutcome.COMPLETED else MaintenanceState.FAILED)

        summary = f"outcome={outcome.value}"
        if run.error:
            summary += f" error={run.error_type}: {run.error}"
        if outcome == RunOutcome.COMPLETED:
            self.events.ok("Finish", summary)
        else:
            self.events.fail("Finish", summary)
        return run

    def _abort(self, run: OrchestrationRun, step: str, error: MaintainerError) -> OrchestrationRun:
        """Stop before any cluster state was changed."""
        self.events.fail(step, error.message)
        logger.error(error.format_message())
        return self._finish(run, RunOutcome.ABORTED, error)

    def _compensate(self, run: OrchestrationRun, step: str, error: MaintainerError) -> OrchestrationRun:
        """Undo maintenance entry with a single resume attempt, then abort."""
        self.events.fail(step, error.message)
        logger.error(error.format_message())

        self._enter(run, MaintenanceState.RESUMING)
        try:
            self.maintenance.resume(self.node_name, self.failback)
        except MaintenanceExitError as e:
            self.events.fail("CompensatingResume", e.message)
            logger.critical(
                f"{self.node_name} could not be resumed after a failed {step.lower()}. "
                "The node may be paused with its volumes moved away; operator action required.\n"
                f"{e.format_message()}"
            )
            run.warnings.append(f"{step} failed: {error.message}")
            return self._finish(run, RunOutcome.FAILED, e)

        self.events.ok("CompensatingResume", f"{self.node_name} is Up")
        return self._finish(run, RunOutcome.ABORTED, error)

    def _disarm(self, run: OrchestrationRun) -> None:
        self._enter(run, MaintenanceState.CLEANING_UP)
        try:
            removed = self.continuation.disarm()
        except ContinuationError as e:
            # a stale task only re-runs an idempotent resume on next boot
            self.events.fail("Disarm", e.message)
            logger.warning(e.format_message())
            run.warnings.append(e.message)
            return
        self.events.ok("Disarm", "continuation removed" if removed else "no continuation was armed")

    # -- preconditions -----------------------------------------------------

    def _validate_preconditions(self) -> None:
        """
        Check membership and storage health. Changes nothing.

        Raises:
            PreconditionError: If any node is not Up or storage is unhealthy.
            ClusterError: If the state cannot be read.
        """
        nodes = self.reader.list_nodes()
        if find_node(nodes, self.node_name) is None:
            raise PreconditionError(
                f"{self.node_name} is not a member of the cluster",
                f"Cluster nodes: {', '.join(n.name for n in nodes) or 'none'}",
            )
        not_up = [n for n in nodes if n.state != NodeState.UP]
        if not_up:
            raise PreconditionError(
                "Not all cluster nodes are Up",
                ", ".join(f"{n.name}={n.state.value}" for n in not_up),
            )
        self.events.ok("NodeHealth", f"all {len(nodes)} node(s) Up")

        health = self.reader.get_storage_health()
        bad_disks = health.unhealthy_disks()
        if bad_disks:
            raise PreconditionError(
                "Virtual disks are not healthy",
                ", ".join(f"{d.friendly_name}={d.health_status}/{d.operational_status}" for d in bad_disks),
            )
        bad_subsystems = health.unhealthy_subsystems()
        if bad_subsystems:
            raise PreconditionError(
                "Storage subsystem is unhealthy",
                ", ".join(f"{s.friendly_name}={s.health_status}" for s in bad_subsystems),
            )
        self.events.ok(
            "StorageHealth",
            f"{len(health.virtual_disks)} virtual disk(s) Healthy/OK, "
            f"{len(health.subsystems)} subsystem(s) not Unhealthy",
        )

        owned = [g.name for g in self.reader.list_groups() if g.owner_node.casefold() == self.node_name.casefold()]
        self.events.info("Roles", f"{len(owned)} cluster group(s) owned by {self.node_name}")

    def preflight(self) -> ClusterNode:
        """
        Run the pre-reboot checks without changing anything.

        Returns:
            The node shared volumes would be moved to

        Raises:
            PreconditionError: If maintenance must not start.
            ClusterError: If the cluster cannot be queried.
        """
        self._validate_preconditions()
        return self.drain.select_partner(self.node_name)

    # -- phases ------------------------------------------------------------

    def _run_pre_reboot(self, run: OrchestrationRun) -> OrchestrationRun:
        self._enter(run, MaintenanceState.VALIDATING_PRECONDITIONS)
        try:
            self._validate_preconditions()
        except (PreconditionError, ClusterError) as e:
            return self._abort(run, "Preconditions", e)

        try:
            update_set = self.updates.discover()
        except UpdateError as e:
            return self._abort(run, "Discover", e)
        run.updates = list(update_set.updates)
        if update_set.is_empty:
            self.events.ok("Discover", "no pending updates")
            return self._finish(run, RunOutcome.COMPLETED)
        self.events.ok(
            "Discover",
            f"{update_set.count} pending update(s), reboot expected: {update_set.reboot_required}",
        )

        try:
            partner = self.drain.select_partner(self.node_name)
        except (PreconditionError, ClusterError) as e:
            return self._abort(run, "SelectPartner", e)
        run.partner = partner.name
        self.events.ok("SelectPartner", partner.name)

        self._enter(run, MaintenanceState.DRAINING)
        try:
            run.volumes_moved = self.drain.drain(self.node_name, partner)
        except DrainError as e:
            run.volumes_moved = len(e.moved_volumes)
            return self._compensate(run, "Drain", e)
        self.events.ok("Drain", f"{run.volumes_moved} shared volume(s) moved to {partner.name}")

        self._enter(run, MaintenanceState.SUSPENDING)
        try:
            self.maintenance.suspend(self.node_name)
        except MaintenanceEntryError as e:
            return self._compensate(run, "Suspend", e)
        self.events.ok("Suspend", f"{self.node_name} paused and drained")

        # the installer may restart the machine on its own; the way back must exist first
        self._enter(run, MaintenanceState.ARMING)
        try:
            self.continuation.arm(self.self_command)
        except ContinuationError as e:
            logger.critical(f"Refusing to install updates without a continuation: {e.message}")
            return self._compensate(run, "Arm", e)
        self.events.ok("Arm", f"continuation '{self.continuation.task_name}' armed")

        self._enter(run, MaintenanceState.UPDATING)
        try:
            result = self.updates.install(update_set)
        except InstallError as e:
            logger.critical(
                f"Update installation failed; {self.node_name} is left paused for inspection. "
                "Resume it with Resume-ClusterNode once checked."
            )
            self.events.fail("Install", e.message)
            logger.error(e.format_message())
            return self._finish(run, RunOutcome.FAILED, e)
        for item in result.failed_items():
            warning = f"{item.title or item.update_id}: {item.result_name}"
            run.warnings.append(warning)
            logger.warning(f"Update did not install: {warning}")
        self.events.ok("Install", f"{result.result_name}, installer reboot flag: {result.reboot_required}")

        self._enter(run, MaintenanceState.REBOOT_DECISION)
        pending = self.detector.is_reboot_pending()
        if pending != result.reboot_required:
            logger.info(
                f"Reboot-pending check ({pending}) differs from installer flag ({result.reboot_required}); "
                "using the reboot-pending check"
            )
        self.events.info("RebootDecision", "reboot pending" if pending else "no reboot pending")

        if pending:
            self._enter(run, MaintenanceState.REBOOTING)
            try:
                self.restarter.restart(self.restart_delay)
            except RestartError as e:
                self.events.fail("Restart", e.message)
                logger.error(e.format_message())
                return self._finish(run, RunOutcome.FAILED, e)
            run.reboot_scheduled = True
            self.events.ok("Restart", f"restart in {self.restart_delay} seconds")
            return self._finish(run, RunOutcome.COMPLETED)

        self._enter(run, MaintenanceState.RESUMING)
        resume_error = None
        try:
            self.maintenance.resume(self.node_name, self.failback)
            self.events.ok("Resume", f"{self.node_name} is Up")
        except MaintenanceExitError as e:
            resume_error = e
            self.events.fail("Resume", e.message)
            logger.error(e.format_message())

        # no reboot is coming, so the continuation must not survive this run
        self._disarm(run)
        if resume_error is not None:
            return self._finish(run, RunOutcome.FAILED, resume_error)
        return self._finish(run, RunOutcome.COMPLETED)

    def _run_post_reboot(self, run: OrchestrationRun) -> OrchestrationRun:
        self._enter(run, MaintenanceState.RESUMING)
        try:
            resumed = self.maintenance.resume(self.node_name, self.failback)
        except MaintenanceExitError as e:
            # keep the continuation so the next boot tries again
            self.events.fail("Resume", e.message)
            logger.error(e.format_message())
            return self._finish(run, RunOutcome.FAILED, e)
        self.events.ok("Resume", f"{self.node_name} resumed" if resumed else f"{self.node_name} was already Up")

        self._disarm(run)
        if self.wait_for_storage_jobs:
            self._await_storage_jobs(run)
        return self._finish(run, RunOutcome.COMPLETED)

    def _run_schedule_only(self, run: OrchestrationRun) -> OrchestrationRun:
        self._enter(run, MaintenanceState.ARMING)
        try:
            self.continuation.arm(self.self_command)
        except ContinuationError as e:
            self.events.fail("Arm", e.message)
            logger.error(e.format_message())
            return self._finish(run, RunOutcome.FAILED, e)
        self.events.ok("Arm", f"continuation '{self.continuation.task_name}' armed")
        return self._finish(run, RunOutcome.COMPLETED)

    def _await_storage_jobs(self, run: OrchestrationRun) -> None:
        """Wait for storage resync after rejoining. Never fails the run."""
        deadline = self.clock() + self.storage_job_timeout
        while True:
            try:
                running = [j for j in self.reader.list_storage_jobs() if j.is_running]
            except ClusterError as e:
                self.events.fail("StorageJobs", e.message)
                run.warnings.append(e.message)
                return
            if not running:
                self.events.ok("StorageJobs", "no storage jobs running")
                return
            if self.clock() >= deadline:
                message = f"{len(running)} storage job(s) still running after {self.storage_job_timeout} seconds"
                self.events.fail("StorageJobs", message)
                run.warnings.append(message)
                return
            logger.info(
                "Waiting for storage jobs: "
                + ", ".join(f"{j.name} {j.percent_complete}%" for j in running)
            )
            self.sleep(self.poll_interval)
