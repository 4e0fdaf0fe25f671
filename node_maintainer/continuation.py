"""Durable post-reboot continuation backed by a startup scheduled task."""

import subprocess
from collections.abc import Sequence

from node_maintainer.exceptions import ContinuationError, PowerShellError
from node_maintainer.interfaces import TaskScheduler
from node_maintainer.logging_config import get_logger
from node_maintainer.powershell import PowerShellRunner, ps_quote

logger = get_logger(__name__)

POST_REBOOT_ARGS = ("--phase", "post-reboot")


class ScheduledTaskBackend:
    """Windows Task Scheduler access through the ScheduledTasks module."""

    def __init__(self, runner: PowerShellRunner | None = None):
        self.runner = runner or PowerShellRunner()

    def task_exists(self, name: str) -> bool:
        script = (
            f"$t = Get-ScheduledTask -TaskName {ps_quote(name)} -ErrorAction SilentlyContinue; "
            "ConvertTo-Json ([bool]$t) -Compress"
        )
        return bool(self.runner.run_json(script))

    def delete_task(self, name: str) -> None:
        self.runner.run(f"Unregister-ScheduledTask -TaskName {ps_quote(name)} -Confirm:$false")

    def register_startup_task(self, name: str, command: Sequence[str], description: str) -> None:
        if not command:
            raise ValueError("command cannot be empty")
        execute, args = command[0], subprocess.list2cmdline(list(command[1:]))
        script = "; ".join(
            [
                f"$action = New-ScheduledTaskAction -Execute {ps_quote(execute)} -Argument {ps_quote(args)}",
                "$trigger = New-ScheduledTaskTrigger -AtStartup",
                "$principal = New-ScheduledTaskPrincipal -UserId 'SYSTEM' -LogonType ServiceAccount -RunLevel Highest",
                "$settings = New-ScheduledTaskSettingsSet -AllowStartIfOnBatteries -DontStopIfGoingOnBatteries "
                "-StartWhenAvailable -ExecutionTimeLimit (New-TimeSpan -Hours 4)",
                f"Register-ScheduledTask -TaskName {ps_quote(name)} -Description {ps_quote(description)} "
                "-Action $action -Trigger $trigger -Principal $principal -Settings $settings | Out-Null",
            ]
        )
        self.runner.run(script)


class ContinuationManager:
    """Arms and disarms the task that re-runs the maintainer after reboot.

    At most one task with the configured name exists at any time.
    """

    def __init__(self, scheduler: TaskScheduler, task_name: str):
        self.scheduler = scheduler
        self.task_name = task_name

    def is_armed(self) -> bool:
        try:
            return self.scheduler.task_exists(self.task_name)
        except PowerShellError as e:
            raise ContinuationError(f"Failed to query scheduled task '{self.task_name}'", e.format_message())

    def arm(self, self_command: Sequence[str]) -> None:
        """
        Register the post-reboot task, replacing any existing one.

        Args:
            self_command: Command line that invokes this program; the
                post-reboot phase arguments are appended to it.

        Raises:
            ContinuationError: If the old task cannot be removed or the new one
                cannot be registered.
        """
        command = list(self_command) + list(POST_REBOOT_ARGS)
        try:
            if self.scheduler.task_exists(self.task_name):
                logger.info(f"Removing stale continuation task '{self.task_name}'")
                self.scheduler.delete_task(self.task_name)
            self.scheduler.register_startup_task(
                self.task_name,
                command,
                "Resumes this cluster node after a maintenance reboot",
            )
        except PowerShellError as e:
            raise ContinuationError(f"Failed to arm continuation task '{self.task_name}'", e.format_message())

        logger.info(f"Armed continuation task '{self.task_name}': {subprocess.list2cmdline(command)}")

    def disarm(self) -> bool:
        """
        Delete the post-reboot task.

        Returns:
            True if a task was removed, False if none existed

        Raises:
            ContinuationError: If the task exists but cannot be deleted.
        """
        try:
            if not self.scheduler.task_exists(self.task_name):
                logger.info(f"Continuation task '{self.task_name}' not found, nothing to disarm")
                return False
            self.scheduler.delete_task(self.task_name)
        except PowerShellError as e:
            raise ContinuationError(f"Failed to disarm continuation task '{self.task_name}'", e.format_message())

        logger.info(f"Disarmed continuation task '{self.task_name}'")
        return True
