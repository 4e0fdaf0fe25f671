"""Reboot-pending detection and OS restart."""

import subprocess
from typing import Any

from node_maintainer.exceptions import RestartError
from node_maintainer.interfaces import RegistryReader
from node_maintainer.logging_config import get_logger

logger = get_logger(__name__)

CBS_REBOOT_PENDING = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Component Based Servicing\RebootPending"
WU_REBOOT_REQUIRED = r"SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\RebootRequired"
ACTIVE_COMPUTER_NAME = r"SYSTEM\CurrentControlSet\Control\ComputerName\ActiveComputerName"
PENDING_COMPUTER_NAME = r"SYSTEM\CurrentControlSet\Control\ComputerName\ComputerName"
SESSION_MANAGER = r"SYSTEM\CurrentControlSet\Control\Session Manager"


class WindowsRegistryReader:
    """Reads HKEY_LOCAL_MACHINE with winreg. Missing keys and values read as absent."""

    def key_exists(self, path: str) -> bool:
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path):
                return True
        except OSError:
            return False

    def get_value(self, path: str, name: str) -> Any:
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path) as key:
                value, _ = winreg.QueryValueEx(key, name)
                return value
        except OSError:
            return None


class RebootPendingDetector:
    """Reports whether the OS has changes waiting for a restart.

    Checks four independent signals; any one of them means a reboot is
    pending. A signal that cannot be read counts as not pending.
    """

    def __init__(self, registry: RegistryReader | None = None):
        self.registry = registry or WindowsRegistryReader()

    def _component_servicing(self) -> bool:
        return self.registry.key_exists(CBS_REBOOT_PENDING)

    def _windows_update(self) -> bool:
        return self.registry.key_exists(WU_REBOOT_REQUIRED)

    def _computer_rename(self) -> bool:
        active = self.registry.get_value(ACTIVE_COMPUTER_NAME, "ComputerName")
        pending = self.registry.get_value(PENDING_COMPUTER_NAME, "ComputerName")
        if not active or not pending:
            return False
        return str(active).casefold() != str(pending).casefold()

    def _file_rename(self) -> bool:
        value = self.registry.get_value(SESSION_MANAGER, "PendingFileRenameOperations")
        if isinstance(value, (list, tuple)):
            return any(value)
        return bool(value)

    def signals(self) -> dict[str, bool]:
        """Evaluate every signal and return them by name."""
        checks = {
            "component_servicing": self._component_servicing,
            "windows_update": self._windows_update,
            "computer_rename": self._computer_rename,
            "file_rename": self._file_rename,
        }
        results = {}
        for name, check in checks.items():
            try:
                results[name] = bool(check())
            except Exception as e:
                logger.debug(f"Reboot signal {name} could not be read, treating as clear: {e}")
                results[name] = False
        return results

    def is_reboot_pending(self) -> bool:
        signals = self.signals()
        active = [name for name, pending in signals.items() if pending]
        if active:
            logger.info(f"Reboot pending ({', '.join(active)})")
            return True
        logger.info("No reboot pending")
        return False


class SystemRestarter:
    """Schedules a restart with shutdown.exe."""

    def __init__(self, executable: str = "shutdown.exe", comment: str = "Cluster node maintenance"):
        self.executable = executable
        self.comment = comment

    def restart(self, delay_seconds: int) -> None:
        """
        Schedule a restart in ``delay_seconds`` and return immediately.

        Raises:
            RestartError: If the restart cannot be scheduled.
        """
        command = [self.executable, "/r", "/t", str(int(delay_seconds)), "/d", "p:2:17", "/c", self.comment]
        logger.warning(f"Restarting in {delay_seconds} seconds")
        try:
            subprocess.run(command, capture_output=True, text=True, check=True, timeout=30)
        except subprocess.CalledProcessError as e:
            raise RestartError(
                "Failed to schedule restart",
                f"{self.executable} exited with {e.returncode}: {(e.stderr or e.stdout or '').strip()}",
            )
        except subprocess.TimeoutExpired:
            raise RestartError("Timed out scheduling restart", f"{self.executable} did not return within 30 seconds")
        except FileNotFoundError:
            raise RestartError(f"{self.executable} not found", "Restart primitive is only available on Windows")
