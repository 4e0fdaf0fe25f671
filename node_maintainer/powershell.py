"""Thin wrapper for running PowerShell scripts and parsing their JSON output."""

import json
import subprocess
from typing import Any

from node_maintainer.exceptions import PowerShellError
from node_maintainer.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = object()


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + str(value).replace("'", "''") + "'"


class PowerShellRunner:
    """Runs PowerShell commands non-interactively."""

    def __init__(self, executable: str = "powershell.exe", timeout: float | None = 120):
        """Initialize the runner.

        Args:
            executable: PowerShell binary (powershell.exe or pwsh)
            timeout: Default timeout in seconds, None for no limit
        """
        self.executable = executable
        self.timeout = timeout

    def build_command(self, script: str) -> list[str]:
        return [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            "$ErrorActionPreference = 'Stop'; $ProgressPreference = 'SilentlyContinue'; " + script,
        ]

    def run(self, script: str, timeout: Any = DEFAULT_TIMEOUT) -> str:
        """
        Run a script and return its standard output.

        Args:
            script: PowerShell script text
            timeout: Seconds to wait; omitted uses the runner default, None waits forever

        Returns:
            Captured standard output, stripped

        Raises:
            PowerShellError: If PowerShell is missing, times out or exits non-zero.
        """
        if timeout is DEFAULT_TIMEOUT:
            timeout = self.timeout

        logger.debug(f"Running PowerShell: {script}")

        try:
            result = subprocess.run(
                self.build_command(script),
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"PowerShell command timed out after {timeout} seconds")
            raise PowerShellError(
                "PowerShell command timed out",
                f"The command did not finish within {timeout} seconds: {script}",
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            logger.error(f"PowerShell command failed with return code {e.returncode}: {stderr}")
            raise PowerShellError(
                "PowerShell command failed",
                f"Command: {script}\nExit code: {e.returncode}\nOutput: {stderr}",
            )
        except FileNotFoundError:
            logger.error(f"PowerShell executable not found: {self.executable}")
            raise PowerShellError(
                f"PowerShell is not available: {self.executable}",
                "This tool must run on a Windows Server cluster node. Set "
                "'powershell_executable' in the configuration if PowerShell lives elsewhere.",
            )

        logger.debug(f"PowerShell command completed with return code {result.returncode}")
        return result.stdout.strip()

    def run_json(self, script: str, timeout: Any = DEFAULT_TIMEOUT) -> Any:
        """Run a script ending in ConvertTo-Json and return the parsed value (None if empty)."""
        output = self.run(script, timeout=timeout)
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse PowerShell JSON output: {e}")
            raise PowerShellError(
                "Failed to parse PowerShell output",
                f"Expected JSON but got: {output[:500]}",
            )

    def run_json_list(self, script: str, timeout: Any = DEFAULT_TIMEOUT) -> list[dict]:
        """Like run_json, but always returns a list.

        ConvertTo-Json emits a bare object for single-element pipelines.
        """
        data = self.run_json(script, timeout=timeout)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)
