"""Maintainer configuration."""

import socket
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from node_maintainer.exceptions import ConfigurationError
from node_maintainer.logging_config import get_logger

logger = get_logger(__name__)

FAILBACK_MODES = ["Immediate", "NoFailback", "Policy"]


class MaintenanceConfig(BaseModel):
    """Node maintainer configuration."""

    node_name: str | None = None
    task_name: str = "NodeMaintainerPostReboot"
    log_file: Path | None = None
    restart_delay_seconds: int = 30
    volume_move_timeout_seconds: int = 300
    suspend_timeout_seconds: int = 1800
    resume_timeout_seconds: int = 900
    poll_interval_seconds: int = 10
    failback: str = "Immediate"
    powershell_executable: str = "powershell.exe"
    command_timeout_seconds: int = 120
    wait_for_storage_jobs: bool = True
    storage_job_timeout_seconds: int = 3600

    @field_validator("task_name")
    @classmethod
    def validate_task_name(cls, v: str) -> str:
        """Validate task name is usable as a scheduled task name."""
        if not v or not v.strip():
            raise ValueError("task_name cannot be empty")
        if any(c in v for c in '\\/:*?"<>|'):
            raise ValueError(f"task_name '{v}' contains characters not allowed in a task name")
        return v.strip()

    @field_validator("failback")
    @classmethod
    def validate_failback(cls, v: str) -> str:
        """Validate failback is a Resume-ClusterNode failback mode."""
        if v not in FAILBACK_MODES:
            raise ValueError(f"failback must be one of {FAILBACK_MODES}, got '{v}'")
        return v

    @field_validator(
        "restart_delay_seconds",
        "volume_move_timeout_seconds",
        "suspend_timeout_seconds",
        "resume_timeout_seconds",
        "command_timeout_seconds",
        "storage_job_timeout_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("timeouts and delays cannot be negative")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("poll_interval_seconds must be at least 1")
        return v

    def local_node_name(self) -> str:
        """Configured node name, or this machine's hostname."""
        return self.node_name or socket.gethostname().split(".")[0]

    def save(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        data = self.model_dump(mode="json", exclude_none=True)
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: str | Path) -> "MaintenanceConfig":
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                "Create the file or omit --config to use the defaults",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {path}", str(e))

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
                f"Got {type(data).__name__} at the top level",
            )

        try:
            config = cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {path}", str(e))

        # the post-reboot task starts in System32, so anchor relative paths here
        if config.log_file is not None and not config.log_file.is_absolute():
            config.log_file = (path.parent / config.log_file).resolve()

        logger.debug(f"Loaded configuration from {path}")
        return config

    @classmethod
    def load_or_default(cls, path: str | Path | None) -> "MaintenanceConfig":
        """Load from ``path`` when given, otherwise return the defaults."""
        if path is None:
            return cls()
        return cls.load(path)
