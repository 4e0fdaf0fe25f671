"""Data models describing one orchestration run."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from node_maintainer.models.updates import UpdateDescriptor


class Phase(str, Enum):
    """Entry phase of an orchestrator invocation."""

    PRE_REBOOT = "pre-reboot"
    POST_REBOOT = "post-reboot"
    SCHEDULE_ONLY = "schedule-only"


class MaintenanceState(str, Enum):
    """States of the maintenance state machine."""

    START = "Start"
    VALIDATING_PRECONDITIONS = "ValidatingPreconditions"
    DRAINING = "Draining"
    SUSPENDING = "Suspending"
    ARMING = "Arming"
    UPDATING = "Updating"
    REBOOT_DECISION = "RebootDecision"
    REBOOTING = "Rebooting"
    RESUMING = "Resuming"
    CLEANING_UP = "CleaningUp"
    DONE = "Done"
    FAILED = "Failed"


class RunOutcome(str, Enum):
    """Terminal outcome of a run."""

    COMPLETED = "Completed"
    ABORTED = "Aborted"
    FAILED = "Failed"


class EventRecord(BaseModel):
    """One entry of the append-only event stream."""

    timestamp: datetime
    step: str
    success: bool | None = None
    message: str

    @property
    def marker(self) -> str:
        if self.success is None:
            return "[INFO]"
        return "[OK]" if self.success else "[FAIL]"

    def format_line(self) -> str:
        return f"{self.marker} {self.step}: {self.message}"


class OrchestrationRun(BaseModel):
    """Logical record of one invocation. Lives only in memory and in the log."""

    phase: Phase
    computer: str
    started_at: datetime
    finished_at: datetime | None = None
    state: MaintenanceState = MaintenanceState.START
    states: list[MaintenanceState] = Field(default_factory=lambda: [MaintenanceState.START])
    outcome: RunOutcome | None = None
    error: str | None = None
    error_type: str | None = None
    partner: str | None = None
    volumes_moved: int = 0
    updates: list[UpdateDescriptor] = Field(default_factory=list)
    reboot_scheduled: bool = False
    warnings: list[str] = Field(default_factory=list)
    events: list[EventRecord] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.COMPLETED

    def visited(self, state: MaintenanceState) -> bool:
        return state in self.states
