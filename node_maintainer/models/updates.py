"""Data models for Windows Update discovery and installation."""

from pydantic import BaseModel, Field

# Windows Update Agent OperationResultCode values
RESULT_NOT_STARTED = 0
RESULT_IN_PROGRESS = 1
RESULT_SUCCEEDED = 2
RESULT_SUCCEEDED_WITH_ERRORS = 3
RESULT_FAILED = 4
RESULT_ABORTED = 5

RESULT_NAMES = {
    RESULT_NOT_STARTED: "NotStarted",
    RESULT_IN_PROGRESS: "InProgress",
    RESULT_SUCCEEDED: "Succeeded",
    RESULT_SUCCEEDED_WITH_ERRORS: "SucceededWithErrors",
    RESULT_FAILED: "Failed",
    RESULT_ABORTED: "Aborted",
}


class UpdateDescriptor(BaseModel):
    """A single pending update."""

    title: str
    update_id: str
    reboot_required: bool = False


class UpdateSet(BaseModel):
    """Ordered collection of pending updates found by one search."""

    updates: list[UpdateDescriptor] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.updates)

    @property
    def is_empty(self) -> bool:
        return not self.updates

    @property
    def reboot_required(self) -> bool:
        """True if any member may require a reboot."""
        return any(u.reboot_required for u in self.updates)

    def ids(self) -> list[str]:
        return [u.update_id for u in self.updates]


class InstallItemResult(BaseModel):
    """Per-update installation outcome."""

    update_id: str
    title: str = ""
    result_code: int
    reboot_required: bool = False

    @property
    def succeeded(self) -> bool:
        return self.result_code in (RESULT_SUCCEEDED, RESULT_SUCCEEDED_WITH_ERRORS)

    @property
    def result_name(self) -> str:
        return RESULT_NAMES.get(self.result_code, str(self.result_code))


class InstallResult(BaseModel):
    """Outcome of installing an UpdateSet."""

    result_code: int
    reboot_required: bool = False
    items: list[InstallItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result_code in (RESULT_SUCCEEDED, RESULT_SUCCEEDED_WITH_ERRORS)

    @property
    def result_name(self) -> str:
        return RESULT_NAMES.get(self.result_code, str(self.result_code))

    def failed_items(self) -> list[InstallItemResult]:
        return [i for i in self.items if not i.succeeded]
