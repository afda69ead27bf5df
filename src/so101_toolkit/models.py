# models.py
# Data contracts for the SO101 setup toolkit.
# No business logic lives here, only schema and validation.

from enum import IntEnum

from pydantic import BaseModel, Field


class ExitCode(IntEnum):
    """Process exit codes shared by every step and utility entry point."""

    SUCCESS = 0
    FAILURE = 1
    ALREADY_DONE = 2
    REBOOT_REQUIRED = 3


class StepInfo(BaseModel):
    """Identity of a setup step: ordinal, label and completion marker."""

    number: int = Field(..., ge=1, description="1-based position in the setup sequence.")
    name: str = Field(..., description="Human-readable step name.")
    marker: str = Field(..., description="Marker file name under the log directory.")


class StepRecord(BaseModel):
    """Outcome of one step within an orchestrator run."""

    number: int
    name: str
    exit_code: ExitCode
    skipped: bool = Field(default=False, description="Marker was present; step not executed.")
    message: str = Field(default="")


class TagResult(BaseModel):
    """Outcome of checking one Hub dataset for its codebase_version tag."""

    repo_id: str
    version: str = Field(default="")
    created: bool = Field(default=False, description="A new tag was pushed during this run.")
    error: str | None = Field(default=None)
