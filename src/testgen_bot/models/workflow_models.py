"""Models for per-file workflow results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from testgen_bot.models.change_models import ChangeStatus


class WorkflowOutcome(str, Enum):
    """Terminal outcome of one file's workflow, reported to the caller."""

    CONVERGED = "converged"
    ALREADY_COVERED = "already_covered"
    TARGET_NOT_MET = "target_not_met"
    SETUP_FAILED = "setup_failed"
    PRECONDITION_FAILED = "precondition_failed"
    GENERATION_FAILED = "generation_failed"
    ARTIFACT_REMOVED = "artifact_removed"


# Outcomes that mean the file ended in a good state
SUCCESS_OUTCOMES = frozenset({
    WorkflowOutcome.CONVERGED,
    WorkflowOutcome.ALREADY_COVERED,
    WorkflowOutcome.ARTIFACT_REMOVED,
})


class FileRunResult(BaseModel):
    """Summary of what the outer driver did for one ChangeRecord."""

    model_config = ConfigDict(frozen=False)

    file: str
    status: ChangeStatus
    outcome: WorkflowOutcome
    coverage: float = 0.0
    attempts: int = 0
    change_percent: float | None = None
    pruned_symbols: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


class MutationResult(BaseModel):
    """Result of MutationStrategy.process_file()."""

    model_config = ConfigDict(frozen=False)

    mode: str  # "overwrite" | "append"
    test_file_path: str
    change_percent: float = 0.0
