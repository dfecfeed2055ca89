"""State definition for the per-file LangGraph workflow."""

import operator
from typing import Annotated, TypedDict

from testgen_bot.models import WorkflowOutcome


class WorkflowState(TypedDict):
    """State for one file's generate/evaluate/improve workflow.

    ``errors`` accumulates across nodes through an Annotated reducer. All
    other fields use default overwrite semantics.
    """

    # Input
    file: str
    test_path: str
    target_symbols: list[str]
    incremental: bool

    # Progress
    coverage: float
    attempts: int
    error_log: str
    skip_generation: bool
    setup_complete: bool
    suggestions: list[str]

    # Terminal outcome, set by the node that decided it
    outcome: WorkflowOutcome | None

    # Error accumulation
    errors: Annotated[list[str], operator.add]


def make_initial_state(
    file: str,
    test_path: str,
    target_symbols: list[str] | None = None,
    incremental: bool = False,
) -> WorkflowState:
    """Create a clean workflow state for one source file."""
    return {
        "file": file,
        "test_path": test_path,
        "target_symbols": list(target_symbols or []),
        "incremental": incremental,
        "coverage": 0.0,
        "attempts": 0,
        "error_log": "",
        "skip_generation": False,
        "setup_complete": False,
        "suggestions": [],
        "outcome": None,
        "errors": [],
    }
