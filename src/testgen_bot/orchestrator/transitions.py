"""Pure transition logic for the per-file workflow.

Nothing here performs I/O. The graph's conditional edges call ``transition``
so routing can be tested without running any node.
"""

from enum import Enum

from langgraph.graph import END as GRAPH_END

from testgen_bot.config import EngineConfig
from testgen_bot.models import WorkflowOutcome
from testgen_bot.orchestrator.state import WorkflowState

RECURSION_SLACK = 5

# Outcomes that end the workflow as soon as a node records them
_TERMINAL_OUTCOMES = frozenset({
    WorkflowOutcome.SETUP_FAILED,
    WorkflowOutcome.PRECONDITION_FAILED,
    WorkflowOutcome.GENERATION_FAILED,
    WorkflowOutcome.ALREADY_COVERED,
})


class WorkflowNode(str, Enum):
    PRODUCTION_SETUP = "production_setup"
    SUGGESTIONS = "suggestions"
    CHECK_EXISTING = "check_existing"
    MAIN_GENERATE = "main_generate"
    COVERAGE_EVALUATE = "coverage_evaluate"
    IMPROVE_RETRY = "improve_retry"
    END = GRAPH_END


def _stopped(state: WorkflowState) -> bool:
    return state.get("outcome") in _TERMINAL_OUTCOMES


def transition(node: WorkflowNode, state: WorkflowState, config: EngineConfig) -> WorkflowNode:
    """Return the node that follows ``node`` given the state it produced.

    COVERAGE_EVALUATE decides in order: skipped generation, threshold met,
    attempt budget spent, otherwise retry.
    """
    if node == WorkflowNode.PRODUCTION_SETUP:
        if _stopped(state) or not state.get("setup_complete"):
            return WorkflowNode.END
        return WorkflowNode.SUGGESTIONS

    if node == WorkflowNode.SUGGESTIONS:
        return WorkflowNode.CHECK_EXISTING

    if node == WorkflowNode.CHECK_EXISTING:
        if state.get("skip_generation") or _stopped(state):
            return WorkflowNode.END
        return WorkflowNode.MAIN_GENERATE

    if node in (WorkflowNode.MAIN_GENERATE, WorkflowNode.IMPROVE_RETRY):
        if _stopped(state):
            return WorkflowNode.END
        return WorkflowNode.COVERAGE_EVALUATE

    if node == WorkflowNode.COVERAGE_EVALUATE:
        if state.get("skip_generation"):
            return WorkflowNode.END
        if state.get("coverage", 0.0) >= config.coverage_threshold:
            return WorkflowNode.END
        if state.get("attempts", 0) >= config.max_attempts:
            return WorkflowNode.END
        return WorkflowNode.IMPROVE_RETRY

    return WorkflowNode.END


def resolve_outcome(state: WorkflowState, config: EngineConfig) -> WorkflowOutcome:
    """Outcome of a finished run, derived from coverage when no node set one."""
    outcome = state.get("outcome")
    if outcome is not None:
        return WorkflowOutcome(outcome)
    if state.get("coverage", 0.0) >= config.coverage_threshold:
        return WorkflowOutcome.CONVERGED
    return WorkflowOutcome.TARGET_NOT_MET


def recursion_limit(config: EngineConfig) -> int:
    """Upper bound on graph steps for one run.

    setup, suggestions, check, generate and evaluate run once; every further
    attempt adds an improve and an evaluate step.
    """
    return 5 + 2 * max(config.max_attempts - 1, 0) + RECURSION_SLACK
