"""Orchestration: the per-file LangGraph workflow and the drivers around it."""

from testgen_bot.orchestrator.convergence import ConvergenceLoop
from testgen_bot.orchestrator.driver import ChangeDriver
from testgen_bot.orchestrator.exceptions import GraphBuildError, OrchestratorError
from testgen_bot.orchestrator.graph import WorkflowEngine, build_workflow_graph
from testgen_bot.orchestrator.mutation import MutationStrategy
from testgen_bot.orchestrator.state import WorkflowState, make_initial_state
from testgen_bot.orchestrator.transitions import WorkflowNode, transition

__all__ = [
    "ChangeDriver",
    "ConvergenceLoop",
    "GraphBuildError",
    "MutationStrategy",
    "OrchestratorError",
    "WorkflowEngine",
    "WorkflowNode",
    "WorkflowState",
    "build_workflow_graph",
    "make_initial_state",
    "transition",
]
