"""LangGraph workflow for generating tests for one source file.

Wires SetupValidator, the suggestion scanner, CoverageExtractor and
TestGenerator into a StateGraph whose routing is the pure ``transition``
function.
"""

import logging
from pathlib import Path
from typing import Callable

from langgraph.graph import END, START, StateGraph

from testgen_bot.agents.coverage_extractor import CoverageExtractor
from testgen_bot.agents.exceptions import GenerationError
from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.agents.setup_validator import SetupValidator
from testgen_bot.agents.suggestion_scanner import scan_file
from testgen_bot.agents.test_generator import GenerationContext, TestGenerator
from testgen_bot.config import EngineConfig
from testgen_bot.models import WorkflowOutcome
from testgen_bot.orchestrator.exceptions import GraphBuildError
from testgen_bot.orchestrator.state import WorkflowState, make_initial_state
from testgen_bot.orchestrator.transitions import (
    WorkflowNode,
    recursion_limit,
    resolve_outcome,
    transition,
)
from testgen_bot.utils.test_merge import TestMergeEngine

logger = logging.getLogger(__name__)


def read_text(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def write_artifact(path: str | Path, content: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


def make_production_setup_node(
    validator: SetupValidator,
    inspector: ProjectInspector,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure that checks the project and the source.

    Returns {"setup_complete": True} when both are usable, otherwise an
    outcome of SETUP_FAILED or PRECONDITION_FAILED.
    """

    def production_setup_node(state: WorkflowState) -> dict:
        try:
            report = validator.validate()
        except Exception as exc:
            return {
                "setup_complete": False,
                "outcome": WorkflowOutcome.SETUP_FAILED,
                "errors": [f"production_setup error: {exc}"],
            }
        if not report.valid:
            return {
                "setup_complete": False,
                "outcome": WorkflowOutcome.SETUP_FAILED,
                "errors": [f"setup issue: {issue}" for issue in report.issues],
            }

        source = inspector.resolve(state["file"])
        if not source.is_file() or not read_text(source).strip():
            return {
                "setup_complete": False,
                "outcome": WorkflowOutcome.PRECONDITION_FAILED,
                "errors": [f"source file missing or empty: {state['file']}"],
            }
        return {"setup_complete": True}

    return production_setup_node


def make_suggestions_node(
    inspector: ProjectInspector,
    scanner: Callable[[Path], list[str]] = scan_file,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure that runs the suggestion heuristics.

    Scanner failures are logged and never stop the workflow.
    """

    def suggestions_node(state: WorkflowState) -> dict:
        try:
            return {"suggestions": scanner(inspector.resolve(state["file"]))}
        except Exception as exc:
            logger.warning("Suggestion scan failed for %s: %s", state["file"], exc)
            return {"suggestions": []}

    return suggestions_node


def make_check_existing_node(
    extractor: CoverageExtractor,
    config: EngineConfig,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure that short-circuits covered files."""

    def check_existing_node(state: WorkflowState) -> dict:
        if not Path(state["test_path"]).is_file():
            return {"skip_generation": False}

        result = extractor.extract(state["file"], state["test_path"])
        if result.coverage_percent >= config.coverage_threshold:
            logger.info(
                "%s already at %.2f%%, skipping generation",
                state["file"],
                result.coverage_percent,
            )
            return {
                "coverage": result.coverage_percent,
                "skip_generation": True,
                "outcome": WorkflowOutcome.ALREADY_COVERED,
            }
        return {
            "coverage": result.coverage_percent,
            "error_log": result.failure_snippets or "",
            "skip_generation": False,
        }

    return check_existing_node


def _context(
    state: WorkflowState,
    inspector: ProjectInspector,
    prior_failure_log: str | None = None,
    existing_tests: str | None = None,
) -> GenerationContext:
    source_text = read_text(inspector.resolve(state["file"]))
    return GenerationContext(
        file_path=state["file"],
        source_text=source_text,
        import_hints=inspector.import_hints(state["file"], source_text),
        prior_failure_log=prior_failure_log,
        existing_tests=existing_tests,
        target_symbols=state["target_symbols"],
    )


def make_main_generate_node(
    generator: TestGenerator,
    inspector: ProjectInspector,
    merge_engine: TestMergeEngine,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure for the first generation call.

    Incremental runs merge into the existing artifact; otherwise the
    artifact is overwritten. A GenerationError ends the workflow.
    """

    def main_generate_node(state: WorkflowState) -> dict:
        attempts = state["attempts"] + 1
        try:
            generated = generator.generate(_context(state, inspector))
        except GenerationError as exc:
            return {
                "attempts": attempts,
                "outcome": WorkflowOutcome.GENERATION_FAILED,
                "errors": [f"main_generate error: {exc}"],
            }

        if state["incremental"]:
            generated = merge_engine.merge(read_text(state["test_path"]), generated)
        write_artifact(state["test_path"], generated)
        return {"attempts": attempts}

    return main_generate_node


def make_coverage_evaluate_node(
    extractor: CoverageExtractor,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure that re-measures coverage."""

    def coverage_evaluate_node(state: WorkflowState) -> dict:
        if state["skip_generation"]:
            return {}
        result = extractor.extract(state["file"], state["test_path"])
        return {
            "coverage": result.coverage_percent,
            "error_log": result.failure_snippets or "",
        }

    return coverage_evaluate_node


def make_improve_retry_node(
    generator: TestGenerator,
    inspector: ProjectInspector,
) -> Callable[[WorkflowState], dict]:
    """Factory: returns a node closure that regenerates using the failure log."""

    def improve_retry_node(state: WorkflowState) -> dict:
        attempts = state["attempts"] + 1
        context = _context(
            state,
            inspector,
            prior_failure_log=state["error_log"] or f"Coverage {state['coverage']:.2f}% is below target",
            existing_tests=read_text(state["test_path"]) or None,
        )
        try:
            generated = generator.generate(context)
        except GenerationError as exc:
            return {
                "attempts": attempts,
                "outcome": WorkflowOutcome.GENERATION_FAILED,
                "errors": [f"improve_retry error: {exc}"],
            }
        write_artifact(state["test_path"], generated)
        return {"attempts": attempts}

    return improve_retry_node


def make_router(
    node: WorkflowNode,
    config: EngineConfig,
) -> Callable[[WorkflowState], str]:
    """Factory: returns the conditional-edge function for ``node``."""

    def route(state: WorkflowState) -> str:
        return transition(node, state, config).value

    return route


def build_workflow_graph(
    config: EngineConfig,
    validator: SetupValidator,
    extractor: CoverageExtractor,
    generator: TestGenerator,
    inspector: ProjectInspector,
    merge_engine: TestMergeEngine | None = None,
    scanner: Callable[[Path], list[str]] = scan_file,
):
    """Build and compile the per-file StateGraph.

    Edge topology (every edge is conditional on ``transition``):
      START -> production_setup -> {suggestions, END}
      suggestions -> check_existing -> {main_generate, END}
      main_generate -> {coverage_evaluate, END}
      coverage_evaluate -> {improve_retry, END}
      improve_retry -> {coverage_evaluate, END}

    Returns:
        CompiledStateGraph ready to invoke.

    Raises:
        GraphBuildError: If graph construction fails.
    """
    merge_engine = merge_engine or TestMergeEngine()
    nodes = {
        WorkflowNode.PRODUCTION_SETUP: make_production_setup_node(validator, inspector),
        WorkflowNode.SUGGESTIONS: make_suggestions_node(inspector, scanner),
        WorkflowNode.CHECK_EXISTING: make_check_existing_node(extractor, config),
        WorkflowNode.MAIN_GENERATE: make_main_generate_node(generator, inspector, merge_engine),
        WorkflowNode.COVERAGE_EVALUATE: make_coverage_evaluate_node(extractor),
        WorkflowNode.IMPROVE_RETRY: make_improve_retry_node(generator, inspector),
    }
    successors = {
        WorkflowNode.PRODUCTION_SETUP: [WorkflowNode.SUGGESTIONS],
        WorkflowNode.SUGGESTIONS: [WorkflowNode.CHECK_EXISTING],
        WorkflowNode.CHECK_EXISTING: [WorkflowNode.MAIN_GENERATE],
        WorkflowNode.MAIN_GENERATE: [WorkflowNode.COVERAGE_EVALUATE],
        WorkflowNode.COVERAGE_EVALUATE: [WorkflowNode.IMPROVE_RETRY],
        WorkflowNode.IMPROVE_RETRY: [WorkflowNode.COVERAGE_EVALUATE],
    }

    try:
        graph = StateGraph(WorkflowState)
        for node, fn in nodes.items():
            graph.add_node(node.value, fn)

        graph.add_edge(START, WorkflowNode.PRODUCTION_SETUP.value)
        for node, targets in successors.items():
            path_map = {target.value: target.value for target in targets}
            path_map[WorkflowNode.END.value] = END
            graph.add_conditional_edges(node.value, make_router(node, config), path_map)

        return graph.compile()

    except Exception as exc:
        raise GraphBuildError(f"Failed to build workflow graph: {exc}") from exc


class WorkflowEngine:
    """Runs the per-file workflow graph."""

    def __init__(
        self,
        config: EngineConfig,
        validator: SetupValidator,
        extractor: CoverageExtractor,
        generator: TestGenerator,
        inspector: ProjectInspector,
        merge_engine: TestMergeEngine | None = None,
        scanner: Callable[[Path], list[str]] = scan_file,
    ) -> None:
        self.config = config
        self.inspector = inspector
        self.graph = build_workflow_graph(
            config=config,
            validator=validator,
            extractor=extractor,
            generator=generator,
            inspector=inspector,
            merge_engine=merge_engine,
            scanner=scanner,
        )

    def run(
        self,
        file: str,
        target_symbols: list[str] | None = None,
        incremental: bool = False,
    ) -> WorkflowState:
        """Run the workflow for one source file and return its final state.

        The returned state always carries an outcome.
        """
        state = make_initial_state(
            file=file,
            test_path=str(self.inspector.test_path(file)),
            target_symbols=target_symbols,
            incremental=incremental,
        )
        logger.info("Running workflow for %s (incremental=%s)", file, incremental)
        result = self.graph.invoke(
            state,
            config={"recursion_limit": recursion_limit(self.config)},
        )
        result["outcome"] = resolve_outcome(result, self.config)
        logger.info(
            "Workflow for %s finished: %s at %.2f%% after %d attempt(s)",
            file,
            result["outcome"].value,
            result["coverage"],
            result["attempts"],
        )
        return result
