"""Outer driver: dispatches each ChangeRecord to the per-file workflow."""

import logging
import shutil
from pathlib import Path

from testgen_bot.agents.change_analyzer import (
    DEFAULT_BASE_REF,
    DEFAULT_HEAD_REF,
    ChangeAnalyzer,
)
from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.config import EngineConfig
from testgen_bot.models import ChangeRecord, ChangeStatus, FileRunResult, WorkflowOutcome
from testgen_bot.orchestrator.graph import WorkflowEngine, read_text, write_artifact
from testgen_bot.utils.test_merge import TestMergeEngine

logger = logging.getLogger(__name__)


class ChangeDriver:
    """Turns a list of changes into per-file workflow runs.

    Deleted files lose their test artifact. Added files and large rewrites
    get a fresh artifact. Smaller edits prune tests for removed symbols and
    then generate tests for added ones only.
    """

    def __init__(
        self,
        config: EngineConfig,
        analyzer: ChangeAnalyzer,
        engine: WorkflowEngine,
        inspector: ProjectInspector,
        merge_engine: TestMergeEngine | None = None,
    ) -> None:
        self.config = config
        self.analyzer = analyzer
        self.engine = engine
        self.inspector = inspector
        self.merge_engine = merge_engine or TestMergeEngine()

    def run(
        self,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> list[FileRunResult]:
        records = self.analyzer.analyze(base_ref, head_ref)
        if not records:
            logger.info("No tracked source changes between %s and %s", base_ref, head_ref)
        return self.process(records, base_ref, head_ref)

    def process(
        self,
        records: list[ChangeRecord],
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> list[FileRunResult]:
        """Handle every record in order. One file's failure never stops the rest."""
        results: list[FileRunResult] = []
        for record in records:
            try:
                result = self.process_record(record, base_ref, head_ref)
            except Exception as exc:
                logger.exception("Processing %s failed", record.path)
                result = FileRunResult(
                    file=record.path,
                    status=record.status,
                    outcome=WorkflowOutcome.GENERATION_FAILED,
                    errors=[f"{type(exc).__name__}: {exc}"],
                )
            results.append(result)
        return results

    def process_record(
        self,
        record: ChangeRecord,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> FileRunResult:
        test_path = self.inspector.test_path(record.path)

        if record.status == ChangeStatus.DELETED:
            if test_path.exists():
                test_path.unlink()
                logger.info("Removed test artifact %s", test_path)
            return FileRunResult(
                file=record.path,
                status=record.status,
                outcome=WorkflowOutcome.ARTIFACT_REMOVED,
            )

        if record.status == ChangeStatus.ADDED:
            return self._run_workflow(record)

        if record.status == ChangeStatus.RENAMED and record.old_path:
            self._move_renamed_artifact(record.old_path, test_path)

        metric = self.analyzer.change_metric(record, base_ref, head_ref)
        if metric.change_percent >= self.config.large_change_threshold:
            logger.info(
                "%s changed %.1f%%, regenerating from scratch",
                record.path,
                metric.change_percent,
            )
            if test_path.exists():
                test_path.unlink()
            return self._run_workflow(record, change_percent=metric.change_percent)

        exports = self.analyzer.symbol_diff(record, base_ref, head_ref, kind="exports")
        functions = self.analyzer.symbol_diff(record, base_ref, head_ref, kind="functions")
        removed = sorted(set(exports.removed) | set(functions.removed))
        added = sorted(set(exports.added) | set(functions.added))

        if removed and test_path.exists():
            existing = read_text(test_path)
            pruned = self.merge_engine.prune(existing, removed)
            if pruned != existing:
                write_artifact(test_path, pruned)

        return self._run_workflow(
            record,
            target_symbols=added,
            incremental=True,
            change_percent=metric.change_percent,
            pruned_symbols=removed,
        )

    def _move_renamed_artifact(self, old_source: str, new_test_path: Path) -> None:
        old_test_path = self.inspector.test_path(old_source)
        if old_test_path == new_test_path or not old_test_path.exists():
            return
        if new_test_path.exists():
            logger.info("Keeping existing %s, old artifact %s left in place", new_test_path, old_test_path)
            return
        new_test_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(old_test_path), str(new_test_path))
        logger.info("Moved test artifact %s -> %s", old_test_path, new_test_path)

    def _run_workflow(
        self,
        record: ChangeRecord,
        target_symbols: list[str] | None = None,
        incremental: bool = False,
        change_percent: float | None = None,
        pruned_symbols: list[str] | None = None,
    ) -> FileRunResult:
        state = self.engine.run(
            record.path,
            target_symbols=target_symbols,
            incremental=incremental,
        )
        return FileRunResult(
            file=record.path,
            status=record.status,
            outcome=state["outcome"],
            coverage=state["coverage"],
            attempts=state["attempts"],
            change_percent=change_percent,
            pruned_symbols=list(pruned_symbols or []),
            errors=list(state.get("errors") or []),
        )
