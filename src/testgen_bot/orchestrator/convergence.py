"""Corpus-wide convergence loop.

Each round scores every under-covered file, regenerates tests for them in
small concurrent batches, then re-measures the whole corpus. The loop stops
at the global threshold, after ``max_rounds`` rounds, or when nothing is left
to improve.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable

from testgen_bot.agents.change_analyzer import ChangeAnalyzer
from testgen_bot.agents.coverage_extractor import CoverageExtractor, rebase_corpus_paths
from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.agents.test_generator import GenerationContext, TestGenerator
from testgen_bot.config import EngineConfig
from testgen_bot.models import (
    ConvergenceReport,
    CorpusCoverage,
    CoverageReport,
    FileCoverage,
    FileCoverageDetail,
    ImprovementTarget,
)
from testgen_bot.orchestrator.graph import read_text, write_artifact
from testgen_bot.utils.symbol_extractor import RegexSymbolExtractor, SymbolExtractor
from testgen_bot.utils.test_merge import TestMergeEngine

logger = logging.getLogger(__name__)

# (minimum mean coverage, status) checked top to bottom
STATUS_BANDS = [
    (90.0, "excellent"),
    (80.0, "good"),
    (60.0, "needs_improvement"),
]
POOR_STATUS = "poor"


def coverage_status(mean: float) -> str:
    for floor, status in STATUS_BANDS:
        if mean >= floor:
            return status
    return POOR_STATUS


class ConvergenceLoop:
    """Drives batched test regeneration until corpus coverage converges."""

    def __init__(
        self,
        config: EngineConfig,
        generator: TestGenerator,
        extractor: CoverageExtractor,
        inspector: ProjectInspector,
        merge_engine: TestMergeEngine | None = None,
        symbol_extractor: SymbolExtractor | None = None,
        analyzer: ChangeAnalyzer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.generator = generator
        self.extractor = extractor
        self.inspector = inspector
        self.merge_engine = merge_engine or TestMergeEngine()
        self.symbol_extractor: SymbolExtractor = symbol_extractor or RegexSymbolExtractor()
        self.analyzer = analyzer
        self._sleep = sleep
        self.latest_corpus: CorpusCoverage | None = None

    def _known_files(self) -> list[str]:
        files = set(self.inspector.source_files())
        if self.analyzer is not None:
            files.update(self.analyzer.list_tracked_files())
        return sorted(files)

    def _measure(self) -> CorpusCoverage:
        """Measure the corpus with table paths mapped back to repository paths."""
        corpus = rebase_corpus_paths(self.extractor.measure_corpus(), self._known_files())
        self.latest_corpus = corpus
        return corpus

    def _priority(self, metrics: dict[str, float]) -> float:
        thresholds = self.config.thresholds.as_dict()
        return sum(max(0.0, thresholds[name] - metrics[name]) for name in thresholds)

    def _uncovered_symbols(self, row: FileCoverage) -> list[str]:
        if not row.uncovered_lines:
            return []
        source = read_text(self.inspector.resolve(row.path))
        uncovered = set(row.uncovered_lines)
        declarations = self.symbol_extractor.declaration_lines(source)
        return sorted(name for name, line in declarations.items() if line in uncovered)

    def score_targets(self, corpus: CorpusCoverage) -> list[ImprovementTarget]:
        """Every tracked file below any metric threshold, highest priority first."""
        targets: list[ImprovementTarget] = []
        for row in corpus.files:
            if not self.config.source_filter.matches(row.path):
                continue
            metrics = row.metrics()
            priority = self._priority(metrics)
            if priority <= 0:
                continue
            targets.append(
                ImprovementTarget(
                    file_path=row.path,
                    current_coverage=metrics,
                    uncovered_symbols=self._uncovered_symbols(row),
                    priority=priority,
                )
            )
        targets.sort(key=lambda target: target.priority, reverse=True)
        return targets

    def _improve_target(self, target: ImprovementTarget) -> bool:
        """Regenerate and merge tests for one file. True when the artifact changed."""
        source_path = self.inspector.resolve(target.file_path)
        source_text = read_text(source_path)
        if not source_text.strip():
            logger.warning("Skipping %s: source missing or empty", target.file_path)
            return False

        generated = self.generator.generate(
            GenerationContext(
                file_path=target.file_path,
                source_text=source_text,
                import_hints=self.inspector.import_hints(target.file_path, source_text),
                target_symbols=target.uncovered_symbols,
            )
        )

        test_path = self.inspector.test_path(target.file_path)
        existing = read_text(test_path)
        merged = self.merge_engine.merge(existing, generated)
        if merged == existing:
            return False
        write_artifact(test_path, merged)
        return True

    def _run_batch(self, batch: list[ImprovementTarget]) -> int:
        improved = 0
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = {executor.submit(self._improve_target, target): target for target in batch}
            for future in as_completed(futures):
                target = futures[future]
                try:
                    if future.result():
                        improved += 1
                except Exception as exc:
                    logger.warning("Improving %s failed: %s", target.file_path, exc)
        return improved

    def _run_round(self, targets: list[ImprovementTarget]) -> int:
        size = self.config.batch_size
        improved = 0
        for start in range(0, len(targets), size):
            if start > 0:
                self._sleep(self.config.batch_delay_seconds)
            improved += self._run_batch(targets[start:start + size])
        return improved

    def improve(self, targets: list[ImprovementTarget]) -> ConvergenceReport:
        """Run rounds until the global threshold or the round budget is hit.

        A round that improves nothing still counts toward the budget.
        """
        rounds = 0
        improved_files = 0
        final_coverage = self.latest_corpus.overall if self.latest_corpus else 0.0

        while rounds < self.config.max_rounds and targets:
            rounds += 1
            logger.info(
                "Convergence round %d/%d: %d target(s)",
                rounds,
                self.config.max_rounds,
                len(targets),
            )
            improved_files += self._run_round(targets)

            corpus = self._measure()
            final_coverage = corpus.overall
            logger.info("Round %d coverage: %.2f%%", rounds, final_coverage)

            if final_coverage >= self.config.global_threshold:
                logger.info("Coverage target achieved: %.2f%%", final_coverage)
                break

            targets = self.score_targets(corpus)
            if rounds < self.config.max_rounds and targets:
                self._sleep(self.config.round_delay_seconds)

        return ConvergenceReport(
            rounds=rounds,
            improved_file_count=improved_files,
            final_coverage=final_coverage,
            target_met=final_coverage >= self.config.global_threshold,
        )

    def build_report(
        self,
        corpus: CorpusCoverage,
        convergence: ConvergenceReport,
    ) -> CoverageReport:
        thresholds = self.config.thresholds
        details: list[FileCoverageDetail] = []
        for row in corpus.files:
            recommendations: list[str] = []
            if row.functions < thresholds.functions:
                recommendations.append("Add tests for uncovered functions")
            if row.branches < thresholds.branches:
                recommendations.append("Add tests for conditional branches and error paths")
            if row.statements < thresholds.statements:
                recommendations.append("Increase line coverage by testing edge cases")
            details.append(
                FileCoverageDetail(
                    file=row.path,
                    coverage=row.metrics(),
                    status=coverage_status(row.mean),
                    uncovered_lines=row.uncovered_lines,
                    recommendations=recommendations,
                )
            )
        # Lowest coverage first
        details.sort(key=lambda detail: sum(detail.coverage.values()))

        return CoverageReport(
            overall=corpus.overall,
            passed=corpus.overall >= self.config.global_threshold,
            threshold=self.config.global_threshold,
            summary=corpus.summary.metrics() if corpus.summary else {},
            files=details,
            rounds=convergence.rounds,
            improved_file_count=convergence.improved_file_count,
        )

    def run(self, report_path: str | None = None) -> ConvergenceReport:
        """Measure, score, improve and optionally write a JSON report."""
        corpus = self._measure()
        targets = self.score_targets(corpus)
        logger.info(
            "Initial corpus coverage %.2f%%, %d file(s) below threshold",
            corpus.overall,
            len(targets),
        )

        if corpus.overall >= self.config.global_threshold:
            targets = []
        convergence = self.improve(targets)

        if report_path:
            report = self.build_report(self.latest_corpus or corpus, convergence)
            path = Path(report_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
            logger.info("Coverage report written to %s", path)

        return convergence
