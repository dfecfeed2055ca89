"""Mutation strategy: one-shot regeneration sized by how much a file changed.

No coverage loop runs here. Files changed by at least ``mutation_threshold``
percent get their artifact overwritten; smaller changes append new blocks.
"""

import logging

from testgen_bot.agents.change_analyzer import (
    DEFAULT_BASE_REF,
    DEFAULT_HEAD_REF,
    ChangeAnalyzer,
)
from testgen_bot.agents.exceptions import GenerationError
from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.agents.test_generator import GenerationContext, TestGenerator
from testgen_bot.config import EngineConfig
from testgen_bot.models import ChangeRecord, ChangeStatus, MutationResult
from testgen_bot.orchestrator.graph import read_text, write_artifact
from testgen_bot.utils.test_merge import TestMergeEngine

logger = logging.getLogger(__name__)

MODE_OVERWRITE = "overwrite"
MODE_APPEND = "append"


class MutationStrategy:
    def __init__(
        self,
        config: EngineConfig,
        analyzer: ChangeAnalyzer,
        generator: TestGenerator,
        inspector: ProjectInspector,
        merge_engine: TestMergeEngine | None = None,
    ) -> None:
        self.config = config
        self.analyzer = analyzer
        self.generator = generator
        self.inspector = inspector
        self.merge_engine = merge_engine or TestMergeEngine()

    def process_file(
        self,
        path: str,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> MutationResult | None:
        """Regenerate tests for one file.

        Returns:
            The mode used and the artifact path, or None when the source is
            missing or nothing could be generated.
        """
        source = self.inspector.resolve(path)
        if not source.is_file():
            logger.warning("Source file not found: %s", path)
            return None

        record = ChangeRecord(path=path, status=ChangeStatus.MODIFIED)
        change_percent = self.analyzer.change_metric(record, base_ref, head_ref).change_percent
        mode = MODE_OVERWRITE if change_percent >= self.config.mutation_threshold else MODE_APPEND
        logger.info("Change for %s: %.1f%% -> mode: %s", path, change_percent, mode)

        source_text = read_text(source)
        context = GenerationContext(
            file_path=path,
            source_text=source_text,
            import_hints=self.inspector.import_hints(path, source_text),
        )
        try:
            generated = self.generator.generate(context)
        except GenerationError as exc:
            logger.warning("No content generated for %s: %s", path, exc)
            return None
        if not generated.strip():
            logger.warning("No content generated for %s", path)
            return None

        test_path = self.inspector.test_path(path)
        if mode == MODE_APPEND and test_path.exists():
            generated = self.merge_engine.merge(read_text(test_path), generated)
        write_artifact(test_path, generated)

        return MutationResult(
            mode=mode,
            test_file_path=str(test_path),
            change_percent=change_percent,
        )

    def process_files(
        self,
        paths: list[str],
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> list[MutationResult]:
        results: list[MutationResult] = []
        for path in paths:
            try:
                result = self.process_file(path, base_ref, head_ref)
            except Exception as exc:
                logger.error("Mutation processing failed for %s: %s", path, exc)
                continue
            if result is not None:
                results.append(result)
        return results
