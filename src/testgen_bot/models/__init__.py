"""Data models for testgen-bot."""

from testgen_bot.models.change_models import (
    ChangeMetric,
    ChangeRecord,
    ChangeStatus,
    SymbolDiff,
    compute_change_percent,
)
from testgen_bot.models.coverage_models import (
    ConvergenceReport,
    CorpusCoverage,
    CoverageResult,
    FailureSnippet,
    FileCoverage,
    ImprovementTarget,
)
from testgen_bot.models.merge_models import TestBlock
from testgen_bot.models.report_models import CoverageReport, FileCoverageDetail
from testgen_bot.models.workflow_models import (
    FileRunResult,
    MutationResult,
    WorkflowOutcome,
)

__all__ = [
    "ChangeMetric",
    "ChangeRecord",
    "ChangeStatus",
    "ConvergenceReport",
    "CorpusCoverage",
    "CoverageReport",
    "CoverageResult",
    "FailureSnippet",
    "FileCoverage",
    "FileCoverageDetail",
    "FileRunResult",
    "ImprovementTarget",
    "MutationResult",
    "SymbolDiff",
    "TestBlock",
    "WorkflowOutcome",
    "compute_change_percent",
]
