"""Coverage and failure models reconstructed from test-runner console output."""

from pydantic import BaseModel, ConfigDict, Field

MAX_SNIPPET_LINES = 4
METRIC_NAMES = ("statements", "branches", "functions", "lines")


class FailureSnippet(BaseModel):
    """Filtered diagnostic text for one failing assertion or suite."""

    model_config = ConfigDict(frozen=False)

    source_label: str  # Test file the failure came from
    test_label: str | None = None  # None for suite-level (load-time) errors
    lines: list[str] = Field(default_factory=list, max_length=MAX_SNIPPET_LINES)

    def render(self) -> str:
        header = f"[{self.source_label}]"
        if self.test_label:
            header += f" {self.test_label}"
        body = "\n".join(f"  {line}" for line in self.lines)
        return f"{header}\n{body}" if body else header


class CoverageResult(BaseModel):
    """Outcome of one extraction call. Never cached."""

    model_config = ConfigDict(frozen=False)

    coverage_percent: float = 0.0
    failure_snippets: str | None = None
    failures: list[FailureSnippet] = Field(default_factory=list)


class FileCoverage(BaseModel):
    """One row of the corpus-wide text coverage table."""

    model_config = ConfigDict(frozen=False)

    path: str
    statements: float = 0.0
    branches: float = 0.0
    functions: float = 0.0
    lines: float = 0.0
    uncovered_lines: list[int] = Field(default_factory=list)

    def metrics(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in METRIC_NAMES}

    @property
    def mean(self) -> float:
        return sum(self.metrics().values()) / len(METRIC_NAMES)


class CorpusCoverage(BaseModel):
    """Coverage for every tracked file plus the aggregate row."""

    model_config = ConfigDict(frozen=False)

    files: list[FileCoverage] = Field(default_factory=list)
    summary: FileCoverage | None = None

    @property
    def overall(self) -> float:
        """Arithmetic mean of the four tracked metrics.

        Uses the aggregate row when the tool printed one, otherwise averages
        the per-file rows. An empty corpus reports 0.
        """
        if self.summary is not None:
            return self.summary.mean
        if not self.files:
            return 0.0
        return sum(f.mean for f in self.files) / len(self.files)


class ImprovementTarget(BaseModel):
    """A file queued for regeneration in one convergence round."""

    model_config = ConfigDict(frozen=False)

    file_path: str
    current_coverage: dict[str, float] = Field(default_factory=dict)
    uncovered_symbols: list[str] = Field(default_factory=list)
    priority: float = 0.0


class ConvergenceReport(BaseModel):
    """Result of ConvergenceLoop.improve()."""

    model_config = ConfigDict(frozen=False)

    rounds: int = 0
    improved_file_count: int = 0
    final_coverage: float = 0.0
    target_met: bool = False
