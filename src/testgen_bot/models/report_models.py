"""Report models written as a side effect of a corpus-wide pass."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FileCoverageDetail(BaseModel):
    model_config = ConfigDict(frozen=False)

    file: str
    coverage: dict[str, float] = Field(default_factory=dict)
    status: str  # "excellent" | "good" | "needs_improvement" | "poor"
    uncovered_lines: list[int] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class CoverageReport(BaseModel):
    model_config = ConfigDict(frozen=False)

    overall: float
    passed: bool
    threshold: float
    summary: dict[str, float] = Field(default_factory=dict)
    files: list[FileCoverageDetail] = Field(default_factory=list)
    rounds: int = 0
    improved_file_count: int = 0
    generated_at: datetime = Field(default_factory=datetime.now)
