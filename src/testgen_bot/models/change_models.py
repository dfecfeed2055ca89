"""Models describing version-control deltas between two revisions."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChangeStatus(str, Enum):
    """How a tracked file changed between two revisions."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangeRecord(BaseModel):
    """A single file-level change produced by one analysis call."""

    model_config = ConfigDict(frozen=True)

    path: str  # Path at head_ref (or base_ref for deletions)
    status: ChangeStatus
    old_path: str | None = None  # Set only for renames


class SymbolDiff(BaseModel):
    """Symbol-level delta between two revisions of one logical file.

    added/removed/unchanged partition the union of the before and after
    symbol sets; ``added + unchanged`` is exactly the after-set.
    """

    model_config = ConfigDict(frozen=True)

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed)


def compute_change_percent(insertions: int, deletions: int, base_line_count: int) -> float:
    """Percent of the base file touched by a diff, clamped to [0, 100]."""
    raw = 100.0 * (insertions + deletions) / max(base_line_count, 1)
    return min(100.0, max(0.0, raw))


class ChangeMetric(BaseModel):
    """Line-level size of a change, used for replace-vs-patch decisions."""

    model_config = ConfigDict(frozen=True)

    insertions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    base_line_count: int = Field(default=0, ge=0)
    change_percent: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _derive_percent(cls, data):
        if isinstance(data, dict) and "change_percent" not in data:
            data = dict(data)
            data["change_percent"] = compute_change_percent(
                int(data.get("insertions", 0)),
                int(data.get("deletions", 0)),
                int(data.get("base_line_count", 0)),
            )
        return data

    @field_validator("change_percent")
    @classmethod
    def _clamp_percent(cls, value: float) -> float:
        return min(100.0, max(0.0, value))
