"""Engine configuration.

Thresholds, budgets and the tracked source-tree filter are passed explicitly
into every engine constructor instead of living in module globals, so tests can
exercise boundary values without touching shared state.
"""

import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TEST_COMMAND = ["npx", "jest"]
ENV_PREFIX = "TESTGEN_"


class CoverageThresholds(BaseModel):
    """Per-metric thresholds used when scoring corpus-wide improvement targets."""

    model_config = ConfigDict(frozen=True)

    statements: float = 80.0
    branches: float = 75.0
    functions: float = 85.0
    lines: float = 80.0

    def as_dict(self) -> dict[str, float]:
        return {
            "statements": self.statements,
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
        }


class RetryPolicy(BaseModel):
    """Timeout and exponential-backoff policy for generation-service calls."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=5.0, ge=0)
    timeout_seconds: float = Field(default=60.0, gt=0)


class SourceFilter(BaseModel):
    """Which repository paths count as tracked source files."""

    model_config = ConfigDict(frozen=True)

    extensions: list[str] = Field(default_factory=lambda: [".js"])
    include_prefixes: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules",
            "coverage",
            "tests/",
            "__tests__",
            "dist/",
            "build/",
        ]
    )
    test_suffixes: list[str] = Field(
        default_factory=lambda: [".test.js", ".spec.js", "_test.js", "_spec.js"]
    )

    def matches(self, path: str) -> bool:
        """Return True if ``path`` is a tracked, non-test source file."""
        normalized = path.replace("\\", "/").strip()
        if not normalized:
            return False
        if not any(normalized.endswith(ext) for ext in self.extensions):
            return False
        if any(normalized.endswith(suffix) for suffix in self.test_suffixes):
            return False
        if any(pattern in normalized for pattern in self.exclude_patterns):
            return False
        if self.include_prefixes and not any(
            normalized.startswith(prefix) for prefix in self.include_prefixes
        ):
            return False
        return True


class EngineConfig(BaseModel):
    """Top-level configuration shared by the workflow and convergence engines."""

    model_config = ConfigDict(frozen=False)

    repo_path: str = "."
    test_dir: str = "tests"
    test_command: list[str] = Field(default_factory=lambda: list(DEFAULT_TEST_COMMAND))
    test_timeout_seconds: int = Field(default=120, gt=0)

    # Per-file workflow
    coverage_threshold: float = 80.0
    max_attempts: int = Field(default=3, ge=1)

    # Change classification
    large_change_threshold: float = 90.0
    mutation_threshold: float = 50.0

    # Corpus-wide convergence
    global_threshold: float = 80.0
    max_rounds: int = Field(default=3, ge=1)
    batch_size: int = Field(default=3, ge=1)
    batch_delay_seconds: float = 1.0
    round_delay_seconds: float = 2.0
    thresholds: CoverageThresholds = Field(default_factory=CoverageThresholds)

    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    source_filter: SourceFilter = Field(default_factory=SourceFilter)


# env var suffix -> (field name, converter)
_ENV_FIELDS = {
    "TEST_DIR": ("test_dir", str),
    "TEST_TIMEOUT": ("test_timeout_seconds", int),
    "COVERAGE_THRESHOLD": ("coverage_threshold", float),
    "MAX_ATTEMPTS": ("max_attempts", int),
    "LARGE_CHANGE_THRESHOLD": ("large_change_threshold", float),
    "MUTATION_THRESHOLD": ("mutation_threshold", float),
    "GLOBAL_THRESHOLD": ("global_threshold", float),
    "MAX_ROUNDS": ("max_rounds", int),
    "BATCH_SIZE": ("batch_size", int),
}


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config(
    repo_path: str = ".",
    env: Mapping[str, str] | None = None,
    **overrides,
) -> EngineConfig:
    """Build an EngineConfig from defaults, ``TESTGEN_*`` env vars and overrides.

    Precedence (lowest to highest): field defaults, environment, keyword
    overrides. Overrides whose value is None are ignored so argparse
    namespaces can be passed through directly.

    Raises:
        pydantic.ValidationError: If a value fails validation.
    """
    source = os.environ if env is None else env
    values: dict = {"repo_path": repo_path}

    for suffix, (field_name, convert) in _ENV_FIELDS.items():
        raw = source.get(f"{ENV_PREFIX}{suffix}")
        if raw:
            values[field_name] = convert(raw)

    test_command = source.get(f"{ENV_PREFIX}TEST_COMMAND")
    if test_command:
        values["test_command"] = test_command.split()

    filter_values: dict = {}
    extensions = source.get(f"{ENV_PREFIX}EXTENSIONS")
    if extensions:
        filter_values["extensions"] = _split_list(extensions)
    prefixes = source.get(f"{ENV_PREFIX}INCLUDE_PREFIXES")
    if prefixes:
        filter_values["include_prefixes"] = _split_list(prefixes)
    if filter_values:
        values["source_filter"] = SourceFilter(**filter_values)

    values.update({key: value for key, value in overrides.items() if value is not None})
    return EngineConfig(**values)
