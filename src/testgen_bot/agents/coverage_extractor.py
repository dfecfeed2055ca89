"""Coverage Extractor agent: rebuilds coverage numbers and failure detail
from Jest console output.

Report files on disk are never read. Jest is run twice per target: once with
``--json`` for failure detail and once with the plain text reporter for the
coverage table, because the two are not reliably interleaved in one run.
"""

import json
import logging
import re
import subprocess
from pathlib import Path

from testgen_bot.config import EngineConfig
from testgen_bot.models import (
    CorpusCoverage,
    CoverageResult,
    FailureSnippet,
    FileCoverage,
)
from testgen_bot.models.coverage_models import MAX_SNIPPET_LINES

logger = logging.getLogger(__name__)

# ----------|---------|----------|---------|---------|-------------------
TABLE_BORDER_RE = re.compile(r"^\s*-+\|[-|]+\s*$")
STACK_FRAME_RE = re.compile(r"^\s*at\s")
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")
FALLBACK_LINE_LIMIT = 20
SUMMARY_ROW_NAME = "All files"

_HEADER_COLUMNS = {
    "% Stmts": "statements",
    "% Branch": "branches",
    "% Funcs": "functions",
    "% Lines": "lines",
}


def _decode(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _to_float(cell: str) -> float | None:
    try:
        return float(cell.strip())
    except ValueError:
        return None


def _split_row(line: str) -> list[str]:
    return [cell.strip() for cell in line.split("|")]


def _table_rows(lines: list[str]) -> tuple[list[str] | None, list[list[str]]]:
    """Return the header cells and body rows of the first coverage table.

    The body runs from the header to the first line that is neither a row
    nor a border. Without a header every piped line is treated as a row.
    """
    header_index = None
    for index, line in enumerate(lines):
        cells = _split_row(line)
        if len(cells) > 1 and cells[0] == "File":
            header_index = index
            break

    if header_index is None:
        return None, [
            _split_row(line)
            for line in lines
            if "|" in line and not TABLE_BORDER_RE.match(line)
        ]

    rows: list[list[str]] = []
    for line in lines[header_index + 1:]:
        if TABLE_BORDER_RE.match(line):
            continue
        if "|" not in line:
            break
        rows.append(_split_row(line))
    return _split_row(lines[header_index]), rows


def _looks_like_file(name: str) -> bool:
    return name.startswith("...") or bool(Path(name).suffix)


def parse_coverage_table(output: str, target_name: str) -> float:
    """Return the coverage percent of ``target_name`` from a text table.

    Uses the ``% Lines`` column, else ``% Stmts``. The row whose name equals
    the target's basename wins. Failing that, a single per-file row is
    accepted even when Jest elided its name. Returns 0.0 when nothing usable
    is found.
    """
    lines = ANSI_ESCAPE_RE.sub("", output or "").splitlines()
    header, rows = _table_rows(lines)
    column = 1
    if header is not None:
        if "% Lines" in header:
            column = header.index("% Lines")
        elif "% Stmts" in header:
            column = header.index("% Stmts")

    basename = Path(target_name).name
    file_rows: list[tuple[str, float]] = []
    for cells in rows:
        name = cells[0]
        if not name or name == SUMMARY_ROW_NAME or column >= len(cells):
            continue
        value = _to_float(cells[column])
        if value is None:
            continue
        if name == basename:
            return value
        if _looks_like_file(name):
            file_rows.append((name, value))

    if len(file_rows) == 1:
        return file_rows[0][1]
    return 0.0


def _expand_line_ranges(cell: str) -> list[int]:
    """Expand "5-9,12" into [5, 6, 7, 8, 9, 12]."""
    numbers: list[int] = []
    for part in cell.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, _, end = part.partition("-")
            if start.isdigit() and end.isdigit():
                numbers.extend(range(int(start), int(end) + 1))
        elif part.isdigit():
            numbers.append(int(part))
    return numbers


def parse_corpus_table(output: str) -> CorpusCoverage:
    """Parse every row of a full-project text coverage table.

    Directory rows (no file extension) set the prefix for the file rows that
    follow, so ``src`` then ``math.js`` yields ``src/math.js``.
    """
    lines = ANSI_ESCAPE_RE.sub("", output or "").splitlines()
    header, rows = _table_rows(lines)
    if header is None:
        return CorpusCoverage()

    indexes = {
        field: header.index(label)
        for label, field in _HEADER_COLUMNS.items()
        if label in header
    }
    uncovered_index = next(
        (i for i, label in enumerate(header) if label.startswith("Uncovered")),
        None,
    )

    files: list[FileCoverage] = []
    summary: FileCoverage | None = None
    current_dir = ""
    for cells in rows:
        name = cells[0]
        if not name:
            continue

        metrics = {}
        for field, index in indexes.items():
            value = _to_float(cells[index]) if index < len(cells) else None
            metrics[field] = value if value is not None else 0.0

        if name == SUMMARY_ROW_NAME:
            summary = FileCoverage(path=SUMMARY_ROW_NAME, **metrics)
            continue
        if not Path(name).suffix:
            current_dir = "" if name == "." else name
            continue

        uncovered: list[int] = []
        if uncovered_index is not None and uncovered_index < len(cells):
            uncovered = _expand_line_ranges(cells[uncovered_index])

        path = f"{current_dir}/{name}" if current_dir else name
        files.append(FileCoverage(path=path, uncovered_lines=uncovered, **metrics))

    return CorpusCoverage(files=files, summary=summary)


def rebase_corpus_paths(corpus: CorpusCoverage, known_files: list[str]) -> CorpusCoverage:
    """Rewrite table paths to repository paths, in place.

    The text reporter drops the directory shared by every covered file, so a
    repo whose sources all live under ``server/`` reports
    ``controller/admin.js``. Each such row is mapped to the single known file
    ending with it. Rows that already name a known file, or match none or
    several, are left alone.
    """
    known = set(known_files)
    for row in corpus.files:
        if row.path in known:
            continue
        suffix = "/" + row.path
        matches = [path for path in known_files if path.endswith(suffix)]
        if len(matches) == 1:
            row.path = matches[0]
        elif matches:
            logger.warning("Ambiguous coverage row %s: %s", row.path, ", ".join(matches))
    return corpus


def _filter_message_lines(message: str) -> list[str]:
    kept = []
    for line in ANSI_ESCAPE_RE.sub("", message or "").splitlines():
        if not line.strip():
            continue
        if STACK_FRAME_RE.match(line) or "node_modules" in line:
            continue
        kept.append(line.rstrip())
        if len(kept) >= MAX_SNIPPET_LINES:
            break
    return kept


def fallback_excerpt(text: str) -> str | None:
    """First non-empty raw lines, used when no JSON report can be decoded."""
    raw = [line.rstrip() for line in (text or "").splitlines() if line.strip()]
    if not raw:
        return None
    return "\n".join(raw[:FALLBACK_LINE_LIMIT])


def decode_report(output: str) -> dict | None:
    """Locate and decode the ``--json`` report in combined console output.

    The search starts after the last coverage-table border line, then falls
    back to the first object anywhere in the output.
    """
    text = output or ""
    lines = text.splitlines()
    start_line = 0
    for index, line in enumerate(lines):
        if TABLE_BORDER_RE.match(line):
            start_line = index + 1

    decoder = json.JSONDecoder()
    for candidate in ("\n".join(lines[start_line:]), text):
        brace = candidate.find("{")
        while brace != -1:
            try:
                payload, _ = decoder.raw_decode(candidate[brace:])
            except json.JSONDecodeError:
                brace = candidate.find("{", brace + 1)
                continue
            if isinstance(payload, dict) and "testResults" in payload:
                return payload
            brace = candidate.find("{", brace + 1)
    return None


def parse_failures(payload: dict, label: str = "test run") -> list[FailureSnippet]:
    """One snippet per failed assertion, or per suite that failed to load."""
    snippets: list[FailureSnippet] = []
    for suite in payload.get("testResults") or []:
        source = suite.get("name") or label
        failed_assertions = [
            a for a in suite.get("assertionResults") or [] if a.get("status") == "failed"
        ]
        for assertion in failed_assertions:
            message = "\n".join(assertion.get("failureMessages") or [])
            snippets.append(
                FailureSnippet(
                    source_label=source,
                    test_label=assertion.get("fullName") or assertion.get("title"),
                    lines=_filter_message_lines(message),
                )
            )
        if not failed_assertions and suite.get("status") == "failed":
            snippets.append(
                FailureSnippet(
                    source_label=source,
                    test_label=None,
                    lines=_filter_message_lines(suite.get("message") or ""),
                )
            )
    return snippets


def render_snippets(snippets: list[FailureSnippet]) -> str | None:
    if not snippets:
        return None
    return "\n\n".join(snippet.render() for snippet in snippets)


class CoverageExtractor:
    """Runs Jest for one target and reports coverage plus failure snippets.

    ``extract`` never raises: timeouts, a missing tool and unparseable output
    all degrade to coverage 0 with whatever diagnostics could be salvaged.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self.repo_path = str(Path(config.repo_path))
        self.timeout_seconds = config.test_timeout_seconds

    def _run(self, cmd: list[str]) -> str:
        """Run a command and return combined stdout and stderr."""
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("%s timed out after %ss", cmd[0], self.timeout_seconds)
            return _decode(exc.stdout) + "\n" + _decode(exc.stderr)
        except OSError as exc:
            logger.warning("Could not run %s: %s", cmd[0], exc)
            return str(exc)
        return (result.stdout or "") + "\n" + (result.stderr or "")

    def _relative(self, path: str) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                return str(candidate.relative_to(Path(self.repo_path).resolve()))
            except ValueError:
                return str(candidate)
        return str(candidate)

    def _commands(self, source_path: str, test_path: str | None) -> tuple[list[str], list[str]]:
        source = self._relative(source_path)
        target = self._relative(test_path) if test_path else source
        coverage_args = [
            "--coverage",
            "--coverageReporters=text",
            f"--collectCoverageFrom={source}",
        ]
        base = list(self.config.test_command) + [target]
        return base + ["--json"] + coverage_args, base + coverage_args

    def extract(self, source_path: str, test_path: str | None = None) -> CoverageResult:
        """Measure coverage of ``source_path`` by running its test artifact.

        Args:
            source_path: Source file whose coverage is collected.
            test_path: Test artifact to run. Defaults to ``source_path``,
                letting Jest find related tests itself.

        Returns:
            A fresh CoverageResult. Never raises.
        """
        structured_cmd, text_cmd = self._commands(source_path, test_path)
        try:
            structured_output = self._run(structured_cmd)
            text_output = self._run(text_cmd)

            report = decode_report(structured_output)
            if report is None:
                logger.debug("No JSON report found for %s, keeping raw output", source_path)
                failures: list[FailureSnippet] = []
                failure_text = fallback_excerpt(structured_output)
            else:
                failures = parse_failures(report, label=test_path or source_path)
                failure_text = render_snippets(failures)
            coverage = parse_coverage_table(text_output, source_path)
        except Exception as exc:
            logger.warning("Coverage extraction failed for %s: %s", source_path, exc)
            return CoverageResult(coverage_percent=0.0, failure_snippets=str(exc))

        logger.info(
            "Coverage for %s: %.2f%% (%d failure snippet(s))",
            source_path,
            coverage,
            len(failures),
        )
        return CoverageResult(
            coverage_percent=coverage,
            failure_snippets=failure_text,
            failures=failures,
        )

    def measure_corpus(self) -> CorpusCoverage:
        """Run the whole suite once and parse the full coverage table."""
        cmd = list(self.config.test_command) + ["--coverage", "--coverageReporters=text"]
        try:
            corpus = parse_corpus_table(self._run(cmd))
        except Exception as exc:
            logger.warning("Corpus coverage measurement failed: %s", exc)
            return CorpusCoverage()
        logger.info(
            "Corpus coverage: %.2f%% across %d file(s)",
            corpus.overall,
            len(corpus.files),
        )
        return corpus
