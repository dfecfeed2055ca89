"""Change Analyzer agent: turns git history into file and symbol deltas."""

import logging
import re
import subprocess
from pathlib import Path

from testgen_bot.config import EngineConfig
from testgen_bot.models import ChangeMetric, ChangeRecord, ChangeStatus, SymbolDiff
from testgen_bot.utils.symbol_extractor import (
    RegexSymbolExtractor,
    SymbolExtractor,
    diff_symbols,
)

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30
# Print non-ASCII paths verbatim instead of C-quoted
GIT_OPTIONS = ("-c", "core.quotepath=off")
DEFAULT_BASE_REF = "HEAD~1"
DEFAULT_HEAD_REF = "HEAD"
SYMBOL_KINDS = ("exports", "functions")

# R100, R087, C075 ...
_SCORED_STATUS_RE = re.compile(r"^([RC])\d*$")


class ChangeAnalyzer:
    """Reads git history for one repository.

    Every git failure is logged and degrades to an empty result, so callers
    never see a subprocess error.
    """

    def __init__(
        self,
        config: EngineConfig,
        extractor: SymbolExtractor | None = None,
        timeout_seconds: int = GIT_TIMEOUT,
    ) -> None:
        self.config = config
        self.repo_path = str(Path(config.repo_path))
        self.extractor: SymbolExtractor = extractor or RegexSymbolExtractor()
        self.timeout_seconds = timeout_seconds

    def _git(self, *args: str) -> str | None:
        """Run a git command in the repository and return stdout, or None."""
        cmd = ["git", *GIT_OPTIONS, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            logger.warning(
                "git %s failed (exit %s): %s",
                " ".join(args),
                exc.returncode,
                (exc.stderr or "").strip(),
            )
            return None
        except subprocess.TimeoutExpired:
            logger.warning("git %s timed out after %ss", " ".join(args), self.timeout_seconds)
            return None
        except OSError as exc:
            logger.warning("git unavailable: %s", exc)
            return None
        return result.stdout

    def _is_tracked(self, path: str | None) -> bool:
        return bool(path) and self.config.source_filter.matches(path)

    def analyze(
        self,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> list[ChangeRecord]:
        """List tracked source files that changed between two revisions.

        Returns:
            One ChangeRecord per tracked path, in git's output order. An empty
            list when git fails.
        """
        output = self._git("diff", "--name-status", "-M", "-C", base_ref, head_ref)
        if output is None:
            return []

        records: list[ChangeRecord] = []
        for raw_line in output.splitlines():
            parts = raw_line.strip().split("\t")
            if len(parts) < 2:
                continue
            record = self._parse_status_line(parts)
            if record is None:
                continue
            if self._is_tracked(record.path) or self._is_tracked(record.old_path):
                records.append(record)

        logger.info(
            "Found %d tracked change(s) between %s and %s",
            len(records),
            base_ref,
            head_ref,
        )
        return records

    @staticmethod
    def _parse_status_line(parts: list[str]) -> ChangeRecord | None:
        code = parts[0]
        scored = _SCORED_STATUS_RE.match(code)
        if scored and len(parts) >= 3:
            if scored.group(1) == "R":
                return ChangeRecord(
                    path=parts[2], status=ChangeStatus.RENAMED, old_path=parts[1]
                )
            # Copies leave the source in place; treat the copy as a new file
            return ChangeRecord(path=parts[2], status=ChangeStatus.ADDED)

        letter = code[:1]
        if letter == "A":
            return ChangeRecord(path=parts[1], status=ChangeStatus.ADDED)
        if letter in ("M", "T"):
            return ChangeRecord(path=parts[1], status=ChangeStatus.MODIFIED)
        if letter == "D":
            return ChangeRecord(path=parts[1], status=ChangeStatus.DELETED)
        return None

    def file_at(self, ref: str, path: str) -> str:
        """Content of ``path`` at ``ref``, or "" when it does not exist there."""
        output = self._git("show", f"{ref}:{path}")
        return output or ""

    def _symbols(self, source: str, kind: str) -> set[str]:
        if kind == "exports":
            return self.extractor.exports(source)
        if kind == "functions":
            return self.extractor.functions(source)
        raise ValueError(f"Unknown symbol kind: {kind}")

    def symbol_diff(
        self,
        record: ChangeRecord,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
        kind: str = "exports",
    ) -> SymbolDiff:
        """Diff the exported (or top-level function) names of one file.

        For renames the old revision is read from ``old_path``. Added files
        have an empty before-set and deleted files an empty after-set.
        """
        old_path = record.old_path or record.path
        before = "" if record.status == ChangeStatus.ADDED else self.file_at(base_ref, old_path)
        after = "" if record.status == ChangeStatus.DELETED else self.file_at(head_ref, record.path)
        return diff_symbols(self._symbols(before, kind), self._symbols(after, kind))

    def change_metric(
        self,
        record: ChangeRecord,
        base_ref: str = DEFAULT_BASE_REF,
        head_ref: str = DEFAULT_HEAD_REF,
    ) -> ChangeMetric:
        """Count inserted and deleted lines relative to the base revision."""
        paths = [record.path]
        if record.old_path and record.old_path != record.path:
            paths.insert(0, record.old_path)

        output = self._git("diff", "--numstat", "-M", base_ref, head_ref, "--", *paths)
        insertions = 0
        deletions = 0
        for line in (output or "").splitlines():
            fields = line.split("\t")
            if len(fields) < 3:
                continue
            # Binary files report "-"
            if fields[0].isdigit():
                insertions += int(fields[0])
            if fields[1].isdigit():
                deletions += int(fields[1])

        if record.status == ChangeStatus.ADDED:
            base_line_count = 0
        else:
            base_line_count = len(
                self.file_at(base_ref, record.old_path or record.path).splitlines()
            )

        return ChangeMetric(
            insertions=insertions,
            deletions=deletions,
            base_line_count=base_line_count,
        )

    def list_tracked_files(self) -> list[str]:
        """All tracked source files at the working tree, filtered and sorted."""
        output = self._git("ls-files")
        if output is None:
            return []
        return sorted(
            line.strip() for line in output.splitlines() if self._is_tracked(line.strip())
        )
