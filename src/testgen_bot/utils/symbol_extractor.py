"""Best-effort symbol extraction from JavaScript source text.

Extraction is pattern matching over raw text, not parsing. Ambiguity is
resolved toward over-inclusion: a name is reported as exported if any pattern
fires. Callers depend on the SymbolExtractor protocol so the regex heuristics
can later be replaced by a real parser.
"""

import re
from typing import Protocol

from testgen_bot.models.change_models import SymbolDiff

IDENTIFIER = r"[A-Za-z_$][\w$]*"

EXPORT_DECLARATION_RE = re.compile(
    rf"\bexport\s+(?:default\s+)?(?:async\s+)?(?:function\s*\*?|const|let|var|class)\s+({IDENTIFIER})"
)
EXPORT_LIST_RE = re.compile(r"\bexport\s*\{([^}]*)\}")
MODULE_EXPORTS_OBJECT_RE = re.compile(r"\bmodule\.exports\s*=\s*\{([^}]*)\}")
MODULE_EXPORTS_MEMBER_RE = re.compile(
    rf"\b(?:module\.)?exports\.({IDENTIFIER})\s*="
)
MODULE_EXPORTS_IDENTIFIER_RE = re.compile(
    rf"\bmodule\.exports\s*=\s*({IDENTIFIER})\s*;?\s*$", re.MULTILINE
)

FUNCTION_DECLARATION_RE = re.compile(
    rf"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*({IDENTIFIER})\s*\(",
    re.MULTILINE,
)
FUNCTION_EXPRESSION_RE = re.compile(
    rf"^(?:export\s+)?(?:const|let|var)\s+({IDENTIFIER})\s*=\s*"
    rf"(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|{IDENTIFIER}\s*=>)",
    re.MULTILINE,
)

# Keywords that can appear where an identifier is expected in the patterns above
_RESERVED = frozenset({"function", "class", "const", "let", "var", "async", "default"})


class SymbolExtractor(Protocol):
    """Interface for extracting symbol names from a source file."""

    def exports(self, source: str) -> set[str]: ...

    def functions(self, source: str) -> set[str]: ...

    def declaration_lines(self, source: str) -> dict[str, int]: ...


def _split_export_list(body: str) -> list[str]:
    """Names exported by ``export { a, b as c }`` (the alias wins)."""
    names = []
    for item in body.split(","):
        item = item.strip()
        if not item:
            continue
        parts = re.split(r"\s+as\s+", item)
        name = parts[-1].strip()
        if re.fullmatch(IDENTIFIER, name):
            names.append(name)
    return names


def _split_object_keys(body: str) -> list[str]:
    """Keys of ``module.exports = { a, b: c, d() {} }``."""
    names = []
    for item in body.split(","):
        item = item.strip()
        if not item:
            continue
        key = re.split(r"[:(]", item, maxsplit=1)[0].strip().strip("\"'")
        key = key.removeprefix("async ").strip()
        if key.startswith("..."):
            continue
        if re.fullmatch(IDENTIFIER, key):
            names.append(key)
    return names


class RegexSymbolExtractor:
    """SymbolExtractor backed by regular expressions."""

    def exports(self, source: str) -> set[str]:
        """Return every name any export pattern matches."""
        if not source:
            return set()

        names: set[str] = set()
        names.update(EXPORT_DECLARATION_RE.findall(source))
        for body in EXPORT_LIST_RE.findall(source):
            names.update(_split_export_list(body))
        for body in MODULE_EXPORTS_OBJECT_RE.findall(source):
            names.update(_split_object_keys(body))
        names.update(MODULE_EXPORTS_MEMBER_RE.findall(source))
        names.update(MODULE_EXPORTS_IDENTIFIER_RE.findall(source))
        return names - _RESERVED

    def functions(self, source: str) -> set[str]:
        """Return names of top-level (unindented) function declarations."""
        return set(self.declaration_lines(source))

    def declaration_lines(self, source: str) -> dict[str, int]:
        """Map each top-level function name to its 1-based declaration line."""
        if not source:
            return {}

        lines: dict[str, int] = {}
        for pattern in (FUNCTION_DECLARATION_RE, FUNCTION_EXPRESSION_RE):
            for match in pattern.finditer(source):
                name = match.group(1)
                if name in _RESERVED:
                    continue
                line_no = source.count("\n", 0, match.start()) + 1
                lines.setdefault(name, line_no)
        return lines


def diff_symbols(before: set[str], after: set[str]) -> SymbolDiff:
    """Partition before/after symbol sets into added, removed and unchanged."""
    return SymbolDiff(
        added=sorted(after - before),
        removed=sorted(before - after),
        unchanged=sorted(before & after),
    )
