"""Suggestion Scanner: cheap regex heuristics surfaced before generation."""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

# (pattern, message)
SUGGESTION_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bconsole\.log\s*\("), "Remove leftover console.log calls"),
    (re.compile(r"catch\s*(?:\([^)]*\))?\s*\{\s*\}"), "Empty catch block swallows errors"),
    (re.compile(r"^\s*var\s+\w", re.MULTILINE), "Prefer let/const over var"),
    (re.compile(r"[^=!<>]==[^=]|!=[^=]"), "Use strict equality (===, !==)"),
    (re.compile(r"//\s*(?:TODO|FIXME)\b"), "Resolve TODO/FIXME comments"),
]


def scan_content(content: str) -> list[str]:
    """Return one message per rule that fires, in rule order."""
    if not content:
        return []
    return [message for pattern, message in SUGGESTION_RULES if pattern.search(content)]


def scan_file(path: str | Path) -> list[str]:
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        logger.debug("Cannot scan %s: %s", path, exc)
        return []
    suggestions = scan_content(content)
    if suggestions:
        logger.info("Suggestions for %s: %s", path, "; ".join(suggestions))
    return suggestions
