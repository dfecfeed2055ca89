"""Strip LLM formatting artifacts from generated test code."""

import re

LEADING_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?")
TRAILING_FENCE_RE = re.compile(r"\n?```[ \t]*$")
TRAILING_FENCED_TAIL_RE = re.compile(r"\n```[\s\S]*$")
LEADING_HTML_COMMENT_RE = re.compile(r"^<!--[\s\S]*?-->\s*")
TRAILING_HTML_COMMENT_RE = re.compile(r"\s*<!--[\s\S]*?-->$")

# Prose introducing the code, e.g. "Here's the test code:"
CODE_INTRO_PATTERNS = [
    re.compile(r"^.*?here'?s?\s+(?:the\s+)?(?:test\s+)?code:?[ \t]*\n", re.IGNORECASE),
    re.compile(r"^.*?the\s+test\s+file\s+should\s+be:?[ \t]*\n", re.IGNORECASE),
    re.compile(r"^.*?test\s+code:?[ \t]*\n", re.IGNORECASE),
    re.compile(r"^.*?jest\s+test:?[ \t]*\n", re.IGNORECASE),
    re.compile(r"^.*?unit\s+test:?[ \t]*\n", re.IGNORECASE),
]

# A trailing prose paragraph after a blank line. Everything from the blank
# line to the end must be free of brackets, braces, semicolons and "=".
CODE_OUTRO_RE = re.compile(
    r"\n\n(?=[A-Za-z])[^(){};=]*?(?:this\s+test|the\s+above|explanation|note:)[^(){};=]*$",
    re.IGNORECASE,
)

CODE_LINE_PREFIXES = (
    "const ",
    "let ",
    "var ",
    "import ",
    "require(",
    "jest.",
    "describe(",
    "test(",
    "it(",
    "beforeEach(",
    "afterEach(",
    "beforeAll(",
    "afterAll(",
    "function ",
    "//",
    "/*",
    "'use strict'",
    '"use strict"',
)

VALID_START_RE = re.compile(
    r"^(?:const|let|var|import|require|jest|describe|test|it|beforeEach|afterEach"
    r"|beforeAll|afterAll|function|'use strict'|\"use strict\"|/\*|//)"
)

EXPLANATORY_PATTERNS = [
    re.compile(r"here'?s\s+(?:the\s+)?(?:test\s+)?code", re.IGNORECASE),
    re.compile(r"this\s+test\s+(?:will|should|checks?)", re.IGNORECASE),
    re.compile(r"the\s+above\s+test", re.IGNORECASE),
    re.compile(r"explanation:", re.IGNORECASE),
]


def clean_generated_code(generated_text: str | None) -> str:
    """Return bare test code with fences, leading prose and trailing notes removed.

    Input that is already clean comes back unchanged apart from a single
    trailing newline.
    """
    if not generated_text or not isinstance(generated_text, str):
        return ""

    cleaned = generated_text.strip()
    cleaned = LEADING_HTML_COMMENT_RE.sub("", cleaned, count=1)

    # Intro prose goes first so the fence after it counts as a leading fence
    if not cleaned.startswith("```") and not VALID_START_RE.match(cleaned):
        for pattern in CODE_INTRO_PATTERNS:
            if pattern.search(cleaned):
                cleaned = pattern.sub("", cleaned, count=1).lstrip()
                break

    cleaned = LEADING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = TRAILING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = TRAILING_FENCED_TAIL_RE.sub("", cleaned, count=1)
    cleaned = TRAILING_HTML_COMMENT_RE.sub("", cleaned, count=1)

    cleaned = CODE_OUTRO_RE.sub("", cleaned, count=1)

    if not VALID_START_RE.match(cleaned.lstrip()):
        lines = cleaned.split("\n")
        for index, line in enumerate(lines):
            if line.strip().startswith(CODE_LINE_PREFIXES):
                cleaned = "\n".join(lines[index:])
                break

    cleaned = cleaned.strip()
    if cleaned:
        cleaned += "\n"
    return cleaned


def validate_generated_code(code: str) -> list[str]:
    """Return human-readable issues found in cleaned code (empty if none)."""
    issues: list[str] = []

    if "```" in code:
        issues.append("Contains markdown code blocks")

    if any(pattern.search(code) for pattern in EXPLANATORY_PATTERNS):
        issues.append("Contains explanatory text that should be removed")

    if not VALID_START_RE.match(code.strip()):
        issues.append("Does not start with valid JavaScript syntax")

    return issues
