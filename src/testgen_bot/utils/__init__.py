"""Text utilities for generated test artifacts."""

from testgen_bot.utils.code_cleanup import clean_generated_code, validate_generated_code
from testgen_bot.utils.symbol_extractor import (
    RegexSymbolExtractor,
    SymbolExtractor,
    diff_symbols,
)
from testgen_bot.utils.test_merge import MERGE_MARKER, TestMergeEngine, extract_blocks

__all__ = [
    "MERGE_MARKER",
    "RegexSymbolExtractor",
    "SymbolExtractor",
    "TestMergeEngine",
    "clean_generated_code",
    "diff_symbols",
    "extract_blocks",
    "validate_generated_code",
]
