"""Tests for generated-code cleanup."""

import pytest

from testgen_bot.utils.code_cleanup import clean_generated_code, validate_generated_code


def test_clean_input_unchanged_apart_from_newline():
    code = "const a = 1;\n\ndescribe('a', () => {});"
    assert clean_generated_code(code) == code + "\n"


def test_strips_markdown_fences():
    assert clean_generated_code("```javascript\nconst a = 1;\n```") == "const a = 1;\n"


def test_strips_intro_before_fence():
    text = "Here's the test code:\n```js\nconst a = 1;\n```"
    assert clean_generated_code(text) == "const a = 1;\n"


def test_strips_explanation_after_fence():
    text = "```js\nconst a = 1;\n```\n\nThis test checks the add helper."
    assert clean_generated_code(text) == "const a = 1;\n"


def test_strips_trailing_prose_paragraph():
    text = "const a = 1;\n\nThis test verifies addition."
    assert clean_generated_code(text) == "const a = 1;\n"


def test_keeps_code_paragraphs():
    text = "const a = 1;\n\ntest('note: works', () => {});"
    assert clean_generated_code(text) == text + "\n"


def test_keeps_code_lines_that_mention_outro_words():
    text = "const a = 1;\n\nconst explanation = require('./x');\ntest('a', () => {});\n"
    assert clean_generated_code(text) == text


def test_keeps_code_after_prose_like_identifier_line():
    text = (
        "const a = 1;\n"
        "\n"
        "describe('this test suite', () => {\n"
        "  it('works', () => {});\n"
        "});\n"
    )
    assert clean_generated_code(text) == text


def test_trims_to_first_code_line():
    text = "Sure! I wrote these tests.\nconst a = 1;"
    assert clean_generated_code(text) == "const a = 1;\n"


def test_strips_html_comments():
    text = "<!-- generated -->\nconst a = 1;"
    assert clean_generated_code(text) == "const a = 1;\n"


@pytest.mark.parametrize("value", [None, "", "   \n"])
def test_empty_input_returns_empty_string(value):
    assert clean_generated_code(value) == ""


def test_validate_clean_code_has_no_issues():
    assert validate_generated_code("const a = 1;\n") == []


def test_validate_reports_fences_and_prose():
    issues = validate_generated_code("Here's the test code\n```js\nconst a = 1;\n```")
    assert "Contains markdown code blocks" in issues
    assert "Contains explanatory text that should be removed" in issues
    assert "Does not start with valid JavaScript syntax" in issues
