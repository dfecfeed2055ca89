"""Tests for the regex symbol extractor."""

from testgen_bot.utils.symbol_extractor import RegexSymbolExtractor, diff_symbols


ESM_SOURCE = """export function add(a, b) {
  return a + b;
}
export const sub = (a, b) => a - b;
export default class Calc {}
const x = 1;
const z = 2;
export { x as y, z };
"""

CJS_SOURCE = """function a() {}
const b = () => 1;
module.exports = { a, b: b, c() {} };
exports.d = 1;
"""


def test_esm_exports():
    assert RegexSymbolExtractor().exports(ESM_SOURCE) == {"add", "sub", "Calc", "y", "z"}


def test_commonjs_exports():
    assert RegexSymbolExtractor().exports(CJS_SOURCE) == {"a", "b", "c", "d"}


def test_module_exports_identifier():
    source = "function calculate() {}\nmodule.exports = calculate;\n"
    assert RegexSymbolExtractor().exports(source) == {"calculate"}


def test_exports_over_include_commented_code():
    # Pattern matching does not understand comments; the name is still reported
    source = "// export function legacy() {}\n"
    assert RegexSymbolExtractor().exports(source) == {"legacy"}


def test_empty_source_has_no_symbols():
    extractor = RegexSymbolExtractor()
    assert extractor.exports("") == set()
    assert extractor.functions("") == set()
    assert extractor.declaration_lines("") == {}


def test_functions_ignore_indented_declarations():
    source = (
        "function top() {}\n"
        "  function nested() {}\n"
        "const arrow = async (x) => x;\n"
        "const value = 42;\n"
        "export async function load() {}\n"
    )
    assert RegexSymbolExtractor().functions(source) == {"top", "arrow", "load"}


def test_declaration_lines_are_one_based():
    source = (
        "function top() {}\n"
        "\n"
        "const arrow = (x) => x;\n"
        "\n"
        "export function load() {}\n"
    )
    assert RegexSymbolExtractor().declaration_lines(source) == {
        "top": 1,
        "arrow": 3,
        "load": 5,
    }


def test_diff_symbols_partitions_union():
    before = {"a", "b"}
    after = {"b", "c"}

    diff = diff_symbols(before, after)

    assert diff.added == ["c"]
    assert diff.removed == ["a"]
    assert diff.unchanged == ["b"]
    assert set(diff.added) | set(diff.unchanged) == after
    assert set(diff.removed) | set(diff.unchanged) == before
    assert not diff.is_empty


def test_diff_symbols_identical_sets_is_empty():
    diff = diff_symbols({"a"}, {"a"})
    assert diff.is_empty
    assert diff.unchanged == ["a"]
