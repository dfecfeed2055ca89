"""Tests for ProjectInspector."""

import json

from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.config import EngineConfig


def test_test_path_mirrors_source_tree(js_repo, inspector):
    assert inspector.test_path("src/math.js") == js_repo / "tests" / "src" / "math.test.js"


def test_test_path_accepts_absolute_source(js_repo, inspector):
    absolute = str(js_repo / "src" / "math.js")
    assert inspector.test_path(absolute) == js_repo / "tests" / "src" / "math.test.js"


def test_test_path_honours_test_dir(js_repo):
    inspector = ProjectInspector(EngineConfig(repo_path=str(js_repo), test_dir="__generated__"))
    assert inspector.test_path("lib/util.mjs") == (
        js_repo / "__generated__" / "lib" / "util.test.mjs"
    )


def test_commonjs_import_hint(inspector):
    assert inspector.import_hints("src/math.js") == (
        'const { add, sub } = require("../../src/math");'
    )


def test_esm_import_hint_keeps_extension(js_repo):
    (js_repo / "package.json").write_text(json.dumps({"type": "module"}))
    (js_repo / "src" / "esm.js").write_text("export function add(a, b) { return a + b; }\n")
    inspector = ProjectInspector(EngineConfig(repo_path=str(js_repo)))

    assert inspector.package_type() == "module"
    assert inspector.import_hints("src/esm.js") == 'import { add } from "../../src/esm.js";'


def test_default_import_when_no_exports(js_repo, inspector):
    (js_repo / "src" / "run-me.js").write_text("console.log('hi');\n")
    assert inspector.import_hints("src/run-me.js") == (
        'const run_me = require("../../src/run-me");'
    )


def test_import_hint_uses_given_source_text(inspector):
    hint = inspector.import_hints("src/math.js", source_text="exports.only = 1;\n")
    assert hint == 'const { only } = require("../../src/math");'


def test_package_type_defaults_to_commonjs_without_package_json(tmp_path):
    inspector = ProjectInspector(EngineConfig(repo_path=str(tmp_path)))
    assert inspector.package_type() == "commonjs"


def test_package_type_is_cached(js_repo, inspector):
    assert inspector.package_type() == "commonjs"
    (js_repo / "package.json").write_text(json.dumps({"type": "module"}))
    assert inspector.package_type() == "commonjs"


def test_source_files_lists_filtered_sources(js_repo, inspector):
    (js_repo / "server" / "controller").mkdir(parents=True)
    (js_repo / "server" / "controller" / "admin.controller.js").write_text("")
    (js_repo / "node_modules" / "lib").mkdir(parents=True)
    (js_repo / "node_modules" / "lib" / "index.js").write_text("")
    (js_repo / "tests" / "src").mkdir(parents=True)
    (js_repo / "tests" / "src" / "math.test.js").write_text("")
    (js_repo / "README.md").write_text("")

    assert inspector.source_files() == [
        "server/controller/admin.controller.js",
        "src/math.js",
    ]
