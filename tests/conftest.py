import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from testgen_bot.agents.project_inspector import ProjectInspector
from testgen_bot.config import EngineConfig


@pytest.fixture
def js_repo(tmp_path) -> Path:
    """A minimal CommonJS project with one source file and a Jest dependency."""
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "sample", "devDependencies": {"jest": "^29.0.0"}})
    )
    src = tmp_path / "src"
    src.mkdir()
    (src / "math.js").write_text(
        "function add(a, b) {\n"
        "  return a + b;\n"
        "}\n"
        "\n"
        "function sub(a, b) {\n"
        "  return a - b;\n"
        "}\n"
        "\n"
        "module.exports = { add, sub };\n"
    )
    return tmp_path


@pytest.fixture
def engine_config(js_repo) -> EngineConfig:
    return EngineConfig(repo_path=str(js_repo))


@pytest.fixture
def inspector(engine_config) -> ProjectInspector:
    return ProjectInspector(engine_config)


@pytest.fixture
def mock_generator():
    generator = MagicMock()
    generator.generate.return_value = (
        'const { add } = require("../../src/math");\n'
        "\n"
        'describe("add", () => {\n'
        '  it("adds two numbers", () => {\n'
        "    expect(add(1, 2)).toBe(3);\n"
        "  });\n"
        "});\n"
    )
    return generator
