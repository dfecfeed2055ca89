"""Tests for MutationStrategy."""

from unittest.mock import MagicMock

from testgen_bot.agents.exceptions import GenerationError
from testgen_bot.models import ChangeMetric
from testgen_bot.orchestrator.mutation import MODE_APPEND, MODE_OVERWRITE, MutationStrategy
from testgen_bot.utils.test_merge import MERGE_MARKER


def _make_analyzer(change_percent: float) -> MagicMock:
    analyzer = MagicMock()
    analyzer.change_metric.return_value = ChangeMetric(change_percent=change_percent)
    return analyzer


def _make_strategy(engine_config, inspector, generator, change_percent=10.0):
    return MutationStrategy(
        config=engine_config,
        analyzer=_make_analyzer(change_percent),
        generator=generator,
        inspector=inspector,
    )


def _write_existing(inspector, content='describe("old", () => {\n});\n'):
    path = inspector.test_path("src/math.js")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def test_large_change_overwrites(engine_config, inspector, mock_generator):
    path = _write_existing(inspector)
    strategy = _make_strategy(engine_config, inspector, mock_generator, change_percent=60.0)

    result = strategy.process_file("src/math.js")

    assert result.mode == MODE_OVERWRITE
    assert result.test_file_path == str(path)
    assert path.read_text() == mock_generator.generate.return_value


def test_threshold_boundary_overwrites(engine_config, inspector, mock_generator):
    strategy = _make_strategy(engine_config, inspector, mock_generator, change_percent=50.0)
    assert strategy.process_file("src/math.js").mode == MODE_OVERWRITE


def test_small_change_appends(engine_config, inspector, mock_generator):
    path = _write_existing(inspector)
    strategy = _make_strategy(engine_config, inspector, mock_generator, change_percent=10.0)

    result = strategy.process_file("src/math.js")

    content = path.read_text()
    assert result.mode == MODE_APPEND
    assert content.startswith('describe("old"')
    assert MERGE_MARKER in content
    assert 'describe("add"' in content


def test_append_without_existing_writes_new_file(engine_config, inspector, mock_generator):
    strategy = _make_strategy(engine_config, inspector, mock_generator, change_percent=10.0)

    result = strategy.process_file("src/math.js")

    assert result.mode == MODE_APPEND
    assert inspector.test_path("src/math.js").read_text() == mock_generator.generate.return_value


def test_missing_source_returns_none(engine_config, inspector, mock_generator):
    strategy = _make_strategy(engine_config, inspector, mock_generator)
    assert strategy.process_file("src/missing.js") is None
    mock_generator.generate.assert_not_called()


def test_generation_failure_returns_none(engine_config, inspector):
    generator = MagicMock()
    generator.generate.side_effect = GenerationError("no output")
    strategy = _make_strategy(engine_config, inspector, generator)

    assert strategy.process_file("src/math.js") is None
    assert not inspector.test_path("src/math.js").exists()


def test_process_files_skips_failures(engine_config, inspector, mock_generator):
    strategy = _make_strategy(engine_config, inspector, mock_generator)
    strategy.analyzer.change_metric.side_effect = [
        RuntimeError("git broke"),
        ChangeMetric(change_percent=80.0),
    ]

    results = strategy.process_files(["src/math.js", "src/math.js"])

    assert len(results) == 1
    assert results[0].mode == MODE_OVERWRITE
