"""Tests for the corpus-wide ConvergenceLoop (runner and generator mocked)."""

import json
from unittest.mock import MagicMock, call

import pytest

from testgen_bot.config import EngineConfig
from testgen_bot.models import CorpusCoverage, FileCoverage, ImprovementTarget
from testgen_bot.orchestrator.convergence import ConvergenceLoop, coverage_status


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row(path: str, value: float, uncovered: list[int] | None = None) -> FileCoverage:
    return FileCoverage(
        path=path,
        statements=value,
        branches=value,
        functions=value,
        lines=value,
        uncovered_lines=uncovered or [],
    )


def _corpus(overall: float, *rows: FileCoverage) -> CorpusCoverage:
    return CorpusCoverage(files=list(rows), summary=_row("All files", overall))


def _make_loop(config, inspector, generator, extractor, sleep=None) -> ConvergenceLoop:
    return ConvergenceLoop(
        config=config,
        generator=generator,
        extractor=extractor,
        inspector=inspector,
        sleep=sleep or MagicMock(),
    )


def _add_sources(js_repo, names):
    for name in names:
        (js_repo / "src" / name).write_text(f"function {name[:-3]}() {{}}\nmodule.exports = {{ {name[:-3]} }};\n")


# ---------------------------------------------------------------------------
# score_targets
# ---------------------------------------------------------------------------


def test_score_targets_filters_and_prioritises(engine_config, inspector, mock_generator):
    corpus = _corpus(
        70.0,
        _row("src/done.js", 100.0),
        _row("src/math.js", 70.0, uncovered=[5, 6]),
        FileCoverage(path="src/other.js", statements=80, branches=70, functions=85, lines=80),
        _row("tests/src/math.test.js", 10.0),
    )
    loop = _make_loop(engine_config, inspector, mock_generator, MagicMock())

    targets = loop.score_targets(corpus)

    assert [t.file_path for t in targets] == ["src/math.js", "src/other.js"]
    assert targets[0].priority == pytest.approx(10 + 5 + 15 + 10)
    assert targets[1].priority == pytest.approx(5)
    assert targets[0].uncovered_symbols == ["sub"]
    assert targets[1].uncovered_symbols == []


def test_score_targets_uses_configured_thresholds(js_repo, inspector, mock_generator):
    config = EngineConfig(repo_path=str(js_repo))
    config.thresholds = config.thresholds.model_copy(update={"branches": 60.0})
    loop = _make_loop(config, inspector, mock_generator, MagicMock())
    row = FileCoverage(path="src/math.js", statements=90, branches=65, functions=90, lines=90)

    assert loop.score_targets(_corpus(90.0, row)) == []


# ---------------------------------------------------------------------------
# improve / run
# ---------------------------------------------------------------------------


def test_stuck_coverage_stops_after_max_rounds(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(70.0, _row("src/math.js", 70.0))
    sleep = MagicMock()
    loop = _make_loop(engine_config, inspector, mock_generator, extractor, sleep)

    report = loop.run()

    assert report.rounds == 3
    assert report.final_coverage == 70.0
    assert not report.target_met
    # Initial measurement plus one per round
    assert extractor.measure_corpus.call_count == 4
    assert mock_generator.generate.call_count == 3
    # Round delays only between rounds, no batch delay for a single batch
    assert sleep.call_args_list == [call(2.0), call(2.0)]


def test_stagnant_rounds_still_count(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(70.0, _row("src/math.js", 70.0))
    loop = _make_loop(engine_config, inspector, mock_generator, extractor)

    report = loop.run()

    # The first round writes the artifact, the others merge nothing new
    assert report.improved_file_count == 1
    assert report.rounds == engine_config.max_rounds


def test_stops_once_global_threshold_is_met(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    extractor.measure_corpus.side_effect = [
        _corpus(70.0, _row("src/math.js", 70.0)),
        _corpus(85.0, _row("src/math.js", 85.0)),
    ]
    sleep = MagicMock()
    loop = _make_loop(engine_config, inspector, mock_generator, extractor, sleep)

    report = loop.run()

    assert report.rounds == 1
    assert report.final_coverage == 85.0
    assert report.target_met
    sleep.assert_not_called()


def test_already_converged_corpus_runs_no_rounds(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(90.0, _row("src/math.js", 70.0))
    loop = _make_loop(engine_config, inspector, mock_generator, extractor)

    report = loop.run()

    assert report.rounds == 0
    assert report.target_met
    mock_generator.generate.assert_not_called()


def test_batches_with_delay_between_them(js_repo, inspector, mock_generator):
    config = EngineConfig(repo_path=str(js_repo), max_rounds=1, batch_size=3)
    names = ["a.js", "b.js", "c.js", "d.js"]
    _add_sources(js_repo, names)
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(50.0)
    sleep = MagicMock()
    loop = _make_loop(config, inspector, mock_generator, extractor, sleep)
    targets = [ImprovementTarget(file_path=f"src/{name}", priority=1.0) for name in names]

    report = loop.improve(targets)

    assert report.improved_file_count == 4
    assert mock_generator.generate.call_count == 4
    assert sleep.call_args_list == [call(1.0)]
    for name in names:
        assert inspector.test_path(f"src/{name}").exists()


def test_target_failure_does_not_abort_batch(js_repo, inspector):
    config = EngineConfig(repo_path=str(js_repo), max_rounds=1)
    _add_sources(js_repo, ["a.js", "b.js"])
    generator = MagicMock()

    def generate(context):
        if context.file_path == "src/a.js":
            raise RuntimeError("service down")
        return 'describe("b", () => {\n});\n'

    generator.generate.side_effect = generate
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(50.0)
    loop = _make_loop(config, inspector, generator, extractor)

    report = loop.improve([
        ImprovementTarget(file_path="src/a.js", priority=2.0),
        ImprovementTarget(file_path="src/b.js", priority=1.0),
    ])

    assert report.improved_file_count == 1
    assert not inspector.test_path("src/a.js").exists()
    assert inspector.test_path("src/b.js").exists()


def test_generation_receives_uncovered_symbols(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(85.0)
    loop = _make_loop(engine_config, inspector, mock_generator, extractor)

    loop.improve([ImprovementTarget(file_path="src/math.js", uncovered_symbols=["sub"])])

    context = mock_generator.generate.call_args[0][0]
    assert context.target_symbols == ["sub"]
    assert context.prior_failure_log is None


def test_generated_tests_merge_into_existing(engine_config, inspector, mock_generator):
    path = inspector.test_path("src/math.js")
    path.parent.mkdir(parents=True)
    path.write_text('describe("sub", () => {\n});\n')
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(85.0)
    loop = _make_loop(engine_config, inspector, mock_generator, extractor)

    loop.improve([ImprovementTarget(file_path="src/math.js")])

    content = path.read_text()
    assert content.startswith('describe("sub"')
    assert 'describe("add"' in content


def test_empty_targets_runs_nothing(engine_config, inspector, mock_generator):
    extractor = MagicMock()
    report = _make_loop(engine_config, inspector, mock_generator, extractor).improve([])

    assert report.rounds == 0
    extractor.measure_corpus.assert_not_called()


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("mean", "status"),
    [(95.0, "excellent"), (90.0, "excellent"), (85.0, "good"), (60.0, "needs_improvement"), (10.0, "poor")],
)
def test_coverage_status_bands(mean, status):
    assert coverage_status(mean) == status


def test_run_writes_json_report(engine_config, inspector, mock_generator, tmp_path):
    final = _corpus(
        72.0,
        _row("src/math.js", 90.0),
        FileCoverage(path="src/low.js", statements=50, branches=40, functions=30, lines=50,
                     uncovered_lines=[3]),
    )
    extractor = MagicMock()
    extractor.measure_corpus.side_effect = [_corpus(60.0, _row("src/math.js", 60.0)), final]
    config = engine_config.model_copy(update={"max_rounds": 1})
    loop = _make_loop(config, inspector, mock_generator, extractor)
    report_path = tmp_path / "reports" / "coverage.json"

    loop.run(report_path=str(report_path))

    data = json.loads(report_path.read_text())
    assert data["overall"] == 72.0
    assert data["passed"] is False
    assert data["threshold"] == 80.0
    assert data["rounds"] == 1
    assert data["summary"]["lines"] == 72.0
    assert [f["file"] for f in data["files"]] == ["src/low.js", "src/math.js"]
    low = data["files"][0]
    assert low["status"] == "poor"
    assert low["uncovered_lines"] == [3]
    assert low["recommendations"] == [
        "Add tests for uncovered functions",
        "Add tests for conditional branches and error paths",
        "Increase line coverage by testing edge cases",
    ]
    assert data["files"][1]["status"] == "excellent"
    assert data["files"][1]["recommendations"] == []


# ---------------------------------------------------------------------------
# Table paths relative to the common source root
# ---------------------------------------------------------------------------


def test_rows_without_common_prefix_resolve_to_repo_files(js_repo, inspector, mock_generator):
    controller = js_repo / "server" / "controller" / "admin.controller.js"
    controller.parent.mkdir(parents=True)
    controller.write_text("function list() {}\nmodule.exports = { list };\n")
    config = EngineConfig(repo_path=str(js_repo), max_rounds=1)
    extractor = MagicMock()
    extractor.measure_corpus.side_effect = [
        _corpus(40.0, _row("controller/admin.controller.js", 40.0, uncovered=[1])),
        _corpus(85.0, _row("controller/admin.controller.js", 85.0)),
    ]
    loop = _make_loop(config, inspector, mock_generator, extractor)

    report = loop.run()

    assert mock_generator.generate.call_count == 1
    context = mock_generator.generate.call_args[0][0]
    assert context.file_path == "server/controller/admin.controller.js"
    assert context.target_symbols == ["list"]
    assert inspector.test_path("server/controller/admin.controller.js").exists()
    assert report.improved_file_count == 1
    assert loop.latest_corpus.files[0].path == "server/controller/admin.controller.js"


def test_tracked_files_from_analyzer_are_used(engine_config, inspector, mock_generator):
    analyzer = MagicMock()
    analyzer.list_tracked_files.return_value = ["lib/only/tracked.js"]
    extractor = MagicMock()
    extractor.measure_corpus.return_value = _corpus(90.0, _row("only/tracked.js", 90.0))
    loop = ConvergenceLoop(
        config=engine_config,
        generator=mock_generator,
        extractor=extractor,
        inspector=inspector,
        analyzer=analyzer,
        sleep=MagicMock(),
    )

    loop.run()

    analyzer.list_tracked_files.assert_called_once_with()
    assert loop.latest_corpus.files[0].path == "lib/only/tracked.js"
