"""CLI entry point for testgen-bot."""
import argparse
from dotenv import load_dotenv
import json
import logging
import os
import sys
import traceback
from pathlib import Path

from pydantic import ValidationError

from testgen_bot.agents.exceptions import AgentError
from testgen_bot.config import EngineConfig, load_config
from testgen_bot.orchestrator.exceptions import OrchestratorError

load_dotenv()

# Exit codes
EXIT_SUCCESS = 0
EXIT_INVALID_INPUT = 1
EXIT_AGENT_ERROR = 2
EXIT_ORCHESTRATOR_ERROR = 3
EXIT_TARGET_NOT_MET = 4
EXIT_UNEXPECTED = 5
EXIT_KEYBOARD_INTERRUPT = 130

# Defaults
DEFAULT_BASE_REF = "HEAD~1"
DEFAULT_HEAD_REF = "HEAD"
DEFAULT_TIMEOUT = 120
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

COMMANDS = ("run", "converge", "mutate", "analyze")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Safe keys allowed in config output (no secrets)
_SAFE_CONFIG_KEYS = frozenset({
    "command", "repo_path", "base_ref", "head_ref", "max_attempts",
    "coverage_threshold", "global_threshold", "max_rounds", "timeout", "model",
    "llm_provider", "llm_fallback_provider", "allow_llm_fallback", "report",
    "test_dir", "test_command", "verbose", "dry_run", "output_json",
})


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("repo_path", type=str, help="Path to the repository root")
    parser.add_argument(
        "--base-ref",
        type=str,
        default=DEFAULT_BASE_REF,
        help=f"Revision to diff from (default: {DEFAULT_BASE_REF})",
    )
    parser.add_argument(
        "--head-ref",
        type=str,
        default=DEFAULT_HEAD_REF,
        help=f"Revision to diff to (default: {DEFAULT_HEAD_REF})",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Generation attempts per file before giving up (default: 3)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Coverage percent a file or the corpus must reach (default: 80)",
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=None,
        help="Convergence rounds for the converge command (default: 3)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Test runner timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=DEFAULT_MODEL,
        help=f"Model ID to use (default: {DEFAULT_MODEL})",
    )
    parser.add_argument(
        "--llm-provider",
        type=str,
        default="auto",
        choices=("auto", "anthropic", "openai"),
        help="LLM provider for test generation: auto (default), anthropic, or openai",
    )
    parser.add_argument(
        "--llm-fallback-provider",
        type=str,
        default="",
        choices=("", "anthropic", "openai"),
        help="Optional explicit fallback provider when the primary provider fails",
    )
    parser.add_argument(
        "--allow-llm-fallback",
        action="store_true",
        help="Allow fallback to the alternate provider when the primary provider fails",
    )
    parser.add_argument(
        "--report",
        type=str,
        default="",
        help="Write a JSON coverage report to this path (converge only)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--dry-run", action="store_true", help="Print config and exit without running"
    )
    parser.add_argument(
        "--output-json", action="store_true", help="Output results as JSON"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="testgen-bot",
        description="Change-driven Jest test generation for JavaScript repositories",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    helps = {
        "run": "Generate or update tests for files changed between two revisions",
        "converge": "Raise corpus-wide coverage in batched rounds",
        "mutate": "Regenerate tests for changed files in one shot, sized by change",
        "analyze": "List changed files with their change size, without generating",
    }
    for command in COMMANDS:
        _add_common_arguments(subparsers.add_parser(command, help=helps[command]))
    return parser


def validate_repo_path(raw_path: str) -> str:
    """Validate and resolve the repository path.

    Raises:
        SystemExit: If path is not a valid directory.
    """
    resolved = Path(raw_path).resolve()
    if not resolved.is_dir():
        print(f"Error: '{raw_path}' is not a valid directory.", file=sys.stderr)
        raise SystemExit(EXIT_INVALID_INPUT)
    return str(resolved)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def build_config(args: argparse.Namespace, repo_path: str) -> EngineConfig:
    """Layer CLI flags over ``TESTGEN_*`` environment values.

    ``--threshold`` sets both the per-file and the corpus-wide threshold.
    """
    return load_config(
        repo_path,
        max_attempts=args.max_attempts,
        coverage_threshold=args.threshold,
        global_threshold=args.threshold,
        max_rounds=args.max_rounds,
        test_timeout_seconds=args.timeout,
    )


def create_agents(args: argparse.Namespace, config: EngineConfig) -> dict:
    """Create all agent instances from CLI arguments.

    Agents are only constructed once a command actually runs. The analyze
    command needs no generator and therefore no API key.

    Returns:
        Dict with keys: analyzer, extractor, inspector, validator, generator.
    """
    from testgen_bot.agents.change_analyzer import ChangeAnalyzer
    from testgen_bot.agents.coverage_extractor import CoverageExtractor
    from testgen_bot.agents.project_inspector import ProjectInspector
    from testgen_bot.agents.setup_validator import SetupValidator

    agents = {
        "analyzer": ChangeAnalyzer(config),
        "extractor": CoverageExtractor(config),
        "inspector": ProjectInspector(config),
        "validator": SetupValidator(config),
        "generator": None,
    }
    if args.command == "analyze":
        return agents

    from testgen_bot.agents.test_generator import TestGenerator

    agents["generator"] = TestGenerator(
        api_key=os.getenv("ANTHROPIC_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        model=args.model,
        retry=config.retry,
        llm_provider=args.llm_provider,
        llm_fallback_provider=args.llm_fallback_provider or None,
        allow_fallback=bool(args.allow_llm_fallback),
        allow_human_fallback=sys.stdin.isatty() and not args.dry_run,
    )
    return agents


def _serialize(obj):
    if obj is None:
        return None
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, list):
        return [_serialize(item) for item in obj]
    return obj


def format_result_json(result: dict) -> str:
    """Serialize result dict to JSON string.

    Calls .model_dump() on Pydantic model values, including inside lists.
    Falls back to str() for anything else json cannot encode.
    """
    prepared = {k: _serialize(v) for k, v in result.items()}
    return json.dumps(prepared, indent=2, default=str)


def print_result_human(result: dict) -> None:
    """Print results in human-readable format."""
    print(f"\n{'='*60}")
    print(f"testgen-bot {result['command']} results")
    print(f"{'='*60}")

    command = result["command"]
    if command == "run":
        files = result.get("files", [])
        print(f"\nFiles processed: {len(files)}")
        for item in files:
            print(
                f"  {item.file} [{item.status.value}] -> {item.outcome.value} "
                f"({item.coverage:.2f}%, {item.attempts} attempt(s))"
            )
            for err in item.errors:
                print(f"      - {err}")
    elif command == "converge":
        report = result["convergence"]
        print(f"\nRounds: {report.rounds}")
        print(f"Files improved: {report.improved_file_count}")
        print(f"Final coverage: {report.final_coverage:.2f}%")
        print(f"Target met: {'yes' if report.target_met else 'no'}")
    elif command == "mutate":
        mutations = result.get("mutations", [])
        print(f"\nFiles regenerated: {len(mutations)}")
        for item in mutations:
            print(f"  {item.test_file_path} ({item.mode}, {item.change_percent:.1f}% changed)")
    elif command == "analyze":
        changes = result.get("changes", [])
        print(f"\nChanged files: {len(changes)}")
        for item in changes:
            renamed = f" (from {item['old_path']})" if item.get("old_path") else ""
            print(
                f"  {item['path']}{renamed} [{item['status']}] "
                f"{item['change_percent']:.1f}% changed"
            )

    print(f"\n{'='*60}")


def determine_exit_code(result: dict) -> int:
    """Determine the exit code from the result dict."""
    command = result["command"]
    if command == "run":
        if all(item.succeeded for item in result.get("files", [])):
            return EXIT_SUCCESS
        return EXIT_TARGET_NOT_MET
    if command == "converge":
        return EXIT_SUCCESS if result["convergence"].target_met else EXIT_TARGET_NOT_MET
    return EXIT_SUCCESS


def print_config_human(config: dict) -> None:
    """Print configuration in human-readable format.

    Only prints keys in the safe allowlist to prevent secret leakage.
    """
    print("\nConfiguration:")
    print(f"{'='*40}")
    for key, value in config.items():
        if key in _SAFE_CONFIG_KEYS:
            print(f"  {key}: {value}")
    print(f"{'='*40}")


def _handle_error(label: str, exc: BaseException, verbose: bool, exit_code: int) -> int:
    """Print error message to stderr and return the exit code."""
    print(f"{label}: {exc}", file=sys.stderr)
    if verbose:
        traceback.print_exc(file=sys.stderr)
    return exit_code


def _analyze(agents: dict, args: argparse.Namespace) -> dict:
    analyzer = agents["analyzer"]
    changes = []
    for record in analyzer.analyze(args.base_ref, args.head_ref):
        metric = analyzer.change_metric(record, args.base_ref, args.head_ref)
        changes.append({
            "path": record.path,
            "status": record.status.value,
            "old_path": record.old_path,
            "change_percent": metric.change_percent,
        })
    return {"command": "analyze", "changes": changes}


def execute(args: argparse.Namespace, config: EngineConfig, agents: dict) -> dict:
    """Run one subcommand and return its result dict."""
    if args.command == "analyze":
        return _analyze(agents, args)

    from testgen_bot.utils.test_merge import TestMergeEngine

    merge_engine = TestMergeEngine()

    if args.command == "converge":
        from testgen_bot.orchestrator.convergence import ConvergenceLoop

        loop = ConvergenceLoop(
            config=config,
            generator=agents["generator"],
            extractor=agents["extractor"],
            inspector=agents["inspector"],
            merge_engine=merge_engine,
            analyzer=agents["analyzer"],
        )
        report = loop.run(report_path=args.report or None)
        return {"command": "converge", "convergence": report}

    if args.command == "mutate":
        from testgen_bot.models import ChangeStatus
        from testgen_bot.orchestrator.mutation import MutationStrategy

        strategy = MutationStrategy(
            config=config,
            analyzer=agents["analyzer"],
            generator=agents["generator"],
            inspector=agents["inspector"],
            merge_engine=merge_engine,
        )
        records = agents["analyzer"].analyze(args.base_ref, args.head_ref)
        paths = [r.path for r in records if r.status != ChangeStatus.DELETED]
        mutations = strategy.process_files(paths, args.base_ref, args.head_ref)
        return {"command": "mutate", "mutations": mutations}

    from testgen_bot.orchestrator.driver import ChangeDriver
    from testgen_bot.orchestrator.graph import WorkflowEngine

    engine = WorkflowEngine(
        config=config,
        validator=agents["validator"],
        extractor=agents["extractor"],
        generator=agents["generator"],
        inspector=agents["inspector"],
        merge_engine=merge_engine,
    )
    driver = ChangeDriver(
        config=config,
        analyzer=agents["analyzer"],
        engine=engine,
        inspector=agents["inspector"],
        merge_engine=merge_engine,
    )
    return {"command": "run", "files": driver.run(args.base_ref, args.head_ref)}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code integer.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        repo_path = validate_repo_path(args.repo_path)
    except SystemExit as exc:
        return exc.code

    try:
        config = build_config(args, repo_path)
    except (ValidationError, ValueError) as exc:
        return _handle_error("Invalid configuration", exc, args.verbose, EXIT_INVALID_INPUT)

    settings = {
        "command": args.command,
        "repo_path": repo_path,
        "base_ref": args.base_ref,
        "head_ref": args.head_ref,
        "max_attempts": config.max_attempts,
        "coverage_threshold": config.coverage_threshold,
        "global_threshold": config.global_threshold,
        "max_rounds": config.max_rounds,
        "timeout": config.test_timeout_seconds,
        "model": args.model,
        "llm_provider": args.llm_provider,
        "llm_fallback_provider": args.llm_fallback_provider,
        "allow_llm_fallback": args.allow_llm_fallback,
        "report": args.report,
        "test_dir": config.test_dir,
        "test_command": " ".join(config.test_command),
        "verbose": args.verbose,
        "dry_run": args.dry_run,
        "output_json": args.output_json,
    }

    if args.dry_run:
        if args.output_json:
            print(json.dumps(settings, indent=2))
        else:
            print_config_human(settings)
        return EXIT_SUCCESS

    configure_logging(args.verbose)

    try:
        agents = create_agents(args, config)
        result = execute(args, config, agents)

        if args.output_json:
            print(format_result_json(result))
        else:
            print_result_human(result)

        return determine_exit_code(result)

    except AgentError as exc:
        return _handle_error("Agent error", exc, args.verbose, EXIT_AGENT_ERROR)

    except OrchestratorError as exc:
        return _handle_error("Orchestrator error", exc, args.verbose, EXIT_ORCHESTRATOR_ERROR)

    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_KEYBOARD_INTERRUPT

    except Exception as exc:
        return _handle_error("Unexpected error", exc, args.verbose, EXIT_UNEXPECTED)


if __name__ == "__main__":
    sys.exit(main())
