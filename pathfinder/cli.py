"""
Main CLI interface for Pathfinder Runner.

Runs suite files against a target and streams the run's events to stdout,
validates suite files, and serves the HTTP API.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .core.config import Config
from .core.exceptions import PathfinderError, ValidationError
from .core.logging_config import setup_logging
from .core.run_context import generate_run_id
from .execution.engine import ExecutionEngine
from .execution.models import DEFAULT_VIEWPORTS, RunRequest, ViewportConfig
from .persistence.source import Suite, load_suite_file
from .persistence.store import JsonFileResultStore
from .reporting.generator import ReportFormat, ReportGenerator
from .streaming.events import encode_json, encode_sse

OUTPUT_FORMATS = ("text", "jsonl", "sse")

_STATUS_ICONS = {"pass": "✅", "fail": "❌", "skip": "⏭️ "}


def format_event_text(event) -> Optional[str]:
    """One human-readable line per event; None for events not shown."""
    if event.kind == "scenario-start":
        return f"▶️  [{event.index + 1}] {event.scenario_name} @ {event.viewport}"
    if event.kind == "scenario-complete":
        icon = _STATUS_ICONS.get(event.status.value, "")
        return (
            f"{icon} {event.scenario_name} @ {event.viewport}: "
            f"{event.status.value.upper()} ({event.duration_ms}ms)"
        )
    if event.kind == "progress":
        return (
            f"   {event.current}/{event.total} ({event.percentage}%) "
            f"passed={event.passed} failed={event.failed} skipped={event.skipped}"
        )
    if event.kind == "log":
        if event.type == "info":
            return None
        return f"   [{event.type}] {event.message}"
    if event.kind == "terminal":
        summary = event.summary
        icon = "✅" if event.success else "❌"
        return (
            f"{icon} Run finished: {summary.passed} passed, {summary.failed} failed, "
            f"{summary.skipped} skipped of {summary.total}"
        )
    if event.kind == "error":
        return f"❌ Run failed: {event.error}"
    return None


def _select_viewports(suite: Suite, requested: Optional[List[str]]) -> List[ViewportConfig]:
    if not requested:
        return list(suite.viewports)

    known = {viewport.id: viewport for viewport in DEFAULT_VIEWPORTS}
    known.update({viewport.id: viewport for viewport in suite.viewports})
    selected = []
    for viewport_id in requested:
        if viewport_id not in known:
            raise ValidationError(
                f"Unknown viewport: {viewport_id}",
                validation_type="viewport",
                violations=[f"choose from {', '.join(sorted(known))}"],
            )
        selected.append(known[viewport_id].model_copy(update={"enabled": True}))
    return selected


def build_request(suite: Suite, args: argparse.Namespace, run_id: str) -> RunRequest:
    """Turn a loaded suite and command-line overrides into a run request."""
    return RunRequest(
        run_id=run_id,
        target_url=args.url or suite.target_url,
        scenarios=suite.scenarios,
        viewports=_select_viewports(suite, args.viewport),
        screenshot_on_every_step=args.screenshots,
        concurrency_limit=args.concurrency,
        max_retries=args.retries,
    )


async def _stream_run(engine: ExecutionEngine, request: RunRequest, output: str) -> Optional[object]:
    """Print events as they arrive and return the closing event."""
    closing = None
    async for event in engine.stream(request):
        if output == "jsonl":
            line = encode_json(event)
        elif output == "sse":
            line = encode_sse(event).rstrip("\n") + "\n"
        else:
            line = format_event_text(event)
        if line is not None:
            print(line, flush=True)
        if event.kind in ("terminal", "error"):
            closing = event
    return closing


def cmd_run(args: argparse.Namespace) -> int:
    """Run a suite file."""
    config = Config.from_env()
    if args.headed:
        config.headless_mode = False
    run_id = generate_run_id()
    setup_logging(config, run_id)

    try:
        config.validate()
        suite = load_suite_file(args.suite_file)
        request = build_request(suite, args, run_id)
    except ValidationError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        for violation in e.violations:
            print(f"   • {violation}", file=sys.stderr)
        return 2
    except PydanticValidationError as e:
        print(f"❌ Invalid run options: {e.error_count()} errors", file=sys.stderr)
        for err in e.errors():
            print(f"   • {'.'.join(str(p) for p in err['loc'])}: {err['msg']}", file=sys.stderr)
        return 2

    config.ensure_directories()
    store = JsonFileResultStore(config.results_dir)
    engine = ExecutionEngine(config, store=store)

    try:
        closing = asyncio.run(_stream_run(engine, request, args.format))
    except KeyboardInterrupt:
        print("⚠️  Interrupted", file=sys.stderr)
        return 130

    if args.report:
        try:
            generator = ReportGenerator(config.reports_dir)
            record = store.load_run(run_id)
            if record is not None:
                path = generator.write(
                    generator.report_from_record(record), ReportFormat(args.report)
                )
                print(f"📄 Report written to {path}", file=sys.stderr)
        except PathfinderError as e:
            print(f"❌ Report failed: {e.message}", file=sys.stderr)
            return 1

    return 0 if closing is not None and closing.kind == "terminal" and closing.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a suite file without running it."""
    try:
        suite = load_suite_file(args.suite_file)
    except ValidationError as e:
        print(f"❌ {e.message}")
        for violation in e.violations:
            print(f"   • {violation}")
        return 2

    steps = sum(len(scenario.steps) for scenario in suite.scenarios)
    enabled = [viewport for viewport in suite.viewports if viewport.enabled]
    print(f"✅ Suite '{suite.name}' is valid")
    print(f"   Target: {suite.target_url}")
    print(f"   Scenarios: {len(suite.scenarios)} ({steps} steps)")
    print(f"   Viewports: {', '.join(viewport.id for viewport in enabled)}")
    print(f"   Units per run: {len(suite.scenarios) * len(enabled)}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API."""
    import uvicorn

    from .api.server import create_app

    config = Config.from_env()
    setup_logging(config, "server")
    config.ensure_directories()
    engine = ExecutionEngine(config, store=JsonFileResultStore(config.results_dir))
    uvicorn.run(
        create_app(config, engine),
        host=args.host,
        port=args.port,
        log_level=config.log_level.lower(),
    )
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"Pathfinder Runner {__version__}")
    if args.verbose:
        print()
        print("System Information:")
        print(f"  Python: {sys.version}")
        print(f"  Platform: {sys.platform}")
        print(f"  Working Directory: {Path.cwd()}")
    return 0


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pathfinder",
        description="Pathfinder Runner - browser scenario execution with streamed progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pathfinder run suites/checkout.yaml --viewport desktop --format jsonl
  pathfinder run suites/checkout.yaml --url http://localhost:3000 --report html
  pathfinder validate suites/checkout.yaml
  pathfinder serve --port 8080
        """,
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run a suite file")
    run_parser.add_argument("suite_file", help="Path to suite file (YAML or JSON)")
    run_parser.add_argument("--url", help="Override the suite's target URL")
    run_parser.add_argument(
        "--viewport",
        action="append",
        help="Viewport id to run on (repeatable; defaults to the suite's viewports)",
    )
    run_parser.add_argument("--concurrency", type=int, help="Units run in parallel")
    run_parser.add_argument("--retries", type=int, help="Attempts per unit")
    run_parser.add_argument(
        "--screenshots",
        action="store_true",
        help="Capture a screenshot after every step",
    )
    run_parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default="text",
        help="Event output format (default: text)",
    )
    run_parser.add_argument(
        "--report",
        choices=[fmt.value for fmt in ReportFormat],
        help="Write a run report in this format",
    )
    run_parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window (ignored in CI)",
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a suite file")
    validate_parser.add_argument("suite_file", help="Path to suite file (YAML or JSON)")
    validate_parser.set_defaults(func=cmd_validate)

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed version information",
    )
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
