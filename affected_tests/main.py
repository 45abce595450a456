"""Entry point for affected-tests.

Asks for (or takes from the command line) how many history steps to
consider and whether to run the affected tests against the unchanged
files first, then drives one session: impact computation, optional
head-state run, restoration of the working changes, current-state run,
and the comparison report.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Callable

from affected_tests import __version__
from affected_tests.config import AffectedTestsConfig
from affected_tests.errors import InvalidInputError
from affected_tests.execution.adapter import TestRunAdapter
from affected_tests.execution.engine import PytestEngine
from affected_tests.execution.foreground import ForegroundQueue
from affected_tests.execution.orchestrator import ExecutionOrchestrator, State
from affected_tests.impact.engine import ChangeImpactEngine
from affected_tests.logger import LOG_LEVELS, setup_logging
from affected_tests.reporting.notifier import Notifier
from affected_tests.selection.session import RunSession
from affected_tests.vcs.git import GitClient
from affected_tests.vcs.snapshot import SnapshotCoordinator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2
EXIT_INTERRUPTED = 130

DEPTH_PROMPT = "Depth level (history steps to consider, 1 = uncommitted changes only): "
CHECK_PREVIOUS_PROMPT = "Run the affected tests on the unchanged files first? [y/N]: "


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="affected-tests",
        description="Run the tests affected by pending changes, optionally "
                    "comparing against the unchanged files first",
    )
    parser.add_argument(
        "--depth",
        type=str,
        default=None,
        help="History steps to consider (positive integer; prompted for when omitted)",
    )
    parser.add_argument(
        "--check-previous",
        action="store_true",
        default=False,
        help="Run the affected tests against the head state before the current state",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Root of the git working copy (default: current directory)",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help="Path to the .affected_tests_config JSON file",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Path to write the YAML comparison report (default from config)",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default="warning",
        help="Diagnostic log level (default: warning)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def validate_depth(text: str | None) -> int:
    """Parse the depth input.

    Raises:
        InvalidInputError: If the input is empty, not a number, or not positive.
    """
    value = (text or "").strip()
    if not value:
        raise InvalidInputError("Depth is required")
    try:
        depth = int(value)
    except ValueError:
        raise InvalidInputError(f"Depth must be a number, got '{value}'") from None
    if depth < 1:
        raise InvalidInputError(f"Depth must be at least 1, got {depth}")
    return depth


def prompt_for_input(
    read: Callable[[str], str] = input,
) -> tuple[int, bool] | None:
    """Ask for the depth and the check-previous choice.

    Invalid depths are reported and asked for again.

    Returns:
        ``(depth, check_previous)``, or None when input ends (cancelled).
    """
    try:
        while True:
            try:
                depth = validate_depth(read(DEPTH_PROMPT))
                break
            except InvalidInputError as e:
                print(f"Error: {e}", file=sys.stderr)
        answer = read(CHECK_PREVIOUS_PROMPT)
    except EOFError:
        return None
    return depth, answer.strip().lower() in ("y", "yes")


def _resolve_request(args: argparse.Namespace) -> tuple[int, bool] | int:
    """Depth and check-previous flag from the arguments or the prompt, or an exit code."""
    if args.depth is None:
        answer = prompt_for_input()
        if answer is None:
            print("Cancelled", file=sys.stderr)
            return EXIT_INVALID_INPUT
        depth, check_previous = answer
        return depth, check_previous or args.check_previous
    try:
        return validate_depth(args.depth), args.check_previous
    except InvalidInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(LOG_LEVELS[args.log_level])

    request = _resolve_request(args)
    if isinstance(request, int):
        return request
    depth, check_previous = request

    root = args.project_dir.resolve()
    git = GitClient(root)
    if not git.is_repo():
        print(f"Error: {root} is not a git working copy", file=sys.stderr)
        return EXIT_ERROR

    config = AffectedTestsConfig.for_project(root, args.config_file)
    report_path = args.report if args.report is not None else root / config.report_file

    foreground = ForegroundQueue()
    notifier = Notifier(foreground)
    session = RunSession()
    artifacts_dir = Path(tempfile.mkdtemp(prefix="affected-tests-"))
    adapter = TestRunAdapter(root, config, session, PytestEngine(), notifier, artifacts_dir)
    impact_engine = ChangeImpactEngine(root, config, session, git, adapter, notifier)
    orchestrator = ExecutionOrchestrator(
        impact_engine,
        SnapshotCoordinator(git, notifier),
        session,
        foreground,
        notifier,
        report_path=report_path,
    )

    if check_previous:
        notifier.notify(
            "Affected Tests",
            "The first results are for the unchanged (head) files, "
            "the second for your current changes.",
        )

    try:
        orchestrator.start(depth, check_previous)
        try:
            foreground.run_until(session.finished)
        except KeyboardInterrupt:
            print("\nInterrupted, restoring the working tree...", file=sys.stderr)
            orchestrator.interrupt()
            foreground.run_until(session.finished)
            return EXIT_INTERRUPTED
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Unexpected failure")
        notifier.error("Error", f"{e}")
        foreground.process_pending()
        return EXIT_ERROR
    finally:
        orchestrator.shutdown()
        shutil.rmtree(artifacts_dir, ignore_errors=True)

    return EXIT_ERROR if orchestrator.state == State.ERROR else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
