"""Command line interface: ``odflake run`` and ``odflake table``."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .app import main as run_analysis
from .config import DEFAULT_ROUNDS, ConfigurationError, load_settings
from .pipeline import ReportWriteError
from .report_table import ReportTableError, build_rows, format_table
from .schemas import OrderPolicy
from .workflow.scaffold import SetupError

LOG_FILE_ENV_VAR = "ODFLAKE_LOG_FILE"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="odflake",
        description="Detect order-dependent flaky tests by re-running test files in shuffled orders.",
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Analyse a project")
    run_parser.add_argument(
        "project",
        nargs="?",
        type=Path,
        default=Path("."),
        help="Path to the pytest project to analyse (default: current directory).",
    )
    run_parser.add_argument(
        "--order",
        choices=[policy.value for policy in OrderPolicy],
        default=OrderPolicy.ORIGINAL.value,
        help="Test execution order to use for the variant rounds (default: original).",
    )
    run_parser.add_argument(
        "--rounds",
        type=int,
        default=DEFAULT_ROUNDS,
        help=f"Number of variant rounds per test file (default: {DEFAULT_ROUNDS}).",
    )
    run_parser.add_argument("--seed", type=int, help="Base seed (default: current time in ms).")
    run_parser.add_argument("--out", type=Path, help="File to write the JSON report to.")
    run_parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum rounds in flight (default: number of CPUs).",
    )
    run_parser.add_argument("--timeout", type=float, help="Per-round timeout in seconds (default: 30).")
    run_parser.add_argument(
        "--keep-workspaces",
        action="store_true",
        default=None,
        help="Keep each round's temporary workspace for inspection.",
    )
    run_parser.add_argument(
        "--install",
        action="store_true",
        help="Install the project's dependencies before analysing it.",
    )
    run_parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    run_parser.add_argument(
        "--log-file",
        type=Path,
        help=f"Optional path for detailed logs (sets {LOG_FILE_ENV_VAR}).",
    )

    table_parser = subparsers.add_parser("table", help="Summarise saved reports as a Markdown table")
    table_parser.add_argument(
        "reports",
        nargs="?",
        type=Path,
        default=Path("reports"),
        help="Directory containing JSON project reports (default: ./reports).",
    )
    table_parser.add_argument(
        "--projects-root",
        type=Path,
        help="Directory the analysed projects live under; shortens project labels.",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    if args.log_file is not None:
        os.environ[LOG_FILE_ENV_VAR] = str(args.log_file)
    settings = load_settings(
        args.project,
        order=args.order,
        rounds=args.rounds,
        seed=args.seed,
        out=args.out,
        concurrency=args.concurrency,
        round_timeout=args.timeout,
        keep_workspaces=args.keep_workspaces,
        install=args.install,
        debug=args.debug,
    )
    run_analysis(settings)
    return 0


def _table(args: argparse.Namespace) -> int:
    if not args.reports.is_dir():
        print(f"Error: reports directory not found: {args.reports}", file=sys.stderr)
        return 2
    print(format_table(build_rows(args.reports, args.projects_root)))
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        if args.command == "run":
            return _run(args)
        if args.command == "table":
            return _table(args)
        parser.print_help(sys.stderr)
        return 2
    except (ConfigurationError, SetupError, ReportWriteError, ReportTableError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
