"""Command-line front end for splitrun.

Takes explicit test file paths (no discovery), merges command-line options
over [tool.splitrun] from pyproject.toml, runs the files in parallel and
prints a summary.

Exit codes: 0 when every file succeeded, 1 when any test or worker failed,
2 when the configuration is invalid.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import shlex
import sys
import tomllib
from typing import TYPE_CHECKING

from splitrun import __version__
from splitrun.config import MAX_WORKERS, MIN_WORKERS, load_config, merge_configs
from splitrun.errors import ConfigValidationError
from splitrun.parallel.scheduler import run_tests
from splitrun.reporting.console import ConsoleReporter
from splitrun.reporting.json_reporter import JsonReporter


if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the splitrun command."""
    parser = argparse.ArgumentParser(
        prog='splitrun',
        description='Run test files in parallel, one isolated worker process per file.',
    )
    parser.add_argument('files', nargs='+', metavar='FILE', help='Test files to run, in dispatch order')
    parser.add_argument(
        '--workers',
        '-w',
        type=int,
        default=None,
        help=f'Number of worker processes, {MIN_WORKERS}-{MAX_WORKERS} (default: 4)',
    )
    parser.add_argument(
        '--timeout',
        type=int,
        default=None,
        help='Timeout in seconds for each test file (default: 60)',
    )
    parser.add_argument(
        '--fail-fast',
        action='store_true',
        default=None,
        help='Stop starting new files after the first failure',
    )
    parser.add_argument(
        '--no-aggregate-coverage',
        action='store_false',
        default=None,
        dest='aggregate_coverage',
        help="Don't combine coverage data from workers",
    )
    parser.add_argument(
        '--no-worker-output',
        action='store_false',
        default=None,
        dest='show_worker_output',
        help='Hide output from worker processes',
    )
    parser.add_argument(
        '--verbose-parallel',
        action='store_true',
        default=None,
        dest='verbose',
        help='Log dispatch and completion of every worker',
    )
    parser.add_argument(
        '--coverage',
        '-c',
        action='store_true',
        default=None,
        help='Ask workers to measure coverage',
    )
    parser.add_argument(
        '--tag',
        '-t',
        action='append',
        default=None,
        dest='tags',
        help='Only run tests with this tag (may be repeated)',
    )
    parser.add_argument('--filter', default=None, help='Only run tests matching this pattern')
    parser.add_argument(
        '--interpreter',
        type=shlex.split,
        default=None,
        help='Worker command prefix, e.g. "lua" or "python -m pytest -p splitrun.plugin"',
    )
    parser.add_argument(
        '--report',
        choices=('console', 'json'),
        default='console',
        help='Summary format (default: console)',
    )
    parser.add_argument(
        '--rootdir',
        type=Path,
        default=Path.cwd(),
        help='Directory holding pyproject.toml with [tool.splitrun] settings',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run splitrun from the command line.

    Args:
        argv: Arguments to parse. Defaults to sys.argv[1:].

    Returns:
        Exit code (0 = success, 1 = failures, 2 = configuration error).
    """
    args = build_parser().parse_args(argv)

    try:
        file_config = merge_configs(
            load_config(args.rootdir),
            workers=args.workers,
            timeout=args.timeout,
            fail_fast=args.fail_fast,
            aggregate_coverage=args.aggregate_coverage,
            show_worker_output=args.show_worker_output,
            verbose=args.verbose,
            tags=args.tags,
            filter=args.filter,
            coverage=args.coverage,
            interpreter=args.interpreter,
        )
        config = file_config.to_run_config()
    except (ConfigValidationError, TypeError, tomllib.TOMLDecodeError) as e:
        print(f'Error: {e}', file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.INFO if config.verbose or config.show_worker_output else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    result = run_tests(args.files, config)

    if args.report == 'json':
        print(JsonReporter().to_json(result))
    else:
        ConsoleReporter(show_tracebacks=config.verbose).write_report(result)

    return 0 if result.success and not result.failed_files else 1


if __name__ == '__main__':
    sys.exit(main())
