"""pytest plugin that turns a pytest process into a splitrun worker.

Load it explicitly in the worker command, as the default RunConfig does::

    python -m pytest -p splitrun.plugin tests/test_math.py --tag unit --results-format json

It understands the worker options splitrun passes and, when
``--results-format json`` is given, prints the sentinel results block at the
end of the session.
"""

from __future__ import annotations

import ast
from pathlib import Path
import time
from typing import TYPE_CHECKING, Any

import pytest

from splitrun.coverage.mapper import FileCoverage
from splitrun.sentinel import format_results_block


if TYPE_CHECKING:
    from splitrun.coverage.mapper import CoverageMap


RESULTS_FORMATS = ('json',)

# Outcomes rank so that a later phase can only make a test look worse.
_OUTCOME_RANK = {'passed': 0, 'skipped': 1, 'pending': 2, 'failed': 3}


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add the worker command-line options."""
    group = parser.getgroup('splitrun', 'splitrun worker protocol')
    group.addoption(
        '--results-format',
        action='store',
        default=None,
        choices=RESULTS_FORMATS,
        dest='splitrun_results_format',
        help='Print a machine-readable results block at the end of the session',
    )
    group.addoption(
        '--tag',
        action='append',
        default=[],
        dest='splitrun_tags',
        help='Only run tests carrying this marker (may be repeated)',
    )
    group.addoption(
        '--filter',
        action='store',
        default=None,
        dest='splitrun_filter',
        help='Only run tests whose node id contains this pattern',
    )
    group.addoption(
        '--coverage',
        action='store_true',
        default=False,
        dest='splitrun_coverage',
        help='Measure line coverage and include it in the results block',
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the results recorder when a results format was requested."""
    if config.option.splitrun_results_format:
        config.pluginmanager.register(WorkerResultsRecorder(config), 'splitrun-worker-results')


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Deselect items that do not match --tag or --filter."""
    tags: list[str] = config.option.splitrun_tags
    pattern: str | None = config.option.splitrun_filter
    if not tags and pattern is None:
        return

    selected: list[pytest.Item] = []
    deselected: list[pytest.Item] = []
    for item in items:
        tagged = not tags or any(item.get_closest_marker(tag) is not None for tag in tags)
        matched = pattern is None or pattern in item.nodeid
        if tagged and matched:
            selected.append(item)
        else:
            deselected.append(item)

    if deselected:
        config.hook.pytest_deselected(items=deselected)
        items[:] = selected


def _failure_message(report: pytest.TestReport) -> str:
    crash = getattr(report.longrepr, 'reprcrash', None)
    message = getattr(crash, 'message', None)
    if not message:
        return f'Test failed: {report.nodeid}'
    return f'{report.nodeid}: {message}'


def _collection_message(nodeid: str, report: pytest.CollectReport) -> str:
    lines = [line.strip() for line in report.longreprtext.splitlines() if line.strip()]
    if not lines:
        return f'{nodeid}: collection failed'
    return f'{nodeid}: collection failed: {lines[-1].removeprefix("E").strip()}'


class WorkerResultsRecorder:
    """Records test outcomes and prints them as a sentinel block.

    Each test is counted once. Setup, call and teardown reports for the same
    node id are folded together, keeping the worst outcome, so a test whose
    teardown fails after a passing call is counted as failed. A module that
    fails to collect counts as one failed test.

    A session where every test was deselected exits 0 rather than pytest's
    "no tests collected" status 5.
    """

    def __init__(self, config: pytest.Config) -> None:
        self._config = config
        self._outcomes: dict[str, str] = {}
        self._errors: dict[str, tuple[str, str | None]] = {}
        self._start = time.monotonic()
        self._coverage: Any = None

    def pytest_sessionstart(self, session: pytest.Session) -> None:  # noqa: ARG002
        self._start = time.monotonic()
        if self._config.option.splitrun_coverage:
            import coverage  # noqa: PLC0415

            self._coverage = coverage.Coverage(data_file=None)
            self._coverage.start()

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        outcome = self._classify(report)
        if outcome is None:
            return

        current = self._outcomes.get(report.nodeid)
        if current is None or _OUTCOME_RANK[outcome] > _OUTCOME_RANK[current]:
            self._outcomes[report.nodeid] = outcome
        if outcome == 'failed' and report.nodeid not in self._errors:
            self._errors[report.nodeid] = (_failure_message(report), report.longreprtext or None)

    def pytest_collectreport(self, report: pytest.CollectReport) -> None:
        # a file that fails to import never produces test reports
        if not report.failed:
            return
        nodeid = report.nodeid or '<collection>'
        self._outcomes[nodeid] = 'failed'
        self._errors.setdefault(nodeid, (_collection_message(nodeid, report), report.longreprtext or None))

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        # everything deselected by --tag/--filter is an empty file, not a failure
        if exitstatus == pytest.ExitCode.NO_TESTS_COLLECTED:
            session.exitstatus = pytest.ExitCode.OK

    @staticmethod
    def _classify(report: pytest.TestReport) -> str | None:
        if hasattr(report, 'wasxfail'):
            # xfail that failed as expected is pending; unexpected pass counts as passed
            return 'pending' if report.skipped else 'passed'
        if report.failed:
            return 'failed'
        if report.skipped:
            return 'skipped'
        if report.when == 'call':
            return 'passed'
        return None

    @pytest.hookimpl(tryfirst=True)
    def pytest_terminal_summary(self, terminalreporter: Any) -> None:
        counts = dict.fromkeys(_OUTCOME_RANK, 0)
        for outcome in self._outcomes.values():
            counts[outcome] += 1

        block = format_results_block(
            passed=counts['passed'],
            failed=counts['failed'],
            skipped=counts['skipped'],
            pending=counts['pending'],
            errors=self._errors.values(),
            elapsed=time.monotonic() - self._start,
            coverage=self._collect_coverage(),
        )
        terminalreporter.write_line(block)

    def _collect_coverage(self) -> CoverageMap | None:
        """Turn the coverage.py session data into a coverage map.

        coverage.py records which lines ran, not how often, so every executed
        line is reported with a hit count of 1. A function counts as called
        (1) when the first statement of its body ran, otherwise 0.
        """
        if self._coverage is None:
            return None
        self._coverage.stop()
        data = self._coverage.get_data()
        coverage_map: CoverageMap = {}
        for path in sorted(data.measured_files()):
            executed = set(data.lines(path) or [])
            coverage_map[path] = FileCoverage(
                lines=dict.fromkeys(sorted(executed), 1),
                functions=_function_hits(path, executed),
            )
        self._coverage = None
        return coverage_map


def _function_hits(path: str, executed: set[int]) -> dict[str, int]:
    try:
        tree = ast.parse(Path(path).read_bytes(), filename=path)
    except (OSError, SyntaxError, ValueError):
        return {}

    hits: dict[str, int] = {}
    for node in ast.walk(tree):
        if not isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
            continue
        body = node.body
        if len(body) > 1 and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant):
            body = body[1:]
        called = 1 if body[0].lineno in executed else 0
        hits[node.name] = max(hits.get(node.name, 0), called)
    return hits
