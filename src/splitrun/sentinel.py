"""The sentinel results protocol spoken between workers and the orchestrator.

A worker prints a single JSON object wrapped in literal markers somewhere in
its output::

    RESULTS_JSON_BEGIN{"total": 3, "passed": 2, "failed": 1, "skipped": 0,
    "pending": 0, "errors": [{"message": "boom", "traceback": null}],
    "elapsed": 0.42}RESULTS_JSON_END

Everything else the worker prints is ignored by the structured parser.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from splitrun.coverage.mapper import coverage_map_to_dict


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from splitrun.coverage.mapper import CoverageMap


BEGIN_MARKER = 'RESULTS_JSON_BEGIN'
END_MARKER = 'RESULTS_JSON_END'

_BLOCK_PATTERN = re.compile(re.escape(BEGIN_MARKER) + r'(.*?)' + re.escape(END_MARKER), re.DOTALL)


def format_results_block(  # noqa: PLR0913
    *,
    passed: int = 0,
    failed: int = 0,
    skipped: int = 0,
    pending: int = 0,
    errors: Iterable[tuple[str, str | None]] = (),
    elapsed: float = 0.0,
    coverage: CoverageMap | None = None,
) -> str:
    """Format a results block for a worker to print.

    Args:
        passed: Number of passing tests.
        failed: Number of failing tests.
        skipped: Number of skipped tests.
        pending: Number of pending tests.
        errors: (message, traceback) pairs, one per failure.
        elapsed: Seconds the worker spent running tests.
        coverage: Optional coverage measured by the worker.

    Returns:
        The marker-delimited block, without a trailing newline.

    Example:
        >>> format_results_block(passed=1, elapsed=0.5)
        'RESULTS_JSON_BEGIN{"total": 1, "passed": 1, "failed": 0, "skipped": 0, "pending": 0, "errors": [], "elapsed": 0.5}RESULTS_JSON_END'
    """
    payload: dict[str, Any] = {
        'total': passed + failed + skipped + pending,
        'passed': passed,
        'failed': failed,
        'skipped': skipped,
        'pending': pending,
        'errors': [{'message': message, 'traceback': traceback} for message, traceback in errors],
        'elapsed': elapsed,
    }
    if coverage is not None:
        payload['coverage'] = coverage_map_to_dict(coverage)
    return f'{BEGIN_MARKER}{json.dumps(payload)}{END_MARKER}'


def iter_result_blocks(output: str) -> Iterator[str]:
    """Yield the text between each pair of sentinel markers in ``output``."""
    for match in _BLOCK_PATTERN.finditer(output):
        yield match.group(1)
