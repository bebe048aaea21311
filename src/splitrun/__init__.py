"""splitrun: run test files in parallel, one isolated process per file.

Hand splitrun an ordered list of test files and it fans them out over a
bounded pool of worker processes, kills workers that overrun their deadline,
parses what each worker printed and folds everything into one report.

Example:
    Run two files with two workers::

        >>> from splitrun import RunConfig, run_tests
        >>> result = run_tests(['tests/test_a.py', 'tests/test_b.py'], RunConfig(workers=2))  # doctest: +SKIP
        >>> result.success  # doctest: +SKIP
        True

    Or from the command line::

        $ splitrun --workers 4 --fail-fast tests/test_a.py tests/test_b.py
"""

from __future__ import annotations

from splitrun.config import RunConfig
from splitrun.parallel.scheduler import Scheduler, run_tests
from splitrun.results import AggregateResult, WorkerResult


__version__ = '0.3.0'
__all__ = ['AggregateResult', 'RunConfig', 'Scheduler', 'WorkerResult', '__version__', 'run_tests']
