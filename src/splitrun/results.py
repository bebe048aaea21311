"""Result types passed between the launcher, parser, aggregator and caller.

WorkerResult is what one worker process produced for one test file. It only
holds plain values so it can be handed back across the process boundary.
AggregateResult is the single run report built from all WorkerResults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Mapping

    from splitrun.coverage.mapper import CoverageMap, FileCoverage


class ErrorKind(Enum):
    """Where an error recorded against a test file came from.

    Attributes:
        TEST: A test inside the worker failed.
        TIMEOUT: The worker exceeded its deadline and was killed.
        PROCESS: The worker could not be spawned or crashed.
        IO: The worker's temporary output file could not be used.
        PARSE: No result signal could be recovered from the worker output.
    """

    TEST = 'test'
    TIMEOUT = 'timeout'
    PROCESS = 'process'
    IO = 'io'
    PARSE = 'parse'


@dataclass(frozen=True)
class TestError:
    """An error reported by (or about) a single worker.

    Attributes:
        message: Human-readable description of the failure.
        traceback: Optional traceback or failure details.
        kind: Origin of the error.
    """

    __test__ = False

    message: str
    traceback: str | None = None
    kind: ErrorKind = ErrorKind.TEST


@dataclass(frozen=True)
class FileError:
    """A TestError tagged with the test file it came from."""

    file: str
    message: str
    traceback: str | None = None
    kind: ErrorKind = ErrorKind.TEST


@dataclass(frozen=True)
class WorkerResult:
    """Outcome of running one test file in one worker process.

    Attributes:
        total: Number of tests seen. Always passed + failed + skipped + pending.
        passed: Number of passing tests.
        failed: Number of failing tests.
        skipped: Number of skipped tests.
        pending: Number of pending (not yet implemented / expected-failure) tests.
        errors: Errors reported for this file, in the order they occurred.
        elapsed: Run time in seconds.
        success: Whether the worker succeeded overall.
        raw_output: Combined stdout/stderr captured from the worker.
        coverage: Coverage the worker measured, if it reported any.
    """

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    errors: tuple[TestError, ...] = ()
    elapsed: float = 0.0
    success: bool = False
    raw_output: str = ''
    coverage: CoverageMap | None = None

    def __post_init__(self) -> None:
        """Validate counts.

        Raises:
            ValueError: If a count is negative or total does not add up.
        """
        counts = {
            'passed': self.passed,
            'failed': self.failed,
            'skipped': self.skipped,
            'pending': self.pending,
            'total': self.total,
        }
        for name, value in counts.items():
            if value < 0:
                msg = f'{name} must be non-negative, got {value}'
                raise ValueError(msg)

        component_sum = self.passed + self.failed + self.skipped + self.pending
        if self.total != component_sum:
            msg = (
                f'total ({self.total}) must equal passed + failed + skipped + pending ({component_sum})'
            )
            raise ValueError(msg)

        if self.elapsed < 0:
            msg = f'elapsed must be non-negative, got {self.elapsed}'
            raise ValueError(msg)

    @classmethod
    def failure(
        cls,
        error: TestError,
        elapsed: float = 0.0,
        raw_output: str = '',
    ) -> WorkerResult:
        """Create a zero-count failed result carrying a single error.

        Used when a worker produced nothing usable, e.g. it could not be spawned.
        """
        return cls(errors=(error,), elapsed=max(elapsed, 0.0), success=False, raw_output=raw_output)


@dataclass(frozen=True)
class AggregateResult:
    """Counts, errors, timing and coverage over a whole run.

    Built once by ResultAggregator.finalize and immutable afterwards. Lists
    given for the sequence fields are stored as tuples and coverage is
    wrapped in a read-only mapping.

    Attributes:
        total: Sum of WorkerResult.total.
        passed: Sum of WorkerResult.passed.
        failed: Sum of WorkerResult.failed.
        skipped: Sum of WorkerResult.skipped.
        pending: Sum of WorkerResult.pending.
        errors: All per-file errors, tagged with their file.
        elapsed: Sum of per-file elapsed seconds (not wall clock of the run).
        files_run: Files that were dispatched and completed.
        failed_files: Files whose worker reported success=False.
        coverage: Coverage merged across workers.
        worker_outputs: Raw worker output, only kept when show_worker_output is set.
    """

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    errors: tuple[FileError, ...] = ()
    elapsed: float = 0.0
    files_run: tuple[str, ...] = ()
    failed_files: tuple[str, ...] = ()
    coverage: Mapping[str, FileCoverage] = field(default_factory=dict)
    worker_outputs: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ('errors', 'files_run', 'failed_files', 'worker_outputs'):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        object.__setattr__(self, 'coverage', MappingProxyType(dict(self.coverage)))

    @property
    def success(self) -> bool:
        """Return True if no test failed."""
        return self.failed == 0
