"""Result aggregation for parallel test execution.

This module provides the ResultAggregator class that folds WorkerResults from
individual worker processes into a single AggregateResult.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from splitrun.coverage.merger import CoverageMerger
from splitrun.results import AggregateResult, FileError


if TYPE_CHECKING:
    from collections.abc import Sequence

    from splitrun.coverage.mapper import CoverageMap
    from splitrun.results import WorkerResult


_COUNT_FIELDS = ('total', 'passed', 'failed', 'skipped', 'pending')


class ResultAggregator:
    """Accumulates WorkerResults into an AggregateResult.

    The aggregator is owned by the coordinating control flow and keeps the
    running totals privately until finalize builds the frozen AggregateResult.
    Workers hand back immutable WorkerResults, so no locking is needed. Every
    accumulation is a sum, so the final counts and coverage do not depend on
    the order results arrive in.

    Attributes:
        aggregate_coverage: Whether worker coverage is merged.
        completed: Number of results added so far.

    Example:
        >>> from splitrun.results import WorkerResult
        >>> aggregator = ResultAggregator()
        >>> aggregator.add('t1.py', WorkerResult(total=3, passed=3, success=True))
        >>> aggregator.finalize().passed
        3
    """

    def __init__(
        self,
        aggregate_coverage: bool = True,
        keep_worker_output: bool = False,
        merger: CoverageMerger | None = None,
    ) -> None:
        """Initialize the aggregator with empty totals.

        Args:
            aggregate_coverage: Merge coverage reported by workers.
            keep_worker_output: Keep each worker's raw output for worker_outputs.
            merger: Coverage merger to use. Defaults to CoverageMerger().
        """
        self._aggregate_coverage = aggregate_coverage
        self._keep_worker_output = keep_worker_output
        self._merger = merger or CoverageMerger()
        self._counts = dict.fromkeys(_COUNT_FIELDS, 0)
        self._elapsed = 0.0
        self._files_run: list[str] = []
        self._failed_files: list[str] = []
        self._errors: list[FileError] = []
        self._outputs: list[tuple[str, str]] = []
        self._coverage: CoverageMap = {}
        self._result: AggregateResult | None = None

    @property
    def aggregate_coverage(self) -> bool:
        """Return whether worker coverage is merged."""
        return self._aggregate_coverage

    @property
    def completed(self) -> int:
        """Return the number of results added so far."""
        return len(self._files_run)

    def add(self, file: str, worker_result: WorkerResult) -> None:
        """Apply one worker's result to the running totals.

        Args:
            file: The test file the worker ran.
            worker_result: What the worker produced.

        Raises:
            RuntimeError: If the aggregate has already been finalized.
        """
        if self._result is not None:
            msg = 'ResultAggregator is finalized; no more results can be added.'
            raise RuntimeError(msg)

        for name in _COUNT_FIELDS:
            self._counts[name] += getattr(worker_result, name)
        self._elapsed += worker_result.elapsed
        self._files_run.append(file)

        if not worker_result.success:
            self._failed_files.append(file)

        self._errors.extend(
            FileError(file=file, message=error.message, traceback=error.traceback, kind=error.kind)
            for error in worker_result.errors
        )

        if self._keep_worker_output:
            self._outputs.append((file, worker_result.raw_output))

        if self._aggregate_coverage and worker_result.coverage:
            self._merger.merge(self._coverage, worker_result.coverage)

    def finalize(self, dispatch_order: Sequence[str] | None = None) -> AggregateResult:
        """Build the frozen AggregateResult.

        Calling it again returns the same result.

        Args:
            dispatch_order: If given, files_run, failed_files, errors and
                worker_outputs are reordered to follow this order instead of
                completion order. Files not present in it go last, keeping
                their relative position.

        Returns:
            The completed AggregateResult.
        """
        if self._result is not None:
            return self._result

        files_run = self._files_run
        failed_files = self._failed_files
        errors = self._errors
        outputs = self._outputs
        if dispatch_order is not None:
            position: dict[str, int] = {}
            for index, file in enumerate(dispatch_order):
                position.setdefault(file, index)
            last = len(dispatch_order)

            files_run = sorted(files_run, key=lambda f: position.get(f, last))
            failed_files = sorted(failed_files, key=lambda f: position.get(f, last))
            errors = sorted(errors, key=lambda e: position.get(e.file, last))
            outputs = sorted(outputs, key=lambda item: position.get(item[0], last))

        self._result = AggregateResult(
            **self._counts,
            errors=errors,
            elapsed=self._elapsed,
            files_run=files_run,
            failed_files=failed_files,
            coverage=self._coverage,
            worker_outputs=[output for _, output in outputs],
        )
        return self._result
