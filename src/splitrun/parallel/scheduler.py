"""Dispatch test files across a bounded pool of worker slots.

The Scheduler is the single coordinating control flow of a run. It owns the
dispatch cursor and the ResultAggregator; worker slots only ever hand back
immutable values, so no state is shared with them.

Loop:
- fill every free slot with the next undispatched file, in input order
- wait until at least one slot finishes
- parse and aggregate each finished slot's output, then free the slot
- with fail_fast, stop dispatching after the first unsuccessful worker
  (workers already running are left to finish)
"""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
import dataclasses
import logging
import traceback
from typing import TYPE_CHECKING

from splitrun.config import RunConfig
from splitrun.parallel.aggregator import ResultAggregator
from splitrun.parallel.launcher import LaunchOutcome, WorkerLauncher
from splitrun.parallel.parser import OutputParser
from splitrun.results import ErrorKind, TestError, WorkerResult


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from splitrun.results import AggregateResult

    LaunchFunction = Callable[[str, RunConfig], LaunchOutcome]


logger = logging.getLogger(__name__)


class Scheduler:
    """Runs test files concurrently, one worker process per file.

    Each slot is a thread that does nothing but block on its own worker
    process, so up to ``config.workers`` processes run at once. The
    coordinator waits on whichever slot finishes first rather than in
    dispatch order.

    Example:
        >>> scheduler = Scheduler()
        >>> result = scheduler.run(['tests/test_a.py'], RunConfig(workers=2))  # doctest: +SKIP
    """

    def __init__(
        self,
        launcher: LaunchFunction | None = None,
        parser: OutputParser | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            launcher: Callable that runs one file and returns a LaunchOutcome.
                Defaults to ``WorkerLauncher().launch``.
            parser: Parser for worker output. Defaults to OutputParser().
        """
        self._launch = launcher or WorkerLauncher().launch
        self._parser = parser or OutputParser()

    def run(self, files: Sequence[str], config: RunConfig) -> AggregateResult:
        """Run every file and aggregate the results.

        Args:
            files: Test files, in the order they should be dispatched.
            config: Run configuration.

        Returns:
            The finalized AggregateResult. ``files_run`` lists completed
            files in dispatch order.
        """
        files = list(files)
        aggregator = ResultAggregator(
            aggregate_coverage=config.aggregate_coverage,
            keep_worker_output=config.show_worker_output,
        )
        if not files:
            return aggregator.finalize()

        log = logger.info if config.verbose else logger.debug
        log('Running %d test files with %d workers', len(files), config.workers)

        cursor = 0
        dispatched: list[str] = []
        pending: dict[Future[LaunchOutcome], str] = {}
        stop_dispatch = False

        with ThreadPoolExecutor(
            max_workers=min(config.workers, len(files)),
            thread_name_prefix='splitrun-slot',
        ) as executor:
            while pending or (cursor < len(files) and not stop_dispatch):
                while not stop_dispatch and cursor < len(files) and len(pending) < config.workers:
                    file = files[cursor]
                    cursor += 1
                    log('Starting worker for %s', file)
                    pending[executor.submit(self._launch, file, config)] = file
                    dispatched.append(file)

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    file = pending.pop(future)
                    worker_result = self._resolve(file, future)
                    log(
                        'Finished %s: %d passed, %d failed, %d skipped, %d pending in %.2fs',
                        file,
                        worker_result.passed,
                        worker_result.failed,
                        worker_result.skipped,
                        worker_result.pending,
                        worker_result.elapsed,
                    )
                    if config.show_worker_output:
                        logger.info(
                            '\n--- Output from %s ---\n%s\n--- End output from %s ---',
                            file,
                            worker_result.raw_output,
                            file,
                        )

                    aggregator.add(file, worker_result)

                    if config.fail_fast and not worker_result.success and not stop_dispatch:
                        stop_dispatch = True
                        logger.info(
                            'Stopping dispatch after failure in %s (fail_fast is enabled); %d files not started',
                            file,
                            len(files) - cursor,
                        )

        result = aggregator.finalize(dispatch_order=dispatched)
        log(
            'Ran %d of %d files: %d tests, %d passed, %d failed',
            len(result.files_run),
            len(files),
            result.total,
            result.passed,
            result.failed,
        )
        return result

    def _resolve(self, file: str, future: Future[LaunchOutcome]) -> WorkerResult:
        """Turn a finished slot into a WorkerResult.

        A launcher that raised, failed to spawn the worker or failed to manage
        its output artifact yields a zero-count failed result. A timed-out
        worker keeps whatever its partial output shows and gains a timeout error.
        """
        try:
            outcome = future.result()
        except Exception as exc:
            logger.warning('Launching worker for %s raised: %s', file, exc)
            error = TestError(
                message=f'Worker launch failed for {file}: {exc}',
                traceback=''.join(traceback.format_exception(exc)),
                kind=ErrorKind.PROCESS,
            )
            return WorkerResult.failure(error)

        if outcome.error is not None and not outcome.timed_out:
            return WorkerResult.failure(outcome.error, elapsed=outcome.elapsed, raw_output=outcome.raw_output)

        try:
            parsed = self._parser.parse(outcome.raw_output, outcome.elapsed, outcome.success)
        except Exception as exc:
            logger.warning('Parsing output of worker for %s raised: %s', file, exc)
            error = TestError(
                message=f'Could not parse worker output for {file}: {exc}',
                traceback=''.join(traceback.format_exception(exc)),
                kind=ErrorKind.PARSE,
            )
            return WorkerResult.failure(error, elapsed=outcome.elapsed, raw_output=outcome.raw_output)

        if outcome.timed_out:
            errors = [error for error in parsed.errors if error.kind is not ErrorKind.PARSE]
            if outcome.error is not None:
                errors.append(outcome.error)
            return dataclasses.replace(parsed, errors=tuple(errors), success=False)

        if not outcome.success and parsed.failed == 0 and not parsed.errors and outcome.returncode is not None:
            crash = TestError(message=f'Worker exited with status {outcome.returncode}', kind=ErrorKind.PROCESS)
            return dataclasses.replace(parsed, errors=(crash,), success=False)

        return parsed


def run_tests(files: Sequence[str], config: RunConfig | None = None) -> AggregateResult:
    """Run test files in parallel worker processes.

    Args:
        files: Test files, in dispatch order.
        config: Run configuration. Defaults to RunConfig().

    Returns:
        AggregateResult for the run. Overall success is ``result.failed == 0``.
    """
    return Scheduler().run(files, config if config is not None else RunConfig())
