"""Console reporter for parallel test run results.

Produces a human-readable summary of an AggregateResult for terminal display.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

from splitrun.coverage.merger import CoverageMerger


if TYPE_CHECKING:
    from splitrun.results import AggregateResult


class ConsoleReporter:
    """Reporter that writes a run summary to the console.

    Produces output in the following format:

        ===================== splitrun parallel summary =====================

        Files tested: 3
        Total tests: 12
          Passed: 10
          Failed: 1
          Skipped: 1
          Pending: 0
        Total time: 4.20 seconds

        Errors:
          1. In file: tests/test_auth.py
             tests/test_auth.py::test_login: AssertionError: boom

        Coverage: 184/230 lines (80.0%) in 12 files
        =====================================================================

    Attributes:
        output: The file-like object to write to.
        show_tracebacks: Whether error tracebacks are printed.
    """

    BORDER_CHAR = '='
    BORDER_WIDTH = 70

    def __init__(self, output: TextIO | None = None, show_tracebacks: bool = False) -> None:
        """Initialize the console reporter.

        Args:
            output: File-like object to write to. Defaults to sys.stdout.
            show_tracebacks: Print the traceback under each error.
        """
        self.output = output or sys.stdout
        self.show_tracebacks = show_tracebacks

    def write_report(self, result: AggregateResult) -> None:
        """Write the run summary to the output.

        Args:
            result: The AggregateResult to summarize.
        """
        self._write_header()
        self._write_blank_line()

        if not result.files_run:
            self._write_line('No test files run.')
        else:
            self._write_summary(result)
            self._write_errors(result)
            self._write_coverage(result)

        self._write_footer()

    def _write_header(self) -> None:
        """Write the report header."""
        title = ' splitrun parallel summary '
        border_len = (self.BORDER_WIDTH - len(title)) // 2
        header = f'{self.BORDER_CHAR * border_len}{title}{self.BORDER_CHAR * border_len}'
        self._write_line(header)

    def _write_footer(self) -> None:
        """Write the report footer."""
        self._write_line(self.BORDER_CHAR * self.BORDER_WIDTH)

    def _write_summary(self, result: AggregateResult) -> None:
        """Write file, test and timing counts."""
        self._write_line(f'Files tested: {len(result.files_run)}')
        self._write_line(f'Total tests: {result.total}')
        self._write_line(f'  Passed: {result.passed}')
        self._write_line(f'  Failed: {result.failed}')
        self._write_line(f'  Skipped: {result.skipped}')
        self._write_line(f'  Pending: {result.pending}')
        self._write_line(f'Total time: {result.elapsed:.2f} seconds')

    def _write_errors(self, result: AggregateResult) -> None:
        """Write the numbered error list, if any."""
        if not result.errors:
            return

        self._write_blank_line()
        self._write_line('Errors:')
        for index, error in enumerate(result.errors, start=1):
            self._write_line(f'  {index}. In file: {error.file}')
            self._write_line(f'     {error.message}')
            if self.show_tracebacks and error.traceback:
                for line in error.traceback.splitlines():
                    self._write_line(f'     {line}')

    def _write_coverage(self, result: AggregateResult) -> None:
        """Write the merged coverage totals, if coverage was collected."""
        if not result.coverage:
            return

        summary = CoverageMerger().summarize(result.coverage)
        self._write_blank_line()
        self._write_line(
            f'Coverage: {summary.covered_lines}/{summary.total_lines} lines '
            f'({summary.line_percentage:.1f}%) in {summary.total_files} files'
        )

    def _write_blank_line(self) -> None:
        """Write a blank line."""
        self.output.write('\n')

    def _write_line(self, text: str) -> None:
        """Write a line of text followed by newline."""
        self.output.write(text + '\n')
