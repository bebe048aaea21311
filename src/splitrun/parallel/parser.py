"""Turn a worker's captured output into a WorkerResult.

Parsing is two-tier:

1. **Structured**: look for the sentinel block (see ``splitrun.sentinel``) and
   read counts, errors, elapsed time and coverage straight from its JSON.
2. **Heuristic**: if no usable block exists, strip ANSI colour codes and count
   lines that start with a status prefix::

       PASS adds two numbers
       FAIL divides by zero - ZeroDivisionError: division by zero
       SKIP needs network (offline)
       PENDING: supports unicode

The parser never raises. Output with no signal at all is scored as zero
tests, unsuccessful, with a single parse error.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from splitrun.coverage.mapper import coverage_map_from_dict
from splitrun.errors import PayloadParseError
from splitrun.results import ErrorKind, TestError, WorkerResult
from splitrun.sentinel import iter_result_blocks


logger = logging.getLogger(__name__)

ANSI_ESCAPE = re.compile(r'\x1b\[[0-9;?]*[ -/]*[@-~]')
STATUS_LINE = re.compile(r'^\s*(?P<status>PASS|FAIL|SKIP|PENDING):?\s+(?P<name>\S.*?)\s*$')
FAILURE_DETAIL_SEPARATOR = ' - '

COUNT_FIELDS = ('passed', 'failed', 'skipped', 'pending')


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences (colours, cursor movement) from text.

    Example:
        >>> strip_ansi('\\x1b[32mPASS\\x1b[0m ok')
        'PASS ok'
    """
    return ANSI_ESCAPE.sub('', text)


def _count(payload: dict[str, Any], name: str) -> int:
    value = payload.get(name, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        msg = f'{name} must be a non-negative integer, got {value!r}'
        raise PayloadParseError(msg)
    return value


def _errors(payload: dict[str, Any]) -> tuple[TestError, ...]:
    raw_errors = payload.get('errors') or []
    if not isinstance(raw_errors, list):
        msg = f'errors must be a list, got {type(raw_errors).__name__}'
        raise PayloadParseError(msg)

    errors: list[TestError] = []
    for entry in raw_errors:
        if isinstance(entry, str):
            errors.append(TestError(message=entry))
            continue
        if not isinstance(entry, dict):
            msg = f'error entries must be objects, got {type(entry).__name__}'
            raise PayloadParseError(msg)
        traceback = entry.get('traceback')
        errors.append(
            TestError(
                message=str(entry.get('message', '')),
                traceback=None if traceback is None else str(traceback),
            )
        )
    return tuple(errors)


def _elapsed(payload: dict[str, Any], measured: float) -> float:
    value = payload.get('elapsed')
    if isinstance(value, bool) or not isinstance(value, int | float):
        return measured
    if not math.isfinite(value) or value < 0:
        return measured
    return float(value)


class OutputParser:
    """Parses raw worker output into WorkerResult objects.

    Example:
        >>> parser = OutputParser()
        >>> result = parser.parse('PASS one\\nFAIL two - boom\\n', elapsed=0.1, success=False)
        >>> result.passed, result.failed, result.errors[0].message
        (1, 1, 'boom')
    """

    def parse(self, raw_output: str, elapsed: float, success: bool) -> WorkerResult:
        """Parse captured output into a WorkerResult.

        Args:
            raw_output: Combined stdout/stderr of the worker.
            elapsed: Measured wall-clock seconds of the worker.
            success: Whether the worker process exited successfully.

        Returns:
            WorkerResult built from the sentinel block if one is usable,
            otherwise from status lines, otherwise a zeroed failed result.
        """
        elapsed = max(elapsed, 0.0)

        try:
            return self._parse_structured(raw_output, elapsed, success)
        except PayloadParseError as exc:
            logger.debug('Falling back to line heuristics: %s', exc)

        result = self._parse_status_lines(raw_output, elapsed, success)
        if result is not None:
            return result

        return WorkerResult.failure(
            TestError(message='No test results found in worker output', kind=ErrorKind.PARSE),
            elapsed=elapsed,
            raw_output=raw_output,
        )

    def _parse_structured(self, raw_output: str, elapsed: float, success: bool) -> WorkerResult:
        """Build a result from the last well-formed sentinel block.

        Raises:
            PayloadParseError: If no block is present or none is well-formed.
        """
        blocks = list(iter_result_blocks(raw_output))
        if not blocks:
            msg = 'no sentinel block in output'
            raise PayloadParseError(msg)

        last_error: PayloadParseError | None = None
        for block in reversed(blocks):
            try:
                return self._result_from_block(block, raw_output, elapsed, success)
            except PayloadParseError as exc:
                last_error = exc

        raise last_error  # type: ignore[misc]

    def _result_from_block(self, block: str, raw_output: str, elapsed: float, success: bool) -> WorkerResult:
        try:
            payload = json.loads(block)
        except (ValueError, RecursionError) as exc:
            msg = f'invalid JSON in sentinel block: {exc}'
            raise PayloadParseError(msg) from exc

        if not isinstance(payload, dict):
            msg = f'sentinel payload must be an object, got {type(payload).__name__}'
            raise PayloadParseError(msg)

        counts = {name: _count(payload, name) for name in COUNT_FIELDS}
        component_sum = sum(counts.values())
        total = _count(payload, 'total') if 'total' in payload else component_sum
        if total != component_sum:
            msg = f'total {total} does not match sum of counts {component_sum}'
            raise PayloadParseError(msg)

        coverage = None
        if payload.get('coverage') is not None:
            try:
                coverage = coverage_map_from_dict(payload['coverage'])
            except ValueError as exc:
                msg = f'invalid coverage payload: {exc}'
                raise PayloadParseError(msg) from exc

        return WorkerResult(
            total=total,
            errors=_errors(payload),
            elapsed=_elapsed(payload, elapsed),
            success=success and counts['failed'] == 0,
            raw_output=raw_output,
            coverage=coverage,
            **counts,
        )

    def _parse_status_lines(self, raw_output: str, elapsed: float, success: bool) -> WorkerResult | None:
        """Derive counts from PASS/FAIL/SKIP/PENDING lines.

        Returns:
            A WorkerResult, or None if no status line was found.
        """
        counts = dict.fromkeys(COUNT_FIELDS, 0)
        errors: list[TestError] = []
        statuses = {'PASS': 'passed', 'FAIL': 'failed', 'SKIP': 'skipped', 'PENDING': 'pending'}

        for line in strip_ansi(raw_output).splitlines():
            match = STATUS_LINE.match(line)
            if match is None:
                continue
            status = match.group('status')
            counts[statuses[status]] += 1
            if status == 'FAIL':
                errors.append(self._failure_from_line(match.group('name')))

        if not any(counts.values()):
            return None

        return WorkerResult(
            total=sum(counts.values()),
            errors=tuple(errors),
            elapsed=elapsed,
            success=success and counts['failed'] == 0,
            raw_output=raw_output,
            **counts,
        )

    @staticmethod
    def _failure_from_line(detail: str) -> TestError:
        name, separator, message = detail.partition(FAILURE_DETAIL_SEPARATOR)
        if separator and message.strip():
            return TestError(message=message.strip())
        return TestError(message=f'Test failed: {name.strip()}')
