"""End-to-end tests for run_tests with real worker processes."""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING

import pytest

from splitrun import RunConfig, run_tests
from splitrun.results import ErrorKind


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def _block_worker(passed: int = 0, failed: int = 0, sleep: float = 0.0, exit_code: int = 0) -> str:
    """Source of a worker script that prints a results block."""
    return f"""
        import sys
        import time

        from splitrun.sentinel import format_results_block

        time.sleep({sleep})
        errors = [('assertion failed', None)] * {failed}
        print(format_results_block(passed={passed}, failed={failed}, errors=errors, elapsed={sleep}))
        sys.exit({exit_code})
        """


class TestRunTestsWithScripts:
    """run_tests with plain Python scripts as workers."""

    def test_aggregates_every_file(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """Counts from every worker are summed and each file is listed once."""
        files = [
            write_worker('w1.py', _block_worker(passed=3)),
            write_worker('w2.py', _block_worker(passed=2, failed=1, exit_code=1)),
            write_worker('w3.py', 'print("PASS one")\nprint("SKIP two")\n'),
        ]

        result = run_tests(files, python_config(workers=2))

        assert list(result.files_run) == files
        assert result.total == 8
        assert result.passed == 6
        assert result.failed == 1
        assert result.skipped == 1
        assert result.success is False
        assert [error.file for error in result.errors] == [files[1]]
        assert list(result.failed_files) == [files[1]]

    def test_workers_overlap_in_time(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """Four one-second workers with four slots finish well under four seconds."""
        files = [write_worker(f'sleepy{i}.py', _block_worker(passed=1, sleep=1.0)) for i in range(4)]

        start = time.monotonic()
        result = run_tests(files, python_config(workers=4))
        wall_clock = time.monotonic() - start

        assert result.passed == 4
        assert result.elapsed == pytest.approx(4.0)
        assert wall_clock < 3.5

    def test_fail_fast_stops_dispatch(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """With one slot, nothing runs after the first failing file."""
        files = [
            write_worker('a.py', _block_worker(failed=1, exit_code=1)),
            write_worker('b.py', _block_worker(passed=1)),
            write_worker('c.py', _block_worker(passed=1)),
        ]

        result = run_tests(files, python_config(workers=1, fail_fast=True))

        assert list(result.files_run) == files[:1]
        assert result.failed == 1
        assert result.passed == 0

    def test_timeout_is_isolated_to_its_file(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """A hung worker is killed and the other files still report."""
        files = [
            write_worker('hang.py', 'import time\nprint("PASS early", flush=True)\ntime.sleep(30)\n'),
            write_worker('ok.py', _block_worker(passed=2)),
        ]

        result = run_tests(files, python_config(workers=2, timeout_seconds=1))

        assert list(result.files_run) == files
        assert result.passed == 3
        assert [error.kind for error in result.errors] == [ErrorKind.TIMEOUT]
        assert list(result.failed_files) == [files[0]]

    def test_crashing_worker_is_reported(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """A worker that dies without any output gets a parse error."""
        files = [write_worker('crash.py', 'import os\nos._exit(7)\n')]

        result = run_tests(files, python_config())

        assert result.total == 0
        assert list(result.failed_files) == files
        assert [error.kind for error in result.errors] == [ErrorKind.PARSE]

    def test_coverage_from_workers_is_merged(
        self,
        write_worker: Callable[[str, str], str],
        python_config: Callable[..., RunConfig],
    ) -> None:
        """Coverage reported for the same source by two workers is summed."""
        body = """
            from splitrun.coverage.mapper import FileCoverage
            from splitrun.sentinel import format_results_block

            coverage = {'src/shared.py': FileCoverage(lines={1: 1, 2: 2})}
            print(format_results_block(passed=1, coverage=coverage))
            """
        files = [write_worker('c1.py', body), write_worker('c2.py', body)]

        result = run_tests(files, python_config(workers=2))

        assert result.coverage['src/shared.py'].lines == {1: 2, 2: 4}


class TestRunTestsWithPytestWorkers:
    """run_tests with the default pytest-based worker command."""

    def test_runs_pytest_files(self, tmp_path: Path) -> None:
        """Real pytest workers report through the worker plugin."""
        (tmp_path / 'test_math.py').write_text(
            'import pytest\n'
            '\n'
            'def test_add():\n'
            '    assert 1 + 1 == 2\n'
            '\n'
            '@pytest.mark.skip(reason="later")\n'
            'def test_later():\n'
            '    pass\n'
        )
        (tmp_path / 'test_broken.py').write_text('def test_broken():\n    assert 1 == 2\n')
        config = RunConfig(workers=2, show_worker_output=False, cwd=str(tmp_path))

        result = run_tests(['test_math.py', 'test_broken.py'], config)

        assert list(result.files_run) == ['test_math.py', 'test_broken.py']
        assert (result.passed, result.failed, result.skipped) == (1, 1, 1)
        assert list(result.failed_files) == ['test_broken.py']
        [error] = result.errors
        assert error.file == 'test_broken.py'
        assert 'test_broken' in error.message

    def test_file_without_tagged_tests_is_not_a_failure(self, tmp_path: Path) -> None:
        """A file whose tests are all deselected by --tag does not stop a fail-fast run."""
        (tmp_path / 'pytest.ini').write_text('[pytest]\nmarkers =\n    unit\n')
        (tmp_path / 'test_plain.py').write_text('def test_plain():\n    pass\n')
        (tmp_path / 'test_unit.py').write_text(
            'import pytest\n\n@pytest.mark.unit\ndef test_unit():\n    pass\n'
        )
        config = RunConfig(workers=1, fail_fast=True, tags=('unit',), show_worker_output=False, cwd=str(tmp_path))

        result = run_tests(['test_plain.py', 'test_unit.py'], config)

        assert list(result.files_run) == ['test_plain.py', 'test_unit.py']
        assert list(result.failed_files) == []
        assert list(result.errors) == []
        assert result.passed == 1

    def test_interpreter_is_current_python(self) -> None:
        """The default worker command runs in this interpreter."""
        assert RunConfig().interpreter[0] == sys.executable
