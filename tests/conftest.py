"""Shared pytest configuration and fixtures for splitrun tests."""

from __future__ import annotations

from pathlib import Path
import sys
import textwrap
import threading
import time
from typing import TYPE_CHECKING

import pytest

from splitrun.config import RunConfig
from splitrun.parallel.launcher import LaunchOutcome
from splitrun.sentinel import format_results_block


if TYPE_CHECKING:
    from collections.abc import Callable


# Register markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line('markers', 'small: Fast, isolated unit tests (< 100ms)')
    config.addinivalue_line('markers', 'medium: Integration tests with real subprocesses (< 10s)')


def passing_output(passed: int = 1, elapsed: float = 0.1) -> str:
    """Worker output with a sentinel block reporting only passing tests."""
    return f'running...\n{format_results_block(passed=passed, elapsed=elapsed)}\n'


def failing_output(message: str = 'boom', passed: int = 0, elapsed: float = 0.1) -> str:
    """Worker output with a sentinel block reporting one failure."""
    block = format_results_block(passed=passed, failed=1, errors=[(message, None)], elapsed=elapsed)
    return f'running...\n{block}\n'


class FakeLauncher:
    """Stand-in for WorkerLauncher.launch that returns canned outcomes.

    Records which files were launched and how many launches ran at once.

    Attributes:
        outcomes: Mapping of file to the outcome returned for it.
        delays: Mapping of file to seconds to sleep before returning.
        launched: Files in the order launch was called.
        max_concurrent: Highest number of launches in flight at the same time.
    """

    def __init__(
        self,
        outcomes: dict[str, LaunchOutcome | Exception],
        delays: dict[str, float] | None = None,
    ) -> None:
        self.outcomes = outcomes
        self.delays = delays or {}
        self.launched: list[str] = []
        self.max_concurrent = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def __call__(self, file: str, config: RunConfig) -> LaunchOutcome:  # noqa: ARG002
        with self._lock:
            self.launched.append(file)
            self._in_flight += 1
            self.max_concurrent = max(self.max_concurrent, self._in_flight)
        try:
            time.sleep(self.delays.get(file, 0.0))
            outcome = self.outcomes[file]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            with self._lock:
                self._in_flight -= 1


@pytest.fixture
def make_outcome() -> Callable[..., LaunchOutcome]:
    """Build LaunchOutcome objects with sensible defaults."""

    def _make(
        raw_output: str = '',
        elapsed: float = 0.1,
        success: bool = True,
        **kwargs: object,
    ) -> LaunchOutcome:
        returncode = kwargs.pop('returncode', 0 if success else 1)
        return LaunchOutcome(
            raw_output=raw_output,
            elapsed=elapsed,
            success=success,
            returncode=returncode,  # type: ignore[arg-type]
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def write_worker(tmp_path: Path) -> Callable[[str, str], str]:
    """Write a Python worker script into tmp_path and return its path."""

    def _write(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text(textwrap.dedent(body))
        return str(path)

    return _write


@pytest.fixture
def python_config() -> Callable[..., RunConfig]:
    """Build a RunConfig whose workers are plain Python scripts."""

    def _config(**overrides: object) -> RunConfig:
        overrides.setdefault('interpreter', (sys.executable,))
        overrides.setdefault('show_worker_output', False)
        return RunConfig(**overrides)  # type: ignore[arg-type]

    return _config


@pytest.fixture
def fake_launcher() -> type[FakeLauncher]:
    """Return the FakeLauncher class for building canned launchers."""
    return FakeLauncher


@pytest.fixture
def passing() -> Callable[..., str]:
    """Return a builder for worker output reporting only passing tests."""
    return passing_output


@pytest.fixture
def failing() -> Callable[..., str]:
    """Return a builder for worker output reporting one failure."""
    return failing_output
