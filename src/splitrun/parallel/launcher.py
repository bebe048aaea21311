"""Launch one worker process for one test file.

The launcher builds an argv list (never a shell string), starts the worker
with its combined stdout/stderr redirected to a private temporary file,
kills it if it overruns its deadline, and reads the captured output back.

Nothing here raises for a misbehaving worker: spawn failures, artifact
failures and timeouts all come back as an unsuccessful LaunchOutcome with
an error attached.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import subprocess
import tempfile
import time
from typing import IO, TYPE_CHECKING

from splitrun.errors import ArtifactError, WorkerProcessError, WorkerTimeoutError
from splitrun.results import ErrorKind, TestError


if TYPE_CHECKING:
    from splitrun.config import RunConfig


logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = 'splitrun-'
ARTIFACT_SUFFIX = '.out'


@dataclass(frozen=True)
class LaunchOutcome:
    """What happened when a worker ran.

    Attributes:
        raw_output: Combined stdout/stderr of the worker. Empty if it never started.
        elapsed: Wall-clock seconds from spawn to exit (or kill).
        success: True if the worker exited with status 0 within its deadline.
        timed_out: True if the worker was killed for exceeding its deadline.
        error: Error describing a timeout, spawn failure or artifact failure.
        returncode: Exit status of the worker, or None if it never started.
    """

    raw_output: str
    elapsed: float
    success: bool
    timed_out: bool = False
    error: TestError | None = None
    returncode: int | None = None


def build_worker_command(file: str, config: RunConfig) -> list[str]:
    """Build the argv for running ``file`` in a worker.

    The layout is::

        <interpreter...> <file> [--coverage] [--tag <t>]* [--filter <pattern>] --results-format <format>

    Args:
        file: Path of the test file to run.
        config: Run configuration.

    Returns:
        List of argument tokens, suitable for subprocess without a shell.

    Example:
        >>> from splitrun.config import RunConfig
        >>> config = RunConfig(interpreter=('lua',), tags=('fast', 'db'), filter='add one', coverage_enabled=True)
        >>> build_worker_command('tests/math_test.lua', config)
        ['lua', 'tests/math_test.lua', '--coverage', '--tag', 'fast', '--tag', 'db', '--filter', 'add one', '--results-format', 'json']
    """
    command = [*config.interpreter, file]
    if config.coverage_enabled:
        command.append('--coverage')
    for tag in config.tags:
        command.extend(['--tag', tag])
    if config.filter is not None:
        command.extend(['--filter', config.filter])
    command.extend(['--results-format', config.results_format])
    return command


def _read_artifact(artifact: IO[bytes]) -> str:
    """Read everything the worker wrote to its artifact.

    Raises:
        ArtifactError: If the artifact cannot be read back.
    """
    try:
        artifact.flush()
        artifact.seek(0)
        data = artifact.read()
    except OSError as exc:
        msg = f'Cannot read worker output artifact {artifact.name}: {exc}'
        raise ArtifactError(msg) from exc
    return data.decode('utf-8', errors='replace')


class WorkerLauncher:
    """Runs a single test file in an isolated worker process.

    Each call owns a uniquely named temporary file for the worker's output.
    The file is removed before ``launch`` returns, whatever the outcome.

    Example:
        >>> launcher = WorkerLauncher()
        >>> outcome = launcher.launch('tests/test_math.py', RunConfig())  # doctest: +SKIP
        >>> outcome.success  # doctest: +SKIP
        True
    """

    def __init__(self, artifact_dir: str | None = None) -> None:
        """Initialize the launcher.

        Args:
            artifact_dir: Directory for temporary output files. Defaults to
                the system temporary directory.
        """
        self._artifact_dir = artifact_dir

    def launch(self, file: str, config: RunConfig) -> LaunchOutcome:
        """Run ``file`` in a worker process and capture its output.

        Args:
            file: Path of the test file to run.
            config: Run configuration.

        Returns:
            LaunchOutcome with the captured output, timing and exit status.
        """
        command = build_worker_command(file, config)
        logger.debug('Worker command for %s: %s', file, command)

        start_time = time.monotonic()
        try:
            with tempfile.NamedTemporaryFile(
                mode='w+b',
                prefix=ARTIFACT_PREFIX,
                suffix=ARTIFACT_SUFFIX,
                dir=self._artifact_dir,
            ) as artifact:
                return self._run(file, command, config, artifact, start_time)
        except OSError as exc:
            # Raised creating the artifact, or from the worker's read-back.
            elapsed = time.monotonic() - start_time
            logger.warning('Output artifact failure for %s: %s', file, exc)
            error = exc
            if not isinstance(exc, ArtifactError):
                error = ArtifactError(f'Cannot create worker output artifact: {exc}')
            return LaunchOutcome(
                raw_output='',
                elapsed=elapsed,
                success=False,
                error=TestError(message=str(error), kind=ErrorKind.IO),
            )

    def _run(
        self,
        file: str,
        command: list[str],
        config: RunConfig,
        artifact: IO[bytes],
        start_time: float,
    ) -> LaunchOutcome:
        env = os.environ.copy()
        env.update(config.env)

        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                cwd=config.cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=artifact,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            elapsed = time.monotonic() - start_time
            error = WorkerProcessError(f'Failed to start worker for {file}: {exc}')
            logger.warning('%s', error)
            return LaunchOutcome(
                raw_output='',
                elapsed=elapsed,
                success=False,
                error=TestError(message=str(error), kind=ErrorKind.PROCESS),
            )

        timed_out = False
        try:
            returncode = process.wait(timeout=config.timeout_seconds)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.kill()
            returncode = process.wait()
        except BaseException:
            process.kill()
            process.wait()
            raise
        elapsed = time.monotonic() - start_time

        raw_output = _read_artifact(artifact)

        if timed_out:
            error = WorkerTimeoutError(f'Worker for {file} exceeded {config.timeout_seconds}s timeout and was killed')
            logger.warning('%s', error)
            return LaunchOutcome(
                raw_output=raw_output,
                elapsed=elapsed,
                success=False,
                timed_out=True,
                error=TestError(message=str(error), kind=ErrorKind.TIMEOUT),
                returncode=returncode,
            )

        return LaunchOutcome(
            raw_output=raw_output,
            elapsed=elapsed,
            success=returncode == 0,
            returncode=returncode,
        )
