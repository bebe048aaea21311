"""Run configuration for splitrun.

RunConfig is the immutable value handed to ``run_tests``. Defaults can also
be read from the [tool.splitrun] section of pyproject.toml and merged with
command-line overrides:

    [tool.splitrun]
    workers = 8
    timeout = 120
    fail-fast = true
    tags = ["unit"]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
import sys
import tomllib
from typing import TYPE_CHECKING, Any

from splitrun.errors import ConfigValidationError


if TYPE_CHECKING:
    from pathlib import Path


MIN_WORKERS = 1
MAX_WORKERS = 64
DEFAULT_WORKERS = 4
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_RESULTS_FORMAT = 'json'


def default_interpreter() -> tuple[str, ...]:
    """Return the default worker command prefix.

    Runs pytest in the current interpreter with the splitrun worker plugin
    loaded, so every worker honours --coverage/--tag/--filter and prints the
    sentinel results block.

    Example:
        >>> default_interpreter()[1:]
        ('-m', 'pytest', '-p', 'splitrun.plugin')
    """
    return (sys.executable, '-m', 'pytest', '-p', 'splitrun.plugin')


@dataclass(frozen=True)
class RunConfig:
    """Immutable configuration for a parallel test run.

    Attributes:
        workers: Maximum number of concurrent worker processes (1-64).
        timeout_seconds: Per-file wall-clock deadline in seconds.
        fail_fast: Stop dispatching new files after the first failed worker.
        aggregate_coverage: Merge coverage reported by workers.
        show_worker_output: Keep and log each worker's raw output.
        verbose: Log dispatch and completion at INFO instead of DEBUG.
        tags: Tags passed to every worker, one --tag flag each.
        filter: Optional test-name pattern passed as --filter.
        coverage_enabled: Ask workers to measure coverage (--coverage).
        interpreter: Command prefix used to start a worker.
        results_format: Value of the --results-format flag.
        cwd: Working directory for workers. Defaults to the current directory.
        env: Extra environment variables set for every worker, as a mapping
            or (name, value) pairs. Stored as a sorted tuple of pairs.

    Example:
        >>> config = RunConfig(workers=2, tags=('unit',))
        >>> config.workers, config.timeout_seconds
        (2, 60)
    """

    workers: int = DEFAULT_WORKERS
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    fail_fast: bool = False
    aggregate_coverage: bool = True
    show_worker_output: bool = True
    verbose: bool = False
    tags: tuple[str, ...] = ()
    filter: str | None = None
    coverage_enabled: bool = False
    interpreter: tuple[str, ...] = field(default_factory=default_interpreter)
    results_format: str = DEFAULT_RESULTS_FORMAT
    cwd: str | None = None
    env: Mapping[str, str] | tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        """Validate configuration values.

        Lists given for tags or interpreter are frozen into tuples, and env
        is stored as sorted (name, value) pairs so the config stays hashable.

        Raises:
            ConfigValidationError: If any configuration value is invalid.
        """
        if isinstance(self.workers, bool) or not isinstance(self.workers, int):
            msg = f'workers must be an integer, got {self.workers!r}'
            raise ConfigValidationError(msg)
        if not MIN_WORKERS <= self.workers <= MAX_WORKERS:
            msg = f'workers must be between {MIN_WORKERS} and {MAX_WORKERS}, got {self.workers}'
            raise ConfigValidationError(msg)

        if isinstance(self.timeout_seconds, bool) or not isinstance(self.timeout_seconds, int):
            msg = f'timeout_seconds must be an integer, got {self.timeout_seconds!r}'
            raise ConfigValidationError(msg)
        if self.timeout_seconds < 1:
            msg = f'timeout_seconds must be at least 1, got {self.timeout_seconds}'
            raise ConfigValidationError(msg)

        if isinstance(self.tags, str):
            msg = f'tags must be a sequence of strings, got {self.tags!r}'
            raise ConfigValidationError(msg)
        object.__setattr__(self, 'tags', tuple(self.tags))
        if any(not isinstance(tag, str) or not tag for tag in self.tags):
            msg = f'tags must be non-empty strings, got {list(self.tags)!r}'
            raise ConfigValidationError(msg)

        if self.filter is not None and not isinstance(self.filter, str):
            msg = f'filter must be a string, got {self.filter!r}'
            raise ConfigValidationError(msg)

        if isinstance(self.interpreter, str):
            msg = f'interpreter must be a sequence of argv tokens, got {self.interpreter!r}'
            raise ConfigValidationError(msg)
        object.__setattr__(self, 'interpreter', tuple(self.interpreter))
        if not self.interpreter:
            msg = 'interpreter must contain at least one token'
            raise ConfigValidationError(msg)

        if not self.results_format:
            msg = 'results_format must not be empty'
            raise ConfigValidationError(msg)

        pairs = self.env.items() if isinstance(self.env, Mapping) else self.env
        env = [(key, value) for key, value in pairs]
        if any(not isinstance(key, str) or not isinstance(value, str) for key, value in env):
            msg = f'env keys and values must be strings, got {dict(env)!r}'
            raise ConfigValidationError(msg)
        object.__setattr__(self, 'env', tuple(sorted(dict(env).items())))


@dataclass
class FileConfig:
    """Settings read from [tool.splitrun] in pyproject.toml.

    All fields default to None, meaning the RunConfig default is used.
    """

    workers: int | None = None
    timeout: int | None = None
    fail_fast: bool | None = None
    aggregate_coverage: bool | None = None
    show_worker_output: bool | None = None
    verbose: bool | None = None
    tags: list[str] | None = None
    filter: str | None = None
    coverage: bool | None = None
    interpreter: list[str] | None = None

    def to_run_config(self) -> RunConfig:
        """Build a validated RunConfig, leaving unset fields at their defaults.

        Raises:
            ConfigValidationError: If any configured value is invalid.
        """
        renames = {'timeout': 'timeout_seconds', 'coverage': 'coverage_enabled'}
        kwargs: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            kwargs[renames.get(f.name, f.name)] = value
        return RunConfig(**kwargs)


def load_config(rootdir: Path) -> FileConfig:
    """Load configuration from pyproject.toml.

    Reads the [tool.splitrun] section from pyproject.toml in the given
    directory. Returns an empty FileConfig if the file or section is missing.
    Keys use dashes (``fail-fast``) or underscores interchangeably.

    Args:
        rootdir: Directory containing pyproject.toml.

    Returns:
        FileConfig with values from pyproject.toml.
    """
    pyproject_path = rootdir / 'pyproject.toml'

    if not pyproject_path.exists():
        return FileConfig()

    with pyproject_path.open('rb') as f:
        data = tomllib.load(f)

    tool_config = data.get('tool', {}).get('splitrun', {})
    known = {f.name for f in fields(FileConfig)}
    values = {}
    for key, value in tool_config.items():
        name = key.replace('-', '_')
        if name in known:
            values[name] = value

    return FileConfig(**values)


def merge_configs(file_config: FileConfig, **cli_overrides: Any) -> FileConfig:
    """Merge CLI arguments with file configuration.

    CLI values take precedence over pyproject.toml values. Overrides that are
    None, or empty lists, count as not provided.

    Args:
        file_config: Configuration loaded from pyproject.toml.
        **cli_overrides: FileConfig field names mapped to CLI values.

    Returns:
        A new FileConfig with CLI values applied.

    Raises:
        TypeError: If an override names an unknown field.
    """
    known = {f.name for f in fields(FileConfig)}
    merged = {f.name: getattr(file_config, f.name) for f in fields(FileConfig)}
    for name, value in cli_overrides.items():
        if name not in known:
            msg = f'Unknown configuration field: {name}'
            raise TypeError(msg)
        if value is None or value == []:
            continue
        merged[name] = value
    return FileConfig(**merged)
