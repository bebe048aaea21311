"""Exception hierarchy for splitrun.

Only ConfigValidationError ever escapes ``run_tests``. The others are raised
inside a single file's launch/parse path and converted into FileError records
on the aggregate result, so one broken file never takes the run down.
"""

from __future__ import annotations


class SplitrunError(Exception):
    """Base class for all splitrun errors."""


class ConfigValidationError(SplitrunError, ValueError):
    """A RunConfig field holds an invalid value."""


class ArtifactError(SplitrunError, OSError):
    """A worker's temporary output file could not be created or read."""


class WorkerTimeoutError(SplitrunError, TimeoutError):
    """A worker process exceeded its deadline and was killed."""


class WorkerProcessError(SplitrunError):
    """A worker process could not be spawned or crashed."""


class PayloadParseError(SplitrunError, ValueError):
    """The sentinel results block was present but malformed."""
