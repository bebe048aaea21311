"""Per-file coverage records and the CoverageMap type.

A CoverageMap maps a source file path to the hit counts a worker observed
for that file:

    {
        "src/auth.py": FileCoverage(lines={10: 3, 11: 3}, functions={"login": 3}),
        "src/utils.py": FileCoverage(lines={4: 1}, functions={}),
    }

Workers ship coverage as JSON, where object keys are always strings, so
``coverage_map_from_dict`` converts line keys back to integers.

Example:
    >>> record = FileCoverage.from_dict({'lines': {'1': 2}, 'functions': {'main': 1}})
    >>> record.lines
    {1: 2}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeAlias


def _hit_count(value: Any) -> int:
    """Coerce a decoded hit count to a non-negative int.

    Raises:
        ValueError: If the value is not an integer or is negative.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f'hit count must be an integer, got {value!r}'
        raise ValueError(msg)
    if value < 0:
        msg = f'hit count must be non-negative, got {value}'
        raise ValueError(msg)
    return value


@dataclass
class FileCoverage:
    """Hit counts for a single source file.

    Attributes:
        lines: Mapping of line number to the number of times it executed.
        functions: Mapping of function name to the number of times it was called.
    """

    lines: dict[int, int] = field(default_factory=dict)
    functions: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileCoverage:
        """Build a FileCoverage from a JSON-decoded record.

        Args:
            data: Dict with optional ``lines`` and ``functions`` sub-dicts.

        Returns:
            A new FileCoverage with integer line keys.

        Raises:
            ValueError: If the record is not shaped like a coverage record.
        """
        if not isinstance(data, dict):
            msg = f'coverage record must be an object, got {type(data).__name__}'
            raise ValueError(msg)  # noqa: TRY004

        raw_lines = data.get('lines') or {}
        raw_functions = data.get('functions') or {}
        if not isinstance(raw_lines, dict) or not isinstance(raw_functions, dict):
            msg = 'coverage lines and functions must be objects'
            raise ValueError(msg)  # noqa: TRY004

        return cls(
            lines={int(line): _hit_count(count) for line, count in raw_lines.items()},
            functions={str(name): _hit_count(count) for name, count in raw_functions.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation of this record."""
        return {
            'lines': {str(line): count for line, count in sorted(self.lines.items())},
            'functions': dict(sorted(self.functions.items())),
        }

    def copy(self) -> FileCoverage:
        """Return an independent copy of this record."""
        return FileCoverage(lines=dict(self.lines), functions=dict(self.functions))


CoverageMap: TypeAlias = dict[str, FileCoverage]


def coverage_map_from_dict(data: dict[str, Any]) -> CoverageMap:
    """Convert a JSON-decoded coverage payload into a CoverageMap.

    Args:
        data: Mapping of file path to coverage record dicts.

    Returns:
        CoverageMap keyed by file path.

    Raises:
        ValueError: If the payload or any record is malformed.
    """
    if not isinstance(data, dict):
        msg = f'coverage payload must be an object, got {type(data).__name__}'
        raise ValueError(msg)  # noqa: TRY004
    return {str(path): FileCoverage.from_dict(record) for path, record in data.items()}


def coverage_map_to_dict(coverage_map: CoverageMap) -> dict[str, Any]:
    """Convert a CoverageMap into JSON-serializable dicts, sorted by path."""
    return {path: coverage_map[path].to_dict() for path in sorted(coverage_map)}
