"""Additive merging of coverage maps reported by separate workers.

Every worker measures coverage in its own process, so the same source file
usually shows up in several reports. Merging sums hit counts entrywise, which
makes the result independent of the order workers finish in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from splitrun.coverage.mapper import CoverageMap


@dataclass(frozen=True)
class CoverageSummary:
    """Totals over a merged CoverageMap, for report consumers.

    Attributes:
        total_files: Number of files with coverage records.
        covered_files: Files with at least one executed line.
        total_lines: Number of lines with a record.
        covered_lines: Lines executed at least once.
        total_functions: Number of functions with a record.
        covered_functions: Functions called at least once.
    """

    total_files: int = 0
    covered_files: int = 0
    total_lines: int = 0
    covered_lines: int = 0
    total_functions: int = 0
    covered_functions: int = 0

    @property
    def line_percentage(self) -> float:
        """Return the percentage of recorded lines that executed."""
        if self.total_lines == 0:
            return 0.0
        return (self.covered_lines / self.total_lines) * 100


class CoverageMerger:
    """Merges per-worker coverage maps into an aggregate map.

    Example:
        >>> from splitrun.coverage.mapper import FileCoverage
        >>> aggregate = {'f.py': FileCoverage(lines={1: 2})}
        >>> CoverageMerger().merge(aggregate, {'f.py': FileCoverage(lines={1: 3})})
        >>> aggregate['f.py'].lines
        {1: 5}
    """

    def merge(self, aggregate_map: CoverageMap, file_map: CoverageMap) -> None:
        """Fold ``file_map`` into ``aggregate_map`` in place.

        Paths not yet present are inserted as copies so later merges never
        write through to a worker's own record. Paths already present have
        their line and function hit counts summed.

        Args:
            aggregate_map: The map being accumulated. Mutated.
            file_map: Coverage reported by one worker. Not mutated.
        """
        for file_path, file_data in file_map.items():
            existing = aggregate_map.get(file_path)
            if existing is None:
                aggregate_map[file_path] = file_data.copy()
                continue

            for line, count in file_data.lines.items():
                existing.lines[line] = existing.lines.get(line, 0) + count
            for name, count in file_data.functions.items():
                existing.functions[name] = existing.functions.get(name, 0) + count

    def summarize(self, coverage_map: CoverageMap) -> CoverageSummary:
        """Compute file, line and function totals over a coverage map.

        Args:
            coverage_map: A (typically merged) coverage map.

        Returns:
            CoverageSummary with total and covered counts.
        """
        covered_files = 0
        total_lines = 0
        covered_lines = 0
        total_functions = 0
        covered_functions = 0

        for file_data in coverage_map.values():
            hit_lines = sum(1 for count in file_data.lines.values() if count > 0)
            total_lines += len(file_data.lines)
            covered_lines += hit_lines
            total_functions += len(file_data.functions)
            covered_functions += sum(1 for count in file_data.functions.values() if count > 0)
            if hit_lines:
                covered_files += 1

        return CoverageSummary(
            total_files=len(coverage_map),
            covered_files=covered_files,
            total_lines=total_lines,
            covered_lines=covered_lines,
            total_functions=total_functions,
            covered_functions=covered_functions,
        )
