"""Coverage aggregation across worker processes.

Each worker reports the coverage it measured for the single test file it
ran. The merger folds those reports into one map by summing hit counts:

    worker 1: {"src/auth.py": {lines: {42: 2}}}
    worker 2: {"src/auth.py": {lines: {42: 3}}}
    merged:   {"src/auth.py": {lines: {42: 5}}}

Exports:
    CoverageMap: Mapping of file path to FileCoverage
    FileCoverage: Line and function hit counts for one file
    CoverageMerger: Additive merge and summary over coverage maps
    CoverageSummary: File/line/function totals for reporting
"""

from __future__ import annotations

from splitrun.coverage.mapper import CoverageMap, FileCoverage
from splitrun.coverage.merger import CoverageMerger, CoverageSummary


__all__ = ['CoverageMap', 'CoverageMerger', 'CoverageSummary', 'FileCoverage']
