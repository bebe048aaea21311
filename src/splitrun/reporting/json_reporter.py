"""JSON reporter for parallel test run results.

Produces machine-readable JSON output for CI integration.
"""

from __future__ import annotations

from dataclasses import asdict
import json
from typing import TYPE_CHECKING, Any

from splitrun.coverage.mapper import coverage_map_to_dict
from splitrun.coverage.merger import CoverageMerger


if TYPE_CHECKING:
    from pathlib import Path

    from splitrun.results import AggregateResult, FileError


class JsonReporter:
    """Reporter that produces JSON output for CI integration.

    JSON structure:
        {
            "success": false,
            "summary": {
                "files": 2,
                "total": 6,
                "passed": 5,
                "failed": 1,
                "skipped": 0,
                "pending": 0,
                "elapsed": 1.25
            },
            "files_run": ["tests/test_a.py", "tests/test_b.py"],
            "failed_files": ["tests/test_a.py"],
            "errors": [
                {
                    "file": "tests/test_a.py",
                    "kind": "test",
                    "message": "boom",
                    "traceback": null
                }
            ],
            "coverage": {
                "summary": {"total_files": 1, "covered_files": 1, ...},
                "files": {"src/a.py": {"lines": {"1": 2}, "functions": {}}}
            }
        }

    The coverage section is only present when coverage was collected.
    """

    def to_json(self, result: AggregateResult) -> str:
        """Convert an aggregate result to a JSON string.

        Args:
            result: The AggregateResult to convert.

        Returns:
            Pretty-printed JSON string.
        """
        return json.dumps(self._build_report_data(result), indent=2)

    def write_report(self, result: AggregateResult, output_path: Path) -> None:
        """Write the run report to a JSON file.

        Args:
            result: The AggregateResult to write.
            output_path: Path to the output JSON file.
        """
        output_path.write_text(self.to_json(result))

    def _build_report_data(self, result: AggregateResult) -> dict[str, Any]:
        """Build the complete report data structure."""
        data: dict[str, Any] = {
            'success': result.success,
            'summary': {
                'files': len(result.files_run),
                'total': result.total,
                'passed': result.passed,
                'failed': result.failed,
                'skipped': result.skipped,
                'pending': result.pending,
                'elapsed': result.elapsed,
            },
            'files_run': list(result.files_run),
            'failed_files': list(result.failed_files),
            'errors': [self._build_error(error) for error in result.errors],
        }
        if result.coverage:
            data['coverage'] = {
                'summary': asdict(CoverageMerger().summarize(result.coverage)),
                'files': coverage_map_to_dict(result.coverage),
            }
        return data

    def _build_error(self, error: FileError) -> dict[str, Any]:
        """Build a single error entry."""
        return {
            'file': error.file,
            'kind': error.kind.value,
            'message': error.message,
            'traceback': error.traceback,
        }
