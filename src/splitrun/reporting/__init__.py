"""Reporters for parallel test run results.

The engine never renders anything itself; these reporters consume a finished
AggregateResult.

Exports:
    ConsoleReporter: Human-readable terminal summary
    JsonReporter: Machine-readable JSON for CI
"""

from __future__ import annotations

from splitrun.reporting.console import ConsoleReporter
from splitrun.reporting.json_reporter import JsonReporter


__all__ = ['ConsoleReporter', 'JsonReporter']
