"""Parallel execution module for splitrun.

This module provides the components that run test files in parallel:

- Scheduler: Dispatches files across a bounded pool of worker slots
- WorkerLauncher: Runs one file in an isolated process with a deadline
- OutputParser: Turns a worker's captured output into a WorkerResult
- ResultAggregator: Folds WorkerResults into an AggregateResult
"""

from __future__ import annotations
