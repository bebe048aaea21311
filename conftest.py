"""Root pytest configuration for splitrun.

This conftest.py handles marker application for ALL tests including doctests,
and enables the pytester fixture used by the worker plugin tests.
The tests/conftest.py handles test-specific fixtures.
"""

from __future__ import annotations

import pytest


pytest_plugins = ['pytester']


def _has_size_marker(item: pytest.Item) -> bool:
    """Check if an item already has a size marker."""
    return any(marker.name in ('small', 'medium') for marker in item.iter_markers())


@pytest.hookimpl(tryfirst=True)
def pytest_collection_modifyitems(
    config: pytest.Config,  # noqa: ARG001
    items: list[pytest.Item],
) -> None:
    """Automatically apply size markers based on test location.

    Tests that already have a size marker are not modified.
    """
    for item in items:
        if _has_size_marker(item):
            continue

        path_parts = item.path.parts

        if 'small' in path_parts:
            item.add_marker(pytest.mark.small)
        elif 'medium' in path_parts:
            item.add_marker(pytest.mark.medium)
        elif 'src' in path_parts:
            # Doctests from source code default to small
            item.add_marker(pytest.mark.small)
