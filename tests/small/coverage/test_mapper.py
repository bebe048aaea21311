"""Tests for FileCoverage records and CoverageMap conversion."""

from __future__ import annotations

import pytest

from splitrun.coverage.mapper import FileCoverage, coverage_map_from_dict, coverage_map_to_dict


class TestFileCoverageFromDict:
    """Test building FileCoverage from decoded JSON."""

    def test_converts_line_keys_to_int(self):
        record = FileCoverage.from_dict({'lines': {'10': 3, '11': 0}, 'functions': {'login': 3}})
        assert record.lines == {10: 3, 11: 0}
        assert record.functions == {'login': 3}

    def test_missing_sections_default_to_empty(self):
        record = FileCoverage.from_dict({})
        assert record.lines == {}
        assert record.functions == {}

    def test_null_sections_default_to_empty(self):
        record = FileCoverage.from_dict({'lines': None, 'functions': None})
        assert record == FileCoverage()

    @pytest.mark.parametrize(
        'data',
        [
            [],
            {'lines': [1, 2]},
            {'lines': {'x': 1}},
            {'lines': {'1': -1}},
            {'lines': {'1': 1.5}},
            {'functions': {'f': True}},
        ],
        ids=['not-object', 'lines-list', 'bad-line-key', 'negative-count', 'float-count', 'bool-count'],
    )
    def test_rejects_malformed_records(self, data):
        with pytest.raises(ValueError):  # noqa: PT011
            FileCoverage.from_dict(data)


class TestFileCoverageToDict:
    """Test serializing FileCoverage."""

    def test_line_keys_become_sorted_strings(self):
        record = FileCoverage(lines={11: 1, 2: 4}, functions={'b': 1, 'a': 0})
        assert record.to_dict() == {'lines': {'2': 4, '11': 1}, 'functions': {'a': 0, 'b': 1}}
        assert list(record.to_dict()['lines']) == ['2', '11']


class TestFileCoverageCopy:
    """Test that copies are independent."""

    def test_copy_does_not_share_dicts(self):
        original = FileCoverage(lines={1: 1}, functions={'f': 1})
        duplicate = original.copy()
        duplicate.lines[1] = 99
        duplicate.functions['g'] = 1
        assert original.lines == {1: 1}
        assert original.functions == {'f': 1}


class TestCoverageMapConversion:
    """Test whole-map conversion."""

    def test_from_dict_builds_records_per_path(self):
        coverage_map = coverage_map_from_dict(
            {'src/auth.py': {'lines': {'1': 1}}, 'src/utils.py': {'functions': {'helper': 2}}}
        )
        assert set(coverage_map) == {'src/auth.py', 'src/utils.py'}
        assert coverage_map['src/auth.py'].lines == {1: 1}
        assert coverage_map['src/utils.py'].functions == {'helper': 2}

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(ValueError, match='coverage payload must be an object'):
            coverage_map_from_dict(['src/auth.py'])  # type: ignore[arg-type]

    def test_to_dict_sorts_paths(self):
        data = coverage_map_to_dict({'b.py': FileCoverage(lines={1: 1}), 'a.py': FileCoverage()})
        assert list(data) == ['a.py', 'b.py']
        assert data['b.py'] == {'lines': {'1': 1}, 'functions': {}}

    def test_to_dict_output_can_be_read_back(self):
        original = {'src/x.py': FileCoverage(lines={3: 2}, functions={'main': 1})}
        assert coverage_map_from_dict(coverage_map_to_dict(original)) == original
