"""Tests for pyproject.toml configuration loading.

The config module reads [tool.splitrun] from pyproject.toml and provides
defaults when configuration is absent.
"""

import tomllib

import pytest

from splitrun.config import FileConfig, load_config


@pytest.mark.small
class TestLoadConfig:
    """Tests for load_config function."""

    def test_returns_file_config_instance(self, tmp_path):
        """load_config returns a FileConfig object."""
        result = load_config(tmp_path)

        assert isinstance(result, FileConfig)

    def test_returns_defaults_when_no_pyproject_toml(self, tmp_path):
        """Returns default config when pyproject.toml does not exist."""
        result = load_config(tmp_path)

        assert result == FileConfig()

    def test_returns_defaults_when_no_tool_section(self, tmp_path):
        """Returns default config when [tool.splitrun] is absent."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text('[project]\nname = "test"\n')

        result = load_config(tmp_path)

        assert result == FileConfig()

    def test_reads_scalar_settings(self, tmp_path):
        """Reads workers, timeout and filter."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text('[tool.splitrun]\nworkers = 8\ntimeout = 120\nfilter = "login"\n')

        result = load_config(tmp_path)

        assert result.workers == 8
        assert result.timeout == 120
        assert result.filter == 'login'

    def test_reads_tags_list(self, tmp_path):
        """Reads tags list from config."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text('[tool.splitrun]\ntags = ["unit", "fast"]\n')

        result = load_config(tmp_path)

        assert result.tags == ['unit', 'fast']

    def test_dashed_keys_map_to_fields(self, tmp_path):
        """fail-fast and friends are accepted with dashes."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text(
            '[tool.splitrun]\n'
            'fail-fast = true\n'
            'aggregate-coverage = false\n'
            'show_worker_output = false\n'
        )

        result = load_config(tmp_path)

        assert result.fail_fast is True
        assert result.aggregate_coverage is False
        assert result.show_worker_output is False

    def test_ignores_unknown_keys(self, tmp_path):
        """Keys splitrun does not know about are ignored."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text('[tool.splitrun]\nworkers = 2\nflavour = "vanilla"\n')

        result = load_config(tmp_path)

        assert result.workers == 2

    def test_invalid_toml_raises(self, tmp_path):
        """A broken pyproject.toml is reported, not silently ignored."""
        pyproject = tmp_path / 'pyproject.toml'
        pyproject.write_text('[tool.splitrun\nworkers = 2\n')

        with pytest.raises(tomllib.TOMLDecodeError):
            load_config(tmp_path)
