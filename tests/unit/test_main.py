"""
Unit tests for the worker entry point.
"""

import pytest

from pgque.worker.main import load_work_map


class TestLoadWorkMap:
    """Tests for load_work_map."""

    @pytest.fixture
    def jobs_module(self, tmp_path, monkeypatch) -> str:
        """Write an importable module holding a work map."""
        (tmp_path / "pgque_test_jobs.py").write_text(
            "from pgque.worker import WorkMap\n"
            "\n"
            "work_map = WorkMap()\n"
            "not_a_map = 42\n"
            "\n"
            "@work_map.register('Echo')\n"
            "def echo(args):\n"
            "    return args\n"
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        return "pgque_test_jobs"

    def test_loads_mapping(self, jobs_module: str):
        """Test importing a work map by path."""
        work_map = load_work_map(f"{jobs_module}:work_map")

        assert list(work_map) == ["Echo"]
        assert work_map["Echo"]("[]") == "[]"

    @pytest.mark.parametrize("path", ["", "module_only", ":attr", "module:"])
    def test_malformed_path(self, path: str):
        """Test that paths without both parts are rejected."""
        with pytest.raises(ValueError):
            load_work_map(path)

    def test_not_a_mapping(self, jobs_module: str):
        """Test that an attribute that is not a mapping is rejected."""
        with pytest.raises(ValueError):
            load_work_map(f"{jobs_module}:not_a_map")

    def test_missing_attribute(self, jobs_module: str):
        """Test that a missing attribute surfaces as AttributeError."""
        with pytest.raises(AttributeError):
            load_work_map(f"{jobs_module}:nothing_here")
