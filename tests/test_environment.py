"""Tests for the variable store."""

import os
import platform

from hip.lib.environment import Environment


class TestMerge:
    """Test layer merging."""

    def test_later_merge_overrides(self):
        env = Environment({"A": "1"}, environ={})
        env.merge({"A": "2"})
        assert env["A"] == "2"

    def test_process_environment_wins(self):
        env = Environment({"RAILS_ENV": "development"}, environ={"RAILS_ENV": "test"})
        env.merge({"RAILS_ENV": "production"})
        assert env["RAILS_ENV"] == "test"

    def test_values_interpolated_on_merge(self):
        env = Environment({"HOST": "db"}, environ={})
        env.merge({"URL": "postgres://$HOST/app"})
        assert env["URL"] == "postgres://db/app"

    def test_non_string_values(self):
        env = Environment({"PORT": 5432, "EMPTY": None, "FLAG": True}, environ={})
        assert env.to_dict() == {"PORT": "5432", "EMPTY": "", "FLAG": "true"}

    def test_booleans_lowercase(self):
        """YAML booleans reach child processes as true/false."""
        env = Environment({"RAILS_LOG": False, "DEBUG": True}, environ={})
        env["VERBOSE"] = False
        assert env.to_dict() == {"RAILS_LOG": "false", "DEBUG": "true", "VERBOSE": "false"}


class TestInterpolate:
    """Test $VAR expansion."""

    def test_both_reference_forms(self):
        env = Environment({"NAME": "app"}, environ={})
        assert env.interpolate("$NAME-${NAME}") == "app-app"

    def test_unknown_reference_kept(self):
        env = Environment(environ={})
        assert env.interpolate("echo $MISSING") == "echo $MISSING"

    def test_process_environment_fallback(self):
        env = Environment(environ={"HOME": "/home/ana"})
        assert env.interpolate("$HOME/.cache") == "/home/ana/.cache"

    def test_nested_references(self):
        env = Environment(environ={})
        env["A"] = "$B"
        env["B"] = "$C"
        env["C"] = "done"
        assert env.interpolate("$A") == "done"

    def test_circular_reference_terminates(self):
        env = Environment(environ={})
        env["A"] = "$B"
        env["B"] = "$A"
        assert env.interpolate("$A") in ("$A", "$B")

    def test_interpolate_does_not_store(self):
        env = Environment(environ={})
        env.interpolate("$HIP_OS")
        assert "HIP_OS" not in env.to_dict()


class TestSpecialVars:
    """Test computed variables."""

    def test_os(self):
        env = Environment(environ={})
        assert env.interpolate("$HIP_OS") == platform.system().lower()

    def test_current_user(self):
        env = Environment(environ={})
        assert env.interpolate("${HIP_CURRENT_USER}") == str(os.getuid())

    def test_work_dir_rel_path(self, tmp_path):
        work_dir = tmp_path / "app" / "models"
        work_dir.mkdir(parents=True)
        env = Environment(environ={}, config_dir=tmp_path, work_dir=work_dir)
        assert env.interpolate("$HIP_WORK_DIR_REL_PATH") == os.path.join("app", "models")

    def test_work_dir_is_config_dir(self, tmp_path):
        env = Environment(environ={}, config_dir=tmp_path, work_dir=tmp_path)
        assert env.interpolate("$HIP_WORK_DIR_REL_PATH") == "."

    def test_explicit_value_wins_over_special(self):
        env = Environment({"HIP_OS": "plan9"}, environ={})
        assert env.interpolate("$HIP_OS") == "plan9"


class TestLookup:
    """Test mapping access."""

    def test_contains_checks_store_and_process(self):
        env = Environment({"A": "1"}, environ={"B": "2"})
        assert "A" in env
        assert "B" in env
        assert "C" not in env

    def test_get_default(self):
        env = Environment(environ={})
        assert env.get("MISSING", "fallback") == "fallback"
        assert env["MISSING"] is None
