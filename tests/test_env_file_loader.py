"""Tests for env file loading."""

import pytest

from hip.lib.env_file_loader import (
    EnvFileLoader,
    EnvFilePriority,
    load_env_files,
    normalize_spec,
    parse_line,
    spec_priority,
)
from hip.lib.errors import ConfigurationError, EnvFileError


class TestParseLine:
    """Test single line parsing."""

    def test_plain_assignment(self):
        assert parse_line("DB_HOST=localhost") == ("DB_HOST", "localhost")

    def test_export_prefix(self):
        assert parse_line("export API_KEY=secret") == ("API_KEY", "secret")

    def test_single_quotes_are_literal(self):
        assert parse_line("GREETING='hello\\nworld'") == ("GREETING", "hello\\nworld")

    def test_double_quotes_process_escapes(self):
        assert parse_line('GREETING="hello\\nworld \\"x\\""') == ("GREETING", 'hello\nworld "x"')

    def test_empty_value(self):
        assert parse_line("EMPTY=") == ("EMPTY", "")

    def test_lowercase_key_rejected(self):
        assert parse_line("lower=value") == (None, None)

    def test_missing_equals_rejected(self):
        assert parse_line("NOT_AN_ASSIGNMENT") == (None, None)


class TestNormalizeSpec:
    """Test env_file shapes."""

    def test_string(self):
        refs = normalize_spec(".env")
        assert [(r.path, r.required) for r in refs] == [(".env", False)]

    def test_list_with_mappings(self):
        refs = normalize_spec([".env", {"path": ".env.local", "required": True}])
        assert [(r.path, r.required) for r in refs] == [(".env", False), (".env.local", True)]

    def test_mapping_applies_required_to_all(self):
        refs = normalize_spec({"files": [".env", ".env.local"], "required": True})
        assert all(r.required for r in refs)

    def test_mapping_without_files(self):
        with pytest.raises(ConfigurationError):
            normalize_spec({"required": True})

    def test_invalid_item(self):
        with pytest.raises(ConfigurationError):
            normalize_spec([42])

    def test_invalid_type(self):
        with pytest.raises(ConfigurationError):
            normalize_spec(42)


class TestSpecPriority:
    """Test priority extraction."""

    def test_default(self):
        assert spec_priority(".env") is EnvFilePriority.BEFORE_ENVIRONMENT
        assert spec_priority(None) is EnvFilePriority.BEFORE_ENVIRONMENT

    def test_after_environment(self):
        spec = {"files": [".env"], "priority": "after_environment"}
        assert spec_priority(spec) is EnvFilePriority.AFTER_ENVIRONMENT

    def test_unknown_priority(self):
        with pytest.raises(ConfigurationError):
            spec_priority({"files": [".env"], "priority": "sometimes"})


class TestEnvFileLoader:
    """Test file loading and interpolation."""

    def test_later_files_override_earlier(self, tmp_path):
        (tmp_path / ".env").write_text("A=1\nB=2\n")
        (tmp_path / ".env.local").write_text("B=3\n")

        env_vars = EnvFileLoader(tmp_path, environ={}).load([".env", ".env.local"])

        assert env_vars == {"A": "1", "B": "3"}

    def test_comments_blank_and_invalid_lines_skipped(self, tmp_path):
        (tmp_path / ".env").write_text(
            "# comment\n"
            "\n"
            "VALID=yes\n"
            "this is garbage\n"
            "  # indented comment\n"
        )

        env_vars = EnvFileLoader(tmp_path, environ={}).load(".env")

        assert env_vars == {"VALID": "yes"}

    def test_missing_optional_file_skipped(self, tmp_path):
        assert EnvFileLoader(tmp_path, environ={}).load(".env.missing") == {}

    def test_missing_required_file(self, tmp_path):
        loader = EnvFileLoader(tmp_path, environ={})
        with pytest.raises(EnvFileError, match="Required environment file not found"):
            loader.load([{"path": ".env.missing", "required": True}])

    def test_absolute_path(self, tmp_path):
        env_path = tmp_path / "abs.env"
        env_path.write_text("X=abs\n")

        env_vars = EnvFileLoader("/nonexistent", environ={}).load(str(env_path))

        assert env_vars == {"X": "abs"}

    def test_interpolates_between_values(self, tmp_path):
        (tmp_path / ".env").write_text(
            "DB_HOST=localhost\n"
            "DB_URL=postgres://${DB_HOST}:$DB_PORT/app\n"
            "DB_PORT=5432\n"
        )

        env_vars = EnvFileLoader(tmp_path, environ={}).load(".env")

        assert env_vars["DB_URL"] == "postgres://localhost:5432/app"

    def test_interpolation_falls_back_to_process_env(self, tmp_path):
        (tmp_path / ".env").write_text("GREETING=hello $USER_NAME $UNKNOWN_VAR\n")

        env_vars = EnvFileLoader(tmp_path, environ={"USER_NAME": "ana"}).load(".env")

        assert env_vars["GREETING"] == "hello ana $UNKNOWN_VAR"

    def test_interpolation_disabled(self, tmp_path):
        (tmp_path / ".env").write_text("A=1\nB=$A\n")

        env_vars = load_env_files(".env", tmp_path, interpolate=False, environ={})

        assert env_vars["B"] == "$A"

    def test_circular_reference_terminates(self, tmp_path):
        (tmp_path / ".env").write_text("A=x$B\nB=y$A\n")

        env_vars = EnvFileLoader(tmp_path, environ={}).load(".env")

        assert set(env_vars) == {"A", "B"}
