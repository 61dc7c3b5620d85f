"""Tests for catalog flattening and command resolution."""

import pytest
from pydantic import ValidationError

from hip.lib.errors import CommandNotFoundError, ConfigurationError
from hip.lib.interaction_tree import CommandDescriptor, ComposeOptions, InteractionTree


CATALOG = {
    "bash": {
        "description": "Open the app container",
        "service": "app",
        "command": "/bin/bash",
    },
    "rails": {
        "description": "Run Rails commands",
        "service": "app",
        "command": "bundle exec rails",
        "environment": {"RAILS_ENV": "development", "LOG": "info"},
        "compose": {"run_options": ["no-deps", "rm"]},
        "subcommands": {
            "console": {
                "description": "Rails console",
                "command": "bundle exec rails console",
                "environment": {"LOG": "debug"},
            },
            "server": {
                "command": "bundle exec rails server",
                "compose": {"method": "up"},
                "subcommands": {
                    "debug": {
                        "command": "bundle exec rdbg -- rails server",
                    },
                },
            },
        },
    },
    "psql": {
        "service": "db",
        "shell": False,
        "command": "psql -U postgres",
        "default_args": "app_development",
    },
    "empty": None,
}


@pytest.fixture
def tree():
    return InteractionTree(CATALOG)


class TestFind:
    """Test longest-match resolution."""

    @pytest.mark.parametrize("path", ["bash", "rails", "rails console", "rails server debug", "psql"])
    def test_registered_path_has_no_remaining_args(self, tree, path):
        """Every listed command resolves to itself with empty args."""
        tokens = path.split()
        resolution = tree.find(*tokens)
        assert resolution is not None
        assert resolution.command.name == path
        assert resolution.argv == []

    def test_subcommand_with_extra_args(self, tree):
        """Tokens after the deepest match become arguments, in order."""
        resolution = tree.find("rails", "console", "--sandbox", "-e", "test")
        assert resolution.command.path == ("rails", "console")
        assert resolution.argv == ["--sandbox", "-e", "test"]

    def test_unknown_subcommand_falls_back_to_parent(self, tree):
        resolution = tree.find("rails", "db:migrate", "VERSION=1")
        assert resolution.command.path == ("rails",)
        assert resolution.argv == ["db:migrate", "VERSION=1"]

    def test_unknown_command(self, tree):
        assert tree.find("unknown", "arg") is None

    def test_resolve_raises_with_full_invocation(self, tree):
        with pytest.raises(CommandNotFoundError) as exc_info:
            tree.resolve(["nope", "a", "b"])
        assert "nope a b" in str(exc_info.value)

    def test_resolve_empty_tokens(self, tree):
        with pytest.raises(CommandNotFoundError):
            tree.resolve([])


class TestInheritance:
    """Test subcommand inheritance from parents."""

    def test_child_explicit_fields_win(self, tree):
        console = tree.find("rails", "console").command
        assert console.invocation == "bundle exec rails console"
        assert console.description == "Rails console"
        assert console.environment["LOG"] == "debug"

    def test_unset_fields_inherited(self, tree):
        console = tree.find("rails", "console").command
        assert console.service == "app"
        assert console.environment["RAILS_ENV"] == "development"
        assert console.compose.run_options == ["no-deps", "rm"]

    def test_command_and_description_not_inherited(self):
        tree = InteractionTree({
            "parent": {
                "description": "Parent",
                "command": "parent-cmd",
                "default_args": "--flag",
                "service": "app",
                "subcommands": {"child": {"shell": False}},
            }
        })
        child = tree.find("parent", "child").command
        assert child.invocation == ""
        assert child.default_args == ""
        assert child.description is None
        assert child.service == "app"
        assert child.shell is False

    def test_compose_merged_key_by_key(self, tree):
        server = tree.find("rails", "server").command
        assert server.compose.method == "up"
        assert server.compose.run_options == ["no-deps", "rm"]

    def test_grandchild_inherits_through_child(self, tree):
        debug = tree.find("rails", "server", "debug").command
        assert debug.compose.method == "up"
        assert debug.service == "app"
        assert debug.invocation == "bundle exec rdbg -- rails server"

    def test_child_target_replaces_parent_target(self):
        tree = InteractionTree({
            "app": {
                "service": "app",
                "subcommands": {"remote": {"pod": "web:rails"}},
            }
        })
        remote = tree.find("app", "remote").command
        assert remote.pod == "web:rails"
        assert remote.service is None

    def test_parent_is_not_modified(self, tree):
        tree.find("rails", "console")
        rails = tree.find("rails").command
        assert rails.environment == {"RAILS_ENV": "development", "LOG": "info"}


class TestList:
    """Test catalog flattening."""

    def test_lists_all_paths(self, tree):
        names = list(tree.list())
        assert names == [
            "bash",
            "rails",
            "rails console",
            "rails server",
            "rails server debug",
            "psql",
            "empty",
        ]

    def test_empty_entry_defaults(self, tree):
        empty = tree.list()["empty"]
        assert empty.invocation == ""
        assert empty.shell is True
        assert empty.compose.method == "run"


class TestCommandDescriptor:
    """Test descriptor validation and normalization."""

    def test_strips_command_and_default_args(self):
        command = CommandDescriptor.from_entry(("x",), {"command": "  ls -la \n", "default_args": " -h "})
        assert command.invocation == "ls -la"
        assert command.default_args == "-h"

    def test_legacy_compose_keys(self):
        command = CommandDescriptor.from_entry(("x",), {
            "service": "app",
            "compose_method": "exec",
            "compose_run_options": ["service-ports"],
        })
        assert command.compose.method == "exec"
        assert command.compose.run_options == ["service-ports"]

    def test_run_flags_normalization(self):
        options = ComposeOptions(run_options=["rm", "-T", "publish 8080:80", "--no-deps"])
        assert options.run_flags == ["--rm", "-T", "--publish", "8080:80", "--no-deps"]

    def test_invalid_compose_method(self):
        with pytest.raises(ConfigurationError):
            CommandDescriptor.from_entry(("x",), {"compose": {"method": "start"}})

    def test_service_and_pod_are_exclusive(self):
        with pytest.raises(ConfigurationError):
            CommandDescriptor.from_entry(("x",), {"service": "app", "pod": "web"})

    def test_descriptor_is_frozen(self):
        command = CommandDescriptor.from_entry(("x",), {"command": "ls"})
        with pytest.raises(ValidationError):
            command.invocation = "rm -rf /"
