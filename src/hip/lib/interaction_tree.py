"""Command catalog lookup.

Flattens the nested ``interaction`` section of hip.yml into command
descriptors and resolves free-form argument vectors to the deepest
matching command.

Example catalog::

    interaction:
      rails:
        service: app
        command: bundle exec rails
        subcommands:
          console:
            command: bundle exec rails console
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from hip.lib.errors import CommandNotFoundError, ConfigurationError

logger = logging.getLogger(__name__)

COMPOSE_METHODS = ("run", "exec", "up")

# Fields a subcommand never takes from its parent.
NON_INHERITED_FIELDS = frozenset({"invocation", "default_args", "description"})


class ComposeOptions(BaseModel):
    """Docker Compose settings of a command."""
    model_config = ConfigDict(frozen=True)

    method: str = "run"
    run_options: List[str] = Field(default_factory=list)
    profiles: List[str] = Field(default_factory=list)

    @field_validator('method', mode='before')
    @classmethod
    def validate_method(cls, v: Any) -> str:
        """Ensure method is one compose supports."""
        if v is None:
            return "run"
        if v not in COMPOSE_METHODS:
            raise ValueError(f"Compose method must be one of {list(COMPOSE_METHODS)}, got '{v}'")
        return v

    @field_validator('run_options', 'profiles', mode='before')
    @classmethod
    def to_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v]

    @property
    def run_flags(self) -> List[str]:
        """Run options as compose flags (``rm`` -> ``--rm``, split shell-wise)."""
        flags: List[str] = []
        for option in self.run_options:
            if not option.startswith("-"):
                option = f"--{option}"
            flags.extend(shlex.split(option))
        return flags

    def merged_with(self, other: ComposeOptions) -> ComposeOptions:
        """Overlay the fields explicitly set on ``other``."""
        data = self.model_dump()
        for name in other.model_fields_set:
            data[name] = getattr(other, name)
        return ComposeOptions(**data)


class CommandDescriptor(BaseModel):
    """A resolved catalog command, ready for dispatch."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    path: Tuple[str, ...] = ()
    description: Optional[str] = None
    invocation: str = Field(default="", alias="command")
    shell: bool = True
    default_args: str = ""
    service: Optional[str] = None
    pod: Optional[str] = None
    runner: Optional[str] = None
    compose: ComposeOptions = Field(default_factory=ComposeOptions)
    environment: Dict[str, Any] = Field(default_factory=dict)
    env_file: Optional[Union[str, List[Any], Dict[str, Any]]] = None
    user: Optional[str] = None
    workdir: Optional[str] = None
    entrypoint: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def legacy_compose_keys(cls, data: Any) -> Any:
        """Fold ``compose_method``/``compose_run_options`` into ``compose``."""
        if not isinstance(data, dict):
            return data
        if "compose_method" not in data and "compose_run_options" not in data:
            return data

        data = dict(data)
        compose = dict(data.get("compose") or {})
        if "compose_method" in data:
            compose.setdefault("method", data.pop("compose_method"))
        if "compose_run_options" in data:
            compose.setdefault("run_options", data.pop("compose_run_options"))
        data["compose"] = compose
        return data

    @field_validator('invocation', 'default_args', mode='before')
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator('shell', mode='before')
    @classmethod
    def default_shell(cls, v: Any) -> bool:
        return True if v is None else v

    @field_validator('environment', 'compose', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode='after')
    def single_target(self) -> 'CommandDescriptor':
        """A command targets a service or a pod, never both."""
        if self.service and self.pod:
            raise ValueError("'service' and 'pod' are mutually exclusive")
        return self

    @property
    def name(self) -> str:
        """Space-joined path, as typed on the command line."""
        return " ".join(self.path)

    @classmethod
    def from_entry(
        cls,
        path: Tuple[str, ...],
        entry: Optional[Mapping[str, Any]]
    ) -> CommandDescriptor:
        """Build a descriptor from a raw catalog entry.

        Raises:
            ConfigurationError: If the entry fails validation
        """
        data = {k: v for k, v in (entry or {}).items() if k != "subcommands"}
        data["path"] = tuple(path)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid definition for command `{' '.join(path)}`:\n{e}"
            ) from e

    def inherit(self, name: str, entry: Optional[Mapping[str, Any]]) -> CommandDescriptor:
        """Build a subcommand descriptor on top of this one.

        Fields explicitly set on the subcommand win; the rest come from this
        descriptor, except ``command``, ``default_args`` and ``description``.
        ``environment`` and ``compose`` are merged key by key.

        Args:
            name: Subcommand name
            entry: Raw subcommand entry

        Returns:
            Merged subcommand descriptor
        """
        path = self.path + (name,)
        child = CommandDescriptor.from_entry(path, entry)

        data: Dict[str, Any] = {
            field_name: getattr(self, field_name)
            for field_name in type(self).model_fields
            if field_name not in NON_INHERITED_FIELDS
        }
        if child.model_fields_set & {"service", "pod"}:
            data["service"] = data["pod"] = None
        for field_name in child.model_fields_set:
            value = getattr(child, field_name)
            if field_name == "environment":
                value = {**self.environment, **value}
            elif field_name == "compose":
                value = self.compose.merged_with(value)
            data[field_name] = value
        data["path"] = path

        try:
            return CommandDescriptor.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid definition for command `{' '.join(path)}`:\n{e}"
            ) from e


@dataclass
class Resolution:
    """Result of resolving an argument vector."""
    command: CommandDescriptor
    argv: List[str] = field(default_factory=list)


class InteractionTree:
    """Lookup structure over the ``interaction`` catalog."""

    def __init__(self, entries: Mapping[str, Optional[Mapping[str, Any]]]):
        """Initialize tree.

        Args:
            entries: Mapping of top-level command name to raw entry
        """
        self.entries = {str(name): entry for name, entry in (entries or {}).items()}

    def find(self, name: str, *argv: str) -> Optional[Resolution]:
        """Find the deepest command matching ``name`` and ``argv``.

        The longest prefix of ``[name, *argv]`` naming a command wins; the
        remaining tokens become the command's arguments.

        Returns:
            Resolution, or None if nothing matches
        """
        if name not in self.entries:
            return None

        commands = self._expand((name,), self.entries[name], {})
        keys = [name, *argv]

        for size in range(len(keys), 0, -1):
            command = commands.get(" ".join(keys[:size]))
            if command is not None:
                logger.debug(f"Resolved `{command.name}` with arguments {keys[size:]}")
                return Resolution(command=command, argv=list(keys[size:]))

        return None

    def resolve(self, tokens: List[str]) -> Resolution:
        """Like :meth:`find`, but raises when nothing matches.

        Raises:
            CommandNotFoundError: If no command matches
        """
        resolution = self.find(*tokens) if tokens else None
        if resolution is None:
            raise CommandNotFoundError(tokens)
        return resolution

    def list(self) -> Dict[str, CommandDescriptor]:
        """Flatten the whole catalog.

        Returns:
            Mapping of space-joined command path to descriptor
        """
        tree: Dict[str, CommandDescriptor] = {}
        for name, entry in self.entries.items():
            self._expand((name,), entry, tree)
        return tree

    def _expand(
        self,
        path: Tuple[str, ...],
        entry: Optional[Mapping[str, Any]],
        tree: Dict[str, CommandDescriptor],
        parent: Optional[CommandDescriptor] = None
    ) -> Dict[str, CommandDescriptor]:
        if parent is None:
            command = CommandDescriptor.from_entry(path, entry)
        else:
            command = parent.inherit(path[-1], entry)
        tree[command.name] = command

        subcommands = (entry or {}).get("subcommands") or {}
        for sub_name, sub_entry in subcommands.items():
            self._expand(path + (str(sub_name),), sub_entry, tree, parent=command)

        return tree
