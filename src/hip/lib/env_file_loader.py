"""Loader for dotenv-style environment files.

Parses ``KEY=value`` files referenced by ``env_file`` entries in hip.yml,
either at the top level of the catalog or on a single command.

Supported ``env_file`` shapes::

    env_file: .env
    env_file: [.env, {path: .env.local, required: true}]
    env_file:
      files: [.env, .env.local]
      required: true
      priority: after_environment
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from hip.lib.errors import ConfigurationError, EnvFileError

logger = logging.getLogger(__name__)

LINE_REGEX = re.compile(
    r"""\A
    (?:export\s+)?              # optional 'export' prefix
    (?P<key>[A-Z_][A-Z0-9_]*)
    =
    (?P<value>.*)
    \Z""",
    re.VERBOSE,
)

VAR_REGEX = re.compile(r"\$\{?([A-Z_][A-Z0-9_]*)\}?")

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    '"': '"',
    "\\": "\\",
}

MAX_INTERPOLATION_PASSES = 10


class EnvFilePriority(Enum):
    """Where catalog-level env files sit relative to the environment block."""
    BEFORE_ENVIRONMENT = "before_environment"
    AFTER_ENVIRONMENT = "after_environment"


@dataclass
class EnvFileRef:
    """A single env file reference."""
    path: str
    required: bool = False


EnvFileSpec = Union[str, List[Any], Dict[str, Any]]


class EnvFileLoader:
    """Load and merge environment files."""

    def __init__(self, base_path: Union[str, Path], environ: Optional[Mapping[str, str]] = None):
        """Initialize loader.

        Args:
            base_path: Directory relative paths are resolved against
                (the directory holding hip.yml)
            environ: Process environment used as interpolation fallback
                (defaults to ``os.environ``)
        """
        self.base_path = Path(base_path)
        self.environ = os.environ if environ is None else environ

    def load(self, spec: EnvFileSpec, interpolate: bool = True) -> Dict[str, str]:
        """Load all files referenced by an ``env_file`` spec.

        Files are merged left to right, later files overriding earlier ones.

        Args:
            spec: ``env_file`` value from the catalog
            interpolate: Whether to expand ``$VAR`` references between
                the loaded values

        Returns:
            Merged variables

        Raises:
            ConfigurationError: If the spec has an unsupported shape
            EnvFileError: If a required file is missing or a file is unreadable
        """
        env_vars: Dict[str, str] = {}

        for ref in normalize_spec(spec):
            path = self.resolve_path(ref.path)

            if not path.exists():
                if ref.required:
                    raise EnvFileError(f"Required environment file not found: {path}")
                logger.debug(f"Optional env_file not found (skipping): {path}")
                continue

            if not os.access(path, os.R_OK):
                raise EnvFileError(f"Environment file is not readable: {path}")

            logger.debug(f"Loading env_file: {path}")
            env_vars.update(self.parse_file(path))

        if interpolate:
            env_vars = self.interpolate_vars(env_vars)

        logger.debug(f"Loaded {len(env_vars)} variables from env_file(s)")
        return env_vars

    def resolve_path(self, path_str: str) -> Path:
        """Resolve a file path relative to the catalog directory."""
        path = Path(path_str).expanduser()
        if path.is_absolute():
            return path
        return (self.base_path / path).resolve()

    def parse_file(self, path: Path) -> Dict[str, str]:
        """Parse a single env file.

        Args:
            path: File to parse

        Returns:
            Variables defined in the file

        Raises:
            EnvFileError: If the file cannot be read
        """
        env_vars: Dict[str, str] = {}

        try:
            lines = path.read_text().splitlines()
        except FileNotFoundError as e:
            raise EnvFileError(f"Environment file not found: {path}") from e
        except PermissionError as e:
            raise EnvFileError(f"Permission denied reading environment file: {path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise EnvFileError(f"Error reading environment file {path}: {e}") from e

        for line_number, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue

            key, value = parse_line(line)
            if key is None:
                logger.warning(f"Invalid line in {path}:{line_number}: {line}")
                continue

            env_vars[key] = value

        return env_vars

    def interpolate_vars(self, env_vars: Dict[str, str]) -> Dict[str, str]:
        """Expand ``$VAR`` references between loaded values.

        Lookups go to the loaded values first, then the process environment;
        unknown references are left as written. Runs a bounded number of
        passes so circular references cannot loop forever.
        """
        env_vars = dict(env_vars)
        iteration = 0

        while True:
            iteration += 1
            changed = False

            for key, value in env_vars.items():
                def replace(match: re.Match) -> str:
                    nonlocal changed
                    name = match.group(1)
                    replacement = env_vars.get(name)
                    if replacement is None:
                        replacement = self.environ.get(name)
                    if replacement is None:
                        return match.group(0)
                    if replacement != match.group(0):
                        changed = True
                    return replacement

                new_value = VAR_REGEX.sub(replace, value)
                if new_value != value:
                    env_vars[key] = new_value

            if not changed or iteration >= MAX_INTERPOLATION_PASSES:
                break

        if changed:
            logger.warning(
                "Variable interpolation reached maximum iterations "
                "(possible circular reference)"
            )

        return env_vars


def normalize_spec(spec: EnvFileSpec) -> List[EnvFileRef]:
    """Normalize an ``env_file`` spec to a list of file references.

    Raises:
        ConfigurationError: If the spec has an unsupported shape
    """
    if isinstance(spec, str):
        return [EnvFileRef(path=spec)]

    if isinstance(spec, list):
        refs = []
        for item in spec:
            if isinstance(item, str):
                refs.append(EnvFileRef(path=item))
            elif isinstance(item, dict) and item.get("path"):
                refs.append(EnvFileRef(
                    path=str(item["path"]),
                    required=bool(item.get("required", False))
                ))
            else:
                raise ConfigurationError(f"Invalid env_file item: {item!r}")
        return refs

    if isinstance(spec, dict):
        if "files" not in spec:
            raise ConfigurationError(f"Invalid env_file config (missing 'files'): {spec!r}")
        required = bool(spec.get("required", False))
        return [
            EnvFileRef(path=ref.path, required=ref.required or required)
            for ref in normalize_spec(spec["files"])
        ]

    raise ConfigurationError(f"Invalid env_file config: {spec!r}")


def spec_priority(spec: Optional[EnvFileSpec]) -> EnvFilePriority:
    """Get the priority requested by an ``env_file`` spec.

    Only the mapping form can carry a priority; every other shape uses
    ``before_environment``.

    Raises:
        ConfigurationError: If the priority value is unknown
    """
    if not isinstance(spec, dict) or "priority" not in spec:
        return EnvFilePriority.BEFORE_ENVIRONMENT
    try:
        return EnvFilePriority(spec["priority"])
    except ValueError as e:
        valid = [p.value for p in EnvFilePriority]
        raise ConfigurationError(
            f"env_file priority must be one of {valid}, got '{spec['priority']}'"
        ) from e


def parse_line(line: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse one ``KEY=value`` line.

    Returns:
        Tuple of (key, value), or (None, None) if the line is not an assignment
    """
    match = LINE_REGEX.match(line)
    if not match:
        return (None, None)
    return (match.group("key"), unquote(match.group("value").strip()))


def unquote(value: str) -> str:
    """Strip surrounding quotes from a value.

    Single-quoted values are literal; double-quoted values have their
    backslash escapes processed.
    """
    if len(value) >= 2 and value.startswith("'") and value.endswith("'"):
        return value[1:-1]

    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return re.sub(
            r"\\(.)",
            lambda m: ESCAPES.get(m.group(1), m.group(0)),
            value[1:-1],
        )

    return value


def load_env_files(
    spec: EnvFileSpec,
    base_path: Union[str, Path],
    interpolate: bool = True,
    environ: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Load environment files.

    Convenience function that creates a loader and loads the spec.

    Example:
        >>> load_env_files([".env", ".env.local"], base_path=Path("."))
        {'DATABASE_HOST': 'localhost'}
    """
    return EnvFileLoader(base_path, environ=environ).load(spec, interpolate=interpolate)
