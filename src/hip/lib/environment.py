"""Environment variable store with ``$VAR`` interpolation.

Holds the variables resolved for one hip invocation. Values from the live
process environment always win over values coming from the catalog or env
files.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

VAR_REGEX = re.compile(r"\$\{?(?P<var_name>[a-zA-Z_][a-zA-Z0-9_]*)\}?")

SPECIAL_VAR_PREFIX = "HIP_"

MAX_INTERPOLATION_PASSES = 10


class Environment:
    """Variables for a single invocation.

    Layers are merged in call order, later merges overriding earlier ones.
    Special variables ``HIP_OS``, ``HIP_WORK_DIR_REL_PATH`` and
    ``HIP_CURRENT_USER`` are computed on first use.
    """

    def __init__(
        self,
        default_vars: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
        config_dir: Optional[Union[str, Path]] = None,
        work_dir: Optional[Union[str, Path]] = None
    ):
        """Initialize the store.

        Args:
            default_vars: Initial variables (catalog ``environment`` block)
            environ: Live process environment (defaults to ``os.environ``)
            config_dir: Directory holding hip.yml, for ``HIP_WORK_DIR_REL_PATH``
            work_dir: Invocation directory (defaults to the current directory)
        """
        self.environ: Mapping[str, str] = os.environ if environ is None else environ
        self.config_dir = Path(config_dir) if config_dir else None
        self.work_dir = Path(work_dir) if work_dir else None
        self.vars: Dict[str, str] = {}
        self._special_cache: Dict[str, str] = {}
        self._special_vars: Dict[str, Callable[[], str]] = {
            f"{SPECIAL_VAR_PREFIX}OS": self._find_os,
            f"{SPECIAL_VAR_PREFIX}WORK_DIR_REL_PATH": self._find_work_dir_rel_path,
            f"{SPECIAL_VAR_PREFIX}CURRENT_USER": self._find_current_user,
        }

        self.merge(default_vars or {})

    def merge(self, new_vars: Mapping[str, Any]) -> None:
        """Merge variables into the store.

        Each value is interpolated against the current state before being
        stored. A key set in the process environment keeps its process value.

        Args:
            new_vars: Variables to merge
        """
        for key, value in new_vars.items():
            key = str(key)
            if key in self.environ:
                self.vars[key] = self.environ[key]
            else:
                self.vars[key] = self.interpolate(to_env_value(value))

    def __getitem__(self, name: str) -> Optional[str]:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.vars[name] = to_env_value(value)

    def __contains__(self, name: str) -> bool:
        return name in self.vars or name in self.environ

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Look up a variable in the store, then in the process environment."""
        if name in self.vars:
            return self.vars[name]
        return self.environ.get(name, default)

    def interpolate(self, value: str) -> str:
        """Expand ``$VAR`` and ``${VAR}`` references.

        Does not modify the store. Unknown references are left as written.
        Expansion is repeated while it changes the text, up to a fixed
        number of passes.

        Args:
            value: Text to expand

        Returns:
            Expanded text
        """
        result = value
        for _ in range(MAX_INTERPOLATION_PASSES):
            expanded = VAR_REGEX.sub(self._replace, result)
            if expanded == result:
                return result
            result = expanded

        if VAR_REGEX.sub(self._replace, result) != result:
            logger.warning(
                f"Interpolation of {value!r} stopped after "
                f"{MAX_INTERPOLATION_PASSES} passes (possible circular reference)"
            )
        return result

    def _replace(self, match: re.Match) -> str:
        name = match.group("var_name")
        found = self.get(name)
        if found is not None:
            return found
        if name in self._special_vars:
            return self.special(name)
        return match.group(0)

    def special(self, name: str) -> str:
        """Compute (once) the value of a special variable."""
        if name not in self._special_cache:
            self._special_cache[name] = self._special_vars[name]()
        return self._special_cache[name]

    def to_dict(self) -> Dict[str, str]:
        """Variables to pass to a child process (store values only)."""
        return dict(self.vars)

    def _find_os(self) -> str:
        return platform.system().lower()

    def _find_work_dir_rel_path(self) -> str:
        work_dir = (self.work_dir or Path.cwd()).resolve()
        if self.config_dir is None:
            return "."
        return os.path.relpath(work_dir, self.config_dir.resolve())

    def _find_current_user(self) -> str:
        return str(os.getuid())


def to_env_value(value: Any) -> str:
    """Render a YAML scalar the way shells and containers expect it.

    ``None`` becomes an empty string and booleans are lowercase
    (``true``/``false``).
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
