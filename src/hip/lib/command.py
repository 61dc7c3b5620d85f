"""Process execution.

Commands are either run in place of the current process (``exec``) or as a
monitored child process.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Any, Dict, List, Sequence, Union

from hip.lib.environment import Environment
from hip.lib.errors import ExecutionError

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"

Cmdline = Union[str, List[str]]


class CommandExecutor:
    """Run commands with the invocation's environment."""

    def __init__(self, env: Environment):
        """Initialize executor.

        Args:
            env: Environment used for interpolation and passed to children
        """
        self.env = env

    def build_cmdline(
        self,
        cmd: str,
        argv: Union[str, Sequence[str]] = (),
        shell: bool = True
    ) -> Cmdline:
        """Interpolate a command and its arguments.

        Args:
            cmd: Program (or shell snippet)
            argv: Arguments
            shell: Join everything into one shell string

        Returns:
            Shell string if ``shell``, else argument vector
        """
        if isinstance(argv, str):
            argv = [argv]
        parts = [self.env.interpolate(cmd)] if cmd else []
        parts.extend(self.env.interpolate(arg) for arg in argv)

        if shell:
            return " ".join(parts).strip()
        return parts

    def child_env(self) -> Dict[str, str]:
        """Environment for child processes."""
        return {**self.env.environ, **self.env.to_dict()}

    def exec_program(
        self,
        cmd: str,
        argv: Union[str, Sequence[str]] = (),
        shell: bool = True
    ) -> int:
        """Replace the current process with the command.

        Only returns when the program cannot be started.

        Raises:
            ExecutionError: If the program cannot be started
        """
        cmdline = self.build_cmdline(cmd, argv, shell=shell)
        logger.debug(f"Executing command (via exec): {_display(cmdline)}")

        if shell:
            args = [SHELL, "-c", cmdline]
        else:
            args = cmdline
        if not args:
            raise ExecutionError(cmdline, 127)

        try:
            os.execvpe(args[0], args, self.child_env())
        except OSError as e:
            logger.error(f"Failed to execute {args[0]}: {e}")
            raise ExecutionError(cmdline, 127) from e
        return 127

    def exec_subprocess(
        self,
        cmd: str,
        argv: Union[str, Sequence[str]] = (),
        shell: bool = True,
        panic: bool = True,
        **kwargs: Any
    ) -> int:
        """Run the command as a child process and wait for it.

        Args:
            cmd: Program (or shell snippet)
            argv: Arguments
            shell: Run through the shell
            panic: Raise on non-zero exit instead of returning the status
            **kwargs: Passed to ``subprocess.run``

        Returns:
            Exit status

        Raises:
            ExecutionError: If the command fails and ``panic`` is set
        """
        cmdline = self.build_cmdline(cmd, argv, shell=shell)
        logger.debug(f"Executing command (via subprocess): {_display(cmdline)}")

        try:
            result = subprocess.run(
                cmdline,
                shell=shell,
                env=self.child_env(),
                check=False,
                **kwargs
            )
        except OSError as e:
            if panic:
                raise ExecutionError(cmdline, 127) from e
            logger.error(f"Failed to execute {_display(cmdline)}: {e}")
            return 127

        if result.returncode != 0 and panic:
            raise ExecutionError(cmdline, result.returncode)
        return result.returncode


def _display(cmdline: Cmdline) -> str:
    if isinstance(cmdline, list):
        return shlex.join(cmdline)
    return cmdline
