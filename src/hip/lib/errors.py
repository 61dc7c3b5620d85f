"""Exception hierarchy shared by the hip library."""

from __future__ import annotations

from typing import List, Optional, Union


class HipError(Exception):
    """Base class for errors that abort a hip invocation."""
    pass


class ConfigurationError(HipError):
    """Raised when the catalog or a command definition is invalid."""
    pass


class CommandNotFoundError(HipError):
    """Raised when no catalog entry matches the requested command."""

    def __init__(self, tokens: List[str]):
        self.tokens = list(tokens)
        super().__init__(f"Command `{' '.join(self.tokens)}` not recognized!")


class EnvFileError(HipError):
    """Raised when an environment file cannot be loaded."""
    pass


class ExecutionError(HipError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(
        self,
        cmdline: Union[str, List[str]],
        returncode: Optional[int] = None
    ):
        self.cmdline = cmdline
        self.returncode = returncode
        if isinstance(cmdline, list):
            cmdline = ' '.join(cmdline)
        message = f"Command '{cmdline}' executed with error"
        if returncode is not None:
            message += f" (exit status {returncode})"
        super().__init__(message)
