"""Docker Compose and kubectl command front-ends."""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import List, Optional, Sequence

from hip.lib.command import CommandExecutor
from hip.lib.config_parser import ComposeConfig, KubectlConfig
from hip.lib.environment import Environment

logger = logging.getLogger(__name__)

COMPOSE_COMMAND_VAR = "HIP_COMPOSE_COMMAND"


class ComposeFrontend:
    """Builds and runs ``docker compose`` command lines."""

    def __init__(
        self,
        config: ComposeConfig,
        env: Environment,
        base_path: Path,
        executor: CommandExecutor
    ):
        """Initialize front-end.

        Args:
            config: ``compose`` section of hip.yml
            env: Environment used to interpolate paths and names
            base_path: Directory relative compose files resolve against
            executor: Process executor
        """
        self.config = config
        self.env = env
        self.base_path = Path(base_path)
        self.executor = executor

    def find_files(self, quote: bool = False) -> List[str]:
        """``--file`` arguments for every configured compose file that exists."""
        args: List[str] = []
        for file_path in self.config.files:
            path = Path(self.env.interpolate(file_path)).expanduser()
            if not path.is_absolute():
                path = (self.base_path / path).resolve()
            if not path.exists():
                logger.debug(f"Compose file not found (skipping): {path}")
                continue
            args.extend(["--file", shlex.quote(str(path)) if quote else str(path)])
        return args

    def cli_options(self) -> List[str]:
        """``--project-name``/``--project-directory`` arguments."""
        args: List[str] = []
        for name in ("project_name", "project_directory"):
            value = getattr(self.config, name)
            if not value:
                continue
            args.extend([f"--{name.replace('_', '-')}", self.env.interpolate(value)])
        return args

    def command_override(self) -> Optional[str]:
        """Replacement for ``docker compose`` (e.g. ``podman-compose``)."""
        return self.env.get(COMPOSE_COMMAND_VAR) or self.config.command

    def build_argv(self, argv: Sequence[str], quote: bool = False) -> List[str]:
        """Arguments following the compose program name."""
        return self.find_files(quote=quote) + self.cli_options() + list(argv)

    def build_command(self, argv: Sequence[str]) -> List[str]:
        """Full argument vector, used to capture compose output."""
        override = self.command_override()
        program = shlex.split(override) if override else ["docker", "compose"]
        return program + self.build_argv(argv)

    def execute(self, argv: Sequence[str], shell: bool = True, subprocess: bool = False) -> int:
        """Run compose with ``argv``.

        Args:
            argv: Compose arguments (subcommand and its options)
            shell: Run through the shell
            subprocess: Run as a child process instead of replacing this one

        Returns:
            Exit status
        """
        override = self.command_override()
        if override:
            program, *override_args = shlex.split(override)
            args = override_args + self.build_argv(argv, quote=shell)
        else:
            program = "docker"
            args = ["compose"] + self.build_argv(argv, quote=shell)

        if subprocess:
            return self.executor.exec_subprocess(program, args, shell=shell)
        return self.executor.exec_program(program, args, shell=shell)


class KubectlFrontend:
    """Builds and runs ``kubectl`` command lines."""

    def __init__(self, config: KubectlConfig, env: Environment, executor: CommandExecutor):
        self.config = config
        self.env = env
        self.executor = executor

    def cli_options(self) -> List[str]:
        if not self.config.namespace:
            return []
        namespace = self.env.interpolate(self.config.namespace)
        if namespace.endswith("-"):
            namespace = namespace[:-1]
        return ["--namespace", namespace]

    def execute(self, argv: Sequence[str], shell: bool = True, subprocess: bool = False) -> int:
        """Run kubectl with ``argv``."""
        args = self.cli_options() + list(argv)
        if subprocess:
            return self.executor.exec_subprocess("kubectl", args, shell=shell)
        return self.executor.exec_program("kubectl", args, shell=shell)
