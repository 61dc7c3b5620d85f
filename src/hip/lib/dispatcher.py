"""Command dispatch.

Resolves a command line against the catalog, prepares the command's
environment and hands it to the matching runner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from hip.lib.context import RunContext
from hip.lib.interaction_tree import CommandDescriptor, Resolution
from hip.lib.runners import RUNNERS, DockerComposeRunner, Runner, RunnerKind

logger = logging.getLogger(__name__)


@dataclass
class DispatchOptions:
    """Per-invocation execution options."""
    publish: List[str] = field(default_factory=list)
    subprocess: bool = False


class Dispatcher:
    """Selects and runs the execution strategy for a command."""

    def __init__(self, context: RunContext):
        self.context = context

    def resolve(self, tokens: Sequence[str]) -> Resolution:
        """Resolve a command line and merge the command's environment.

        Raises:
            CommandNotFoundError: If no catalog command matches
            EnvFileError: If a required env file of the command is missing
        """
        resolution = self.context.tree.resolve(list(tokens))
        self.context.apply_command(resolution.command)
        return resolution

    def select_runner(self, command: CommandDescriptor) -> RunnerKind:
        """Pick the strategy: explicit runner, then service, then pod.

        Raises:
            ConfigurationError: If the explicit runner name is unknown
        """
        if command.runner:
            return RunnerKind.from_name(command.runner)
        if command.service:
            return RunnerKind.DOCKER_COMPOSE
        if command.pod:
            return RunnerKind.KUBECTL
        return RunnerKind.LOCAL

    def build_runner(
        self,
        command: CommandDescriptor,
        argv: Sequence[str],
        options: Optional[DispatchOptions] = None
    ) -> Runner:
        options = options or DispatchOptions()
        runner_class = RUNNERS[self.select_runner(command)]
        return runner_class(
            command,
            argv,
            self.context,
            publish=options.publish,
            subprocess=options.subprocess,
        )

    def dispatch(
        self,
        command: CommandDescriptor,
        argv: Sequence[str],
        options: Optional[DispatchOptions] = None
    ) -> int:
        """Run a resolved command.

        Args:
            command: Command descriptor
            argv: Trailing arguments
            options: Execution options

        Returns:
            Exit status (only when running as a subprocess; otherwise the
            current process is replaced)

        Raises:
            ConfigurationError: If the explicit runner name is unknown
            ExecutionError: If a subprocess exits with a non-zero status
        """
        runner = self.build_runner(command, argv, options)
        logger.debug(f"Dispatching `{command.name}` to {type(runner).__name__}")
        return runner.execute()

    def run(self, tokens: Sequence[str], options: Optional[DispatchOptions] = None) -> int:
        """Resolve and dispatch a command line."""
        resolution = self.resolve(tokens)
        return self.dispatch(resolution.command, resolution.argv, options)

    def explain(
        self,
        command: CommandDescriptor,
        argv: Sequence[str],
        options: Optional[DispatchOptions] = None
    ) -> str:
        """Describe how a command would be executed, without running it."""
        runner = self.build_runner(command, argv, options)
        lines = [
            "=== Command Execution Plan ===",
            f"Command: {command.invocation}",
        ]
        if command.description:
            lines.append(f"Description: {command.description}")
        lines.append(f"Runner: {type(runner).__name__}")
        if command.service:
            lines.append(f"Service: {command.service}")
        if command.pod:
            lines.append(f"Pod: {command.pod}")
        if isinstance(runner, DockerComposeRunner):
            plan = runner.plan()
            lines.append(f"Compose Method: {plan.method}")
            if plan.project_name:
                lines.append(f"Detected Project: {plan.project_name}")
        if argv:
            lines.append(f"Arguments: {' '.join(argv)}")
        lines.append(f"Shell Mode: {command.shell}")
        if command.environment:
            lines.append("Environment Variables:")
            for key in command.environment:
                lines.append(f"  {key}={self.context.env.get(key)}")
        return "\n".join(lines)
