"""Execution strategies for catalog commands.

Each runner turns a command descriptor plus trailing arguments into a
concrete invocation of the local shell, Docker Compose or kubectl.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Type

from hip.lib.context import RunContext
from hip.lib.errors import ConfigurationError
from hip.lib.interaction_tree import CommandDescriptor

logger = logging.getLogger(__name__)


class RunnerKind(Enum):
    """Known execution strategies."""
    LOCAL = "local"
    DOCKER_COMPOSE = "docker_compose"
    KUBECTL = "kubectl"

    @classmethod
    def from_name(cls, name: str) -> RunnerKind:
        """Look up a runner by name.

        Matching ignores case and delimiters, so ``docker_compose``,
        ``DockerCompose`` and ``docker-compose`` are the same runner.

        Raises:
            ConfigurationError: If no runner has that name
        """
        wanted = _normalize_name(name)
        for kind in cls:
            if _normalize_name(kind.value) == wanted:
                return kind
        valid = [kind.value for kind in cls]
        raise ConfigurationError(f"Unknown runner '{name}' (expected one of {valid})")


def _normalize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


class Runner:
    """Base class for execution strategies."""

    kind: RunnerKind

    def __init__(
        self,
        command: CommandDescriptor,
        argv: Sequence[str],
        context: RunContext,
        publish: Sequence[str] = (),
        subprocess: bool = False
    ):
        """Initialize runner.

        Args:
            command: Command to run
            argv: Trailing arguments from the command line
            context: Invocation context
            publish: Ports to publish (compose ``run`` only)
            subprocess: Run as a monitored child process instead of
                replacing the current process
        """
        self.command = command
        self.argv = list(argv)
        self.context = context
        self.publish = list(publish)
        self.subprocess = subprocess

    def execute(self) -> int:
        raise NotImplementedError

    def command_args(self) -> List[str]:
        """Arguments appended after the command's own invocation.

        Trailing arguments win over ``default_args``. In shell mode trailing
        arguments are quoted into a single string.
        """
        if self.argv:
            if self.command.shell:
                return [shlex.join(self.argv)]
            return list(self.argv)

        default_args = self.command.default_args
        if default_args:
            if self.command.shell:
                return shlex.split(default_args)
            return [default_args]

        return []

    def invocation_args(self) -> List[str]:
        """The command's invocation, split into words outside shell mode."""
        invocation = self.command.invocation
        if not invocation:
            return []
        if self.command.shell:
            return [invocation]
        return shlex.split(invocation)


class LocalRunner(Runner):
    """Runs the command on the host."""

    kind = RunnerKind.LOCAL

    def execute(self) -> int:
        invocation = self.invocation_args()
        program = invocation[0] if invocation else ""
        args = invocation[1:] + self.command_args()

        executor = self.context.executor
        if self.subprocess:
            return executor.exec_subprocess(program, args, shell=self.command.shell)
        return executor.exec_program(program, args, shell=self.command.shell)


@dataclass(frozen=True)
class ComposePlan:
    """Effective compose settings for one dispatch.

    The descriptor stays untouched; profile forcing and the run -> exec
    switch only change the plan.
    """

    method: str
    run_flags: Tuple[str, ...] = ()
    invocation: str = ""
    profiles: Tuple[str, ...] = ()
    project_name: Optional[str] = None

    @classmethod
    def from_command(cls, command: CommandDescriptor) -> ComposePlan:
        """Initial plan from a descriptor.

        Compose only supports profiles with ``up``, which takes neither a
        command nor run options.
        """
        compose = command.compose
        if compose.profiles:
            # Normalized, not rejected: profiles force up with no command and no run options.
            if command.invocation or compose.run_options:
                logger.warning(
                    f"Command `{command.name}` uses compose profiles; "
                    f"ignoring its command and run options"
                )
            return cls(method="up", profiles=tuple(compose.profiles))

        return cls(
            method=compose.method,
            run_flags=tuple(compose.run_flags),
            invocation=command.invocation,
        )

    def switch_to_exec(self, project_name: str) -> ComposePlan:
        """Attach to a running container instead of starting a new one."""
        return dataclasses.replace(
            self,
            method="exec",
            run_flags=tuple(flag for flag in self.run_flags if "--rm" not in flag),
            project_name=project_name,
        )


class DockerComposeRunner(Runner):
    """Runs the command in a compose service (run, exec or up)."""

    kind = RunnerKind.DOCKER_COMPOSE

    def plan(self) -> ComposePlan:
        """Compute the compose plan, detecting an already running service."""
        plan = ComposePlan.from_command(self.command)
        service = self.command.service
        if plan.method != "run" or not service:
            return plan

        project = self.context.status_cache.status_for(service)
        if not project:
            return plan

        configured = self.context.config.compose.project_name
        if configured and self.context.env.interpolate(configured) != project:
            logger.debug(
                f"Running container project \"{project}\" differs from "
                f"configured project \"{configured}\"; using \"{project}\""
            )
        logger.debug(
            f"Container for service \"{service}\" is running under project "
            f"\"{project}\", switching to exec"
        )
        return plan.switch_to_exec(project)

    def compose_argv(self, plan: Optional[ComposePlan] = None) -> List[str]:
        """Compose arguments (everything after the files/project options)."""
        if plan is None:
            plan = self.plan()

        argv: List[str] = []
        for profile in plan.profiles:
            argv.extend(["--profile", profile])
        if plan.project_name:
            argv.extend(["--project-name", plan.project_name])

        argv.append(plan.method)
        argv.extend(plan.run_flags)

        if plan.method == "run":
            argv.extend(self.run_vars())
            argv.extend(f"--publish={port}" for port in self.publish)
            argv.append("--rm")

        if self.command.user:
            argv.extend(["--user", self.command.user])
        if self.command.workdir:
            argv.extend(["--workdir", self.command.workdir])

        if self.command.service:
            argv.append(self.command.service)

        if plan.invocation:
            if self.command.shell:
                argv.append(plan.invocation)
            else:
                argv.extend(shlex.split(plan.invocation))

        argv.extend(self.command_args())
        return argv

    def run_vars(self) -> List[str]:
        """``-e KEY=value`` pairs for variables given on the command line."""
        argv: List[str] = []
        for key, value in self.context.run_vars.items():
            if self.command.shell:
                value = shlex.quote(value)
            argv.extend(["-e", f"{key}={value}"])
        return argv

    def execute(self) -> int:
        argv = self.compose_argv()
        logger.debug(f"Compose arguments: {argv}")
        return self.context.compose.execute(
            argv, shell=self.command.shell, subprocess=self.subprocess
        )


class KubectlRunner(Runner):
    """Runs the command in a Kubernetes pod through ``kubectl exec``."""

    kind = RunnerKind.KUBECTL

    def kubectl_argv(self) -> List[str]:
        argv = ["exec", "--tty", "--stdin"]

        pod, _, container = (self.command.pod or "").partition(":")
        if container:
            argv.extend(["--container", container])
        argv.extend([pod, "--"])

        if self.command.entrypoint:
            argv.append(self.command.entrypoint)
        argv.extend(self.invocation_args())
        argv.extend(self.command_args())
        return argv

    def execute(self) -> int:
        return self.context.kubectl.execute(
            self.kubectl_argv(), shell=self.command.shell, subprocess=self.subprocess
        )


RUNNERS: Dict[RunnerKind, Type[Runner]] = {
    RunnerKind.LOCAL: LocalRunner,
    RunnerKind.DOCKER_COMPOSE: DockerComposeRunner,
    RunnerKind.KUBECTL: KubectlRunner,
}
