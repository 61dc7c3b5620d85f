"""Provisioning: run the steps of a ``provision`` list from hip.yml.

Example::

    provision:
      default:
        - echo: Setting up the database
        - docker:
            compose: [run, --rm, app, bin/setup]
        - sleep: 2
        - bundle exec rake db:seed
"""

from __future__ import annotations

import logging
import shlex
import time
from enum import Enum
from typing import Any, Callable, List, Mapping

from hip.lib.context import RunContext
from hip.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


class StepType(Enum):
    """Structured provision step kinds."""
    ECHO = "echo"
    CMD = "cmd"
    SHELL = "shell"
    SLEEP = "sleep"
    DOCKER = "docker"


class Provisioner:
    """Runs provision steps through the invocation's executor."""

    def __init__(self, context: RunContext, sleep: Callable[[float], None] = time.sleep):
        """Initialize provisioner.

        Args:
            context: Invocation context
            sleep: Delay function used by ``sleep`` steps
        """
        self.context = context
        self.sleep = sleep

    def steps(self, key: str = DEFAULT_KEY) -> List[Any]:
        """Steps registered under ``key``.

        Raises:
            ConfigurationError: If the key is not defined
        """
        provision = self.context.config.provision
        if key not in provision:
            raise ConfigurationError(f"Provision key '{key}' not found!")
        return provision[key]

    def run(self, key: str = DEFAULT_KEY) -> int:
        """Start the stack if needed, then run every step in order.

        An empty ``provision`` section does nothing.

        Returns:
            Exit status (0; failing steps raise)

        Raises:
            ConfigurationError: If the key or a step is invalid
            ExecutionError: If a step exits with a non-zero status
        """
        if not self.context.config.provision:
            logger.debug("No provision section, nothing to do")
            return 0

        steps = self.steps(key)
        self.ensure_containers_running()

        for index, step in enumerate(steps, start=1):
            self.context.status_cache.clear()
            logger.debug(f"Provision step {index}/{len(steps)}: {step!r}")
            self.run_step(step)
        return 0

    def ensure_containers_running(self) -> None:
        """Run ``compose up -d --wait`` when no project container is up."""
        if self.context.status_cache.any_running():
            logger.debug("Containers already running, proceeding with provision")
            return

        logger.info("No containers running, starting them with 'up -d --wait'")
        self.context.compose.execute(["up", "-d", "--wait"], shell=False, subprocess=True)

    def run_step(self, step: Any) -> None:
        """Run one step: a raw shell string or a single-key mapping.

        Raises:
            ConfigurationError: If the step has an unsupported shape
        """
        if isinstance(step, str):
            self._exec(step)
            return

        if not isinstance(step, Mapping) or len(step) != 1:
            raise ConfigurationError(
                f"Invalid provision step: {step!r} (expected a string or a single-key mapping)"
            )

        name, value = next(iter(step.items()))
        try:
            step_type = StepType(str(name))
        except ValueError as e:
            raise ConfigurationError(f"Unknown provision command type: {name}") from e

        if step_type == StepType.ECHO:
            self._exec(f"echo {shlex.quote(str(value))}")
        elif step_type in (StepType.CMD, StepType.SHELL):
            if not isinstance(value, str):
                raise ConfigurationError(f"{step_type.value} value must be a string")
            self._exec(value)
        elif step_type == StepType.SLEEP:
            self._sleep(value)
        elif step_type == StepType.DOCKER:
            self._docker(value)

    def _exec(self, cmdline: str) -> None:
        self.context.executor.exec_subprocess(cmdline, shell=True)

    def _sleep(self, value: Any) -> None:
        try:
            seconds = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"sleep value must be a number, got {value!r}") from e
        logger.debug(f"Sleeping for {seconds} seconds")
        self.sleep(seconds)

    def _docker(self, value: Any) -> None:
        if not isinstance(value, Mapping) or "compose" not in value:
            raise ConfigurationError("docker step must be a mapping with a 'compose' key")

        compose_args = value["compose"]
        if isinstance(compose_args, str):
            argv = shlex.split(compose_args)
        elif isinstance(compose_args, list):
            argv = [str(arg) for arg in compose_args]
        else:
            raise ConfigurationError("docker.compose must be a string or a list")

        self.context.compose.execute(argv, shell=False, subprocess=True)
