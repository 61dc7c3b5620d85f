"""Per-invocation context.

Everything a command needs at run time (configuration, environment,
front-ends, status cache) is built once here and passed explicitly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, Union

from hip.lib.command import CommandExecutor
from hip.lib.config_parser import Config
from hip.lib.container_status import ComposeStatusClient, ContainerStatusCache
from hip.lib.env_file_loader import EnvFileLoader, EnvFilePriority, spec_priority
from hip.lib.environment import Environment
from hip.lib.frontends import ComposeFrontend, KubectlFrontend
from hip.lib.interaction_tree import CommandDescriptor, InteractionTree

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """State shared by the components of one invocation."""

    config: Config
    base_path: Path
    env: Environment
    executor: CommandExecutor
    compose: ComposeFrontend
    kubectl: KubectlFrontend
    status_cache: ContainerStatusCache
    run_vars: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        config: Config,
        base_path: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None,
        run_vars: Optional[Mapping[str, str]] = None,
        work_dir: Optional[Union[str, Path]] = None,
        executor_class: Type[CommandExecutor] = CommandExecutor,
        status_client: Optional[Any] = None
    ) -> RunContext:
        """Build the context and the catalog-wide environment.

        Args:
            config: Validated hip.yml
            base_path: Directory holding hip.yml
            environ: Process environment (defaults to ``os.environ``)
            run_vars: ``KEY=value`` pairs given before the command name;
                they behave like process environment variables
            work_dir: Invocation directory
            executor_class: Executor implementation
            status_client: Replacement for the compose status client

        Returns:
            Ready-to-use context

        Raises:
            ConfigurationError: If the env_file spec is invalid
            EnvFileError: If a required env file is missing
        """
        base_path = Path(base_path)
        run_vars = {str(k): str(v) for k, v in (run_vars or {}).items()}
        process_env = dict(os.environ if environ is None else environ)
        process_env.update(run_vars)

        env = Environment(environ=process_env, config_dir=base_path, work_dir=work_dir)
        merge_layers(env, config.environment, config.env_file, base_path)

        executor = executor_class(env)
        compose = ComposeFrontend(config.compose, env, base_path, executor)
        kubectl = KubectlFrontend(config.kubectl, env, executor)
        client = status_client if status_client is not None else ComposeStatusClient(compose)

        return cls(
            config=config,
            base_path=base_path,
            env=env,
            executor=executor,
            compose=compose,
            kubectl=kubectl,
            status_cache=ContainerStatusCache(client),
            run_vars=run_vars,
        )

    @property
    def tree(self) -> InteractionTree:
        return InteractionTree(self.config.interaction)

    def apply_command(self, command: CommandDescriptor) -> None:
        """Merge a command's env files and environment overlay."""
        merge_layers(self.env, command.environment, command.env_file, self.base_path)


def merge_layers(
    env: Environment,
    environment: Mapping[str, Any],
    env_file: Optional[Any],
    base_path: Path
) -> None:
    """Merge an ``environment`` block and its ``env_file`` into ``env``.

    With ``before_environment`` (the default) env files are merged first so
    the ``environment`` block wins; ``after_environment`` reverses that.
    """
    file_vars: Dict[str, str] = {}
    if env_file:
        file_vars = EnvFileLoader(base_path, environ=env.environ).load(env_file)

    if spec_priority(env_file) is EnvFilePriority.AFTER_ENVIRONMENT:
        layers = [environment, file_vars]
    else:
        layers = [file_vars, environment]

    for layer in layers:
        env.merge(layer)
