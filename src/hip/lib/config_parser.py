"""Configuration parser for hip.yml.

Locates the catalog file, merges modules and the override file, and
validates the result.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hip.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "hip.yml"
MODULES_DIRNAME = ".hip"


class ComposeConfig(BaseModel):
    """Docker Compose front-end configuration."""
    model_config = ConfigDict(extra="allow")

    files: List[str] = Field(default_factory=list)
    project_name: Optional[str] = None
    project_directory: Optional[str] = None
    command: Optional[str] = None

    @field_validator('files', mode='before')
    @classmethod
    def files_to_list(cls, v: Any) -> List[str]:
        """Accept a single file as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class KubectlConfig(BaseModel):
    """kubectl front-end configuration."""
    model_config = ConfigDict(extra="allow")

    namespace: Optional[str] = None


class Config(BaseModel):
    """Top-level hip.yml configuration."""
    model_config = ConfigDict(extra="allow")

    version: Optional[str] = None
    environment: Dict[str, Any] = Field(default_factory=dict)
    env_file: Optional[Union[str, List[Any], Dict[str, Any]]] = None
    compose: ComposeConfig = Field(default_factory=ComposeConfig)
    kubectl: KubectlConfig = Field(default_factory=KubectlConfig)
    interaction: Dict[str, Optional[Dict[str, Any]]] = Field(default_factory=dict)
    provision: Dict[str, List[Any]] = Field(default_factory=dict)

    @field_validator('provision', mode='before')
    @classmethod
    def provision_to_mapping(cls, v: Any) -> Any:
        """A plain list of steps is the ``default`` provision."""
        if v is None:
            return {}
        if isinstance(v, list):
            return {"default": v} if v else {}
        if isinstance(v, dict):
            return {str(key): [] if steps is None else steps for key, steps in v.items()}
        return v

    @field_validator('version', mode='before')
    @classmethod
    def version_to_string(cls, v: Any) -> Optional[str]:
        """Convert version to string (handles YAML parsing floats like 8.1)."""
        return None if v is None else str(v)

    @field_validator('environment', 'interaction', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        """Treat an empty YAML section as an empty mapping."""
        return {} if v is None else v

    @field_validator('compose', 'kubectl', mode='before')
    @classmethod
    def none_to_defaults(cls, v: Any) -> Any:
        return {} if v is None else v


def deep_merge(base: Dict[str, Any], other: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``other`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in other.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping, returning an empty dict for missing/empty files.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping
    """
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")
    return data


class ConfigFinder:
    """Locate hip.yml and its companion files."""

    def __init__(
        self,
        work_dir: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None
    ):
        """Initialize finder.

        Args:
            work_dir: Directory to start searching from
            environ: Process environment (``HIP_FILE`` overrides the search)
        """
        environ = os.environ if environ is None else environ
        if environ.get("HIP_FILE"):
            self.file_path: Optional[Path] = Path(environ["HIP_FILE"]).expanduser().resolve()
        else:
            self.file_path = self._find(Path(work_dir).resolve())

    def exists(self) -> bool:
        return self.file_path is not None and self.file_path.exists()

    @property
    def override_path(self) -> Optional[Path]:
        if self.file_path is None:
            return None
        return self.file_path.with_name(self.file_path.name.replace(".yml", ".override.yml"))

    def module_file(self, name: str) -> Path:
        return self.file_path.parent / MODULES_DIRNAME / f"{name}.yml"

    def _find(self, path: Path) -> Optional[Path]:
        for directory in [path, *path.parents]:
            candidate = directory / DEFAULT_FILENAME
            if candidate.exists():
                return candidate
        return None


class ConfigParser:
    """Parse and validate hip.yml."""

    def __init__(
        self,
        work_dir: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """Initialize parser.

        Args:
            work_dir: Directory to start searching from (default: cwd)
            environ: Process environment

        Raises:
            ConfigurationError: If no hip.yml can be found
        """
        self.finder = ConfigFinder(work_dir or Path.cwd(), environ=environ)
        if not self.finder.exists():
            raise ConfigurationError(f"Could not find {DEFAULT_FILENAME} config")

        self.config: Optional[Config] = None

    @property
    def file_path(self) -> Path:
        return self.finder.file_path

    @property
    def base_path(self) -> Path:
        """Directory relative env-file and compose-file paths resolve against."""
        return self.finder.file_path.parent

    def parse(self) -> Config:
        """Load, merge and validate the configuration.

        Merge order: modules (in listed order), the main file, the override
        file.

        Returns:
            Validated configuration

        Raises:
            ConfigurationError: If merging or validation fails
        """
        raw = load_yaml(self.file_path)
        merged: Dict[str, Any] = {}

        modules = raw.pop("modules", None)
        if modules is not None:
            if not isinstance(modules, list):
                raise ConfigurationError("Modules should be specified as array")
            for name in modules:
                module_path = self.finder.module_file(name)
                if not module_path.exists():
                    raise ConfigurationError(f"Could not find module `{name}`")
                module_config = load_yaml(module_path)
                if "modules" in module_config:
                    raise ConfigurationError("Nested modules are not supported")
                logger.debug(f"Merging module {name} from {module_path}")
                merged = deep_merge(merged, module_config)

        merged = deep_merge(merged, raw)

        override_path = self.finder.override_path
        if override_path is not None and override_path.exists():
            logger.debug(f"Merging override file {override_path}")
            merged = deep_merge(merged, load_yaml(override_path))

        try:
            self.config = Config(**merged)
        except ValidationError as e:
            raise ConfigurationError(
                f"Schema validation failed in {self.file_path}:\n{e}"
            ) from e

        return self.config


def load_config(
    work_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> ConfigParser:
    """Load and parse configuration file.

    Example:
        >>> parser = load_config()
        >>> parser.config.compose.files
        ['docker-compose.yml']
    """
    parser = ConfigParser(work_dir, environ=environ)
    parser.parse()
    return parser
