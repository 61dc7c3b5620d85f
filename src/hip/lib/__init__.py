"""hip library modules.

Core functionality for command resolution, environment handling and execution.
"""

__all__ = [
    "command",
    "config_parser",
    "container_status",
    "context",
    "dispatcher",
    "env_file_loader",
    "environment",
    "errors",
    "frontends",
    "interaction_tree",
    "provisioner",
    "runners",
]
