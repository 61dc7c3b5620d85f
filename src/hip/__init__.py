"""hip - catalogued project commands for Docker Compose, kubectl and the shell.

Turns the ``interaction`` catalog of a ``hip.yml`` file into concrete process
invocations.

Features:
- Nested commands with longest-match argument resolution
- Layered environment with env files and ``$VAR`` interpolation
- Automatic switch from ``compose run`` to ``compose exec`` for running services
- Local, Docker Compose and kubectl runners
"""

__version__ = "1.0.0"
__license__ = "MIT"

from hip.cli import main

__all__ = ["main", "__version__"]
