"""Container status detection.

Asks ``docker compose ps`` whether a service already has a running container,
caching answers for a short time. Detection is advisory: every failure is
logged and reported as "not running".
"""

from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from hip.lib.frontends import ComposeFrontend

logger = logging.getLogger(__name__)

CACHE_TTL = 2.0


class StatusQueryError(Exception):
    """Raised when container status cannot be determined."""
    pass


@dataclass
class StatusRecord:
    """One container line of ``docker compose ps --format json``."""

    state: str
    project: Optional[str] = None
    name: Optional[str] = None
    container_id: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.state.lower() == "running"

    @classmethod
    def from_dict(cls, data: Dict) -> StatusRecord:
        """Create from a decoded JSON object."""
        return cls(
            state=str(data.get("State") or ""),
            project=data.get("Project"),
            name=data.get("Name"),
            container_id=data.get("ID"),
        )


def parse_status_output(output: str) -> List[StatusRecord]:
    """Parse ``ps --format json`` output (one JSON object per line).

    Only the first line must decode; malformed later lines are skipped.

    Raises:
        StatusQueryError: If the first line is not a JSON object
    """
    records: List[StatusRecord] = []
    first = True
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            line_records = _parse_status_line(line)
        except StatusQueryError as e:
            if first:
                raise
            logger.debug(f"Skipping container status line: {e}")
            continue
        first = False
        records.extend(line_records)
    return records


def _parse_status_line(line: str) -> List[StatusRecord]:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise StatusQueryError(f"Failed to parse container status JSON: {e}") from e

    items = data if isinstance(data, list) else [data]
    for item in items:
        if not isinstance(item, dict):
            raise StatusQueryError(f"Unexpected container status entry: {item!r}")
    return [StatusRecord.from_dict(item) for item in items]


class ComposeStatusClient:
    """Queries container status through the compose front-end."""

    def __init__(self, compose: ComposeFrontend):
        self.compose = compose

    def query(self, service: Optional[str] = None) -> List[StatusRecord]:
        """List containers, optionally restricted to one service.

        Raises:
            StatusQueryError: If compose cannot be run or its output parsed
        """
        args = ["ps", "--format", "json"]
        if service:
            args.append(service)
        cmd = self.compose.build_command(args)

        logger.debug(f"Checking container status: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                env=self.compose.executor.child_env()
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise StatusQueryError(f"Failed to run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            raise StatusQueryError(
                f"Status query exited with {result.returncode}: {result.stderr.strip()}"
            )
        return parse_status_output(result.stdout)


class ContainerStatusCache:
    """Time-limited cache of running-service lookups."""

    def __init__(
        self,
        client: ComposeStatusClient,
        ttl: float = CACHE_TTL,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize cache.

        Args:
            client: Status query collaborator
            ttl: Seconds an answer stays valid
            clock: Time source (seconds)
        """
        self.client = client
        self.ttl = ttl
        self.clock = clock
        self._cache: Dict[str, Tuple[float, Optional[str]]] = {}
        self._lock = Lock()

    def status_for(self, service: str) -> Optional[str]:
        """Project name of the service's running container.

        Args:
            service: Compose service name

        Returns:
            Project name if the first container of the service is running,
            None otherwise (including when the status cannot be determined)
        """
        with self._lock:
            cached = self._cache.get(service)
            if cached is not None:
                cached_at, value = cached
                if self.clock() - cached_at < self.ttl:
                    logger.debug(f"Using cached container status for \"{service}\"")
                    return value
                del self._cache[service]

        try:
            records = self.client.query(service)
        except StatusQueryError as e:
            logger.debug(f"Error checking container status: {e}")
            return None
        except Exception as e:
            logger.debug(f"Unexpected error checking container status: {e}")
            return None

        result = None
        if not records:
            logger.debug(f"No container found for service \"{service}\"")
        else:
            record = records[0]
            if record.running:
                logger.debug(
                    f"Container \"{record.name}\" ({record.container_id}) "
                    f"state: {record.state}, project: {record.project}"
                )
                result = record.project
            else:
                logger.debug(f"Container found but not running: state={record.state}")

        with self._lock:
            self._cache[service] = (self.clock(), result)
        return result

    def any_running(self) -> bool:
        """Check whether any container of the project is running."""
        try:
            records = self.client.query()
        except StatusQueryError as e:
            logger.debug(f"Error checking container status: {e}")
            return False
        except Exception as e:
            logger.debug(f"Unexpected error checking container status: {e}")
            return False

        running = sum(1 for r in records if r.running)
        logger.debug(f"Found {running} running container(s)")
        return running > 0

    def clear(self) -> None:
        """Forget every cached answer."""
        with self._lock:
            self._cache.clear()
