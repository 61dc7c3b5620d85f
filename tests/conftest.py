"""Shared fixtures: fake executor and status client, context factory."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from hip.lib.command import CommandExecutor
from hip.lib.config_parser import Config
from hip.lib.container_status import StatusQueryError, StatusRecord
from hip.lib.context import RunContext


class RecordingExecutor(CommandExecutor):
    """Executor that records command lines instead of running them."""

    def __init__(self, env):
        super().__init__(env)
        self.calls: List[Dict[str, Any]] = []

    def exec_program(self, cmd, argv=(), shell=True):
        self.calls.append({
            "via": "exec",
            "cmdline": self.build_cmdline(cmd, argv, shell=shell),
            "shell": shell,
        })
        return 0

    def exec_subprocess(self, cmd, argv=(), shell=True, panic=True, **kwargs):
        self.calls.append({
            "via": "subprocess",
            "cmdline": self.build_cmdline(cmd, argv, shell=shell),
            "shell": shell,
        })
        return 0

    @property
    def last(self):
        return self.calls[-1]["cmdline"]


class FakeStatusClient:
    """Status client returning canned records."""

    def __init__(self, records: Optional[List[StatusRecord]] = None, error: bool = False):
        self.records = records or []
        self.error = error
        self.queries: List[Optional[str]] = []

    def query(self, service=None):
        self.queries.append(service)
        if self.error:
            raise StatusQueryError("docker daemon not running")
        return list(self.records)


def running(project: str = "demo", service: str = "app") -> StatusRecord:
    return StatusRecord(
        state="running",
        project=project,
        name=f"{project}-{service}-1",
        container_id="abc123",
    )


@pytest.fixture
def make_context(tmp_path):
    """Build a RunContext from a catalog dict without touching real processes."""

    def _make(
        catalog: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
        status_client: Optional[FakeStatusClient] = None,
        run_vars: Optional[Dict[str, str]] = None,
        base_path: Optional[Path] = None,
    ) -> RunContext:
        return RunContext.build(
            Config(**(catalog or {})),
            base_path or tmp_path,
            environ=environ or {},
            run_vars=run_vars,
            work_dir=base_path or tmp_path,
            executor_class=RecordingExecutor,
            status_client=status_client or FakeStatusClient(),
        )

    return _make
