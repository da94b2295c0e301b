"""
External collaborators: database setup, cloning, discovery and execution of a
Go client library's test suite.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .config import SuiteSpec
from .database import ConnectionManager, create_database, fetch_server_version, version_from_banner
from .errors import CollaboratorError
from .outcomes import RunnerOutput
from .selection import parse_test_list, run_pattern
from .versions import VersionKey, VersionTagResolver


@dataclass
class ClusterHandle:
    name: str
    conn_info: dict


def _run(cmd: list[str], logger: logging.Logger, **kwargs) -> subprocess.CompletedProcess:
    logger.debug(f"$ {' '.join(cmd)}")
    kwargs.setdefault("stdout", subprocess.PIPE)
    kwargs.setdefault("stderr", subprocess.PIPE)
    try:
        return subprocess.run(cmd, text=True, **kwargs)
    except OSError as e:
        raise CollaboratorError(f"Could not run {cmd[0]}: {e}") from e


class LocalCollaborators:
    """Runs a suite on this machine against a database reachable over ODBC."""

    def __init__(
        self,
        suite: SuiteSpec,
        conn_mgr: ConnectionManager,
        connection: str | dict,
        logger: logging.Logger,
        go: str = "go",
        junit_report: str = "go-junit-report",
        git: str = "git",
    ):
        self.suite = suite
        self.conn_mgr = conn_mgr
        self.connection = connection
        self.logger = logger
        self.go = go
        self.junit_report = junit_report
        self.git = git
        self._tags = VersionTagResolver(git=git)

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.suite.env)
        return env

    def provision_cluster(self) -> ClusterHandle:
        name = self.connection if isinstance(self.connection, str) else "inline"
        return ClusterHandle(name, self.conn_mgr.resolve(self.connection))

    def start_database(self, handle: ClusterHandle, target_version: str) -> Optional[str]:
        conn = self.conn_mgr.get_connection(handle.conn_info)
        banner = fetch_server_version(conn)
        reported = version_from_banner(banner)
        self.logger.info(f"Connected to {handle.name}: {banner}")
        target = VersionKey.parse(target_version)
        if reported and VersionKey.parse(reported).release_line != target.release_line:
            self.logger.warning(
                f"Server reports {reported} but the run is scored against {target_version}"
            )
        if self.suite.database:
            create_database(conn, self.suite.database)
        return reported

    def resolve_latest_tag(self, repo_url: str, pattern: str) -> str:
        return self._tags.resolve_latest(repo_url, pattern)

    def clone_at_tag(self, repo_url: str, tag: str, destination: Path) -> None:
        try:
            if destination.exists():
                shutil.rmtree(destination)
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CollaboratorError(f"Could not prepare checkout {destination}: {e}") from e
        proc = _run(
            [self.git, "clone", "--depth", "1", "--branch", tag, repo_url, str(destination)],
            self.logger,
        )
        if proc.returncode != 0:
            raise CollaboratorError(f"git clone {repo_url}@{tag} failed: {proc.stderr.strip()}")

    def discover_tests(self, path: Path, name_pattern: Optional[str]) -> list[str]:
        try:
            proc = _run(
                [self.go, "test", "-list", name_pattern or "."],
                self.logger, cwd=path, env=self._env(), timeout=600,
            )
        except subprocess.TimeoutExpired as e:
            raise CollaboratorError(f"go test -list timed out in {path}") from e
        if proc.returncode != 0:
            raise CollaboratorError(f"go test -list failed in {path}: {proc.stderr.strip()}")
        return parse_test_list(proc.stdout)

    def execute_tests(self, path: Path, selected: Sequence[str]) -> RunnerOutput:
        pattern = run_pattern(selected)
        if pattern is None:
            return RunnerOutput(report="", returncode=0)

        # go test exits non-zero whenever a test fails; that is expected here.
        # go-junit-report reads the combined 2>&1 stream.
        try:
            proc = _run(
                [self.go, "test", "-run", pattern, "-v"],
                self.logger, cwd=path, env=self._env(), timeout=self.suite.timeout,
                stderr=subprocess.STDOUT,
            )
        except subprocess.TimeoutExpired:
            self.logger.error(f"Test run timed out after {self.suite.timeout:.0f}s")
            return RunnerOutput(report="", cancelled=True)

        converted = _run(
            [self.junit_report], self.logger, input=proc.stdout,
        )
        if converted.returncode != 0:
            raise CollaboratorError(f"go-junit-report failed: {converted.stderr.strip()}")
        return RunnerOutput(report=converted.stdout, returncode=proc.returncode)

    def close(self):
        self.conn_mgr.close_all()
