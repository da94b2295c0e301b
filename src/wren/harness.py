"""
Run orchestration: expectations, tag advisory, discovery, execution and
reconciliation for one suite against one target version.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from .config import SuiteSpec
from .errors import ConfigurationError, TagDiscoveryError
from .expectations import ExpectationTable, ResolvedLists
from .outcomes import RunnerOutput, parse_outcomes
from .reconcile import RunSummary, reconcile
from .selection import select_tests
from .versions import VersionKey, is_newer_than_pinned


class Collaborators(Protocol):
    """The external steps a run depends on."""

    def provision_cluster(self) -> Any: ...

    def start_database(self, handle: Any, target_version: str) -> Optional[str]: ...

    def resolve_latest_tag(self, repo_url: str, pattern: str) -> str: ...

    def clone_at_tag(self, repo_url: str, tag: str, destination: Path) -> None: ...

    def discover_tests(self, path: Path, name_pattern: Optional[str]) -> list[str]: ...

    def execute_tests(self, path: Path, selected: Sequence[str]) -> RunnerOutput: ...


def resolve_expectations(table: ExpectationTable, suite: SuiteSpec, version: VersionKey) -> ResolvedLists:
    lists = table.get_lists(version)
    if lists.blocklist is None:
        raise ConfigurationError(f"No {suite.name} blocklist defined for version {version}")
    return lists


def _latest_tag(suite: SuiteSpec, collaborators: Collaborators, logger: logging.Logger) -> Optional[str]:
    try:
        latest = collaborators.resolve_latest_tag(suite.clone_url, suite.release_tag_pattern)
    except TagDiscoveryError as e:
        logger.warning(f"Latest {suite.name} release unknown: {e}")
        return None
    logger.info(f"Latest {suite.name} release is {latest}.")
    return latest


def score(
    suite: SuiteSpec,
    version: VersionKey,
    lists: ResolvedLists,
    discovered: Sequence[str],
    raw: RunnerOutput,
    pinned_tag: Optional[str] = None,
    latest_tag: Optional[str] = None,
) -> RunSummary:
    """Select, normalize and reconcile an already collected runner report."""
    selected = select_tests(discovered, lists.ignorelist, suite.test_pattern)
    outcomes = parse_outcomes(raw, selected)
    # Tests outside the name pattern were never candidates.
    candidates = select_tests(discovered, (), suite.test_pattern)
    summary = reconcile(outcomes, lists.blocklist, lists.ignorelist, candidates)

    newer = bool(latest_tag and pinned_tag and is_newer_than_pinned(
        latest_tag, pinned_tag, suite.release_tag_pattern))
    return dataclasses.replace(
        summary,
        suite=suite.name,
        target_version=str(version),
        pinned_tag=pinned_tag,
        latest_tag=latest_tag,
        newer_tag_available=newer,
    )


def run_compatibility_suite(
    suite: SuiteSpec,
    target_version: "VersionKey | str",
    collaborators: Collaborators,
    workdir: Path,
    logger: logging.Logger,
    pinned_tag: Optional[str] = None,
    table: Optional[ExpectationTable] = None,
) -> RunSummary:
    """
    Run one suite end to end. Returns a complete RunSummary or raises; a
    partial summary is never produced.
    """
    version = VersionKey.parse(target_version)
    pinned_tag = pinned_tag or suite.supported_tag
    suite.check_min_version(version)

    if table is None:
        table = suite.load_expectations()
    lists = resolve_expectations(table, suite, version)
    logger.info(
        f"Running version {version}, using blocklist {lists.blocklist_name}, "
        f"using ignorelist {lists.ignorelist_name or '(none)'}"
    )

    latest = _latest_tag(suite, collaborators, logger)
    logger.info(f"Supported {suite.name} release is {pinned_tag}.")
    if latest and is_newer_than_pinned(latest, pinned_tag, suite.release_tag_pattern):
        logger.warning(f"{suite.name} {latest} is newer than the supported {pinned_tag}")

    logger.info("Setting up the database")
    handle = collaborators.provision_cluster()
    collaborators.start_database(handle, str(version))

    logger.info(f"Cloning {suite.repo} at {pinned_tag}")
    checkout = workdir / suite.name
    collaborators.clone_at_tag(suite.clone_url, pinned_tag, checkout)
    test_path = checkout / suite.test_dir if suite.test_dir else checkout

    discovered = collaborators.discover_tests(test_path, suite.test_pattern)
    selected = select_tests(discovered, lists.ignorelist, suite.test_pattern)
    logger.info(
        f"Discovered {len(discovered)} test(s), running {len(selected)}"
    )

    logger.info(f"Running {suite.name} test suite and collecting results")
    raw = collaborators.execute_tests(test_path, selected)

    summary = score(suite, version, lists, discovered, raw, pinned_tag, latest)
    for v in summary.regressions:
        note = f" ({v.annotation})" if v.annotation else ""
        logger.warning(f"--- FAIL: {v.name} - unexpected{note}")
    for v in summary.newly_fixed:
        logger.info(f"--- PASS: {v.name} - unexpected, remove it from {summary.blocklist_name}")
    logger.info(
        f"{suite.name}: {summary.total} tests, {len(summary.regressions)} regression(s), "
        f"{len(summary.newly_fixed)} newly fixed"
    )
    return summary
