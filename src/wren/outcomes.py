"""
Runner output normalization: JUnit XML -> test name -> outcome.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import enum
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import RunCancelledError, RunnerOutputError

logger = logging.getLogger("wren.outcomes")

DID_NOT_COMPLETE = "did not complete"
SKIPPED_BY_RUNNER = "skipped by runner"


class Outcome(enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True)
class TestOutcome:
    name: str
    outcome: Outcome
    annotation: Optional[str] = None


@dataclass(frozen=True)
class RunnerOutput:
    """Raw result of one external test run."""

    report: str
    cancelled: bool = False
    returncode: Optional[int] = None  # exit status of the test command


def is_incomplete(annotation: Optional[str]) -> bool:
    return bool(annotation) and annotation.startswith(DID_NOT_COMPLETE)


def _missing_annotation(raw: RunnerOutput) -> str:
    # A non-zero status with missing cases usually means a build failure or panic.
    if raw.returncode:
        return f"{DID_NOT_COMPLETE} (runner exited with status {raw.returncode})"
    return DID_NOT_COMPLETE


def _case_outcome(case: ET.Element) -> tuple[Outcome, Optional[str]]:
    for tag in ("failure", "error"):
        node = case.find(tag)
        if node is not None:
            message = node.get("message")
            if not message and node.text and node.text.strip():
                message = node.text.strip().splitlines()[0]
            return Outcome.FAIL, message or tag
    if case.find("skipped") is not None:
        return Outcome.SKIP, SKIPPED_BY_RUNNER
    return Outcome.PASS, None


def parse_junit(report: str) -> dict[str, TestOutcome]:
    """Every <testcase> in the report; a name seen twice folds with Fail winning."""
    if not report.strip():
        return {}
    try:
        root = ET.fromstring(report)
    except ET.ParseError as e:
        raise RunnerOutputError(f"Malformed JUnit report: {e}") from e

    results: dict[str, TestOutcome] = {}
    for case in root.iter("testcase"):
        name = case.get("name")
        if not name:
            continue
        outcome, annotation = _case_outcome(case)
        previous = results.get(name)
        if previous is not None and previous.outcome is Outcome.FAIL:
            continue
        results[name] = TestOutcome(name, outcome, annotation)
    return results


def parse_outcomes(raw: RunnerOutput, selected: Iterable[str]) -> dict[str, TestOutcome]:
    """
    Exactly one outcome per selected test. Selected tests missing from the
    report are failures annotated "did not complete". A cancelled run
    produces nothing.
    """
    if raw.cancelled:
        raise RunCancelledError("Test run was cancelled before completing; not scoring it")

    reported = parse_junit(raw.report)
    missing = _missing_annotation(raw)
    outcomes = {}
    for name in selected:
        if name in reported:
            outcomes[name] = reported.pop(name)
        else:
            outcomes[name] = TestOutcome(name, Outcome.FAIL, missing)

    if reported:
        logger.debug(f"Dropping {len(reported)} reported case(s) outside the selection")
    return outcomes
