"""
Reconciliation: classify every discovered test against the expectation lists
and aggregate the verdicts into a RunSummary.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import enum
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .errors import SelectionInconsistencyError
from .expectations import ExpectationList
from .outcomes import Outcome, TestOutcome, is_incomplete
from .selection import check_unique


class Verdict(enum.Enum):
    EXPECTED_FAIL = "expected_fail"
    UNEXPECTED_FAIL = "unexpected_fail"
    EXPECTED_PASS = "expected_pass"
    UNEXPECTED_PASS = "unexpected_pass"
    SKIPPED = "skipped"


# Report order for counts.
VERDICT_ORDER = (
    Verdict.EXPECTED_PASS,
    Verdict.UNEXPECTED_PASS,
    Verdict.EXPECTED_FAIL,
    Verdict.UNEXPECTED_FAIL,
    Verdict.SKIPPED,
)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestVerdict:
    name: str
    verdict: Verdict
    outcome: Optional[Outcome] = None
    annotation: Optional[str] = None
    reason: Optional[str] = None  # blocklist/ignorelist reason, when listed


@dataclass(frozen=True)
class RunSummary:
    counts: tuple[tuple[Verdict, int], ...]
    regressions: tuple[TestVerdict, ...]
    newly_fixed: tuple[TestVerdict, ...]
    incomplete: tuple[TestVerdict, ...] = ()
    stale_expectations: tuple[str, ...] = ()
    blocklist_name: str = ""
    ignorelist_name: str = ""
    suite: str = ""
    target_version: str = ""
    pinned_tag: Optional[str] = None
    latest_tag: Optional[str] = None
    newer_tag_available: bool = False

    def count(self, verdict: Verdict) -> int:
        return dict(self.counts).get(verdict, 0)

    @property
    def total(self) -> int:
        return sum(n for _, n in self.counts)

    @property
    def exit_code(self) -> int:
        return 1 if self.regressions else 0


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify(
    name: str,
    outcome: Optional[TestOutcome],
    blocklist: Mapping,
    ignorelist: Mapping,
) -> TestVerdict:
    """Verdict for one test. outcome is None only for ignored tests."""
    if name in ignorelist:
        return TestVerdict(name, Verdict.SKIPPED, reason=_reason(ignorelist, name))
    if outcome is None:
        raise SelectionInconsistencyError([name])

    if outcome.outcome is Outcome.SKIP:
        return TestVerdict(name, Verdict.SKIPPED, outcome.outcome, outcome.annotation,
                           _reason(blocklist, name))

    expected = name in blocklist
    if outcome.outcome is Outcome.FAIL:
        verdict = Verdict.EXPECTED_FAIL if expected else Verdict.UNEXPECTED_FAIL
    else:
        verdict = Verdict.UNEXPECTED_PASS if expected else Verdict.EXPECTED_PASS
    return TestVerdict(name, verdict, outcome.outcome, outcome.annotation,
                       _reason(blocklist, name))


def _reason(expectations: Mapping, name: str) -> Optional[str]:
    entry = expectations.get(name)
    if entry is None:
        return None
    return getattr(entry, "reason", entry)


def reconcile(
    outcomes: Mapping[str, TestOutcome],
    blocklist: ExpectationList,
    ignorelist: ExpectationList,
    all_discovered: Sequence[str],
) -> RunSummary:
    """
    Pure function of its inputs. Either every discovered test gets a verdict
    and a complete summary is returned, or an error is raised and nothing is.
    """
    check_unique(all_discovered)

    missing = [n for n in all_discovered if n not in ignorelist and n not in outcomes]
    if missing:
        raise SelectionInconsistencyError(missing)

    tally = {v: 0 for v in VERDICT_ORDER}
    regressions = []
    newly_fixed = []
    incomplete = []
    for name in all_discovered:
        verdict = classify(name, outcomes.get(name), blocklist, ignorelist)
        tally[verdict.verdict] += 1
        if verdict.verdict is Verdict.UNEXPECTED_FAIL:
            regressions.append(verdict)
        elif verdict.verdict is Verdict.UNEXPECTED_PASS:
            newly_fixed.append(verdict)
        if verdict.outcome is Outcome.FAIL and is_incomplete(verdict.annotation):
            incomplete.append(verdict)

    discovered = set(all_discovered)
    stale = tuple(sorted(name for name in blocklist if name not in discovered))

    return RunSummary(
        counts=tuple((v, tally[v]) for v in VERDICT_ORDER),
        regressions=tuple(regressions),
        newly_fixed=tuple(newly_fixed),
        incomplete=tuple(incomplete),
        stale_expectations=stale,
        blocklist_name=getattr(blocklist, "name", ""),
        ignorelist_name=getattr(ignorelist, "name", ""),
    )
