"""
Test selection: which discovered tests the runner is asked to execute.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import re
from collections import Counter
from typing import Container, Iterable, Optional, Sequence

from .errors import DuplicateTestNameError


def parse_test_list(output: str) -> list[str]:
    """
    Convert `go test -list` output into test names, in the order printed.
    Package summary lines ("ok  pkg 0.01s", "?   pkg [no test files]") are dropped.
    """
    names = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith(("ok ", "ok\t", "?", "FAIL", "no test files")):
            continue
        names.append(line.split()[0])
    return names


def check_unique(names: Iterable[str]) -> None:
    counts = Counter(names)
    dupes = [name for name, n in counts.items() if n > 1]
    if dupes:
        raise DuplicateTestNameError(dupes)


def select_tests(
    discovered: Sequence[str],
    ignorelist: Container[str],
    name_pattern: "str | re.Pattern | None" = None,
) -> list[str]:
    """
    Keep a discovered test iff it matches name_pattern (when given) and is
    not on the ignorelist. Discovery order is preserved.
    """
    check_unique(discovered)
    if isinstance(name_pattern, str):
        name_pattern = re.compile(name_pattern)

    selected = []
    for name in discovered:
        if name_pattern is not None and not name_pattern.search(name):
            continue
        if name in ignorelist:
            continue
        selected.append(name)
    return selected


def run_pattern(selected: Sequence[str]) -> Optional[str]:
    """Anchored alternation for `go test -run`; None when nothing is selected."""
    if not selected:
        return None
    return "^(" + "|".join(re.escape(name) for name in selected) + ")$"
