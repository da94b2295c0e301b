"""
Expectation tables: which tests are expected to fail, and which are never run,
for each target database version.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple, Optional

import yaml

from .errors import ConfigurationError
from .versions import WILDCARD, VersionKey

logger = logging.getLogger("wren.expectations")


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExpectationEntry:
    test_name: str
    reason: str
    scope: str  # version key text, or "*"


class ExpectationList(Mapping):
    """
    A named, read-only mapping of test name -> ExpectationEntry. ``scope`` is
    the version row the list was defined for; merged lists keep the scope of
    the specific row.
    """

    def __init__(
        self,
        name: str,
        entries: Mapping[str, ExpectationEntry] | None = None,
        scope: str = "",
    ):
        self.name = name
        self.scope = scope
        self._entries = MappingProxyType(dict(entries or {}))

    def __getitem__(self, test_name: str) -> ExpectationEntry:
        return self._entries[test_name]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def reason(self, test_name: str) -> str:
        return self._entries[test_name].reason

    def own_entries(self) -> dict[str, ExpectationEntry]:
        """Entries defined in this list's own row, without merged wildcard ones."""
        if not self.scope:
            return dict(self._entries)
        return {name: e for name, e in self._entries.items() if e.scope == self.scope}

    def __repr__(self):
        return f"ExpectationList({self.name!r}, {len(self)} entries)"


EMPTY_IGNORELIST = ExpectationList("")


class ResolvedLists(NamedTuple):
    """
    Result of ExpectationTable.get_lists. ``blocklist is None`` means no
    expectations are recorded for the version; callers must treat that as a
    configuration error, not as "nothing expected to fail".
    """

    blocklist_name: str
    blocklist: Optional[ExpectationList]
    ignorelist_name: str
    ignorelist: ExpectationList


@dataclass(frozen=True)
class VersionRow:
    scope: str
    blocklist: ExpectationList
    ignorelist: ExpectationList

    def overlap(self) -> list[str]:
        return sorted(set(self.blocklist) & set(self.ignorelist))


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class ExpectationTable:
    """
    Immutable version-keyed store of blocklists and ignorelists.

    Lookup order for a target version: exact key, then the greatest key of the
    same release line that is not above the target, then the wildcard row.
    Entries of the wildcard row are merged into whichever row is selected.

    A test present in both lists of a row is never run: the ignorelist wins.
    """

    def __init__(self, rows: list[VersionRow] | tuple[VersionRow, ...] = ()):
        keyed: dict[VersionKey, VersionRow] = {}
        wildcard = None
        for row in rows:
            if row.scope == WILDCARD:
                if wildcard is not None:
                    raise ConfigurationError("More than one '*' row in expectation table")
                wildcard = row
                continue
            key = VersionKey.parse(row.scope)
            if key in keyed:
                raise ConfigurationError(f"Version {key} listed twice in expectation table")
            keyed[key] = row
        self._rows = MappingProxyType(keyed)
        self._wildcard = wildcard

    @property
    def versions(self) -> list[VersionKey]:
        return sorted(self._rows)

    def rows(self) -> list[VersionRow]:
        rows = [self._rows[k] for k in sorted(self._rows)]
        if self._wildcard is not None:
            rows.append(self._wildcard)
        return rows

    def _select_row(self, version: VersionKey) -> Optional[VersionRow]:
        if version in self._rows:
            return self._rows[version]
        candidates = [
            k for k in self._rows
            if k.release_line == version.release_line and k <= version
        ]
        if candidates:
            return self._rows[max(candidates)]
        return self._wildcard

    def get_lists(self, version: "VersionKey | str") -> ResolvedLists:
        version = VersionKey.parse(version)
        row = self._select_row(version)
        if row is None:
            return ResolvedLists("", None, "", EMPTY_IGNORELIST)

        blocklist, ignorelist = row.blocklist, row.ignorelist
        if self._wildcard is not None and row is not self._wildcard:
            blocklist = _merge(self._wildcard.blocklist, blocklist)
            ignorelist = _merge(self._wildcard.ignorelist, ignorelist)
        return ResolvedLists(blocklist.name, blocklist, ignorelist.name, ignorelist)

    def overlaps(self) -> dict[str, list[str]]:
        """Row scope -> tests present in both lists of that row."""
        return {row.scope: row.overlap() for row in self.rows() if row.overlap()}


def _merge(base: ExpectationList, override: ExpectationList) -> ExpectationList:
    if not base:
        return override
    entries = dict(base)
    entries.update(override)
    return ExpectationList(override.name or base.name, entries, override.scope or base.scope)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _build_list(kind: str, name: str, definitions: dict, scope: str) -> ExpectationList:
    if name not in definitions:
        raise ConfigurationError(f"Version {scope} references undefined {kind} '{name}'")
    tests = definitions[name] or {}
    if not isinstance(tests, dict):
        raise ConfigurationError(f"{kind} '{name}' must map test names to reasons")
    return ExpectationList(name, {
        str(test): ExpectationEntry(str(test), "" if reason is None else str(reason), scope)
        for test, reason in tests.items()
    }, scope)


def table_from_dict(data: dict) -> ExpectationTable:
    """Build a table from the parsed YAML layout (versions/blocklists/ignorelists)."""
    if not isinstance(data, dict):
        raise ConfigurationError("Expectation table must be a mapping")
    blocklists = data.get("blocklists") or {}
    ignorelists = data.get("ignorelists") or {}

    rows = []
    for entry in data.get("versions") or []:
        if "version" not in entry or "blocklist" not in entry:
            raise ConfigurationError(f"Version row needs 'version' and 'blocklist': {entry}")
        scope = str(entry["version"])
        blocklist = _build_list("blocklist", entry["blocklist"], blocklists, scope)
        if entry.get("ignorelist"):
            ignorelist = _build_list("ignorelist", entry["ignorelist"], ignorelists, scope)
        else:
            ignorelist = EMPTY_IGNORELIST
        row = VersionRow(scope, blocklist, ignorelist)
        for test in row.overlap():
            logger.warning(
                f"{test} is in both {blocklist.name} and {ignorelist.name}; "
                f"it will not be run (ignorelist wins)"
            )
        rows.append(row)
    return ExpectationTable(rows)


def load_expectation_table(path: Path) -> ExpectationTable:
    if not path.exists():
        raise ConfigurationError(f"Expectation table not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return table_from_dict(data)
