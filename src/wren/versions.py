"""
Version keys and release-tag resolution.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import functools
import re
import subprocess
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import ConfigurationError, TagDiscoveryError


DEFAULT_RELEASE_TAG_PATTERN = r"^v(?P<major>\d+)\.(?P<minor>\d+)\.(?P<point>\d+)$"

WILDCARD = "*"

VERSION_RE = re.compile(
    r"^v?(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?(?:-(?P<prerelease>[0-9A-Za-z.-]+))?$"
)


# ---------------------------------------------------------------------------
# Version keys
# ---------------------------------------------------------------------------

def _prerelease_key(prerelease: str) -> tuple:
    """
    Semver precedence for dot-separated identifiers: numeric parts compare
    as integers and sort below alphanumeric ones, and a longer list of
    otherwise equal identifiers sorts higher (beta < beta.1 < beta.2 < beta.10).
    """
    if not prerelease:
        return ()
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in prerelease.split(".")
    )


@functools.total_ordering
@dataclass(frozen=True)
class VersionKey:
    """
    A target database version or release line.

    ``v21.1`` is a release-line key (no patch): it sorts below every full
    version of the 21.1 line and acts as that line's fallback.
    ``v21.1.0-beta.2`` sorts below ``v21.1.0``.
    """

    major: int
    minor: int
    patch: Optional[int] = None
    prerelease: str = ""

    @classmethod
    def parse(cls, text: "str | VersionKey") -> "VersionKey":
        if isinstance(text, VersionKey):
            return text
        m = VERSION_RE.match(str(text).strip())
        if not m:
            raise ConfigurationError(f"Not a version: {text!r}")
        patch = m.group("patch")
        return cls(
            major=int(m.group("major")),
            minor=int(m.group("minor")),
            patch=int(patch) if patch is not None else None,
            prerelease=m.group("prerelease") or "",
        )

    @property
    def release_line(self) -> tuple[int, int]:
        return (self.major, self.minor)

    @property
    def is_release_line(self) -> bool:
        return self.patch is None

    def _sort_key(self):
        patch = -1 if self.patch is None else self.patch
        # A release sorts above its prereleases.
        return (self.major, self.minor, patch, 0 if self.prerelease else 1,
                _prerelease_key(self.prerelease))

    def __lt__(self, other):
        if not isinstance(other, VersionKey):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self):
        text = f"v{self.major}.{self.minor}"
        if self.patch is not None:
            text += f".{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text


# ---------------------------------------------------------------------------
# Release tags
# ---------------------------------------------------------------------------

def parse_tag(tag: str, pattern: "str | re.Pattern") -> Optional[tuple[int, int, int]]:
    """Return (major, minor, point) for a tag matching pattern, else None."""
    if isinstance(pattern, str):
        pattern = re.compile(pattern)
    m = pattern.match(tag)
    if not m:
        return None
    return (int(m.group("major")), int(m.group("minor")), int(m.group("point")))


def latest_tag(tags: Iterable[str], pattern: "str | re.Pattern" = DEFAULT_RELEASE_TAG_PATTERN) -> str:
    """
    Pick the highest release tag, comparing (major, minor, point) numerically
    so that v1.10.0 beats v1.9.0.
    """
    best = None
    best_key = None
    for tag in tags:
        key = parse_tag(tag, pattern)
        if key is None:
            continue
        if best_key is None or key > best_key:
            best, best_key = tag, key
    if best is None:
        raise TagDiscoveryError("No tag matches the release pattern")
    return best


def is_newer_than_pinned(
    latest: str, pinned: str, pattern: "str | re.Pattern" = DEFAULT_RELEASE_TAG_PATTERN
) -> bool:
    """Advisory only: True if latest is a higher release than the pinned tag."""
    latest_key = parse_tag(latest, pattern)
    pinned_key = parse_tag(pinned, pattern)
    if latest_key is None or pinned_key is None:
        return False
    return latest_key > pinned_key


def parse_ls_remote(output: str) -> list[str]:
    """Extract tag names from `git ls-remote --tags` output."""
    tags = []
    seen = set()
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2 or not parts[1].startswith("refs/tags/"):
            continue
        name = parts[1][len("refs/tags/"):]
        if name.endswith("^{}"):
            name = name[:-3]
        if name not in seen:
            seen.add(name)
            tags.append(name)
    return tags


class VersionTagResolver:
    """Finds the latest release tag of a remote repository."""

    def __init__(self, git: str = "git", timeout: float = 60.0):
        self.git = git
        self.timeout = timeout

    def list_tags(self, url: str) -> list[str]:
        try:
            proc = subprocess.run(
                [self.git, "ls-remote", "--tags", url],
                capture_output=True, text=True, timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TagDiscoveryError(f"Could not list tags of {url}: {e}") from e
        if proc.returncode != 0:
            raise TagDiscoveryError(
                f"git ls-remote {url} exited {proc.returncode}: {proc.stderr.strip()}"
            )
        return parse_ls_remote(proc.stdout)

    def resolve_latest(self, url: str, pattern: "str | re.Pattern" = DEFAULT_RELEASE_TAG_PATTERN) -> str:
        tags = self.list_tags(url)
        try:
            return latest_tag(tags, pattern)
        except TagDiscoveryError:
            raise TagDiscoveryError(f"No tag of {url} matches the release pattern") from None
