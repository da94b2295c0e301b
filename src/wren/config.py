"""
Suite and connection configuration.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ConfigurationError
from .expectations import ExpectationTable, load_expectation_table
from .versions import DEFAULT_RELEASE_TAG_PATTERN, VersionKey

# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------

ENV_VAR_RE = re.compile(r"\$\{(\w+)(?::([^}]*))?\}")


def resolve_env_vars(value: Any) -> Any:
    """
    Recursively resolve ${VAR} and ${VAR:default} placeholders in strings,
    dicts, and lists.

    Examples:
      "${DB_PASSWORD}"          -> os.environ["DB_PASSWORD"]  (raises if unset)
      "${DB_PORT:26257}"        -> os.environ.get("DB_PORT", "26257")
    """
    if isinstance(value, str):
        def replacer(match):
            var_name = match.group(1)
            default = match.group(2)
            env_val = os.environ.get(var_name)
            if env_val is not None:
                return env_val
            if default is not None:
                return default
            raise ConfigurationError(
                f"Environment variable '${{{var_name}}}' is not set and no default provided"
            )
        return ENV_VAR_RE.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> Any:
    if not path.exists():
        raise ConfigurationError(f"File not found: {path}")
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e


# ---------------------------------------------------------------------------
# Suites
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SuiteSpec:
    name: str
    repo: str
    supported_tag: str
    expectations: Path
    url: str = ""
    release_tag_pattern: str = DEFAULT_RELEASE_TAG_PATTERN
    test_pattern: Optional[str] = None
    test_dir: str = ""
    database: Optional[str] = None
    min_version: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    timeout: float = 3600.0

    @property
    def clone_url(self) -> str:
        return self.url or f"https://github.com/{self.repo}.git"

    def load_expectations(self) -> ExpectationTable:
        return load_expectation_table(self.expectations)

    def check_min_version(self, target: "VersionKey | str"):
        if self.min_version is None:
            return
        target = VersionKey.parse(target)
        if target < VersionKey.parse(self.min_version):
            raise ConfigurationError(
                f"Suite {self.name} requires version {self.min_version} or later, got {target}"
            )


def _suite_from_dict(name: str, raw: dict, base_dir: Path) -> SuiteSpec:
    missing = [k for k in ("repo", "supported_tag", "expectations") if k not in raw]
    if missing:
        raise ConfigurationError(f"Suite {name} is missing: {', '.join(missing)}")

    pattern = raw.get("release_tag_pattern", DEFAULT_RELEASE_TAG_PATTERN)
    try:
        compiled = re.compile(pattern)
        if raw.get("test_pattern"):
            re.compile(raw["test_pattern"])
    except re.error as e:
        raise ConfigurationError(f"Suite {name} has an invalid pattern: {e}") from e
    if not {"major", "minor", "point"} <= set(compiled.groupindex):
        raise ConfigurationError(
            f"Suite {name}: release_tag_pattern needs groups major, minor and point"
        )

    tags = raw.get("tags", [])
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",")]
    if not isinstance(tags, list):
        raise ConfigurationError(f"Suite {name}: tags must be a list or a comma-separated string")

    env = raw.get("env") or {}
    if not isinstance(env, dict):
        raise ConfigurationError(f"Suite {name}: env must map variable names to values")

    try:
        timeout = float(raw.get("timeout", 3600.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Suite {name}: timeout must be a number of seconds, got {raw.get('timeout')!r}"
        ) from e
    if timeout <= 0:
        raise ConfigurationError(f"Suite {name}: timeout must be positive, got {timeout}")

    return SuiteSpec(
        name=name,
        repo=raw["repo"],
        supported_tag=str(raw["supported_tag"]),
        expectations=(base_dir / raw["expectations"]),
        url=raw.get("url", ""),
        release_tag_pattern=pattern,
        test_pattern=raw.get("test_pattern"),
        test_dir=raw.get("test_dir", ""),
        database=raw.get("database"),
        min_version=raw.get("min_version"),
        env={str(k): str(v) for k, v in env.items()},
        tags=tuple(str(t).lower() for t in tags),
        timeout=timeout,
    )


def load_suites(path: Path) -> dict[str, SuiteSpec]:
    data = resolve_env_vars(_load_yaml(path))
    suites = data.get("suites") if isinstance(data, dict) else None
    if not suites:
        raise ConfigurationError(f"No suites defined in {path}")
    if not isinstance(suites, dict):
        raise ConfigurationError(f"'suites' in {path} must map suite names to settings")
    result = {}
    for name, raw in suites.items():
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Suite {name} in {path} must be a mapping")
        result[str(name)] = _suite_from_dict(str(name), raw, path.parent)
    return result


def filter_suites(
    suites: dict[str, SuiteSpec],
    names: Optional[list[str]] = None,
    tags: Optional[set[str]] = None,
) -> list[SuiteSpec]:
    """Suites named explicitly, or carrying at least one of the tags."""
    if names:
        unknown = [n for n in names if n not in suites]
        if unknown:
            raise ConfigurationError(
                f"Unknown suite(s): {', '.join(unknown)}. Available: {sorted(suites)}"
            )
        return [suites[n] for n in names]
    if tags:
        return [s for s in suites.values() if tags & set(s.tags)]
    return list(suites.values())


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

def load_connections(path: Path) -> dict[str, dict]:
    data = resolve_env_vars(_load_yaml(path))
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must map connection names to settings")
    return data
