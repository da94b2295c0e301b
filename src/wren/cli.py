"""
Wren CLI: subcommands for running suites, scoring reports, validating
expectation tables and scaffolding workspaces.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import argparse
import logging
import sys
import textwrap
from pathlib import Path

from . import __version__
from .collaborators import LocalCollaborators
from .config import filter_suites, load_connections, load_suites
from .database import ConnectionManager
from .errors import ConfigurationError, WrenError
from .harness import resolve_expectations, run_compatibility_suite, score
from .outcomes import RunnerOutput
from .reconcile import RunSummary
from .reports import (
    generate_html_report,
    generate_json_report,
    generate_text_report,
    render_text,
    suggest_blocklist,
    write_report,
)
from .selection import parse_test_list
from .versions import VersionKey

EXIT_OK = 0
EXIT_REGRESSIONS = 1
EXIT_FATAL = 2


# ---------------------------------------------------------------------------
# Cross-platform console safety
# ---------------------------------------------------------------------------

def _safe_symbol(symbol: str, fallback: str) -> str:
    """Return the symbol if the console can render it, otherwise a fallback."""
    try:
        symbol.encode(sys.stdout.encoding or "utf-8")
        return symbol
    except (UnicodeEncodeError, LookupError):
        return fallback


ICON_PASS = _safe_symbol("✅", "[OK]")
ICON_FAIL = _safe_symbol("❌", "[X]")
ICON_WARN = _safe_symbol("⚠️", "[!]")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger("wren")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-5s %(message)s", "%H:%M:%S")
        )
        logger.addHandler(handler)
    return logger


# ---------------------------------------------------------------------------
# Report output
# ---------------------------------------------------------------------------

def _report_path(template: str | None, suite: str, many: bool) -> Path | None:
    if not template:
        return None
    path = Path(template)
    if many:
        path = path.with_name(f"{path.stem}-{suite}{path.suffix}")
    return path


def write_reports(summary: RunSummary, args, many: bool, logger: logging.Logger):
    print(render_text(summary))
    for template, writer in (
        (args.report, generate_text_report),
        (args.json_report, generate_json_report),
        (getattr(args, "html_report", None), generate_html_report),
    ):
        path = _report_path(template, summary.suite, many)
        if path:
            writer(summary, path)
            logger.info(f"Report: {path}")


def write_suggestion(summary: RunSummary, blocklist, args, many: bool, logger: logging.Logger):
    suggestion = suggest_blocklist(summary, blocklist)
    if suggestion is None:
        return
    path = _report_path(getattr(args, "suggest_blocklist", None), summary.suite, many)
    if path:
        write_report(path, suggestion)
        logger.info(f"Suggested blocklist: {path}")
    else:
        logger.info(f"{blocklist.name} is out of date, suggested update:\n{suggestion}")


# ---------------------------------------------------------------------------
# wren run
# ---------------------------------------------------------------------------

def cmd_run(args) -> int:
    """Run suites against the target database and score them."""
    logger = setup_logging(args.verbose)

    try:
        suites = load_suites(Path(args.config))
        tag_filter = {t.strip().lower() for t in args.tags.split(",")} if args.tags else None
        selected = filter_suites(suites, args.suite, tag_filter)
        if not selected:
            raise ConfigurationError("No suites match the given names or tags")
        shared = load_connections(Path(args.connections)) if args.connections else {}
    except WrenError as e:
        logger.error(str(e))
        return EXIT_FATAL

    logger.info(f"Running {len(selected)} suite(s): {', '.join(s.name for s in selected)}")
    many = len(selected) > 1
    exit_code = EXIT_OK
    workdir = Path(args.workdir)

    for suite in selected:
        conn_mgr = ConnectionManager(shared)
        collaborators = LocalCollaborators(suite, conn_mgr, args.connection, logger)
        try:
            table = suite.load_expectations()
            summary = run_compatibility_suite(
                suite, args.target_version, collaborators, workdir, logger,
                pinned_tag=args.pinned_tag, table=table,
            )
            lists = resolve_expectations(table, suite, VersionKey.parse(args.target_version))
        except WrenError as e:
            logger.error(f"{ICON_FAIL} {suite.name}: {e}")
            exit_code = max(exit_code, EXIT_FATAL)
            continue
        finally:
            collaborators.close()

        try:
            write_reports(summary, args, many, logger)
            write_suggestion(summary, lists.blocklist, args, many, logger)
        except WrenError as e:
            logger.error(f"{ICON_FAIL} {suite.name}: {e}")
            exit_code = max(exit_code, EXIT_FATAL)
            continue
        icon = ICON_FAIL if summary.exit_code else ICON_PASS
        logger.info(f"{icon} {suite.name}: {len(summary.regressions)} regression(s)")
        exit_code = max(exit_code, summary.exit_code)

    return exit_code


# ---------------------------------------------------------------------------
# wren score
# ---------------------------------------------------------------------------

def cmd_score(args) -> int:
    """Reconcile an existing JUnit report without running anything."""
    logger = setup_logging(args.verbose)
    try:
        suites = load_suites(Path(args.config))
        suite = filter_suites(suites, [args.suite])[0]
        version = VersionKey.parse(args.target_version)
        lists = resolve_expectations(suite.load_expectations(), suite, version)

        list_path, junit_path = Path(args.test_list), Path(args.junit)
        for path in (list_path, junit_path):
            if not path.exists():
                raise ConfigurationError(f"File not found: {path}")
        discovered = parse_test_list(list_path.read_text(encoding="utf-8"))
        raw = RunnerOutput(report=junit_path.read_text(encoding="utf-8"))
        summary = score(suite, version, lists, discovered, raw, pinned_tag=suite.supported_tag)
    except WrenError as e:
        logger.error(str(e))
        return EXIT_FATAL

    try:
        write_reports(summary, args, False, logger)
        write_suggestion(summary, lists.blocklist, args, False, logger)
    except WrenError as e:
        logger.error(str(e))
        return EXIT_FATAL
    return summary.exit_code


# ---------------------------------------------------------------------------
# wren validate
# ---------------------------------------------------------------------------

def cmd_validate(args) -> int:
    """Load every suite and expectation table and report problems."""
    logger = setup_logging(args.verbose)
    try:
        suites = load_suites(Path(args.config))
    except WrenError as e:
        logger.error(f"  {ICON_FAIL} {e}")
        return EXIT_FATAL

    errors = 0
    for suite in suites.values():
        try:
            table = suite.load_expectations()
        except WrenError as e:
            logger.error(f"  {ICON_FAIL} {suite.name}: {e}")
            errors += 1
            continue

        versions = ", ".join(row.scope for row in table.rows()) or "none"
        if not table.rows():
            logger.warning(f"  {ICON_WARN}  {suite.name}: no versions defined")
        for scope, tests in table.overlaps().items():
            logger.warning(
                f"  {ICON_WARN}  {suite.name} {scope}: in both lists, will be skipped: "
                f"{', '.join(tests)}"
            )
        logger.info(f"  {ICON_PASS} {suite.name}: versions {versions}")

    if errors:
        logger.info(f"\n{errors} suite(s) have errors")
        return EXIT_FATAL
    logger.info(f"\nAll {len(suites)} suite(s) valid")
    return EXIT_OK


# ---------------------------------------------------------------------------
# wren init
# ---------------------------------------------------------------------------

INIT_SUITES = textwrap.dedent("""\
    # Wren suites
    # ===========
    # Each suite is a client library whose own test suite is run against the
    # database under test. Use ${ENV_VAR} or ${ENV_VAR:default} for settings.

    suites:
      libpq:
        repo: lib/pq
        supported_tag: v1.10.0
        release_tag_pattern: '^v(?P<major>\\d+)\\.(?P<minor>\\d+)\\.(?P<point>\\d+)$'
        test_pattern: '^(Test|Example)'
        expectations: expectations/libpq.yaml
        min_version: v20.1.0
        env:
          PGPORT: "${DB_PORT:26257}"
          PGUSER: root
          PGSSLMODE: disable
          PGDATABASE: postgres
        tags: [default, driver]
""")

INIT_CONNECTIONS = textwrap.dedent("""\
    # Wren connections
    # ================
    # Reference these by name with --connection.

    local:
      server: localhost
      port: ${DB_PORT:26257}
      database: defaultdb
      username: root
      # driver: "PostgreSQL Unicode"
""")

INIT_EXPECTATIONS = textwrap.dedent("""\
    # Expected failures (blocklists) and tests never run (ignorelists),
    # per database version or release line. "*" applies to every version.

    versions:
      - version: v21.1
        blocklist: libpqBlocklist21_1
        ignorelist: libpqIgnorelist21_1

    blocklists:
      libpqBlocklist21_1:
        TestCopyInRaiseStmtTrigger: "COPY inside triggers is unsupported"

    ignorelists:
      libpqIgnorelist21_1:
        TestBinaryByteSlicetoUUID: "flaky"
""")


def cmd_init(args) -> int:
    """Scaffold a new Wren workspace."""
    target = Path(args.directory)
    expectations_dir = target / "expectations"

    if expectations_dir.exists() and any(expectations_dir.iterdir()):
        print(f"{ICON_WARN}  {expectations_dir} already exists and is not empty. Aborting.")
        return EXIT_FATAL

    expectations_dir.mkdir(parents=True, exist_ok=True)
    for path, content in (
        (target / "suites.yaml", INIT_SUITES),
        (target / "connections.yaml", INIT_CONNECTIONS),
        (expectations_dir / "libpq.yaml", INIT_EXPECTATIONS),
    ):
        if not path.exists():
            path.write_text(content, encoding="utf-8")
            print(f"  Created {path}")

    print(f"""
{ICON_PASS} Workspace ready at {target.resolve()}

Next steps:
  1. Edit connections.yaml with your database details
  2. Record expected failures in expectations/
  3. Run a suite:

     wren run -c {target / "suites.yaml"} --connections {target / "connections.yaml"} \\
       --connection local --suite libpq --target-version v21.1.0
""")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wren",
        description="Wren: run client library test suites against a database build",
    )
    parser.add_argument("--version", action="version", version=f"wren {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- wren run ---
    run_parser = subparsers.add_parser("run", help="Run suites and score them")
    run_parser.add_argument("--config", "-c", required=True, help="Suites YAML file")
    run_parser.add_argument("--suite", "-s", action="append", help="Suite to run (repeatable)")
    run_parser.add_argument("--tags", help="Run suites with these tags (comma-separated)")
    run_parser.add_argument("--target-version", required=True, help="Database version under test")
    run_parser.add_argument("--pinned-tag", help="Client library tag (default: suite's supported_tag)")
    run_parser.add_argument("--connections", help="Shared connections YAML file")
    run_parser.add_argument("--connection", default="local", help="Connection name (default: local)")
    run_parser.add_argument("--workdir", default="./wren-work", help="Checkout directory")
    run_parser.add_argument("--report", "-r", help="Output text report path")
    run_parser.add_argument("--json-report", "-j", help="Output JSON report path")
    run_parser.add_argument("--html-report", help="Output HTML report path")
    run_parser.add_argument("--suggest-blocklist", help="Write the suggested blocklist here")
    run_parser.add_argument("--verbose", "-v", action="store_true")
    run_parser.set_defaults(func=cmd_run)

    # --- wren score ---
    score_parser = subparsers.add_parser("score", help="Score an existing JUnit report")
    score_parser.add_argument("--config", "-c", required=True, help="Suites YAML file")
    score_parser.add_argument("--suite", "-s", required=True)
    score_parser.add_argument("--target-version", required=True)
    score_parser.add_argument("--junit", required=True, help="JUnit XML report")
    score_parser.add_argument("--test-list", required=True, help="Output of `go test -list`")
    score_parser.add_argument("--report", "-r", help="Output text report path")
    score_parser.add_argument("--json-report", "-j", help="Output JSON report path")
    score_parser.add_argument("--html-report", help="Output HTML report path")
    score_parser.add_argument("--suggest-blocklist", help="Write the suggested blocklist here")
    score_parser.add_argument("--verbose", "-v", action="store_true")
    score_parser.set_defaults(func=cmd_score)

    # --- wren validate ---
    validate_parser = subparsers.add_parser("validate", help="Check suites and expectation tables")
    validate_parser.add_argument("--config", "-c", required=True, help="Suites YAML file")
    validate_parser.add_argument("--verbose", "-v", action="store_true")
    validate_parser.set_defaults(func=cmd_validate)

    # --- wren init ---
    init_parser = subparsers.add_parser("init", help="Scaffold a new workspace")
    init_parser.add_argument("directory", nargs="?", default=".", help="Target directory (default: current)")
    init_parser.set_defaults(func=cmd_init)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args))
