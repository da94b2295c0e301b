"""
Report generation: text, JSON, HTML and a suggested blocklist.

Reports carry no timestamps so that runs against successive database
versions can be diffed.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import html
import json
from pathlib import Path
from typing import Optional

import yaml

from .errors import ReportError
from .expectations import ExpectationList
from .reconcile import RunSummary, TestVerdict, Verdict

LABELS = {
    Verdict.EXPECTED_PASS: "passed (expected)",
    Verdict.UNEXPECTED_PASS: "passed unexpectedly (newly fixed)",
    Verdict.EXPECTED_FAIL: "failed (expected)",
    Verdict.UNEXPECTED_FAIL: "failed unexpectedly (regression)",
    Verdict.SKIPPED: "skipped",
}

NEW_FAILURE_REASON = "unknown (newly failing)"


def _verdict_dict(v: TestVerdict) -> dict:
    return {
        "test": v.name,
        "verdict": v.verdict.value,
        "outcome": v.outcome.value if v.outcome else None,
        "annotation": v.annotation,
        "reason": v.reason,
    }


def summary_to_dict(summary: RunSummary) -> dict:
    return {
        "suite": summary.suite,
        "target_version": summary.target_version,
        "blocklist": summary.blocklist_name,
        "ignorelist": summary.ignorelist_name,
        "pinned_tag": summary.pinned_tag,
        "latest_tag": summary.latest_tag,
        "newer_tag_available": summary.newer_tag_available,
        "counts": {v.value: n for v, n in summary.counts},
        "total": summary.total,
        "regressions": [_verdict_dict(v) for v in summary.regressions],
        "newly_fixed": [_verdict_dict(v) for v in summary.newly_fixed],
        "incomplete": [_verdict_dict(v) for v in summary.incomplete],
        "stale_expectations": list(summary.stale_expectations),
        "exit_code": summary.exit_code,
    }


def render_json(summary: RunSummary) -> str:
    return json.dumps(summary_to_dict(summary), indent=2, sort_keys=True) + "\n"


def render_text(summary: RunSummary) -> str:
    lines = [
        f"Suite: {summary.suite or '-'}",
        f"Target version: {summary.target_version or '-'}",
        f"Blocklist: {summary.blocklist_name or '-'}",
        f"Ignorelist: {summary.ignorelist_name or '-'}",
        "",
        f"Tests: {summary.total}",
    ]
    for verdict, n in summary.counts:
        lines.append(f"  {n:>5} {LABELS[verdict]}")

    if summary.regressions:
        lines += ["", f"Regressions (not in {summary.blocklist_name or 'blocklist'}):"]
        for v in summary.regressions:
            note = f" [{v.annotation}]" if v.annotation else ""
            lines.append(f"  --- FAIL: {v.name}{note}")

    if summary.newly_fixed:
        lines += ["", f"Newly fixed (stale entries in {summary.blocklist_name or 'blocklist'}):"]
        for v in summary.newly_fixed:
            lines.append(f"  --- PASS: {v.name} (listed as: {v.reason or 'no reason'})")

    if summary.incomplete:
        lines += ["", "Did not complete:"]
        for v in summary.incomplete:
            expected = "expected" if v.verdict is Verdict.EXPECTED_FAIL else "unexpected"
            lines.append(f"  --- FAIL: {v.name} ({expected}) [{v.annotation}]")

    if summary.stale_expectations:
        lines += ["", "Blocklisted but not discovered:"]
        lines += [f"  {name}" for name in summary.stale_expectations]

    if summary.newer_tag_available:
        lines += [
            "",
            f"A newer release ({summary.latest_tag}) is available than the "
            f"supported one ({summary.pinned_tag}); consider updating the pin.",
        ]
    return "\n".join(lines) + "\n"


def suggest_blocklist(summary: RunSummary, blocklist: ExpectationList) -> Optional[str]:
    """
    YAML for an updated blocklist: newly fixed tests removed, regressions
    added. Only the list's own row is written, never entries merged in from
    the "*" row. None when the blocklist is already accurate.
    """
    if not summary.regressions and not summary.newly_fixed:
        return None
    fixed = {v.name for v in summary.newly_fixed}
    own = blocklist.own_entries()
    tests = {name: entry.reason for name, entry in own.items() if name not in fixed}
    for v in summary.regressions:
        tests[v.name] = NEW_FAILURE_REASON
    return yaml.safe_dump({blocklist.name: dict(sorted(tests.items()))}, sort_keys=False)


def write_report(path: Path, text: str):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ReportError(f"Could not write {path}: {e}") from e


def generate_text_report(summary: RunSummary, path: Path):
    write_report(path, render_text(summary))


def generate_json_report(summary: RunSummary, path: Path):
    write_report(path, render_json(summary))


def generate_html_report(summary: RunSummary, path: Path):
    """Write a self-contained HTML report."""
    count_rows = "".join(
        f"<tr><td>{LABELS[v]}</td><td>{n}</td></tr>" for v, n in summary.counts
    )

    def verdict_rows(verdicts, color):
        return "".join(
            f'<tr style="background:{color}">'
            f"<td><strong>{html.escape(v.name)}</strong></td>"
            f"<td>{html.escape(v.annotation or '')}</td>"
            f"<td>{html.escape(v.reason or '')}</td>"
            f"</tr>"
            for v in verdicts
        )

    doc = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Wren Compatibility Report</title>
<style>
  body {{ font-family: system-ui, sans-serif; margin: 2rem; background: #fafafa; }}
  h1 {{ color: #333; }}
  table {{ border-collapse: collapse; width: 100%; margin-top: 1rem; }}
  th, td {{ border: 1px solid #ccc; padding: 8px 12px; text-align: left; vertical-align: top; }}
  th {{ background: #333; color: white; }}
</style></head><body>
<h1>{html.escape(summary.suite or "Wren")} against {html.escape(summary.target_version or "?")}</h1>
<p>Blocklist: {html.escape(summary.blocklist_name or "-")} &mdash;
Ignorelist: {html.escape(summary.ignorelist_name or "-")}</p>
<table><tr><th>Category</th><th>Tests</th></tr>{count_rows}</table>
<h2>Regressions</h2>
<table><tr><th>Test</th><th>Failure</th><th>Listed as</th></tr>{verdict_rows(summary.regressions, "#ffe6e6")}</table>
<h2>Newly fixed</h2>
<table><tr><th>Test</th><th>Note</th><th>Listed as</th></tr>{verdict_rows(summary.newly_fixed, "#e6ffe6")}</table>
<h2>Did not complete</h2>
<table><tr><th>Test</th><th>Note</th><th>Listed as</th></tr>{verdict_rows(summary.incomplete, "#fff4e0")}</table>
</body></html>"""
    write_report(path, doc)
