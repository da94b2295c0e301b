"""Tests for wren.reports."""

import dataclasses
import json

import pytest
import yaml

from wren import outcomes as outcome_types
from wren.errors import ReportError
from wren.expectations import ExpectationList, table_from_dict
from wren.outcomes import DID_NOT_COMPLETE, Outcome
from wren.reconcile import reconcile
from wren.reports import (
    NEW_FAILURE_REASON,
    generate_html_report,
    generate_json_report,
    generate_text_report,
    render_json,
    render_text,
    suggest_blocklist,
)


@pytest.fixture
def blocklist(make_list):
    return make_list("libpqBlocklist21_1", "TestFixed", "TestStillBroken", "TestGone")


@pytest.fixture
def summary(blocklist, make_list, outcomes):
    results = outcomes(TestOk="pass", TestNew="fail", TestFixed="pass", TestStillBroken="fail")
    summary = reconcile(results, blocklist, make_list("libpqIgnorelist21_1", "TestFlaky"),
                        ["TestOk", "TestNew", "TestFixed", "TestStillBroken", "TestFlaky"])
    return dataclasses.replace(
        summary, suite="libpq", target_version="v21.1.3",
        pinned_tag="v1.10.0", latest_tag="v1.10.7", newer_tag_available=True,
    )


class TestRenderText:
    def test_sections(self, summary):
        text = render_text(summary)
        assert "Suite: libpq" in text
        assert "Tests: 5" in text
        assert "Regressions (not in libpqBlocklist21_1):" in text
        assert "--- FAIL: TestNew" in text
        assert "--- PASS: TestFixed (listed as: #1 known issue)" in text
        assert "Blocklisted but not discovered:\n  TestGone" in text
        assert "v1.10.7" in text

    def test_clean_run_has_no_problem_sections(self, make_list, outcomes):
        summary = reconcile(outcomes(TestOk="pass"), make_list("bl"), ExpectationList(""), ["TestOk"])
        text = render_text(summary)
        assert "Regressions" not in text
        assert "Newly fixed" not in text

    def test_stable(self, summary):
        assert render_text(summary) == render_text(dataclasses.replace(summary))


class TestRenderJson:
    def test_content(self, summary):
        data = json.loads(render_json(summary))
        assert data["counts"] == {
            "expected_pass": 1,
            "unexpected_pass": 1,
            "expected_fail": 1,
            "unexpected_fail": 1,
            "skipped": 1,
        }
        assert [r["test"] for r in data["regressions"]] == ["TestNew"]
        assert data["newly_fixed"][0]["reason"] == "#1 known issue"
        assert data["stale_expectations"] == ["TestGone"]
        assert data["exit_code"] == 1
        assert data["newer_tag_available"] is True

    def test_no_timestamps(self, summary):
        data = json.loads(render_json(summary))
        assert not any("time" in key for key in data)

    def test_keys_sorted(self, summary):
        text = render_json(summary)
        assert text == json.dumps(json.loads(text), indent=2, sort_keys=True) + "\n"


class TestSuggestBlocklist:
    def test_removes_fixed_and_adds_regressions(self, summary, blocklist):
        suggestion = yaml.safe_load(suggest_blocklist(summary, blocklist))
        assert suggestion == {
            "libpqBlocklist21_1": {
                "TestGone": "#3 known issue",
                "TestNew": NEW_FAILURE_REASON,
                "TestStillBroken": "#2 known issue",
            }
        }

    def test_nothing_to_suggest(self, make_list, outcomes):
        blocklist = make_list("bl", "TestBroken")
        summary = reconcile(outcomes(TestBroken="fail"), blocklist, ExpectationList(""), ["TestBroken"])
        assert suggest_blocklist(summary, blocklist) is None

    def test_leaves_wildcard_entries_out(self, outcomes):
        table = table_from_dict({
            "versions": [
                {"version": "*", "blocklist": "always"},
                {"version": "v21.1", "blocklist": "bl21_1"},
            ],
            "blocklists": {
                "always": {"TestSSL": "no ssl in CI"},
                "bl21_1": {"TestCopy": "copy unsupported"},
            },
        })
        lists = table.get_lists("v21.1.0")
        assert set(lists.blocklist) == {"TestSSL", "TestCopy"}
        results = outcomes(TestSSL="fail", TestCopy="fail", TestNew="fail")
        summary = reconcile(results, lists.blocklist, lists.ignorelist,
                            ["TestSSL", "TestCopy", "TestNew"])
        suggestion = yaml.safe_load(suggest_blocklist(summary, lists.blocklist))
        assert suggestion == {
            "bl21_1": {"TestCopy": "copy unsupported", "TestNew": NEW_FAILURE_REASON}
        }


class TestReportFiles:
    def test_writes_all_formats(self, summary, tmp_path):
        generate_text_report(summary, tmp_path / "report.txt")
        generate_json_report(summary, tmp_path / "report.json")
        generate_html_report(summary, tmp_path / "report.html")

        assert (tmp_path / "report.txt").read_text(encoding="utf-8") == render_text(summary)
        assert json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))["suite"] == "libpq"
        html = (tmp_path / "report.html").read_text(encoding="utf-8")
        assert "TestNew" in html

    def test_unwritable_path(self, summary, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(ReportError, match="Could not write"):
            generate_json_report(summary, blocker / "report.json")

    def test_incomplete_tests_are_listed(self, make_list, tmp_path):
        crashed = outcome_types.TestOutcome("TestCrash", Outcome.FAIL, DID_NOT_COMPLETE)
        summary = reconcile({"TestCrash": crashed}, make_list("bl", "TestCrash"),
                            ExpectationList(""), ["TestCrash"])
        generate_html_report(summary, tmp_path / "report.html")
        html = (tmp_path / "report.html").read_text(encoding="utf-8")
        assert "Did not complete" in html
        assert "TestCrash" in html
        assert "Did not complete:" in render_text(summary)
        data = json.loads(render_json(summary))
        assert data["incomplete"][0]["annotation"] == DID_NOT_COMPLETE
        assert "libpqBlocklist21_1" in html

    def test_html_escapes_names(self, make_list, outcomes, tmp_path):
        summary = reconcile(outcomes(**{"Test<b>": "fail"}), make_list("bl"), ExpectationList(""), ["Test<b>"])
        generate_html_report(summary, tmp_path / "r.html")
        assert "Test&lt;b&gt;" in (tmp_path / "r.html").read_text(encoding="utf-8")
