"""Shared fixtures for the Wren test suite."""

from pathlib import Path

import pytest

from wren.config import SuiteSpec
from wren.expectations import ExpectationEntry, ExpectationList
from wren.outcomes import Outcome, TestOutcome


def build_junit(cases) -> str:
    """cases: iterable of (name, status, message) with status pass/fail/error/skip."""
    body = []
    for name, status, message in cases:
        if status == "pass":
            body.append(f'<testcase classname="pq" name="{name}" time="0.01"></testcase>')
        elif status == "skip":
            body.append(
                f'<testcase classname="pq" name="{name}" time="0"><skipped message="{message}"/></testcase>'
            )
        else:
            body.append(
                f'<testcase classname="pq" name="{name}" time="0.02">'
                f'<{status} message="{message}" type="">{message}</{status}></testcase>'
            )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n<testsuites>'
        f'<testsuite tests="{len(body)}" failures="0" time="1.0" name="github.com/lib/pq">'
        + "".join(body)
        + "</testsuite></testsuites>"
    )


@pytest.fixture
def junit():
    return build_junit


@pytest.fixture
def make_list():
    def _make(name, *tests, scope="v21.1"):
        return ExpectationList(name, {
            t: ExpectationEntry(t, f"#{i} known issue", scope) for i, t in enumerate(tests, 1)
        })
    return _make


@pytest.fixture
def outcomes():
    def _outcomes(**by_name):
        return {
            name: TestOutcome(name, Outcome.PASS if status == "pass" else Outcome.FAIL)
            for name, status in by_name.items()
        }
    return _outcomes


@pytest.fixture
def suite():
    return SuiteSpec(
        name="libpq",
        repo="lib/pq",
        supported_tag="v1.10.0",
        expectations=Path("expectations/libpq.yaml"),
        test_pattern="^(Test|Example)",
        min_version="v20.1.0",
        tags=("default", "driver"),
    )


@pytest.fixture
def table_data():
    return {
        "versions": [
            {"version": "v20.2", "blocklist": "bl20_2"},
            {"version": "v21.1", "blocklist": "bl21_1", "ignorelist": "il21_1"},
            {"version": "v21.1.3", "blocklist": "bl21_1_3", "ignorelist": "il21_1"},
        ],
        "blocklists": {
            "bl20_2": {"TestOld": "#100 old failure"},
            "bl21_1": {"TestCopy": "#200 COPY unsupported", "TestNotify": "#201 LISTEN"},
            "bl21_1_3": {"TestCopy": "#200 COPY unsupported"},
        },
        "ignorelists": {
            "il21_1": {"TestFlaky": "flaky"},
        },
    }
