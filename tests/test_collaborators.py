"""Tests for wren.collaborators and wren.database with subprocess and ODBC stubbed out."""

import logging
import subprocess

import pytest

pytest.importorskip("pyodbc")

from wren.collaborators import ClusterHandle, LocalCollaborators  # noqa: E402
from wren.database import ConnectionManager, create_database, version_from_banner  # noqa: E402
from wren.errors import CollaboratorError, ConfigurationError  # noqa: E402


class FakeProcess:
    """Scripted replacement for subprocess.run."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        returncode, stdout = result
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="err")


@pytest.fixture
def local(suite):
    conn_mgr = ConnectionManager({"local": {"server": "localhost"}})
    return LocalCollaborators(suite, conn_mgr, "local", logging.getLogger("wren.tests"))


def test_provision_resolves_named_connection(local):
    handle = local.provision_cluster()
    assert handle == ClusterHandle("local", {"server": "localhost"})


def test_discover_tests(local, monkeypatch, tmp_path):
    fake = FakeProcess((0, "TestA\nExampleB\nok  \tgithub.com/lib/pq\t0.01s\n"))
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    assert local.discover_tests(tmp_path, "^(Test|Example)") == ["TestA", "ExampleB"]
    cmd, kwargs = fake.calls[0]
    assert cmd == ["go", "test", "-list", "^(Test|Example)"]
    assert kwargs["cwd"] == tmp_path


def test_discover_failure(local, monkeypatch, tmp_path):
    monkeypatch.setattr("wren.collaborators.subprocess.run", FakeProcess((1, "")))
    with pytest.raises(CollaboratorError):
        local.discover_tests(tmp_path, None)


def test_execute_converts_to_junit(local, monkeypatch, tmp_path):
    fake = FakeProcess((1, "=== RUN   TestA\n--- FAIL: TestA\n"), (0, "<testsuites/>"))
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    raw = local.execute_tests(tmp_path, ["TestA", "TestB"])
    assert raw.report == "<testsuites/>"
    assert raw.returncode == 1
    assert not raw.cancelled
    go_cmd, go_kwargs = fake.calls[0]
    assert go_cmd == ["go", "test", "-run", "^(TestA|TestB)$", "-v"]
    assert go_kwargs["env"]["PATH"]
    assert fake.calls[1][0] == ["go-junit-report"]


def test_execute_pipes_combined_output(local, monkeypatch, tmp_path):
    output = "=== RUN   TestA\npanic: boom\n--- FAIL: TestA\n"
    fake = FakeProcess((1, output), (0, "<testsuites/>"))
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    local.execute_tests(tmp_path, ["TestA"])
    assert fake.calls[0][1]["stderr"] is subprocess.STDOUT
    assert fake.calls[1][1]["input"] == output


def test_execute_timeout_is_cancellation(local, monkeypatch, tmp_path):
    fake = FakeProcess(subprocess.TimeoutExpired(["go"], 1))
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    assert local.execute_tests(tmp_path, ["TestA"]).cancelled


def test_execute_nothing_selected(local, monkeypatch, tmp_path):
    fake = FakeProcess()
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    assert local.execute_tests(tmp_path, []).report == ""
    assert fake.calls == []


def test_clone_replaces_old_checkout(local, monkeypatch, tmp_path):
    dest = tmp_path / "libpq"
    dest.mkdir()
    (dest / "stale.go").write_text("package pq", encoding="utf-8")
    fake = FakeProcess((0, ""))
    monkeypatch.setattr("wren.collaborators.subprocess.run", fake)
    local.clone_at_tag("https://github.com/lib/pq.git", "v1.10.0", dest)
    assert not dest.exists()
    assert fake.calls[0][0] == [
        "git", "clone", "--depth", "1", "--branch", "v1.10.0",
        "https://github.com/lib/pq.git", str(dest),
    ]


def test_clone_failure(local, monkeypatch, tmp_path):
    monkeypatch.setattr("wren.collaborators.subprocess.run", FakeProcess((128, "")))
    with pytest.raises(CollaboratorError, match="git clone"):
        local.clone_at_tag("https://github.com/lib/pq.git", "v9.9.9", tmp_path / "x")


def test_clone_cannot_prepare_checkout(local, monkeypatch, tmp_path):
    dest = tmp_path / "libpq"
    dest.mkdir()

    def refuse(path):
        raise PermissionError(f"denied: {path}")

    monkeypatch.setattr("wren.collaborators.shutil.rmtree", refuse)
    monkeypatch.setattr("wren.collaborators.subprocess.run", FakeProcess())
    with pytest.raises(CollaboratorError, match="Could not prepare checkout"):
        local.clone_at_tag("https://github.com/lib/pq.git", "v1.10.0", dest)


def test_missing_binary(local, monkeypatch, tmp_path):
    monkeypatch.setattr("wren.collaborators.subprocess.run", FakeProcess(FileNotFoundError("go")))
    with pytest.raises(CollaboratorError, match="Could not run go"):
        local.discover_tests(tmp_path, None)


class TestDatabase:
    def test_connection_string(self):
        conn_str = ConnectionManager._build_connection_string({
            "server": "db1", "port": 26257, "database": "gorm", "username": "root",
            "odbc_extras": {"ApplicationName": "wren"},
        })
        assert conn_str == (
            "DRIVER={PostgreSQL Unicode};SERVER=db1;PORT=26257;DATABASE=gorm;UID=root;"
            "SSLMODE=disable;ApplicationName=wren"
        )

    def test_unknown_connection_name(self):
        with pytest.raises(ConfigurationError, match="not found"):
            ConnectionManager({}).resolve("nope")

    @pytest.mark.parametrize("banner,expected", [
        ("CockroachDB CCL v21.1.3 (x86_64-unknown-linux-gnu, built 2021/06/21)", "v21.1.3"),
        ("CockroachDB CCL v21.2.0-beta.2 (x86_64)", "v21.2.0-beta.2"),
        ("PostgreSQL 13.3", None),
    ])
    def test_version_from_banner(self, banner, expected):
        assert version_from_banner(banner) == expected

    def test_create_database_rejects_bad_names(self):
        with pytest.raises(ConfigurationError):
            create_database(None, "gorm; DROP DATABASE x")
