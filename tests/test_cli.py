"""Tests for the evbuild command line."""

import json

import pytest
from click.testing import CliRunner

import evbuild.cli
import evbuild.pipeline
from conftest import write_unit
from evbuild.cli import cli
from evbuild.git.fingerprint import ContentFingerprinter
from evbuild.store import VersionStore
from evbuild.versions.build_key import compute_build_key

CORE = "@workspace/core"
CHAT = "@workspace-panels/chat"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def ws(workspace, fake_git, monkeypatch):
    """Two committed units, with every git call routed to the in-memory double."""
    core_dir = write_unit(workspace, "packages", "core", CORE)
    chat_dir = write_unit(workspace, "panels", "chat", CHAT,
                          dependencies={CORE: "workspace:*"},
                          natstack={"sourcemap": False})
    for unit_dir in (core_dir, chat_dir):
        fake_git.commit(unit_dir, {
            "package.json": (unit_dir / "package.json").read_text(),
            "index.ts": f"// {unit_dir.name}",
        })

    monkeypatch.setattr(evbuild.pipeline, "_make_fingerprinter",
                        lambda config: ContentFingerprinter(git=fake_git))
    monkeypatch.setattr(evbuild.cli, "ContentFingerprinter",
                        lambda: ContentFingerprinter(git=fake_git))
    return workspace


class TestKey:
    def test_prints_key(self, runner):
        result = runner.invoke(cli, ["key", CHAT, "0123456789abcdef"])
        assert result.exit_code == 0
        assert result.output.strip() == compute_build_key(CHAT, "0123456789abcdef", True)

    def test_no_sourcemap(self, runner):
        result = runner.invoke(cli, ["key", CHAT, "0123456789abcdef", "--no-sourcemap"])
        assert result.output.strip() == compute_build_key(CHAT, "0123456789abcdef", False)


class TestGraph:
    def test_lists_units_in_order(self, runner, ws):
        result = runner.invoke(cli, ["graph", str(ws)])
        assert result.exit_code == 0
        assert "Found 2 unit(s)" in result.output
        assert result.output.index(CORE) < result.output.index(CHAT)

    def test_empty_workspace(self, runner, workspace):
        result = runner.invoke(cli, ["graph", str(workspace)])
        assert result.exit_code == 0
        assert "No units found." in result.output

    def test_cycle_is_reported(self, runner, workspace):
        write_unit(workspace, "packages", "a", "@workspace/a", dependencies={"@workspace/b": "*"})
        write_unit(workspace, "packages", "b", "@workspace/b", dependencies={"@workspace/a": "*"})
        result = runner.invoke(cli, ["graph", str(workspace)])
        assert result.exit_code == 1
        assert "Dependency cycle detected" in result.output


class TestVersions:
    def test_first_run_then_unchanged(self, runner, ws, tmp_path):
        data_dir = tmp_path / "data"
        first = runner.invoke(cli, ["versions", str(ws), "--data-dir", str(data_dir)])
        assert first.exit_code == 0, first.output
        assert "0 changed, 2 added, 0 removed" in first.output
        assert json.loads((data_dir / "ev-map.json").read_text()).keys() == {CORE, CHAT}

        second = runner.invoke(cli, ["versions", str(ws), "--data-dir", str(data_dir)])
        assert "0 changed, 0 added, 0 removed" in second.output

    def test_full(self, runner, ws, tmp_path):
        result = runner.invoke(cli, ["versions", str(ws), "--data-dir", str(tmp_path / "d"), "--full"])
        assert result.exit_code == 0, result.output
        assert "2 added" in result.output


class TestBuildKeys:
    def test_buildable_units_only(self, runner, ws, tmp_path):
        store = VersionStore(tmp_path / "data")
        store.save_ev_map({CORE: "a" * 16, CHAT: "b" * 16})
        result = runner.invoke(cli, ["build-keys", str(ws), "--data-dir", str(store.data_dir)])
        assert result.exit_code == 0
        assert CHAT in result.output
        assert CORE not in result.output
        assert compute_build_key(CHAT, "b" * 16, False) in result.output


class TestPush:
    def test_incremental_push(self, runner, ws, fake_git, tmp_path):
        data_dir = tmp_path / "data"
        runner.invoke(cli, ["versions", str(ws), "--data-dir", str(data_dir)])
        core_dir = ws / "packages" / "core"
        sha = fake_git.commit(core_dir, {
            "package.json": (core_dir / "package.json").read_text(),
            "index.ts": "// core v2",
        })

        result = runner.invoke(cli, ["push", str(ws), "packages/core", "main", sha, "--data-dir", str(data_dir)])
        assert result.exit_code == 0, result.output
        assert "(incremental)" in result.output
        assert "To build:" in result.output

    def test_unknown_repo(self, runner, ws, tmp_path):
        result = runner.invoke(cli, ["push", str(ws), "packages/nope", "main", "f" * 40,
                                     "--data-dir", str(tmp_path / "data")])
        assert result.exit_code == 1
        assert "No unit at packages/nope" in result.output


class TestExtract:
    def test_copy_to_output(self, runner, ws, tmp_path):
        out = tmp_path / "out"
        result = runner.invoke(cli, ["extract", str(ws), CHAT, "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert (out / "panels" / "chat" / "index.ts").read_text() == "// chat"
        assert (out / "packages" / "core" / "package.json").exists()

    def test_unknown_unit(self, runner, ws):
        result = runner.invoke(cli, ["extract", str(ws), "@workspace/nope"])
        assert result.exit_code == 1
        assert "Unknown unit" in result.output
