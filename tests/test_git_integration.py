"""End-to-end checks against real git repositories."""

import shutil
import subprocess

import pytest

from conftest import write_unit
from evbuild.errors import GitError
from evbuild.extractor import extract_source_for_build
from evbuild.git import ContentFingerprinter, GitRunner
from evbuild.graph import discover_unit_graph
from evbuild.versions import EffectiveVersionComputer, diff_ev_maps

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

CORE = "@workspace/core"
CHAT = "@workspace-panels/chat"


def _git(cwd, *args):
    subprocess.run(
        ["git", "-c", "user.name=evbuild", "-c", "user.email=evbuild@example.com", *args],
        cwd=cwd, check=True, capture_output=True,
    )


def _init_repo(unit_dir, branch="main"):
    _git(unit_dir, "init", "-q")
    _git(unit_dir, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    _git(unit_dir, "add", "-A")
    _git(unit_dir, "commit", "-q", "-m", "initial")


def _commit_file(unit_dir, name, content):
    (unit_dir / name).write_text(content)
    _git(unit_dir, "add", "-A")
    _git(unit_dir, "commit", "-q", "-m", f"update {name}")


@pytest.fixture
def real_ws(workspace):
    core_dir = write_unit(workspace, "packages", "core", CORE)
    chat_dir = write_unit(workspace, "panels", "chat", CHAT, dependencies={CORE: "workspace:*"})
    (core_dir / "index.ts").write_text("export const core = 1;\n")
    (chat_dir / "index.tsx").write_text("render();\n")
    _init_repo(core_dir)
    _init_repo(chat_dir, branch="master")
    return workspace


def test_runner_reports_failures(tmp_path):
    with pytest.raises(GitError) as exc_info:
        GitRunner().run(["rev-parse", "--verify", "refs/heads/does-not-exist"], tmp_path)
    assert "rev-parse" in str(exc_info.value)


def test_versions_follow_commits(real_ws):
    graph = discover_unit_graph(real_ws)
    fingerprinter = ContentFingerprinter()
    assert fingerprinter.resolve_main_ref(graph.get(CHAT).path) == "refs/heads/master"

    before = EffectiveVersionComputer(graph, fingerprinter).compute_all()
    assert set(before) == {CORE, CHAT}

    _commit_file(graph.get(CORE).path, "index.ts", "export const core = 2;\n")
    after = EffectiveVersionComputer(graph, fingerprinter).compute_all()
    assert sorted(diff_ev_maps(before, after).changed) == [CHAT, CORE]


def test_uncommitted_edits_do_not_change_versions(real_ws):
    graph = discover_unit_graph(real_ws)
    before = EffectiveVersionComputer(graph).compute_all()
    (graph.get(CORE).path / "index.ts").write_text("dirty\n")
    assert EffectiveVersionComputer(graph).compute_all() == before


def test_extract_from_real_repositories(real_ws):
    graph = discover_unit_graph(real_ws)
    chat = graph.get(CHAT)
    (graph.get(CORE).path / "index.ts").write_text("dirty\n")

    with extract_source_for_build(chat, graph, real_ws) as src:
        core_src = src.source_root / "packages" / "core" / "index.ts"
        assert core_src.read_text() == "export const core = 1;\n"
        assert (src.source_root / "panels" / "chat" / "index.tsx").exists()
