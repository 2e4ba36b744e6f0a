"""Extract a unit and its internal dependencies from git at exact commits."""

from __future__ import annotations

import io
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path

from evbuild.errors import ExtractionError, GitError
from evbuild.git.fingerprint import ContentFingerprinter
from evbuild.graph.manifest import MANIFEST_FILENAME
from evbuild.graph.unit_graph import UnitGraph
from evbuild.models import CommitMap, ExtractedSource, Unit

logger = logging.getLogger(__name__)


def collect_transitive_deps(unit: Unit, graph: UnitGraph) -> list[Unit]:
    """``unit`` plus every transitive internal dependency, dependencies first."""
    visited: set[str] = set()
    result: list[Unit] = []

    def visit(node: Unit) -> None:
        if node.name in visited:
            return
        visited.add(node.name)
        for dep_name in node.internal_deps:
            dep = graph.try_get(dep_name)
            if dep is not None:
                visit(dep)
        result.append(node)

    visit(unit)
    return result


def extract_source_for_build(
    unit: Unit,
    graph: UnitGraph,
    workspace_root: Path,
    commit_map: CommitMap | None = None,
    fingerprinter: ContentFingerprinter | None = None,
) -> ExtractedSource:
    """Materialise ``unit`` and its deps under one temp root, mirroring workspace paths.

    All commits are resolved before anything is extracted, so the tree is one
    consistent snapshot even if a repository moves on mid-extraction.
    ``commit_map`` entries (e.g. captured when EVs were computed) win over the
    current default branch. On failure nothing is left on disk.
    """
    fingerprinter = fingerprinter or ContentFingerprinter()
    units = collect_transitive_deps(unit, graph)
    source_root = Path(tempfile.mkdtemp(prefix="evbuild-src-"))

    try:
        commits = _resolve_commits(units, commit_map or {}, fingerprinter)
        for node in units:
            target = source_root / _workspace_relative(node, workspace_root)
            _extract_unit(node, commits[node.name], target, fingerprinter)
    except Exception:
        shutil.rmtree(source_root, ignore_errors=True)
        raise

    logger.info(
        "Extracted %s with %d dependencies into %s",
        unit.name, len(units) - 1, source_root,
    )
    return ExtractedSource(
        source_root=source_root,
        units=[node.name for node in units],
        commits=commits,
    )


def _resolve_commits(
    units: list[Unit],
    commit_map: CommitMap,
    fingerprinter: ContentFingerprinter,
) -> CommitMap:
    commits: CommitMap = {}
    for node in units:
        commit = commit_map.get(node.name) or fingerprinter.commit_at(node.path)
        if not commit:
            raise ExtractionError(f"Cannot resolve a commit for {node.name} at {node.path}")
        commits[node.name] = commit
    return commits


def _extract_unit(
    node: Unit,
    commit: str,
    target: Path,
    fingerprinter: ContentFingerprinter,
) -> None:
    # Refuse to build from a commit whose manifest is gone
    fingerprinter.read_file_at_commit(node.path, commit, MANIFEST_FILENAME)

    target.mkdir(parents=True, exist_ok=True)
    try:
        archive = fingerprinter.archive(node.path, commit)
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:") as tar:
            tar.extractall(target, filter="data")
    except (GitError, tarfile.TarError, OSError) as e:
        raise ExtractionError(f"Failed to extract {node.name} at {commit[:8]}: {e}") from e
    logger.debug("Extracted %s@%s -> %s", node.name, commit[:8], target)


def _workspace_relative(node: Unit, workspace_root: Path) -> str:
    try:
        return node.path.resolve().relative_to(Path(workspace_root).resolve()).as_posix()
    except ValueError:
        return node.relative_path
