"""Versioning runs: cold start, full recompute, and push processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from evbuild.errors import EvBuildError, GitError
from evbuild.git.fingerprint import ContentFingerprinter
from evbuild.graph.manifest import MANIFEST_FILENAME, parse_manifest, sorted_json
from evbuild.graph.unit_graph import UnitGraph, discover_unit_graph
from evbuild.models import (
    ChangeSet,
    CommitMap,
    EffectiveVersionMap,
    PushEvent,
    RefMode,
    RefState,
    Unit,
    WorkspaceConfig,
)
from evbuild.store import VersionStore
from evbuild.versions.build_key import unit_build_key
from evbuild.versions.effective import (
    EffectiveVersionComputer,
    diff_ev_maps,
    snapshot_ref_state,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

MAIN_BRANCH_NAMES = frozenset({"main", "master"})


@dataclass
class VersioningResult:
    """Outcome of a whole-workspace versioning run."""
    graph: UnitGraph
    ev_map: EffectiveVersionMap = field(default_factory=dict)
    changes: ChangeSet = field(default_factory=ChangeSet)
    ref_state: RefState = field(default_factory=dict)
    commit_map: CommitMap = field(default_factory=dict)


@dataclass
class PushOutcome:
    """Result of processing one push event."""
    unit_name: str | None
    graph: UnitGraph | None = None
    processed: bool = False
    rediscovered: bool = False
    ev_map: EffectiveVersionMap = field(default_factory=dict)
    changes: ChangeSet = field(default_factory=ChangeSet)
    commit_map: CommitMap = field(default_factory=dict)
    build_keys: dict[str, str] = field(default_factory=dict)  # buildable affected unit -> key


def _make_fingerprinter(config: WorkspaceConfig) -> ContentFingerprinter:
    return ContentFingerprinter(main_branches=config.main_branches)


def run_cold_start(
    config: WorkspaceConfig,
    store: VersionStore | None = None,
    fingerprinter: ContentFingerprinter | None = None,
    progress: ProgressCallback | None = None,
) -> VersioningResult:
    """Discover the workspace and compute EVs, reusing persisted state where valid."""
    store = store or VersionStore(config.data_dir)
    fingerprinter = fingerprinter or _make_fingerprinter(config)

    if progress:
        progress("Discovering", 0, 1)
    graph = discover_unit_graph(config.workspace_root, config.scan_dirs)
    if progress:
        progress("Discovering", 1, 1)

    if progress:
        progress("Snapshotting refs", 0, len(graph))
    current_refs = snapshot_ref_state(graph, fingerprinter)
    if progress:
        progress("Snapshotting refs", len(graph), len(graph))

    previous_refs = store.load_ref_state()
    previous_evs = store.load_ev_map()

    if progress:
        progress("Computing versions", 0, 1)
    computer = EffectiveVersionComputer(graph, fingerprinter)
    ev_map = computer.compute_with_cache(current_refs, previous_refs, previous_evs)
    changes = diff_ev_maps(previous_evs, ev_map)
    if progress:
        progress("Computing versions", 1, 1)

    logger.info(
        "EV diff: %d changed, %d added, %d removed",
        len(changes.changed), len(changes.added), len(changes.removed),
    )
    store.save_ref_state(current_refs)
    store.save_ev_map(ev_map)

    return VersioningResult(
        graph=graph,
        ev_map=ev_map,
        changes=changes,
        ref_state=current_refs,
        commit_map=dict(current_refs),
    )


def run_full_recompute(
    config: WorkspaceConfig,
    store: VersionStore | None = None,
    fingerprinter: ContentFingerprinter | None = None,
    previous: EffectiveVersionMap | None = None,
    progress: ProgressCallback | None = None,
) -> VersioningResult:
    """Rediscover the graph and recompute every EV from scratch.

    Commits are captured first and tree hashes taken at exactly those commits,
    so the returned commit map extracts the same sources the EVs describe.
    """
    store = store or VersionStore(config.data_dir)
    fingerprinter = fingerprinter or _make_fingerprinter(config)
    if previous is None:
        previous = store.load_ev_map()

    if progress:
        progress("Discovering", 0, 1)
    graph = discover_unit_graph(config.workspace_root, config.scan_dirs)
    if progress:
        progress("Discovering", 1, 1)

    units = graph.all_units()
    commit_map: CommitMap = {}
    content_hashes: dict[str, str] = {}
    for i, unit in enumerate(units):
        if progress:
            progress("Snapshotting refs", i, len(units))
        commit = fingerprinter.commit_at(unit.path)
        if not commit:
            continue
        commit_map[unit.name] = commit
        try:
            content_hashes[unit.name] = fingerprinter.tree_hash(unit.path, commit)
        except GitError as e:
            logger.debug("No tree for %s at %s: %s", unit.name, commit, e)
    if progress:
        progress("Snapshotting refs", len(units), len(units))

    if progress:
        progress("Computing versions", 0, 1)
    ev_map = EffectiveVersionComputer(graph, fingerprinter).compute_all(content_hashes)
    changes = diff_ev_maps(previous, ev_map)
    if progress:
        progress("Computing versions", 1, 1)

    ref_state = dict(commit_map)
    store.save_ev_map(ev_map)
    store.save_ref_state(ref_state)

    return VersioningResult(
        graph=graph,
        ev_map=ev_map,
        changes=changes,
        ref_state=ref_state,
        commit_map=commit_map,
    )


def should_process_push(graph: UnitGraph, unit_name: str, event: PushEvent) -> bool:
    """Default-branch pushes always count; others only if a dependent tracks that ref."""
    if event.branch in MAIN_BRANCH_NAMES:
        return True

    for dependent_name in graph.reverse_dependencies(unit_name):
        dependent = graph.try_get(dependent_name)
        if dependent is None:
            continue
        dep_ref = dependent.internal_dep_refs.get(unit_name)
        if dep_ref is None:
            continue
        if dep_ref.mode is RefMode.BRANCH and dep_ref.branch == event.branch:
            return True
        if dep_ref.mode is RefMode.REF and dep_ref.ref in (
            event.branch, f"refs/heads/{event.branch}",
        ):
            return True
        if dep_ref.mode is RefMode.COMMIT and dep_ref.commit == event.commit:
            return True
    return False


def manifest_changed(unit: Unit, commit: str, fingerprinter: ContentFingerprinter) -> bool:
    """Whether dependencies or build metadata differ at ``commit``.

    Anything that cannot be read counts as changed.
    """
    try:
        raw = fingerprinter.read_file_at_commit(unit.path, commit, MANIFEST_FILENAME)
        manifest = parse_manifest(raw.decode("utf-8"))
    except (EvBuildError, UnicodeDecodeError, ValueError) as e:
        logger.warning("Cannot read %s of %s at %s: %s", MANIFEST_FILENAME, unit.name, commit, e)
        return True

    if manifest.name and manifest.name != unit.name:
        return True
    if sorted_json(manifest.all_dependencies) != sorted_json(unit.dependencies):
        return True
    return sorted_json(manifest.build) != sorted_json(unit.manifest)


def build_keys_for(
    graph: UnitGraph,
    ev_map: EffectiveVersionMap,
    names: list[str],
) -> dict[str, str]:
    """Build keys of the buildable units among ``names`` that have an EV."""
    keys: dict[str, str] = {}
    for name in names:
        unit = graph.try_get(name)
        if unit is None or not unit.is_buildable or name not in ev_map:
            continue
        keys[name] = unit_build_key(unit, ev_map[name])
    return keys


def process_push(
    config: WorkspaceConfig,
    graph: UnitGraph,
    ev_map: EffectiveVersionMap,
    event: PushEvent,
    store: VersionStore | None = None,
    fingerprinter: ContentFingerprinter | None = None,
) -> PushOutcome:
    """Update EVs after a push to one unit repository.

    Default-branch pushes that leave the manifest alone take the incremental
    path; tracked non-default refs and manifest edits rediscover the graph.
    """
    store = store or VersionStore(config.data_dir)
    fingerprinter = fingerprinter or _make_fingerprinter(config)

    unit = graph.find_by_relative_path(event.repo)
    if unit is None:
        logger.debug("Push to %s does not match any unit", event.repo)
        return PushOutcome(unit_name=None, graph=graph, ev_map=ev_map)
    if not should_process_push(graph, unit.name, event):
        logger.debug("Ignoring push to %s@%s", unit.name, event.branch)
        return PushOutcome(unit_name=unit.name, graph=graph, ev_map=ev_map)

    if event.branch not in MAIN_BRANCH_NAMES:
        logger.info("Tracked ref %s pushed for %s; rediscovering", event.branch, unit.name)
        rediscover = True
    elif manifest_changed(unit, event.commit, fingerprinter):
        logger.info("%s changed for %s; rediscovering", MANIFEST_FILENAME, unit.name)
        rediscover = True
    else:
        rediscover = False

    if rediscover:
        result = run_full_recompute(config, store, fingerprinter, previous=ev_map)
        return PushOutcome(
            unit_name=unit.name,
            graph=result.graph,
            processed=True,
            rediscovered=True,
            ev_map=result.ev_map,
            changes=result.changes,
            commit_map=result.commit_map,
            build_keys=build_keys_for(result.graph, result.ev_map, result.changes.affected),
        )

    # Pushed unit at the pushed commit; everything else at the commit its EV was derived from
    previous_refs = store.load_ref_state()
    commit_map: CommitMap = {unit.name: event.commit}
    for other in graph.all_units():
        if other.name == unit.name:
            continue
        commit = previous_refs.get(other.name) or fingerprinter.commit_at(other.path)
        if commit:
            commit_map[other.name] = commit

    computer = EffectiveVersionComputer(graph, fingerprinter)
    new_ev_map = computer.recompute_from(unit.name, ev_map, commit=event.commit)
    changes = diff_ev_maps(ev_map, new_ev_map)

    store.save_ev_map(new_ev_map)
    store.save_ref_state(snapshot_ref_state(graph, fingerprinter))

    return PushOutcome(
        unit_name=unit.name,
        graph=graph,
        processed=True,
        ev_map=new_ev_map,
        changes=changes,
        commit_map=commit_map,
        build_keys=build_keys_for(graph, new_ev_map, changes.affected),
    )
