"""Effective version computation.

Every unit gets an effective version (EV): one hash over its own tracked tree
and the identity of each internal dependency edge::

    ev(unit) = hash(tree(unit), sig(dep_1), sig(dep_2), ...)
    sig(dep) = name, declared ref, resolved commit, ev(dep)

Signatures are sorted, so declaration order never changes the result. Units
are visited in topological order so each dependency's EV already exists when
a dependent needs it.
"""

from __future__ import annotations

import logging

from evbuild.errors import GitError
from evbuild.git.fingerprint import ContentFingerprinter
from evbuild.graph.unit_graph import UnitGraph
from evbuild.models import (
    ChangeSet,
    DependencyRef,
    EffectiveVersionMap,
    RefMode,
    RefState,
    Unit,
)
from evbuild.versions.hashing import hash_strings

logger = logging.getLogger(__name__)

_DEFAULT_DEP_REF = DependencyRef(raw="workspace:*")


class _VersionPass:
    """Caches scoped to one top-level computation call."""

    def __init__(
        self,
        graph: UnitGraph,
        fingerprinter: ContentFingerprinter,
        content_hashes: dict[str, str] | None = None,
    ):
        self.graph = graph
        self.fingerprinter = fingerprinter
        self.content_hashes = content_hashes if content_hashes is not None else {}
        self.commits: dict[tuple[str, str], str | None] = {}

    def content_hash(self, unit: Unit, ref: str | None = None) -> str | None:
        """Tree hash at ``ref`` (default branch when omitted), or None when the unit is not buildable."""
        cached = self.content_hashes.get(unit.name)
        if cached:
            return cached
        try:
            tree = self.fingerprinter.tree_hash(unit.path, ref)
        except GitError as e:
            logger.debug("Skipping %s: %s", unit.name, e)
            return None
        self.content_hashes[unit.name] = tree
        return tree

    def git_ref_for(self, dep: Unit, dep_ref: DependencyRef) -> str | None:
        if dep_ref.mode is RefMode.BRANCH:
            return f"refs/heads/{dep_ref.branch or 'main'}"
        if dep_ref.mode is RefMode.REF and dep_ref.ref:
            return dep_ref.ref
        if dep_ref.mode is RefMode.COMMIT and dep_ref.commit:
            return dep_ref.commit
        try:
            return self.fingerprinter.resolve_main_ref(dep.path)
        except GitError:
            return None

    def dependency_commit(self, dep: Unit, dep_ref: DependencyRef) -> str | None:
        ref = self.git_ref_for(dep, dep_ref)
        if ref is None:
            return None
        key = (str(dep.path), ref)
        if key not in self.commits:
            self.commits[key] = self.fingerprinter.resolve_commit(dep.path, ref)
        return self.commits[key]

    def signatures(self, unit: Unit, ev_map: EffectiveVersionMap) -> list[str]:
        signatures: list[str] = []
        for dep_name in unit.internal_deps:
            dep = self.graph.try_get(dep_name)
            if dep is None:
                continue
            dep_ref = unit.internal_dep_refs.get(dep_name, _DEFAULT_DEP_REF)
            commit = self.dependency_commit(dep, dep_ref)
            signatures.append(
                f"{dep_name}\0ref:{dep_ref.raw}\0commit:{commit or 'missing'}"
                f"\0ev:{ev_map.get(dep_name, '')}"
            )
        return sorted(signatures)

    def version(self, unit: Unit, content_hash: str, ev_map: EffectiveVersionMap) -> str:
        return hash_strings([content_hash, *self.signatures(unit, ev_map)])


class EffectiveVersionComputer:
    """Compute EV maps for a unit graph.

    Each call builds fresh commit caches. ``content_hashes`` arguments are
    side tables (unit name -> tree hash) that the call reads and fills in, so a
    caller can pin hashes at known commits or carry them into a later
    incremental pass.
    """

    def __init__(self, graph: UnitGraph, fingerprinter: ContentFingerprinter | None = None):
        self.graph = graph
        self.fingerprinter = fingerprinter or ContentFingerprinter()
        self.last_recomputed: set[str] = set()
        self.last_reused: set[str] = set()

    def _new_pass(self, content_hashes: dict[str, str] | None) -> _VersionPass:
        return _VersionPass(self.graph, self.fingerprinter, content_hashes)

    def compute_all(self, content_hashes: dict[str, str] | None = None) -> EffectiveVersionMap:
        """Full computation over every unit with a default branch."""
        vpass = self._new_pass(content_hashes)
        ev_map: EffectiveVersionMap = {}
        skipped = 0

        for unit in self.graph.topological_order():
            tree = vpass.content_hash(unit)
            if tree is None:
                skipped += 1
                continue
            ev_map[unit.name] = vpass.version(unit, tree, ev_map)

        self.last_recomputed = set(ev_map)
        self.last_reused = set()
        logger.info("Computed %d effective versions (%d units skipped)", len(ev_map), skipped)
        return ev_map

    def recompute_from(
        self,
        unit_name: str,
        current: EffectiveVersionMap,
        commit: str | None = None,
        content_hashes: dict[str, str] | None = None,
    ) -> EffectiveVersionMap:
        """Rehash one changed unit (optionally at ``commit``) and propagate to its dependents.

        Returns a new map; ``current`` is left untouched. Errors hashing the
        changed unit itself propagate.
        """
        vpass = self._new_pass(content_hashes)
        unit = self.graph.get(unit_name)
        vpass.content_hashes[unit_name] = self.fingerprinter.tree_hash(unit.path, commit)

        affected = {unit_name} | self.graph.reverse_dependencies(unit_name)
        ev_map = dict(current)
        recomputed: set[str] = set()

        for node in self.graph.topological_order():
            if node.name not in affected:
                continue
            tree = vpass.content_hash(node)
            if tree is None:
                ev_map.pop(node.name, None)
                continue
            ev_map[node.name] = vpass.version(node, tree, ev_map)
            recomputed.add(node.name)

        self.last_recomputed = recomputed
        self.last_reused = set()
        logger.info("Recomputed %d effective versions from %s", len(recomputed), unit_name)
        return ev_map

    def compute_with_cache(
        self,
        current_refs: RefState,
        previous_refs: RefState,
        previous_evs: EffectiveVersionMap,
        content_hashes: dict[str, str] | None = None,
    ) -> EffectiveVersionMap:
        """Cold-start computation reusing prior EVs for unchanged units.

        A prior EV is reused only when the unit's default-branch commit is
        unchanged, none of its dependencies were recomputed (or vanished) in
        this pass, and every dependency edge follows the default branch.
        Recomputed units are hashed at their ``current_refs`` commit.
        """
        vpass = self._new_pass(content_hashes)
        ev_map: EffectiveVersionMap = {}
        recomputed: set[str] = set()
        reused: set[str] = set()

        for unit in self.graph.topological_order():
            current_commit = current_refs.get(unit.name)
            if not current_commit:
                continue

            dep_changed = any(
                dep in recomputed or (dep in previous_evs and dep not in ev_map)
                for dep in unit.internal_deps
            )
            pinned_deps = any(
                not unit.internal_dep_refs.get(dep, _DEFAULT_DEP_REF).is_default
                for dep in unit.internal_deps
            )
            prior = previous_evs.get(unit.name)

            if (
                previous_refs.get(unit.name) == current_commit
                and not dep_changed
                and not pinned_deps
                and prior
            ):
                ev_map[unit.name] = prior
                reused.add(unit.name)
                continue

            tree = vpass.content_hash(unit, current_commit)
            if tree is None:
                continue
            ev_map[unit.name] = vpass.version(unit, tree, ev_map)
            recomputed.add(unit.name)

        self.last_recomputed = recomputed
        self.last_reused = reused
        logger.info(
            "Effective versions: %d reused, %d recomputed, %d skipped",
            len(reused), len(recomputed), len(self.graph) - len(ev_map),
        )
        return ev_map


def diff_ev_maps(previous: EffectiveVersionMap, current: EffectiveVersionMap) -> ChangeSet:
    """Changed, added and removed unit names between two EV maps."""
    changes = ChangeSet()
    for name, ev in current.items():
        if name not in previous:
            changes.added.append(name)
        elif previous[name] != ev:
            changes.changed.append(name)
    for name in previous:
        if name not in current:
            changes.removed.append(name)
    return changes


def snapshot_ref_state(graph: UnitGraph, fingerprinter: ContentFingerprinter) -> RefState:
    """Default-branch commit of every unit that has one."""
    state: RefState = {}
    for unit in graph.all_units():
        commit = fingerprinter.commit_at(unit.path)
        if commit:
            state[unit.name] = commit
    return state
