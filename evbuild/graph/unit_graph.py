"""Unit graph: discovers workspace units, orders them, answers reverse-dependency queries."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path

from evbuild.errors import CycleError, UnknownUnitError
from evbuild.graph.manifest import read_manifest
from evbuild.graph.refs import is_internal_dependency, parse_dependency_ref
from evbuild.models import DEFAULT_SCAN_DIRS, DependencyRef, Unit, UnitKind

logger = logging.getLogger(__name__)


class UnitGraph:
    """Directed graph of units keyed by name, edges pointing at internal deps."""

    def __init__(self):
        self._units: dict[str, Unit] = {}
        self._topo_order: list[str] = []
        self.warnings: list[str] = []

    def add_unit(self, unit: Unit) -> None:
        self._units[unit.name] = unit

    def get(self, name: str) -> Unit:
        unit = self._units.get(name)
        if unit is None:
            raise UnknownUnitError(name)
        return unit

    def try_get(self, name: str) -> Unit | None:
        return self._units.get(name)

    def has(self, name: str) -> bool:
        return name in self._units

    def __contains__(self, name: object) -> bool:
        return name in self._units

    def __len__(self) -> int:
        return len(self._units)

    def all_units(self) -> list[Unit]:
        return list(self._units.values())

    def find_by_relative_path(self, relative_path: str) -> Unit | None:
        wanted = relative_path.strip("/")
        for unit in self._units.values():
            if unit.relative_path == wanted:
                return unit
        return None

    def prune_missing_dependencies(self) -> list[str]:
        """Drop edges to units outside the graph (and self edges). Returns warnings."""
        pruned: list[str] = []
        for unit in self._units.values():
            kept: list[str] = []
            for dep in unit.internal_deps:
                if dep == unit.name:
                    message = f"{unit.name} depends on itself"
                elif dep not in self._units:
                    message = f"{unit.name} depends on {dep} which is not in the workspace"
                else:
                    kept.append(dep)
                    continue
                logger.warning("%s; dropping the dependency", message)
                pruned.append(message)
            unit.internal_deps = kept
        self.warnings.extend(pruned)
        return pruned

    def compute_topological_order(self) -> list[str]:
        """Order units leaves first. Raises CycleError with the offending chain."""
        visited: set[str] = set()
        visiting: set[str] = set()
        stack: list[str] = []
        order: list[str] = []

        def visit(name: str) -> None:
            if name in visited:
                return
            if name in visiting:
                cycle = stack[stack.index(name):] + [name]
                raise CycleError(cycle)

            visiting.add(name)
            stack.append(name)
            for dep in self.get(name).internal_deps:
                visit(dep)
            stack.pop()
            visiting.discard(name)
            visited.add(name)
            order.append(name)

        for name in self._units:
            visit(name)

        self._topo_order = order
        return list(order)

    def topological_order(self) -> list[Unit]:
        """Units in dependency order (dependencies before dependents)."""
        return [self.get(name) for name in self._topo_order]

    def reverse_dependencies(self, name: str) -> set[str]:
        """All units that transitively depend on ``name``."""
        dependents: dict[str, list[str]] = {}
        for unit in self._units.values():
            for dep in unit.internal_deps:
                dependents.setdefault(dep, []).append(unit.name)

        result: set[str] = set()
        queue = deque([name])
        while queue:
            current = queue.popleft()
            for dependent in dependents.get(current, []):
                if dependent not in result:
                    result.add(dependent)
                    queue.append(dependent)
        result.discard(name)
        return result


def _scan_directory(directory: Path, workspace_root: Path, kind: UnitKind) -> list[Unit]:
    if not directory.is_dir():
        return []

    units: list[Unit] = []
    for unit_dir in sorted(directory.iterdir()):
        if not unit_dir.is_dir() or unit_dir.name.startswith("."):
            continue
        manifest = read_manifest(unit_dir)
        if manifest is None or not manifest.name:
            continue

        all_deps = manifest.all_dependencies
        internal_deps: list[str] = []
        internal_dep_refs: dict[str, DependencyRef] = {}
        for dep_name, dep_spec in all_deps.items():
            if is_internal_dependency(dep_name):
                internal_deps.append(dep_name)
                internal_dep_refs[dep_name] = parse_dependency_ref(dep_spec)

        units.append(Unit(
            path=unit_dir.resolve(),
            relative_path=unit_dir.relative_to(workspace_root).as_posix(),
            name=manifest.name,
            kind=kind,
            dependencies=all_deps,
            internal_deps=internal_deps,
            internal_dep_refs=internal_dep_refs,
            manifest=dict(manifest.build),
        ))
    return units


def discover_unit_graph(
    workspace_root: Path,
    scan_dirs: list[tuple[str, UnitKind]] | None = None,
) -> UnitGraph:
    """Discover every unit under the workspace and build its graph."""
    workspace_root = Path(workspace_root)
    graph = UnitGraph()
    for subdir, kind in scan_dirs or DEFAULT_SCAN_DIRS:
        for unit in _scan_directory(workspace_root / subdir, workspace_root, kind):
            if unit.name in graph:
                message = (
                    f"Duplicate unit name {unit.name} at {unit.relative_path}; "
                    f"keeping {graph.get(unit.name).relative_path}"
                )
                logger.warning("%s", message)
                graph.warnings.append(message)
                continue
            graph.add_unit(unit)

    graph.prune_missing_dependencies()
    graph.compute_topological_order()
    logger.info("Discovered %d units in %s", len(graph), workspace_root)
    return graph
