"""Workspace unit discovery and dependency graph."""

from evbuild.graph.refs import is_internal_dependency, parse_dependency_ref
from evbuild.graph.unit_graph import UnitGraph, discover_unit_graph

__all__ = [
    "UnitGraph",
    "discover_unit_graph",
    "is_internal_dependency",
    "parse_dependency_ref",
]
