"""Build cache keys."""

from __future__ import annotations

from evbuild.models import Unit
from evbuild.versions.hashing import hash_strings

# Bump whenever build output changes for unchanged sources; invalidates every cached build.
BUILD_CACHE_VERSION = "3"


def compute_build_key(
    unit_name: str,
    ev: str,
    sourcemap: bool,
    cache_version: str = BUILD_CACHE_VERSION,
) -> str:
    """Content-addressed store key for one build of a unit.

    The unit name is part of the key so units that happen to share an EV
    (identical trees, no deps) never share artifacts.
    """
    flag = "true" if sourcemap else "false"
    return hash_strings([cache_version, unit_name, ev, f"sourcemap:{flag}"])


def unit_build_key(unit: Unit, ev: str) -> str:
    return compute_build_key(unit.name, ev, unit.sourcemap)
