"""Effective versions and build keys."""

from evbuild.versions.build_key import BUILD_CACHE_VERSION, compute_build_key, unit_build_key
from evbuild.versions.effective import (
    EffectiveVersionComputer,
    diff_ev_maps,
    snapshot_ref_state,
)
from evbuild.versions.hashing import hash_strings

__all__ = [
    "BUILD_CACHE_VERSION",
    "EffectiveVersionComputer",
    "compute_build_key",
    "diff_ev_maps",
    "hash_strings",
    "snapshot_ref_state",
    "unit_build_key",
]
