"""Pinned source extraction for builds."""

from evbuild.extractor.source_extractor import collect_transitive_deps, extract_source_for_build

__all__ = ["collect_transitive_deps", "extract_source_for_build"]
