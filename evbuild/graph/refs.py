"""Parse internal dependency specifiers into a resolution mode."""

from __future__ import annotations

import re

from evbuild.models import DependencyRef, RefMode

INTERNAL_SCOPES: tuple[str, ...] = ("@workspace/", "@workspace-panels/", "@workspace-about/")

_WORKSPACE_PREFIX = "workspace:"
_HEX_SHA = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)


def is_internal_dependency(name: str) -> bool:
    return name.startswith(INTERNAL_SCOPES)


def parse_dependency_ref(raw_spec: str | None) -> DependencyRef:
    """Turn a specifier such as ``workspace:branch:dev`` into a DependencyRef.

    Specifiers without the ``workspace:`` prefix only recognise commit SHAs and
    full ``refs/`` paths; anything else resolves to the default branch.
    """
    raw = (raw_spec or "").strip()
    normalized = raw.lower()

    if not raw or raw == "*" or normalized in ("workspace:*", _WORKSPACE_PREFIX):
        return DependencyRef(raw=raw or "*")

    if normalized.startswith(_WORKSPACE_PREFIX):
        rest = raw[len(_WORKSPACE_PREFIX):].strip()
        if not rest or rest == "*":
            return DependencyRef(raw=raw)

        if rest.startswith("commit:"):
            return DependencyRef(raw=raw, mode=RefMode.COMMIT, commit=rest[len("commit:"):].strip())
        if rest.startswith("ref:"):
            return DependencyRef(raw=raw, mode=RefMode.REF, ref=rest[len("ref:"):].strip())
        if rest.startswith("branch:"):
            return DependencyRef(raw=raw, mode=RefMode.BRANCH, branch=rest[len("branch:"):].strip())
        if _HEX_SHA.match(rest):
            return DependencyRef(raw=raw, mode=RefMode.COMMIT, commit=rest)
        if rest.startswith("refs/"):
            return DependencyRef(raw=raw, mode=RefMode.REF, ref=rest)
        # workspace:<name> is shorthand for a branch
        return DependencyRef(raw=raw, mode=RefMode.BRANCH, branch=rest)

    if _HEX_SHA.match(raw):
        return DependencyRef(raw=raw, mode=RefMode.COMMIT, commit=raw)
    if raw.startswith("refs/"):
        return DependencyRef(raw=raw, mode=RefMode.REF, ref=raw)
    return DependencyRef(raw=raw)
