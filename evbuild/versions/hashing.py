"""Truncated SHA-256 over null-separated parts."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

DIGEST_LENGTH = 16  # hex chars, 64 bits


def hash_strings(parts: Iterable[str]) -> str:
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()[:DIGEST_LENGTH]
