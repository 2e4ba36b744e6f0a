"""Data models for the evbuild versioning engine."""

from __future__ import annotations

import enum
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


EffectiveVersionMap = dict[str, str]  # unit name -> EV
RefState = dict[str, str]  # unit name -> commit at its default ref
CommitMap = dict[str, str]  # unit name -> commit pinned for extraction


class RefMode(enum.Enum):
    DEFAULT = "default"
    BRANCH = "branch"
    REF = "ref"
    COMMIT = "commit"


class UnitKind(enum.Enum):
    LIBRARY = "package"
    APPLICATION = "panel"
    AUXILIARY = "about"


@dataclass(frozen=True)
class DependencyRef:
    """How an internal dependency should be resolved to a git ref."""
    raw: str
    mode: RefMode = RefMode.DEFAULT
    branch: str | None = None
    ref: str | None = None
    commit: str | None = None

    @property
    def is_default(self) -> bool:
        return self.mode is RefMode.DEFAULT


@dataclass
class Unit:
    """One buildable workspace member, itself a git repository."""
    path: Path
    relative_path: str  # e.g. "packages/core", always posix separators
    name: str
    kind: UnitKind
    dependencies: dict[str, str] = field(default_factory=dict)
    internal_deps: list[str] = field(default_factory=list)
    internal_dep_refs: dict[str, DependencyRef] = field(default_factory=dict)
    manifest: dict[str, Any] = field(default_factory=dict)

    @property
    def is_buildable(self) -> bool:
        # Libraries are only ever consumed by other units
        return self.kind is not UnitKind.LIBRARY

    @property
    def sourcemap(self) -> bool:
        return self.manifest.get("sourcemap") is not False


@dataclass
class ChangeSet:
    """Difference between two effective version maps."""
    changed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def affected(self) -> list[str]:
        return self.changed + self.added

    @property
    def is_empty(self) -> bool:
        return not (self.changed or self.added or self.removed)


@dataclass
class ExtractedSource:
    """A temporary source tree pinned to exact commits."""
    source_root: Path
    units: list[str] = field(default_factory=list)
    commits: CommitMap = field(default_factory=dict)

    def cleanup(self) -> None:
        shutil.rmtree(self.source_root, ignore_errors=True)

    def __enter__(self) -> ExtractedSource:
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()


@dataclass(frozen=True)
class PushEvent:
    """A push to one unit repository, as reported by the hosting git server."""
    repo: str  # workspace-relative path of the pushed repository
    branch: str
    commit: str


DEFAULT_SCAN_DIRS: list[tuple[str, UnitKind]] = [
    ("packages", UnitKind.LIBRARY),
    ("panels", UnitKind.APPLICATION),
    ("about", UnitKind.AUXILIARY),
]

DEFAULT_MAIN_BRANCHES: tuple[str, ...] = ("refs/heads/main", "refs/heads/master")


@dataclass
class WorkspaceConfig:
    """Configuration for a versioning run over one workspace."""
    workspace_root: Path = field(default_factory=lambda: Path("."))
    data_dir: Path | None = None
    scan_dirs: list[tuple[str, UnitKind]] = field(
        default_factory=lambda: list(DEFAULT_SCAN_DIRS)
    )
    main_branches: tuple[str, ...] = DEFAULT_MAIN_BRANCHES
