"""Exceptions raised by evbuild."""

from __future__ import annotations

from collections.abc import Sequence


class EvBuildError(Exception):
    """Base class for all evbuild errors."""


class UnknownUnitError(EvBuildError, KeyError):
    """Raised when a unit name is not part of the graph."""

    def __init__(self, name: str):
        super().__init__(f"Unknown unit: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class CycleError(EvBuildError):
    """Raised when internal dependencies form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class GitError(EvBuildError):
    """A git subprocess exited unsuccessfully."""

    def __init__(self, args: Sequence[str], returncode: int | None = None, stderr: str = ""):
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"Git command failed ({' '.join(self.git_args)})"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class NoDefaultBranchError(GitError):
    """Neither candidate default branch exists; the unit is not buildable yet."""

    def __init__(self, repo: str, candidates: Sequence[str]):
        super().__init__(["rev-parse", "--verify", *candidates])
        self.repo = repo
        self.candidates = list(candidates)
        self.args = (f"No default branch ({', '.join(candidates)}) found in {repo}",)

    def __str__(self) -> str:
        return self.args[0]


class ManifestNotFoundError(EvBuildError):
    """The unit manifest does not exist at a pinned commit."""

    def __init__(self, repo: str, commit: str, path: str):
        super().__init__(f"{path} not found at {commit} in {repo}")
        self.repo = repo
        self.commit = commit
        self.path = path


class ExtractionError(EvBuildError):
    """Pinned source extraction failed; nothing was left on disk."""
