"""Content fingerprinting: tree hashes, commits and pinned reads from unit repositories."""

from __future__ import annotations

import logging
from pathlib import Path

from evbuild.errors import GitError, ManifestNotFoundError, NoDefaultBranchError
from evbuild.git.runner import GitRunner
from evbuild.models import DEFAULT_MAIN_BRANCHES

logger = logging.getLogger(__name__)


class MainRefCache:
    """repo path -> resolved default ref. Owned by one fingerprinter."""

    def __init__(self):
        self._refs: dict[str, str] = {}

    def get(self, repo: Path | str) -> str | None:
        return self._refs.get(str(repo))

    def set(self, repo: Path | str, ref: str) -> None:
        self._refs[str(repo)] = ref

    def clear(self) -> None:
        self._refs.clear()

    def __len__(self) -> int:
        return len(self._refs)


class ContentFingerprinter:
    """Resolve refs and hash tracked content of unit repositories."""

    def __init__(
        self,
        git: GitRunner | None = None,
        main_ref_cache: MainRefCache | None = None,
        main_branches: tuple[str, ...] = DEFAULT_MAIN_BRANCHES,
    ):
        self.git = git or GitRunner()
        self.main_ref_cache = main_ref_cache if main_ref_cache is not None else MainRefCache()
        self.main_branches = main_branches

    def resolve_main_ref(self, repo: Path | str) -> str:
        """First default-branch candidate that exists. Raises NoDefaultBranchError."""
        cached = self.main_ref_cache.get(repo)
        if cached:
            return cached
        for ref in self.main_branches:
            if self.git.succeeds(["rev-parse", "--verify", "--quiet", ref], repo):
                self.main_ref_cache.set(repo, ref)
                return ref
        raise NoDefaultBranchError(str(repo), self.main_branches)

    def tree_hash(self, repo: Path | str, ref: str | None = None) -> str:
        """Hash of the tracked tree at ``ref`` (default branch when omitted)."""
        resolved = ref or self.resolve_main_ref(repo)
        return self.git.run(["rev-parse", f"{resolved}^{{tree}}"], repo)

    def commit_at(self, repo: Path | str, ref: str | None = None) -> str | None:
        """Commit at ``ref``, or None if it cannot be resolved."""
        try:
            resolved = ref or self.resolve_main_ref(repo)
            return self.git.run(["rev-parse", "--verify", f"{resolved}^{{commit}}"], repo)
        except GitError:
            return None

    def resolve_commit(self, repo: Path | str, ref: str) -> str | None:
        """Like commit_at, retrying the other default spelling and ``origin/<ref>``."""
        commit = self.commit_at(repo, ref)
        if commit:
            return commit

        candidates: list[str] = []
        short = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
        if short == "main":
            candidates.append(ref.replace("main", "master"))
        elif short == "master":
            candidates.append(ref.replace("master", "main"))
        if "/" not in ref:
            candidates.append(f"origin/{ref}")
        elif ref.startswith("refs/heads/"):
            candidates.append(f"refs/remotes/origin/{short}")

        for candidate in candidates:
            commit = self.commit_at(repo, candidate)
            if commit:
                logger.debug("Resolved %s via fallback %s in %s", ref, candidate, repo)
                return commit
        return None

    def repo_prefix(self, repo: Path | str) -> str:
        """Path of ``repo`` relative to the root of its git repository ("" at the root)."""
        return self.git.run(["rev-parse", "--show-prefix"], repo)

    def read_file_at_commit(self, repo: Path | str, commit: str, relative_path: str) -> bytes:
        """File content pinned to ``commit``; never read from the working tree."""
        try:
            prefix = self.repo_prefix(repo)
            return self.git.run_bytes(["show", f"{commit}:{prefix}{relative_path}"], repo)
        except GitError as e:
            raise ManifestNotFoundError(str(repo), commit, relative_path) from e

    def archive(self, repo: Path | str, commit: str) -> bytes:
        """Tar stream of the unit tree at ``commit``."""
        return self.git.run_bytes(["archive", "--format=tar", commit], repo)
