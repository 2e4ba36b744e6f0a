"""Shared fixtures: an in-memory git double and a workspace writer."""

from __future__ import annotations

import hashlib
import io
import json
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from evbuild.errors import GitError


@dataclass
class FakeCommit:
    tree: str
    files: dict[str, bytes]


@dataclass
class FakeRepo:
    refs: dict[str, str] = field(default_factory=dict)
    commits: dict[str, FakeCommit] = field(default_factory=dict)
    prefix: str = ""

    def resolve(self, spec: str) -> str:
        if spec in self.refs:
            return self.refs[spec]
        if spec in self.commits:
            return spec
        raise KeyError(spec)


class FakeGit:
    """Answers the git commands evbuild issues, from in-memory repositories."""

    def __init__(self):
        self.repos: dict[str, FakeRepo] = {}
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.fail_archive_for: set[str] = set()
        self._counter = 0

    @staticmethod
    def _key(path) -> str:
        return str(Path(path).resolve())

    def repo(self, path) -> FakeRepo:
        return self.repos.setdefault(self._key(path), FakeRepo())

    def commit(self, path, files: dict[str, str], ref: str | None = "refs/heads/main") -> str:
        self._counter += 1
        key = self._key(path)
        sha = hashlib.sha1(f"{key}:{self._counter}".encode()).hexdigest()
        tree = hashlib.sha1(json.dumps(sorted(files.items())).encode()).hexdigest()
        repo = self.repo(path)
        repo.commits[sha] = FakeCommit(tree=tree, files={k: v.encode() for k, v in files.items()})
        if ref:
            repo.refs[ref] = sha
        return sha

    def tree_calls(self, path=None) -> list[tuple[str, tuple[str, ...]]]:
        return [
            c for c in self.calls
            if any(a.endswith("^{tree}") for a in c[1])
            and (path is None or c[0] == self._key(path))
        ]

    # GitRunner interface

    def run_bytes(self, args, cwd) -> bytes:
        args = tuple(args)
        key = self._key(cwd)
        self.calls.append((key, args))
        repo = self.repos.get(key)
        if repo is None:
            raise GitError(args, 128, "not a git repository")
        try:
            return self._dispatch(repo, key, args)
        except KeyError as e:
            raise GitError(args, 128, f"unknown revision {e}") from e

    def run(self, args, cwd) -> str:
        return self.run_bytes(args, cwd).decode().strip()

    def succeeds(self, args, cwd) -> bool:
        try:
            self.run_bytes(args, cwd)
        except GitError:
            return False
        return True

    def _dispatch(self, repo: FakeRepo, key: str, args: tuple[str, ...]) -> bytes:
        cmd = args[0]
        if cmd == "rev-parse":
            rest = [a for a in args[1:] if a not in ("--verify", "--quiet")]
            if rest == ["--show-prefix"]:
                return f"{repo.prefix}\n".encode()
            spec = rest[0]
            if spec.endswith("^{tree}"):
                sha = repo.resolve(spec[: -len("^{tree}")])
                return f"{repo.commits[sha].tree}\n".encode()
            if spec.endswith("^{commit}"):
                spec = spec[: -len("^{commit}")]
            return f"{repo.resolve(spec)}\n".encode()

        if cmd == "show":
            rev, path = args[1].split(":", 1)
            files = repo.commits[repo.resolve(rev)].files
            return files[path[len(repo.prefix):]]

        if cmd == "archive":
            if key in self.fail_archive_for:
                raise GitError(args, 1, "archive failed")
            files = repo.commits[repo.resolve(args[-1])].files
            buf = io.BytesIO()
            with tarfile.open(fileobj=buf, mode="w") as tar:
                for name, data in sorted(files.items()):
                    info = tarfile.TarInfo(name)
                    info.size = len(data)
                    info.mode = 0o644
                    tar.addfile(info, io.BytesIO(data))
            return buf.getvalue()

        raise GitError(args, 1, f"unsupported fake command {cmd}")


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def fingerprinter(fake_git):
    from evbuild.git.fingerprint import ContentFingerprinter
    return ContentFingerprinter(git=fake_git)


def write_unit(
    root: Path,
    subdir: str,
    dirname: str,
    name: str,
    dependencies: dict[str, str] | None = None,
    peer_dependencies: dict[str, str] | None = None,
    natstack: dict | None = None,
) -> Path:
    unit_dir = root / subdir / dirname
    unit_dir.mkdir(parents=True, exist_ok=True)
    pkg: dict = {"name": name, "version": "0.0.0"}
    if dependencies:
        pkg["dependencies"] = dependencies
    if peer_dependencies:
        pkg["peerDependencies"] = peer_dependencies
    if natstack is not None:
        pkg["natstack"] = natstack
    (unit_dir / "package.json").write_text(json.dumps(pkg, indent=2))
    return unit_dir


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root
