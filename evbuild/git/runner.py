"""Blocking git subprocess wrapper. The only place evbuild spawns git."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from evbuild.errors import GitError

logger = logging.getLogger(__name__)


class GitRunner:
    """Run git commands in a repository and return their output.

    Tests swap this for a fake exposing the same three methods.
    """

    def __init__(self, executable: str = "git"):
        self.executable = executable

    def run_bytes(self, args: Sequence[str], cwd: Path | str) -> bytes:
        cmd = [self.executable, *args]
        logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
            )
        except OSError as e:
            raise GitError(args, None, str(e)) from e
        if proc.returncode != 0:
            raise GitError(args, proc.returncode, proc.stderr.decode("utf-8", "replace"))
        return proc.stdout

    def run(self, args: Sequence[str], cwd: Path | str) -> str:
        return self.run_bytes(args, cwd).decode("utf-8", "replace").strip()

    def succeeds(self, args: Sequence[str], cwd: Path | str) -> bool:
        try:
            self.run_bytes(args, cwd)
        except GitError:
            return False
        return True
