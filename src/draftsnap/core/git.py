"""Thin client for the git executable backing the sidecar store.

Every call is pinned to the sidecar with ``--git-dir``/``--work-tree`` (and
the matching environment variables) so that a host repository in the same
working tree is never touched by accident.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Sequence

from ..errors import GitError
from .async_utils import run_sync

logger = logging.getLogger(__name__)

# Environment variables that would redirect git away from the directory we
# point it at.
_GIT_LOCATION_VARS = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_COMMON_DIR",
)


def _strip_trailing_newline(value: str) -> str:
    if value.endswith("\r\n"):
        return value[:-2]
    if value.endswith("\n"):
        return value[:-1]
    return value


def clean_git_env() -> dict[str, str]:
    """Return a copy of ``os.environ`` without git location overrides."""
    env = dict(os.environ)
    for key in _GIT_LOCATION_VARS:
        env.pop(key, None)
    return env


@dataclass(frozen=True)
class GitResult:
    stdout: str
    stderr: str


class GitClient:
    """Run git commands against one sidecar store.

    Args:
        work_tree: Absolute path of the working tree.
        git_dir: Absolute path of the sidecar git directory.
    """

    def __init__(self, work_tree: str, git_dir: str) -> None:
        self.work_tree = work_tree
        self.git_dir = git_dir

    def _run(
        self, args: Sequence[str], cwd: str | None, **kwargs: Any
    ) -> subprocess.CompletedProcess:
        git_args = [
            "git",
            "--git-dir",
            self.git_dir,
            "--work-tree",
            self.work_tree,
            *args,
        ]
        env = clean_git_env()
        env["GIT_DIR"] = self.git_dir
        env["GIT_WORK_TREE"] = self.work_tree

        logger.debug("git %s", " ".join(args))
        try:
            return subprocess.run(
                git_args,
                cwd=cwd or self.work_tree,
                env=env,
                capture_output=True,
                **kwargs,
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise GitError(list(args), None, "", str(exc)) from exc

    def exec_bytes(self, args: Sequence[str], *, cwd: str | None = None) -> bytes:
        """Run ``git <args>`` and return stdout exactly as git wrote it.

        Used for file content (``git show <rev>:<path>``), which must not
        pass through newline translation or decoding.

        Raises:
            GitError: On non-zero exit, or when git cannot be started.
        """
        proc = self._run(args, cwd)
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace")
            raise GitError(
                list(args), proc.returncode, "", _strip_trailing_newline(stderr)
            )
        return proc.stdout

    async def aexec_bytes(
        self, args: Sequence[str], *, cwd: str | None = None
    ) -> bytes:
        return await run_sync(self.exec_bytes, args, cwd=cwd)

    def exec(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        trim: bool = True,
        cwd: str | None = None,
    ) -> GitResult:
        """Run ``git <args>`` and return its decoded output.

        Args:
            args: Arguments after the ``--git-dir``/``--work-tree`` prefix.
            input: Optional text fed to stdin.
            trim: Strip one trailing newline from stdout/stderr.
            cwd: Working directory for the process (default: the work tree).

        Raises:
            GitError: On non-zero exit, or when git cannot be started.
        """
        proc = self._run(
            args,
            cwd,
            input=input,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

        stdout = proc.stdout or ""
        stderr = proc.stderr or ""
        if trim:
            stdout = _strip_trailing_newline(stdout)
            stderr = _strip_trailing_newline(stderr)

        if proc.returncode != 0:
            raise GitError(list(args), proc.returncode, stdout, stderr)
        return GitResult(stdout=stdout, stderr=stderr)

    async def aexec(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        trim: bool = True,
        cwd: str | None = None,
    ) -> GitResult:
        """Async wrapper: run :meth:`exec` in a worker thread."""
        return await run_sync(
            self.exec, args, input=input, trim=trim, cwd=cwd
        )

    async def head(self) -> str | None:
        """Return the ``HEAD`` commit id, or ``None`` if there are no commits."""
        try:
            result = await self.aexec(["rev-parse", "--verify", "HEAD"])
        except GitError as exc:
            if exc.is_missing_revision():
                return None
            raise
        return result.stdout.strip() or None


def run_git(args: Sequence[str], cwd: str | None = None) -> GitResult:
    """Run git without pinning it to a store (e.g. ``git clone``).

    Raises:
        GitError: On non-zero exit, or when git cannot be started.
    """
    logger.debug("git %s", " ".join(args))
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            env=clean_git_env(),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise GitError(list(args), None, "", str(exc)) from exc

    stdout = _strip_trailing_newline(proc.stdout or "")
    stderr = _strip_trailing_newline(proc.stderr or "")
    if proc.returncode != 0:
        raise GitError(list(args), proc.returncode, stdout, stderr)
    return GitResult(stdout=stdout, stderr=stderr)


def resolve_main_git_dir(work_tree: str) -> str | None:
    """Return the host repository's git directory for ``work_tree``.

    Returns ``None`` when the working tree is not inside a host repository
    or git is unavailable.
    """
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--absolute-git-dir"],
            cwd=os.path.abspath(work_tree),
            env=clean_git_env(),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, NotADirectoryError):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None
