"""Sidecar bootstrap: store initialization, exclusion rules, file discovery.

Every step here is idempotent so ``ensure_sidecar()`` can run before each
mutating command. It does not take the operation lock itself.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from ..errors import GitError
from ..validators import normalize_separators
from .async_utils import run_sync
from .git import GitClient, resolve_main_git_dir

logger = logging.getLogger(__name__)

DEFAULT_SCRATCH_DIR = "scratch"
DEFAULT_GIT_DIR = ".git-scratch"

FALLBACK_USER_NAME = "draftsnap"
FALLBACK_USER_EMAIL = "draftsnap@localhost"


@dataclass(frozen=True)
class Sidecar:
    """Resolved locations of one sidecar store.

    Attributes:
        work_tree: Absolute working-tree root.
        git_dir: Absolute sidecar store directory.
        scratch_dir: Scratch directory name relative to ``work_tree``.
    """

    work_tree: str
    git_dir: str
    scratch_dir: str

    @classmethod
    def resolve(
        cls,
        work_tree: str | os.PathLike[str] | None = None,
        git_dir: str = DEFAULT_GIT_DIR,
        scratch_dir: str = DEFAULT_SCRATCH_DIR,
    ) -> Sidecar:
        """Build a ``Sidecar`` with absolute paths.

        A relative ``git_dir`` is resolved against ``work_tree`` (which
        defaults to the current directory).
        """
        root = os.path.abspath(os.fspath(work_tree) if work_tree else os.getcwd())
        store = git_dir if os.path.isabs(git_dir) else os.path.join(root, git_dir)
        scratch = normalize_separators(scratch_dir).strip("/") or DEFAULT_SCRATCH_DIR
        return cls(
            work_tree=root,
            git_dir=os.path.normpath(store),
            scratch_dir=scratch,
        )

    @property
    def scratch_root(self) -> str:
        return os.path.join(self.work_tree, self.scratch_dir)

    def git(self) -> GitClient:
        return GitClient(self.work_tree, self.git_dir)

    def is_initialized(self) -> bool:
        return os.path.exists(os.path.join(self.git_dir, "HEAD"))


@dataclass(frozen=True)
class EnsureSidecarResult:
    initialized: bool
    git_dir: str
    scratch_dir: str
    files: list[str]


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------


def list_files(root: str) -> list[str]:
    """Return every file under ``root`` as sorted forward-slash relative paths.

    A missing ``root`` yields an empty list.
    """
    results: list[str] = []
    if not os.path.isdir(root):
        return results

    for current, dirs, files in os.walk(root):
        dirs.sort()
        rel_dir = os.path.relpath(current, root)
        for name in files:
            rel = name if rel_dir == os.curdir else os.path.join(rel_dir, name)
            results.append(normalize_separators(rel))
    return sorted(results)


# ---------------------------------------------------------------------------
# Exclusion rules
# ---------------------------------------------------------------------------


def read_exclude_lines(path: str) -> set[str]:
    """Return the stripped, non-empty lines of an exclude file."""
    try:
        with open(path, encoding="utf-8") as fh:
            content = fh.read()
    except (FileNotFoundError, NotADirectoryError):
        return set()
    return {line.strip() for line in content.split("\n") if line.strip()}


def append_missing_lines(path: str, desired: list[str]) -> list[str]:
    """Append the entries of ``desired`` that ``path`` does not contain yet.

    Existing content is preserved; a newline is inserted first when the file
    does not end with one, and the file always ends with a newline.

    Returns:
        The entries that were appended (empty when nothing changed).
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)

    current = ""
    if os.path.exists(path):
        with open(path, encoding="utf-8") as fh:
            current = fh.read()

    existing = {line.strip() for line in current.split("\n") if line.strip()}
    missing: list[str] = []
    for entry in desired:
        if entry not in existing and entry not in missing:
            missing.append(entry)
    if not missing:
        return []

    prefix = "\n" if current and not current.endswith("\n") else ""
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(prefix + "\n".join(missing) + "\n")
    logger.debug("Appended %s to %s", missing, path)
    return missing


def git_dir_exclude_entry(work_tree: str, git_dir: str) -> str:
    """Return the host exclude entry for the sidecar store (trailing slash)."""
    rel = os.path.relpath(git_dir, work_tree)
    if rel.startswith(os.pardir):
        rel = git_dir
    rel = normalize_separators(rel)
    return rel if rel.endswith("/") else f"{rel}/"


def sidecar_exclude_entries(scratch_dir: str) -> list[str]:
    """Deny everything, then allow the scratch subtree."""
    return ["*", f"!{scratch_dir}/", f"!{scratch_dir}/**"]


def find_host_git_dir(sidecar: Sidecar) -> str | None:
    """Return the host repository's git directory, ignoring the sidecar itself."""
    host = resolve_main_git_dir(sidecar.work_tree)
    if host is None:
        return None
    if os.path.normpath(host) == os.path.normpath(sidecar.git_dir):
        return None
    return host


def ensure_host_exclude(sidecar: Sidecar, host_git_dir: str | None) -> list[str]:
    """Hide the scratch directory and the sidecar store from the host repo."""
    if not host_git_dir:
        return []
    desired = [
        f"{sidecar.scratch_dir}/",
        git_dir_exclude_entry(sidecar.work_tree, sidecar.git_dir),
    ]
    return append_missing_lines(
        os.path.join(host_git_dir, "info", "exclude"), desired
    )


def ensure_sidecar_exclude(git_dir: str, scratch_dir: str) -> list[str]:
    """Restrict the sidecar store to the scratch subtree."""
    return append_missing_lines(
        os.path.join(git_dir, "info", "exclude"),
        sidecar_exclude_entries(scratch_dir),
    )


def ensure_identity(git: GitClient) -> None:
    """Give the store a committer identity when git has none configured."""
    try:
        git.exec(["config", "--get", "user.email"])
        return
    except GitError:
        pass
    git.exec(["config", "user.name", FALLBACK_USER_NAME])
    git.exec(["config", "user.email", FALLBACK_USER_EMAIL])
    logger.debug("Configured fallback committer identity for %s", git.git_dir)


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


def ensure_sidecar_sync(sidecar: Sidecar) -> EnsureSidecarResult:
    """Prepare the sidecar store for use (blocking version).

    Steps:
        a. ``git init`` when the store has no ``HEAD``.
        b. Create the scratch directory.
        c. Register host and sidecar exclusion rules.
        d. List files already present in the scratch directory.
    """
    git = sidecar.git()

    initialized = False
    if not sidecar.is_initialized():
        os.makedirs(sidecar.git_dir, exist_ok=True)
        git.exec(["init", "--quiet"])
        ensure_identity(git)
        initialized = True
        logger.info("Initialized sidecar store at %s", sidecar.git_dir)

    os.makedirs(sidecar.scratch_root, exist_ok=True)

    ensure_host_exclude(sidecar, find_host_git_dir(sidecar))
    ensure_sidecar_exclude(sidecar.git_dir, sidecar.scratch_dir)

    files = [
        f"{sidecar.scratch_dir}/{name}"
        for name in list_files(sidecar.scratch_root)
    ]
    return EnsureSidecarResult(
        initialized=initialized,
        git_dir=sidecar.git_dir,
        scratch_dir=sidecar.scratch_dir,
        files=files,
    )


async def ensure_sidecar(sidecar: Sidecar) -> EnsureSidecarResult:
    """Async wrapper: run :func:`ensure_sidecar_sync` in a worker thread."""
    return await run_sync(ensure_sidecar_sync, sidecar)
