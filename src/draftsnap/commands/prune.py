"""``draftsnap prune``: truncate the sidecar history to the newest N commits.

The truncated history is built as a separate shallow clone next to the
store and swapped in only once it is complete and verified:

1. ``git clone --depth N --no-checkout`` from the live store (read only).
2. Verify the clone's commit count, drop its ``origin`` remote, re-apply
   the sidecar exclusion rules, and carry the operation lock (and any
   watch marker) into it.
3. Rename the live store aside, rename the clone into its place; if the
   second rename fails the old store is renamed back, or, when that is
   impossible, moved to ``<store>.draftsnap-prune-backup-<epoch-ms>``.
4. ``git reset --hard`` so the working tree matches the truncated head.

A failure during steps 1-2 never touches the live store. The temporary
directory is removed unless it still holds the displaced old store.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from ..core.async_utils import run_sync
from ..core.git import GitClient, run_git
from ..core.lock import DEFAULT_TIMEOUT, LOCK_DIRNAME, LockManager
from ..core.repository import (
    Sidecar,
    ensure_identity,
    ensure_sidecar,
    ensure_sidecar_exclude,
)
from ..core.watch_lock import WATCH_PID_FILENAME
from ..errors import ExitCode, GitError, PreconditionFailedError
from ..models import PruneResult
from ..validators import validate_keep

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".draftsnap-prune-"
BACKUP_INFIX = ".draftsnap-prune-backup-"


async def list_commits(git: GitClient) -> list[str]:
    """Return every commit id reachable from ``HEAD``, oldest first."""
    try:
        result = await git.aexec(["rev-list", "--reverse", "HEAD"])
    except GitError as exc:
        if exc.is_missing_revision():
            return []
        raise
    return [line.strip() for line in result.stdout.split("\n") if line.strip()]


# ---------------------------------------------------------------------------
# Build / swap steps (blocking; run in a worker thread)
# ---------------------------------------------------------------------------


def build_truncated_store(sidecar: Sidecar, keep: int, clone_dir: str) -> str:
    """Build a shallow copy of the store holding the newest ``keep`` commits.

    Returns:
        Path of the new git directory inside ``clone_dir``.

    Raises:
        PreconditionFailedError: If the clone does not hold exactly ``keep``
            commits.
    """
    source_url = Path(sidecar.git_dir).as_uri()
    run_git(
        [
            "clone",
            "--quiet",
            "--depth",
            str(keep),
            "--no-checkout",
            source_url,
            clone_dir,
        ]
    )

    new_git_dir = os.path.join(clone_dir, ".git")
    git = GitClient(sidecar.work_tree, new_git_dir)

    count = int(git.exec(["rev-list", "--count", "HEAD"]).stdout.strip() or 0)
    if count != keep:
        raise PreconditionFailedError(
            f"truncated history has {count} commits, expected {keep}"
        )

    git.exec(["remote", "remove", "origin"])
    ensure_identity(git)
    ensure_sidecar_exclude(new_git_dir, sidecar.scratch_dir)

    os.mkdir(os.path.join(new_git_dir, LOCK_DIRNAME))
    watch_marker = os.path.join(sidecar.git_dir, WATCH_PID_FILENAME)
    if os.path.exists(watch_marker):
        shutil.copy2(watch_marker, os.path.join(new_git_dir, WATCH_PID_FILENAME))
    return new_git_dir


def swap_store(new_git_dir: str, git_dir: str, displaced: str) -> None:
    """Move ``new_git_dir`` into ``git_dir``, parking the old store at ``displaced``.

    If the new store cannot be moved in, the old one is renamed back. When
    that rename fails as well (something recreated ``git_dir`` meanwhile),
    the old store is moved next to ``git_dir`` as
    ``<git_dir>.draftsnap-prune-backup-<epoch-ms>`` so it outlives the
    temporary directory.

    Raises:
        PreconditionFailedError: The old store could not be put back; the
            message names the backup location.
        OSError: The swap failed and the old store was restored.
    """
    os.rename(git_dir, displaced)
    try:
        os.rename(new_git_dir, git_dir)
    except OSError as exc:
        logger.error("Swap failed; restoring previous store at %s", git_dir)
        try:
            os.rename(displaced, git_dir)
        except OSError:
            backup = f"{git_dir}{BACKUP_INFIX}{int(time.time() * 1000)}"
            os.rename(displaced, backup)
            logger.critical("Previous store preserved at %s", backup)
            raise PreconditionFailedError(
                f"prune could not restore {git_dir}; "
                f"previous history preserved at {backup}"
            ) from exc
        raise


def truncate_history(sidecar: Sidecar, keep: int) -> None:
    parent = os.path.dirname(sidecar.git_dir)
    tmp = tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=parent)
    displaced = os.path.join(tmp, "previous")
    try:
        new_git_dir = build_truncated_store(
            sidecar, keep, os.path.join(tmp, "clone")
        )
        swap_store(new_git_dir, sidecar.git_dir, displaced)
    except BaseException:
        if os.path.exists(displaced):
            # The old store is still parked here; never delete it.
            logger.critical("Previous store left at %s", displaced)
            raise
        shutil.rmtree(tmp, ignore_errors=True)
        raise
    shutil.rmtree(tmp, ignore_errors=True)

    sidecar.git().exec(["reset", "--hard", "--quiet"])


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


async def prune_command(
    sidecar: Sidecar,
    keep: int,
    *,
    lock_timeout: float = DEFAULT_TIMEOUT,
) -> PruneResult:
    """Keep only the newest ``keep`` commits.

    Returns:
        ``PruneResult``; ``code=NO_CHANGES`` when the history is empty or
        already within ``keep``.

    Raises:
        InvalidArgsError: If ``keep`` is not a positive integer.
        LockError: The operation lock stayed busy past ``lock_timeout``.
    """
    keep = validate_keep(keep)

    await ensure_sidecar(sidecar)
    git = sidecar.git()

    async with LockManager(sidecar.git_dir, timeout=lock_timeout):
        commits = await list_commits(git)
        if not commits:
            return PruneResult(code=ExitCode.NO_CHANGES)

        if len(commits) <= keep:
            logger.info("already within threshold")
            return PruneResult(code=ExitCode.NO_CHANGES, kept=len(commits))

        remove_count = len(commits) - keep
        removed_commits = commits[:remove_count]

        await run_sync(truncate_history, sidecar, keep)

        logger.info("removed %d commits, kept %d", remove_count, keep)
        return PruneResult(
            kept=keep,
            removed=remove_count,
            removed_commits=removed_commits,
        )
