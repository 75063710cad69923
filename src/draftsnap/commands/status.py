"""``draftsnap status``: report initialization, lock and exclusion state.

Read only: this never initializes the store or edits exclude files.
"""

from __future__ import annotations

import logging
import os

from ..core.async_utils import run_sync
from ..core.lock import LOCK_DIRNAME
from ..core.repository import (
    Sidecar,
    find_host_git_dir,
    git_dir_exclude_entry,
    read_exclude_lines,
)
from ..core.watch_lock import read_watch_pid
from ..errors import GitError
from ..models import (
    ExcludeStatus,
    HostExcludeStatus,
    SidecarExcludeStatus,
    StatusResult,
    WorkingTreeStatus,
)

logger = logging.getLogger(__name__)


def parse_git_status(porcelain: str) -> WorkingTreeStatus:
    """Bucket ``git status --porcelain -z`` records into modified/added/deleted.

    Records are NUL separated and paths are never quoted. A rename or copy
    record is followed by one extra field holding the source path, which is
    skipped. Untracked (``??``) and copied entries count as added, renames
    as modified under their new name. Directory entries are skipped.

    Example:
        >>> parse_git_status(" M scratch/a.md\\0?? scratch/b.md\\0").added
        ['scratch/b.md']
    """
    modified: set[str] = set()
    added: set[str] = set()
    deleted: set[str] = set()

    fields = iter(porcelain.split("\0"))
    for record in fields:
        if len(record) < 4:
            continue
        code = record[:2]
        file_path = record[3:]
        staged, unstaged = code[0], code[1]
        if staged in ("R", "C"):
            next(fields, None)
        if file_path.endswith("/"):
            continue

        if code == "??":
            added.add(file_path)
            continue
        if staged == "M" or unstaged == "M" or staged == "R":
            modified.add(file_path)
        if staged in ("A", "C"):
            added.add(file_path)
        if staged == "D" or unstaged == "D":
            deleted.add(file_path)

    return WorkingTreeStatus(
        has_uncommitted_changes=bool(modified or added or deleted),
        modified=sorted(modified),
        added=sorted(added),
        deleted=sorted(deleted),
    )


def _scratch_changes(sidecar: Sidecar) -> WorkingTreeStatus:
    try:
        result = sidecar.git().exec(
            ["status", "--porcelain", "-z", "--untracked-files=all"], trim=False
        )
    except GitError as exc:
        logger.warning("failed to get working tree status: %s", exc)
        return WorkingTreeStatus()

    parsed = parse_git_status(result.stdout)
    prefix = f"{sidecar.scratch_dir}/"
    modified = [p for p in parsed.modified if p.startswith(prefix)]
    added = [p for p in parsed.added if p.startswith(prefix)]
    deleted = [p for p in parsed.deleted if p.startswith(prefix)]
    return WorkingTreeStatus(
        has_uncommitted_changes=bool(modified or added or deleted),
        modified=modified,
        added=added,
        deleted=deleted,
    )


def collect_status(sidecar: Sidecar) -> StatusResult:
    initialized = sidecar.is_initialized()
    locked = os.path.isdir(os.path.join(sidecar.git_dir, LOCK_DIRNAME))
    watch_pid = read_watch_pid(sidecar.git_dir)

    host_git_dir = find_host_git_dir(sidecar)
    host_lines = (
        read_exclude_lines(os.path.join(host_git_dir, "info", "exclude"))
        if host_git_dir
        else set()
    )
    side_lines = read_exclude_lines(
        os.path.join(sidecar.git_dir, "info", "exclude")
    )
    scratch = sidecar.scratch_dir

    exclude = ExcludeStatus(
        main=HostExcludeStatus(
            git_dir=git_dir_exclude_entry(sidecar.work_tree, sidecar.git_dir)
            in host_lines,
            scratch_dir=f"{scratch}/" in host_lines,
        ),
        sidecar=SidecarExcludeStatus(
            wildcard="*" in side_lines,
            scratch_dir=f"!{scratch}/" in side_lines,
            scratch_glob=f"!{scratch}/**" in side_lines,
        ),
    )
    working_tree = (
        _scratch_changes(sidecar) if initialized else WorkingTreeStatus()
    )
    return StatusResult(
        initialized=initialized,
        locked=locked,
        watch_pid=watch_pid,
        git_dir=sidecar.git_dir,
        scratch_dir=scratch,
        exclude=exclude,
        working_tree=working_tree,
    )


def _flag(value: bool) -> str:
    return "true" if value else "false"


async def status_command(sidecar: Sidecar) -> StatusResult:
    """Describe the store without changing it."""
    result = await run_sync(collect_status, sidecar)

    logger.info("git dir: %s", result.git_dir)
    logger.info("scratch dir: %s", result.scratch_dir)
    logger.info("initialized: %s", "yes" if result.initialized else "no")
    logger.info("locked: %s", "yes" if result.locked else "no")
    if result.watch_pid is not None:
        logger.info("watch running: pid %d", result.watch_pid)
    main = result.exclude.main
    side = result.exclude.sidecar
    logger.info(
        "main exclude - git_dir: %s, scr_dir: %s",
        _flag(main.git_dir),
        _flag(main.scratch_dir),
    )
    logger.info(
        "sidecar exclude - wildcard: %s, scr_dir: %s, scr_glob: %s",
        _flag(side.wildcard),
        _flag(side.scratch_dir),
        _flag(side.scratch_glob),
    )
    changes = result.working_tree
    if changes.has_uncommitted_changes:
        logger.info("uncommitted changes: yes")
        logger.info("  modified: %d", len(changes.modified))
        logger.info("  added: %d", len(changes.added))
        logger.info("  deleted: %d", len(changes.deleted))
    else:
        logger.info("uncommitted changes: no")
    return result
