"""``draftsnap snap``: capture one path (or every pending change) as a commit."""

from __future__ import annotations

import logging
import os

from ..core.async_utils import run_sync
from ..core.git import GitClient
from ..core.lock import DEFAULT_TIMEOUT, LockManager
from ..core.repository import Sidecar, ensure_sidecar
from ..errors import ExitCode, InvalidArgsError
from ..models import SnapResult
from ..validators import resolve_target_path, sanitize_target_path

logger = logging.getLogger(__name__)


def _prepare_target(
    abs_path: str, stdin_content: str | None, allow_missing: bool
) -> bool:
    """Create the target file when needed.

    Returns:
        ``True`` if the file exists afterwards.
    """
    if stdin_content is not None:
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        with open(abs_path, "w", encoding="utf-8", newline="") as fh:
            fh.write(stdin_content)
        return True
    if os.path.exists(abs_path):
        return True
    if allow_missing:
        return False
    os.makedirs(os.path.dirname(abs_path), exist_ok=True)
    with open(abs_path, "w", encoding="utf-8"):
        pass
    return True


def _staged_names(git: GitClient) -> list[str]:
    result = git.exec(["diff", "--cached", "--name-only", "-z"], trim=False)
    return [name for name in result.stdout.split("\0") if name]


def _total_bytes(work_tree: str, paths: list[str]) -> int:
    total = 0
    for staged in paths:
        try:
            total += os.path.getsize(os.path.join(work_tree, staged))
        except FileNotFoundError:
            continue
    return total


async def snap_command(
    sidecar: Sidecar,
    path: str | None = None,
    *,
    message: str | None = None,
    all_files: bool = False,
    space: str | None = None,
    stdin_content: str | None = None,
    allow_missing: bool = False,
    lock_signals: bool = True,
    lock_timeout: float = DEFAULT_TIMEOUT,
) -> SnapResult:
    """Snapshot ``path`` (or every pending scratch change) into one commit.

    Args:
        sidecar: Store locations.
        path: Target file; relative paths are placed under the scratch dir.
        message: Commit message (default ``snap: <path>`` / ``snap: all``).
        all_files: Stage every change under the scratch directory.
        space: Optional sub-directory of the scratch dir for ``path``.
        stdin_content: Content to write to ``path`` before staging.
        allow_missing: Stage a deletion when ``path`` no longer exists.
        lock_signals: Let the lock install SIGINT/SIGTERM cleanup handlers.
        lock_timeout: Seconds to wait for the operation lock.

    Returns:
        ``SnapResult`` with ``code=NO_CHANGES`` when nothing was staged.

    Raises:
        InvalidArgsError: Missing or out-of-scratch path, or ``space`` with
            ``all_files``.
        LockError: The operation lock stayed busy past ``lock_timeout``.
    """
    if all_files and space:
        raise InvalidArgsError("snap --all cannot be combined with --space")

    target: str | None = None
    if not all_files:
        if not path:
            raise InvalidArgsError("snap requires a target path")
        candidate = resolve_target_path(path, sidecar.scratch_dir, space)
        target = sanitize_target_path(
            candidate, sidecar.work_tree, sidecar.scratch_dir
        )
        if not target:
            raise InvalidArgsError("path must be within scratch directory")

    await ensure_sidecar(sidecar)
    git = sidecar.git()

    async with LockManager(
        sidecar.git_dir, handle_signals=lock_signals, timeout=lock_timeout
    ):
        if all_files:
            await git.aexec(["add", "-A", "-f", "--", sidecar.scratch_dir])
            staged = await run_sync(_staged_names, git)
            if not staged:
                logger.info("no pending changes under %s", sidecar.scratch_dir)
                return SnapResult(code=ExitCode.NO_CHANGES)
        elif target:
            abs_target = os.path.join(sidecar.work_tree, target)
            exists = await run_sync(
                _prepare_target, abs_target, stdin_content, allow_missing
            )
            if exists:
                await git.aexec(["add", "-f", "--", target])
            else:
                await git.aexec(
                    ["rm", "--cached", "--ignore-unmatch", "--quiet", "--", target]
                )
            staged = [
                name
                for name in await run_sync(_staged_names, git)
                if name == target
            ]
            if not staged:
                logger.info("no changes for %s", target)
                return SnapResult(code=ExitCode.NO_CHANGES, path=target)

        total = await run_sync(_total_bytes, sidecar.work_tree, staged)

        base_message = message or ("snap: all" if all_files else f"snap: {target}")
        final_message = (
            f"[space:{space}] {base_message}"
            if space and not all_files
            else base_message
        )
        await git.aexec(["commit", "--quiet", "-m", final_message])
        commit = (await git.aexec(["rev-parse", "HEAD"])).stdout.strip()

        if all_files:
            logger.info("snap stored %d files at %s", len(staged), commit)
        else:
            logger.info("snap stored %s at %s", target, commit)

        return SnapResult(
            commit=commit,
            path=target,
            paths=staged,
            files_count=len(staged),
            bytes=total,
        )
