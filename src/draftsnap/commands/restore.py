"""``draftsnap restore``: write a file's content from a prior snapshot."""

from __future__ import annotations

import logging
import os
import time

from ..core.async_utils import run_sync
from ..core.lock import DEFAULT_TIMEOUT, LockManager
from ..core.repository import Sidecar, ensure_sidecar
from ..errors import GitError, InvalidArgsError, NotInitializedError
from ..models import RestoreResult
from ..validators import sanitize_target_path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".draftsnap.bak"


def _write_restored(abs_path: str, blob: bytes) -> tuple[int, str | None]:
    """Move any existing file aside, then write ``blob`` unchanged.

    Returns:
        Tuple of (bytes_written, backup_path_or_None).
    """
    backup: str | None = None
    if os.path.exists(abs_path):
        backup = f"{abs_path}{BACKUP_SUFFIX}.{int(time.time() * 1000)}"
        os.replace(abs_path, backup)

    os.makedirs(os.path.dirname(abs_path), exist_ok=True)
    with open(abs_path, "wb") as fh:
        fh.write(blob)
    return len(blob), backup


async def restore_command(
    sidecar: Sidecar,
    revision: str,
    path: str,
    *,
    lock_timeout: float = DEFAULT_TIMEOUT,
) -> RestoreResult:
    """Restore ``path`` as it was at ``revision``.

    An existing file is kept as ``<file>.draftsnap.bak.<epoch-ms>``.

    Raises:
        InvalidArgsError: Path outside the scratch directory, or unknown
            revision/path.
        NotInitializedError: The store holds no snapshots yet.
    """
    if not revision:
        raise InvalidArgsError("revision is required")
    target = sanitize_target_path(path, sidecar.work_tree, sidecar.scratch_dir)
    if not target:
        raise InvalidArgsError("path must be within scratch directory")

    await ensure_sidecar(sidecar)
    git = sidecar.git()

    async with LockManager(sidecar.git_dir, timeout=lock_timeout):
        if await git.head() is None:
            raise NotInitializedError("no snapshots to restore from")

        try:
            blob = await git.aexec_bytes(["show", f"{revision}:{target}"])
        except GitError as exc:
            raise InvalidArgsError(
                f"unknown revision or path: {revision}"
            ) from exc

        abs_path = os.path.join(sidecar.work_tree, target)
        count, backup = await run_sync(_write_restored, abs_path, blob)

        logger.info("restored %s from %s", target, revision)
        if backup:
            logger.info("backup saved to %s", backup)

        return RestoreResult(
            path=target, bytes=count, revision=revision, backup=backup
        )
