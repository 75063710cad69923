"""``draftsnap diff``: compare the last two snapshots, or HEAD and the working tree."""

import logging

from ..core.repository import Sidecar, ensure_sidecar
from ..errors import GitError
from ..models import DiffResult
from ..validators import sanitize_filter_path

logger = logging.getLogger(__name__)


async def diff_command(
    sidecar: Sidecar,
    path: str | None = None,
    *,
    current: bool = False,
) -> DiffResult:
    """Return the patch between ``HEAD^`` and ``HEAD`` (or the working tree).

    Args:
        sidecar: Store locations.
        path: Optional path filter.
        current: Diff the working tree against the index instead.

    Raises:
        InvalidArgsError: ``path`` lies outside the scratch directory.
    """
    pathspec = None
    if path:
        pathspec = sanitize_filter_path(path, sidecar.work_tree, sidecar.scratch_dir)

    await ensure_sidecar(sidecar)
    git = sidecar.git()

    head = await git.head()
    if head is None:
        return DiffResult()

    if current:
        args = ["diff"]
        if pathspec:
            args += ["--", pathspec]
        patch = (await git.aexec(args)).stdout
        base = None
        target = "working-tree"
    else:
        try:
            base = (await git.aexec(["rev-parse", "--verify", "HEAD^"])).stdout.strip()
        except GitError as exc:
            if not exc.is_missing_revision():
                raise
            logger.info("no previous commit to diff against")
            return DiffResult(target=head)
        args = ["diff", base, head]
        if pathspec:
            args += ["--", pathspec]
        patch = (await git.aexec(args)).stdout
        target = head

    if patch:
        logger.info("%s", patch)
    else:
        logger.info("no differences")

    return DiffResult(patch=patch, base=base, target=target)
