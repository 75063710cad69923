"""``draftsnap ensure``: initialize or verify the sidecar."""

import logging

from ..core.repository import Sidecar, ensure_sidecar
from ..models import EnsureResult

logger = logging.getLogger(__name__)


async def ensure_command(sidecar: Sidecar) -> EnsureResult:
    result = await ensure_sidecar(sidecar)

    if result.initialized:
        logger.info("initialized sidecar at %s", result.git_dir)
    else:
        logger.info("sidecar already initialized")
    if result.files:
        logger.info("tracked files:\n%s", "\n".join(result.files))

    return EnsureResult(
        initialized=result.initialized,
        git_dir=result.git_dir,
        scratch_dir=result.scratch_dir,
        files=result.files,
    )
