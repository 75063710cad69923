"""Core sidecar primitives shared by every command."""

from .async_utils import run_sync
from .git import GitClient, GitResult
from .lock import LockManager
from .repository import EnsureSidecarResult, Sidecar, ensure_sidecar
from .watch_lock import WatchPidLock

__all__ = [
    "EnsureSidecarResult",
    "GitClient",
    "GitResult",
    "LockManager",
    "Sidecar",
    "WatchPidLock",
    "ensure_sidecar",
    "run_sync",
]
