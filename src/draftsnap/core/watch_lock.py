"""Singleton marker preventing two watch sessions on one sidecar store."""

from __future__ import annotations

import logging
import os

from ..errors import LockError
from .lock import register_cleanup, unregister_cleanup

logger = logging.getLogger(__name__)

WATCH_PID_FILENAME = ".draftsnap-watch.pid"


class WatchPidLock:
    """PID file claimed with exclusive-create for the lifetime of a watch.

    Unlike :class:`~draftsnap.core.lock.LockManager` this never waits:
    a second watch session fails immediately.
    """

    def __init__(self, git_dir: str) -> None:
        self.pid_path = os.path.join(git_dir, WATCH_PID_FILENAME)
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Write the PID file.

        Raises:
            LockError: If another watch session owns the store.
        """
        if self._held:
            return

        os.makedirs(os.path.dirname(self.pid_path), exist_ok=True)
        try:
            with open(self.pid_path, "x", encoding="utf-8") as fh:
                fh.write(f"{os.getpid()}\n")
        except FileExistsError:
            raise LockError("another watch process is running") from None

        self._held = True
        # Signals are left to the watch session's own handlers.
        register_cleanup(self, handle_signals=False)
        logger.debug("Acquired watch lock %s", self.pid_path)

    def release(self) -> None:
        if not self._held:
            return
        try:
            if os.path.exists(self.pid_path):
                os.remove(self.pid_path)
        finally:
            self._held = False
            unregister_cleanup(self)

    def read_pid(self) -> int | None:
        """Return the PID recorded in the marker, or ``None``."""
        return read_watch_pid(os.path.dirname(self.pid_path))


def read_watch_pid(git_dir: str) -> int | None:
    """Return the PID of the watch session owning ``git_dir``, if any."""
    path = os.path.join(git_dir, WATCH_PID_FILENAME)
    try:
        with open(path, encoding="utf-8") as fh:
            content = fh.read().strip()
    except (FileNotFoundError, NotADirectoryError):
        return None
    try:
        return int(content)
    except ValueError:
        return None
