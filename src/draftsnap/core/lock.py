"""Cross-process mutual exclusion for mutating sidecar operations.

The lock is a directory inside the sidecar store. ``os.mkdir`` either
creates it or fails with ``FileExistsError``, so two processes can never
both believe they hold it. Release happens on scope exit (``async with``);
the process-wide cleanup registry below is only a safety net for abrupt
termination.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import shutil
import signal
import threading
import time
from typing import Any, Protocol

from ..errors import LockError

logger = logging.getLogger(__name__)

LOCK_DIRNAME = ".draftsnap.lock"
DEFAULT_TIMEOUT = 5.0
DEFAULT_RETRY_INTERVAL = 0.1

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Releasable(Protocol):
    def release(self) -> None: ...


# ---------------------------------------------------------------------------
# Process cleanup registry
# ---------------------------------------------------------------------------

_registry: dict[int, Releasable] = {}
_registry_lock = threading.RLock()
_atexit_installed = False
_previous_handlers: dict[int, Any] = {}


def release_all() -> None:
    """Release every registered lock. Safe to call repeatedly."""
    with _registry_lock:
        holders = list(_registry.values())
    for holder in holders:
        try:
            holder.release()
        except OSError:
            logger.exception("Failed to release %r during cleanup", holder)


def _handle_signal(signum: int, frame: Any) -> None:
    # Releasing the last holder restores and forgets the saved handlers.
    previous = _previous_handlers.get(signum, signal.SIG_DFL)
    release_all()
    _restore_signal_handlers()
    if previous is signal.SIG_IGN:
        return
    if callable(previous):
        previous(signum, frame)
        return
    raise SystemExit(128 + signum)


def _install_signal_handlers() -> None:
    if _previous_handlers:
        return
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not on the main thread; lock signal handlers skipped")
        return
    for signum in _HANDLED_SIGNALS:
        _previous_handlers[signum] = signal.getsignal(signum)
        signal.signal(signum, _handle_signal)


def _restore_signal_handlers() -> None:
    if not _previous_handlers:
        return
    if threading.current_thread() is not threading.main_thread():
        return
    for signum, previous in list(_previous_handlers.items()):
        signal.signal(
            signum, previous if previous is not None else signal.SIG_DFL
        )
    _previous_handlers.clear()


def register_cleanup(holder: Releasable, handle_signals: bool = True) -> None:
    """Track ``holder`` so process exit releases it.

    The exit hook is installed once per process; signal handlers are
    installed when the first holder asking for them registers.
    """
    global _atexit_installed
    with _registry_lock:
        _registry[id(holder)] = holder
        if not _atexit_installed:
            atexit.register(release_all)
            _atexit_installed = True
        if handle_signals:
            _install_signal_handlers()


def unregister_cleanup(holder: Releasable) -> None:
    """Stop tracking ``holder``; tear the registry down when it empties."""
    global _atexit_installed
    with _registry_lock:
        _registry.pop(id(holder), None)
        if _registry:
            return
        if _atexit_installed:
            atexit.unregister(release_all)
            _atexit_installed = False
        _restore_signal_handlers()


def active_holders() -> list[Releasable]:
    with _registry_lock:
        return list(_registry.values())


# ---------------------------------------------------------------------------
# Lock manager
# ---------------------------------------------------------------------------


class LockManager:
    """Directory-based lock serializing mutating operations on one store.

    Args:
        git_dir: Sidecar store directory; the lock lives inside it.
        handle_signals: Install SIGINT/SIGTERM cleanup handlers while held.
            Disable inside an event loop that manages signals itself.
        timeout: Default seconds to wait in :meth:`acquire`.
        retry_interval: Default seconds to sleep between attempts.
    """

    def __init__(
        self,
        git_dir: str,
        handle_signals: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        self.git_dir = git_dir
        self.lock_dir = os.path.join(git_dir, LOCK_DIRNAME)
        self.handle_signals = handle_signals
        self.timeout = timeout
        self.retry_interval = retry_interval
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def acquire(
        self,
        timeout: float | None = None,
        retry_interval: float | None = None,
    ) -> None:
        """Claim the lock, retrying on contention until the deadline.

        Raises:
            LockError: If another holder keeps the lock past ``timeout``.
        """
        if self._held:
            return

        timeout = self.timeout if timeout is None else timeout
        retry = self.retry_interval if retry_interval is None else retry_interval
        deadline = time.monotonic() + timeout

        os.makedirs(self.git_dir, exist_ok=True)

        attempts = 0
        while True:
            attempts += 1
            try:
                os.mkdir(self.lock_dir)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    logger.debug(
                        "Lock %s still held after %d attempts",
                        self.lock_dir,
                        attempts,
                    )
                    raise LockError() from None
                await asyncio.sleep(retry)
                continue

            self._held = True
            register_cleanup(self, self.handle_signals)
            logger.debug("Acquired lock %s", self.lock_dir)
            return

    def release(self) -> None:
        """Remove the lock directory. No-op when not held."""
        if not self._held:
            return
        try:
            if os.path.isdir(self.lock_dir):
                shutil.rmtree(self.lock_dir, ignore_errors=True)
            logger.debug("Released lock %s", self.lock_dir)
        finally:
            self._held = False
            unregister_cleanup(self)

    async def __aenter__(self) -> LockManager:
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "held" if self._held else "free"
        return f"LockManager({self.lock_dir!r}, {state})"
