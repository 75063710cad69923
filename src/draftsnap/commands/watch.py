"""
``draftsnap watch``: snapshot scratch files automatically as they change.

A watch session turns filesystem events into snapshot commits:

    observer event -> pattern filter -> per-path debounce -> serial queue -> snap

Only one session may own a sidecar store at a time (see
:class:`~draftsnap.core.watch_lock.WatchPidLock`); each individual snapshot
still takes the ordinary operation lock, so manual ``snap`` calls can run
while a session is active.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import signal
import sys
from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol

from watchfiles import Change, awatch

from ..core.async_utils import run_sync
from ..core.lock import DEFAULT_TIMEOUT
from ..core.repository import Sidecar, ensure_sidecar
from ..core.watch_lock import WatchPidLock
from ..errors import DraftsnapError, ExitCode
from ..models import WatchResult
from ..validators import (
    normalize_separators,
    resolve_watch_pattern,
    sanitize_target_path,
    validate_debounce,
)
from .snap import snap_command
from .status import parse_git_status

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "scratch/**/*.md"
DEFAULT_DEBOUNCE_MS = 500
# watchfiles' own grouping window; coalescing is done by DebounceScheduler.
OBSERVER_DEBOUNCE_MS = 50

WatchAction = Literal["update", "delete"]
EventCallback = Callable[[str, WatchAction], None]
ErrorCallback = Callable[[BaseException], None]


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


def glob_to_regex(pattern: str) -> str:
    """Translate a restricted glob into an anchored regular expression.

    Supported syntax:
        ``*``    any run of characters except ``/``
        ``**/``  zero or more leading directories
        ``**``   (not followed by ``/``) anything, including ``/``
        ``?``    one character except ``/``

    Everything else matches literally.
    """
    normalized = normalize_separators(pattern)
    parts: list[str] = []
    index = 0
    length = len(normalized)

    while index < length:
        char = normalized[index]
        if char == "*":
            stars = 1
            while index + stars < length and normalized[index + stars] == "*":
                stars += 1
            index += stars
            if stars == 1:
                parts.append("[^/]*")
            elif index < length and normalized[index] == "/":
                parts.append("(?:.*/)?")
                index += 1
            else:
                parts.append(".*")
            continue
        if char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1

    return "^" + "".join(parts) + "$"


def create_pattern_matcher(pattern: str) -> Callable[[str], bool]:
    """Compile ``pattern`` once and return a predicate over relative paths.

    Example:
        >>> matches = create_pattern_matcher("scratch/**/*.md")
        >>> matches("scratch/a/b/c.md"), matches("scratch/a.txt")
        (True, False)
    """
    compiled = re.compile(glob_to_regex(pattern))

    def matches(candidate: str) -> bool:
        return compiled.match(normalize_separators(candidate)) is not None

    return matches


def extract_watch_root(pattern: str) -> str:
    """Return the longest leading run of wildcard-free segments.

    The whole pattern is returned when its first segment already holds a
    wildcard.
    """
    normalized = normalize_separators(pattern)
    root: list[str] = []
    for segment in normalized.split("/"):
        if "*" in segment or "?" in segment:
            break
        root.append(segment)
    return "/".join(root) if root else normalized


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


class DebounceScheduler:
    """Coalesce repeated events per path into one delayed callback.

    Each :meth:`schedule` call for a path cancels that path's pending timer
    and starts a new one, so ``on_fire`` runs once per quiet window with the
    most recent action. Timers for different paths are independent.

    Args:
        delay_seconds: Quiet period before a path fires.
        on_fire: Called as ``on_fire(path, action)`` on the event loop.
        loop: Event loop for the timers (default: the running loop).
    """

    def __init__(
        self,
        delay_seconds: float,
        on_fire: Callable[[str, WatchAction], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay_seconds = max(0.0, delay_seconds)
        self._on_fire = on_fire
        self._loop = loop
        self._timers: dict[str, tuple[asyncio.TimerHandle, WatchAction]] = {}

    @property
    def pending(self) -> dict[str, WatchAction]:
        """Snapshot of path -> action for timers that have not fired."""
        return {path: action for path, (_, action) in self._timers.items()}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, path: str, action: WatchAction) -> None:
        self.cancel(path)
        handle = self._get_loop().call_later(
            self.delay_seconds, self._fire, path, action
        )
        self._timers[path] = (handle, action)

    def _fire(self, path: str, action: WatchAction) -> None:
        self._timers.pop(path, None)
        self._on_fire(path, action)

    def cancel(self, path: str) -> None:
        entry = self._timers.pop(path, None)
        if entry is not None:
            entry[0].cancel()

    def cancel_all(self) -> None:
        for handle, _ in self._timers.values():
            handle.cancel()
        self._timers.clear()


# ---------------------------------------------------------------------------
# Filesystem observer
# ---------------------------------------------------------------------------


class Observer(Protocol):
    """Source of filesystem events for a watch session."""

    async def start(self) -> None:
        """Begin observing; return once events are being delivered."""

    async def stop(self) -> None:
        """Stop observing and wait for the observer to finish."""


ObserverFactory = Callable[[str, EventCallback, ErrorCallback], Observer]


def classify_change(change: Change) -> WatchAction:
    return "delete" if change == Change.deleted else "update"


class WatchfilesObserver:
    """Observer backed by :func:`watchfiles.awatch`.

    Args:
        root: Absolute directory (or file) to observe recursively.
        on_event: Called with ``(absolute_path, action)`` per change.
        on_error: Called when the observer fails after startup.
    """

    def __init__(
        self, root: str, on_event: EventCallback, on_error: ErrorCallback
    ) -> None:
        self.root = root
        self._on_event = on_event
        self._on_error = on_error
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if not os.path.exists(self.root):
            raise FileNotFoundError(f"watch root does not exist: {self.root}")
        self._task = asyncio.create_task(self._run(), name="draftsnap-observer")
        # Let awatch create its notifier before reporting ready.
        await asyncio.sleep(0)

    async def _run(self) -> None:
        try:
            async for changes in awatch(
                self.root,
                stop_event=self._stop_event,
                debounce=OBSERVER_DEBOUNCE_MS,
                recursive=True,
            ):
                for change, path in sorted(changes, key=lambda item: item[1]):
                    self._on_event(path, classify_change(change))
        except Exception as exc:
            self._on_error(exc)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None


def default_observer_factory(
    root: str, on_event: EventCallback, on_error: ErrorCallback
) -> Observer:
    return WatchfilesObserver(root, on_event, on_error)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def emit_json_line(payload: dict[str, Any]) -> None:
    """Write one JSON document per line to stdout."""
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


@dataclass(frozen=True)
class SnapJob:
    path: str
    action: WatchAction


class WatchSession:
    """One long-running watch over a sidecar store.

    Args:
        sidecar: Store locations.
        pattern: Glob restricted to the scratch directory.
        debounce_ms: Quiet period per path before it is snapshotted.
        include_delete: Commit deletions as well as updates.
        initial_snap: Snapshot matching files that already exist when the
            session starts (and, with ``include_delete``, deletions made
            while no session was running).
        emit: Receives event payloads (``started``/``snap``/``error``/
            ``stopped``); when ``None`` events are logged instead.
        verbose: Log ignored paths and scheduling decisions.
        stop_event: External cancellation token.
        observer_factory: Builds the filesystem observer.
        on_ready: Called once the observer is ready and initial work is
            scheduled.
        handle_signals: Stop on SIGINT/SIGTERM via the event loop.
        lock_timeout: Operation lock timeout for each snapshot.
    """

    def __init__(
        self,
        sidecar: Sidecar,
        *,
        pattern: str = DEFAULT_PATTERN,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        include_delete: bool = False,
        initial_snap: bool = True,
        emit: Callable[[dict[str, Any]], None] | None = None,
        verbose: bool = False,
        stop_event: asyncio.Event | None = None,
        observer_factory: ObserverFactory | None = None,
        on_ready: Callable[[], None] | None = None,
        handle_signals: bool = True,
        lock_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.sidecar = sidecar
        self.pattern = resolve_watch_pattern(
            pattern, sidecar.work_tree, sidecar.scratch_dir
        )
        self.debounce_ms = validate_debounce(debounce_ms)
        self.include_delete = include_delete
        self.initial_snap = initial_snap
        self.snaps_count = 0

        self._matches = create_pattern_matcher(self.pattern)
        self._watch_root = extract_watch_root(self.pattern)
        self._emit = emit
        self._verbose = verbose
        self._external_stop = stop_event
        self._observer_factory = observer_factory or default_observer_factory
        self._on_ready = on_ready
        self._handle_signals = handle_signals
        self._lock_timeout = lock_timeout

        self._watch_lock = WatchPidLock(sidecar.git_dir)
        self._scheduler = DebounceScheduler(
            self.debounce_ms / 1000.0, self._enqueue
        )
        self._queue: asyncio.Queue[SnapJob] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._observer: Observer | None = None
        self._stopping = False
        self._stopped = asyncio.Event()
        self._stop_task: asyncio.Task | None = None
        self._signals: list[int] = []

    @property
    def stopping(self) -> bool:
        return self._stopping

    # -- reporting ---------------------------------------------------------

    def _debug(self, msg: str, *args: Any) -> None:
        if self._verbose:
            logger.info(msg, *args)
        else:
            logger.debug(msg, *args)

    def _report_error(self, error: BaseException) -> None:
        if isinstance(error, DraftsnapError):
            if error.code == ExitCode.NO_CHANGES:
                return
            code, message = int(error.code), error.message
        else:
            code, message = 1, str(error)

        if self._emit is not None:
            self._emit({"status": "error", "code": code, "message": message})
        else:
            logger.error(message)

    # -- event intake ------------------------------------------------------

    def normalize_event_path(self, event_path: str) -> str | None:
        """Map an observer path onto ``<scratch>/...``, or ``None`` to ignore."""
        normalized = normalize_separators(event_path)
        work_tree = self.sidecar.work_tree
        scratch = self.sidecar.scratch_dir
        sanitized = sanitize_target_path(normalized, work_tree, scratch)
        if not sanitized and not os.path.isabs(normalized):
            sanitized = sanitize_target_path(
                f"{scratch}/{normalized}", work_tree, scratch
            )
        return sanitized

    def handle_event(self, event_path: str, action: WatchAction) -> None:
        """Filter one observer event and (re)start its debounce timer."""
        if self._stopping:
            return

        sanitized = self.normalize_event_path(event_path)
        if not sanitized:
            self._debug("ignored non-scratch path: %s", event_path)
            return
        if not self._matches(sanitized):
            self._debug("ignored path outside pattern: %s", sanitized)
            return

        if action == "delete" and not self.include_delete:
            self._scheduler.cancel(sanitized)
            return

        self._debug("scheduled %s for %s", action, sanitized)
        self._scheduler.schedule(sanitized, action)

    def _enqueue(self, path: str, action: WatchAction) -> None:
        if self._stopping:
            return
        self._queue.put_nowait(SnapJob(path, action))

    # -- worker ------------------------------------------------------------

    async def _run_job(self, job: SnapJob) -> None:
        scratch_prefix = f"{self.sidecar.scratch_dir}/"
        relative = (
            job.path[len(scratch_prefix):]
            if job.path.startswith(scratch_prefix)
            else job.path
        )
        result = await snap_command(
            self.sidecar,
            job.path,
            message=f"auto: {relative}",
            allow_missing=job.action == "delete",
            lock_signals=False,
            lock_timeout=self._lock_timeout,
        )
        if result.code == ExitCode.NO_CHANGES:
            return

        self.snaps_count += 1
        if self._emit is not None:
            self._emit(
                {
                    "event": "snap",
                    "data": {
                        "commit": result.commit,
                        "path": result.path,
                        "bytes": result.bytes,
                    },
                }
            )
        else:
            logger.info("snap stored %s at %s", result.path, result.commit)

    async def _work(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run_job(job)
            except Exception as exc:
                self._report_error(exc)
            finally:
                self._queue.task_done()

    # -- startup -----------------------------------------------------------

    def _existing_matches(self) -> list[str]:
        root = os.path.join(self.sidecar.work_tree, self._watch_root)
        if os.path.isfile(root):
            candidates = [root]
        else:
            candidates = []
            for dirpath, _dirnames, filenames in os.walk(root):
                candidates.extend(
                    os.path.join(dirpath, name) for name in sorted(filenames)
                )

        found: list[str] = []
        for candidate in candidates:
            sanitized = self.normalize_event_path(candidate)
            if sanitized and self._matches(sanitized):
                found.append(sanitized)
        return sorted(found)

    async def _offline_deletions(self) -> list[str]:
        result = await self.sidecar.git().aexec(
            ["status", "--porcelain", "-z"], trim=False
        )
        deleted: list[str] = []
        for entry in parse_git_status(result.stdout).deleted:
            sanitized = sanitize_target_path(
                normalize_separators(entry),
                self.sidecar.work_tree,
                self.sidecar.scratch_dir,
            )
            if sanitized and self._matches(sanitized):
                deleted.append(sanitized)
        return deleted

    async def _schedule_initial(self) -> None:
        if not self.initial_snap:
            return
        for path in await run_sync(self._existing_matches):
            self._scheduler.schedule(path, "update")
        if self.include_delete:
            for path in await self._offline_deletions():
                self._scheduler.schedule(path, "delete")

    def _observer_root(self) -> str:
        root = os.path.join(self.sidecar.work_tree, self._watch_root)
        if os.path.isdir(root):
            return root
        if self._watch_root == self.pattern:
            # Literal pattern naming a single file: observe its directory.
            parent = os.path.dirname(root)
            os.makedirs(parent, exist_ok=True)
            return parent
        os.makedirs(root, exist_ok=True)
        return root

    async def start(self) -> None:
        """Acquire the singleton, bootstrap, and start observing.

        Raises:
            LockError: Another watch session owns the store.
            DraftsnapError: Bootstrap failed.
            OSError: The observer could not start.
        """
        self._watch_lock.acquire()
        try:
            await ensure_sidecar(self.sidecar)
            self._worker = asyncio.create_task(
                self._work(), name="draftsnap-snap-worker"
            )
            root = await run_sync(self._observer_root)
            self._observer = self._observer_factory(
                root, self.handle_event, self._report_error
            )
            await self._observer.start()
        except BaseException:
            await self._abort_start()
            raise

        try:
            await self._schedule_initial()
        except Exception as exc:
            self._report_error(exc)

        if self._on_ready is not None:
            self._on_ready()

        if self._emit is not None:
            self._emit(
                {
                    "event": "started",
                    "data": {"pattern": self.pattern, "debounce": self.debounce_ms},
                }
            )
        else:
            logger.info(
                "watching %s (debounce %gms)", self.pattern, self.debounce_ms
            )

    async def _abort_start(self) -> None:
        self._stopping = True
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        self._watch_lock.release()
        self._stopped.set()

    # -- shutdown ----------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        if not self._handle_signals:
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop, sig.name)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            self._signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals = []

    def request_stop(self, reason: str = "STOP") -> None:
        """Schedule :meth:`stop` from a callback (signal handler, timer)."""
        if self._stop_task is None:
            self._stop_task = asyncio.get_running_loop().create_task(
                self.stop(reason)
            )

    async def stop(self, reason: str = "STOP") -> None:
        """Stop the session; later calls wait for the first to finish.

        Order: drop new events, cancel pending timers, stop the observer,
        drain the snapshot queue, release the singleton, report.
        """
        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True

        try:
            self._scheduler.cancel_all()
            self._remove_signal_handlers()

            if self._observer is not None:
                try:
                    await self._observer.stop()
                except Exception as exc:
                    logger.warning("observer did not stop cleanly: %s", exc)

            await self._queue.join()
            if self._worker is not None:
                self._worker.cancel()
                await asyncio.gather(self._worker, return_exceptions=True)
        finally:
            self._watch_lock.release()

        if self._emit is not None:
            self._emit(
                {
                    "event": "stopped",
                    "data": {"reason": reason, "snaps_count": self.snaps_count},
                }
            )
        else:
            logger.info("watch stopped (%d snaps)", self.snaps_count)
        self._stopped.set()

    def result(self) -> WatchResult:
        return WatchResult(
            snaps_count=self.snaps_count,
            pattern=self.pattern,
            debounce=self.debounce_ms,
        )

    async def run(self) -> WatchResult:
        """Start, block until a stop trigger fires, then shut down."""
        await self.start()
        self._install_signal_handlers()

        waiters = [asyncio.create_task(self._stopped.wait())]
        if self._external_stop is not None:
            waiters.append(asyncio.create_task(self._external_stop.wait()))
        reason = "ABORT"
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            reason = "STOP"
        finally:
            for waiter in waiters:
                waiter.cancel()
            await self.stop(reason)
        return self.result()


async def watch_command(sidecar: Sidecar, **options: Any) -> WatchResult:
    """Run a watch session until it is stopped.

    Keyword arguments are those of :class:`WatchSession`.
    """
    return await WatchSession(sidecar, **options).run()
