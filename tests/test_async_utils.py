"""Tests for draftsnap.core.async_utils."""

import asyncio
import threading

import pytest

from draftsnap.core.async_utils import run_sync


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


async def test_run_sync_calls_function():
    """run_sync delegates to a worker thread with the given args."""
    assert await run_sync(_sync_add, 3, 4) == 7


async def test_run_sync_passes_kwargs():
    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    assert await run_sync(_kw_func, name="world") == "hello world"


async def test_run_sync_uses_worker_thread():
    main_thread = threading.get_ident()
    worker_thread = await run_sync(threading.get_ident)
    assert worker_thread != main_thread


async def test_run_sync_keeps_loop_responsive():
    """Timers fire while a blocking call is in progress."""
    fired = asyncio.Event()
    release = threading.Event()
    asyncio.get_running_loop().call_later(0.01, fired.set)

    def _block():
        release.wait(timeout=2)
        return "done"

    task = asyncio.create_task(run_sync(_block))
    await asyncio.wait_for(fired.wait(), timeout=1)
    release.set()
    assert await task == "done"


async def test_run_sync_propagates_exceptions():
    def _fail():
        raise ValueError("broken")

    with pytest.raises(ValueError, match="broken"):
        await run_sync(_fail)
