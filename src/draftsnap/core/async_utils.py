"""Async utilities for bridging blocking git and filesystem calls to asyncio."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used to wrap subprocess-backed git calls so that timers and the watch
    queue keep running while git works.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        git = GitClient(work_tree, git_dir)
        result = await run_sync(git.exec, ["rev-parse", "HEAD"])
    """
    return await asyncio.to_thread(func, *args, **kwargs)
