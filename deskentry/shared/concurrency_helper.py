import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable


def run_coroutine_blocking(coro: Awaitable[Any], timeout: float) -> Any:
    """
    Runs an awaitable to completion from synchronous code, bounded by
    ``timeout`` seconds.

    When the calling thread already runs an event loop the coroutine gets a
    fresh loop in a worker thread, so the caller's loop is never re-entered.

    Raises:
        asyncio.TimeoutError: The deadline passed.
        Exception: Whatever the coroutine raised.
    """
    bounded = asyncio.wait_for(coro, timeout)
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(bounded)
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, bounded).result()
