"""Polling helper for conditions that settle asynchronously."""

import asyncio
from collections.abc import Callable


async def wait_for(condition: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until a condition holds.

    Raises:
        TimeoutError: If the condition does not hold within the timeout
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise TimeoutError("Condition not met within timeout")
        await asyncio.sleep(0.01)
