"""
Bounded polling loop shared by every blocking wait.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

async def poll_until(
    check: Callable[[], Awaitable[Optional[T]]],
    timeout: float,
    interval: float,
) -> Optional[T]:
    """
    Call `check` every `interval` seconds until it returns a value other
    than None, or until `timeout` seconds have elapsed.
    Returns the value, or None on timeout.
    """
    deadline = time.monotonic() + timeout

    while True:
        result = await check()
        if result is not None:
            return result

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None

        await asyncio.sleep(min(interval, remaining))
