"""Process-wide thread pool for blocking work awaited from request tasks.

Using a dedicated executor instead of the event loop's default one means
``asyncio.run`` does not wait for abandoned work (a subset call that timed
out, say) before the request can answer.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="fontpress-worker")


async def offload(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking callable on the shared pool and await its result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, functools.partial(func, *args, **kwargs))
