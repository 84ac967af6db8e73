"""
Runs blocking I/O (database sessions) from async code without blocking the event loop
"""

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


async def run_io_task(fn: Callable, *args, **kwargs) -> Any:
    """
    Execute a blocking function in the default thread pool

    Args:
        fn: Function to execute
        *args: Function arguments
        **kwargs: Function keyword arguments

    Returns:
        Function result; exceptions propagate unchanged
    """
    return await asyncio.to_thread(fn, *args, **kwargs)


__all__ = ['run_io_task']
