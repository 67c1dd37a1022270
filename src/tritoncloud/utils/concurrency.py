"""Parallel fan-out of blocking client calls."""

import asyncio
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from tritoncloud.exceptions import MultiError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def run_parallel(func: Callable[[T], Any], items: Iterable[T]) -> list[Any]:
    """
    Run ``func`` for every item concurrently and collect the results.

    Each call runs in a worker thread. Results come back in input order.

    Args:
        func: Blocking callable applied to each item
        items: Inputs to fan out over

    Returns:
        One result per item

    Raises:
        The single failure when exactly one call failed, MultiError when more did.
    """
    items = list(items)
    tasks = [asyncio.to_thread(func, item) for item in items]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        logger.debug("parallel operation failed", failed=len(errors), total=len(items))
        if len(errors) == 1:
            raise errors[0]
        raise MultiError(errors)
    return list(results)
