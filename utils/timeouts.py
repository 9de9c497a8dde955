"""
Bounded calls to external collaborators.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from utils.errors import ServiceTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await *awaitable* for at most *timeout* seconds.

    Raises ``ServiceTimeout`` (retryable) when the budget is exceeded.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", what, timeout)
        raise ServiceTimeout(f"{what} timed out", detail={"timeout_seconds": timeout})
