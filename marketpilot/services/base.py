"""Shared plumbing for request-scoped services: outer deadlines and timing."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, TypeVar

import structlog

from marketpilot.errors import DeadlineExceededError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], deadline: float, *, dependency: str) -> T:
    """Await `awaitable`, cancelling it once `deadline` seconds have passed."""
    try:
        return await asyncio.wait_for(awaitable, timeout=deadline)
    except asyncio.TimeoutError as e:
        logger.error("service_deadline_exceeded", dependency=dependency, deadline=deadline)
        raise DeadlineExceededError(
            f"{dependency} did not finish within {deadline}s",
            provider=dependency,
            deadline=deadline,
        ) from e


class Stopwatch:
    """Milliseconds since construction."""

    def __init__(self):
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)
