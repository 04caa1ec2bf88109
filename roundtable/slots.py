"""Per-backend concurrency slots bounding in-flight calls to each backend."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

DEFAULT_CEILING = 1


class ConcurrencySlotManager:
    """Counts in-flight calls per backend identifier against a fixed ceiling.

    One instance is shared by every execution that talks to the same
    backends; counters live on the instance, never at module level.
    """

    def __init__(self, ceilings: dict[str, int] | None = None, default_ceiling: int = DEFAULT_CEILING) -> None:
        if default_ceiling < 1:
            raise ValueError("default_ceiling must be >= 1")
        self._ceilings = dict(ceilings or {})
        self._default = default_ceiling
        self._active: dict[str, int] = {}
        self._conditions: dict[str, asyncio.Condition] = {}

    def ceiling(self, backend: str) -> int:
        return max(1, self._ceilings.get(backend, self._default))

    def in_flight(self, backend: str) -> int:
        return self._active.get(backend, 0)

    def _condition(self, backend: str) -> asyncio.Condition:
        cond = self._conditions.get(backend)
        if cond is None:
            cond = asyncio.Condition()
            self._conditions[backend] = cond
        return cond

    async def acquire(self, backend: str) -> None:
        """Block until a slot for backend is free, then take it."""
        cond = self._condition(backend)
        async with cond:
            limit = self.ceiling(backend)
            if self.in_flight(backend) >= limit:
                logger.debug("Waiting for %s slot (%d/%d in flight)", backend, self.in_flight(backend), limit)
            await cond.wait_for(lambda: self.in_flight(backend) < limit)
            self._active[backend] = self.in_flight(backend) + 1

    async def release(self, backend: str) -> None:
        cond = self._condition(backend)
        async with cond:
            self._active[backend] = max(0, self.in_flight(backend) - 1)
            cond.notify()

    @asynccontextmanager
    async def slot(self, backend: str) -> AsyncIterator[None]:
        """Hold one slot for backend for the duration of the block."""
        await self.acquire(backend)
        try:
            yield
        finally:
            # Shielded so a cancelled caller still hands the slot back.
            await asyncio.shield(self.release(backend))
