"""Per-market mutual exclusion.

Bet placement and settlement on the same market must never interleave, while
different markets proceed independently. Within one process this registry
hands out one asyncio.Lock per market id; across processes the ledger also
takes a row lock (SELECT ... FOR UPDATE) on the market.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger(__name__)


class MarketLockRegistry:
    """
    Registry of per-market asyncio locks.

    Locks are held weakly: once no coroutine holds or waits on a market's
    lock it is dropped, so the registry does not grow with every market ever
    touched.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, market_id: str) -> asyncio.Lock:
        """Get (or create) the lock guarding a market."""
        lock = self._locks.get(market_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[market_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, market_id: str) -> AsyncIterator[None]:
        """Hold the market's lock for the duration of the block."""
        lock = self.lock_for(market_id)
        if lock.locked():
            logger.debug("market_lock_contended", market_id=market_id)
        async with lock:
            yield

    def is_held(self, market_id: str) -> bool:
        lock = self._locks.get(market_id)
        return lock is not None and lock.locked()
