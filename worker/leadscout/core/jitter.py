"""Randomised pauses used to pace browser automation."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple

Sleep = Callable[[float], Awaitable[None]]


class Jitter:
    """Inserts policy delays between automated actions.

    ``sleep`` and ``rng`` are injectable so tests can run the pipeline without
    real waiting and with deterministic delays.
    """

    def __init__(self, sleep: Optional[Sleep] = None, rng: Optional[random.Random] = None) -> None:
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def delay(self, low: float, high: float) -> float:
        if high < low:
            low, high = high, low
        return self._rng.uniform(low, high)

    async def pause(self, bounds: Tuple[float, float]) -> float:
        """Sleep for a random duration within ``bounds`` and return it."""
        seconds = self.delay(*bounds)
        await self._sleep(seconds)
        return seconds

    async def settle(self, seconds: float) -> None:
        """Fixed wait, e.g. to let a panel finish rendering."""
        if seconds > 0:
            await self._sleep(seconds)
