"""
Client-side request pacing.

Spaces out requests to the Bitbucket Server REST API so that bursts of
concurrent tree reads do not hammer the host. This is smoothing only:
requests are never retried here.
"""

from __future__ import annotations

import asyncio
import time


class Pacer:
    def __init__(self, *, rate_per_sec: float) -> None:
        rate = float(rate_per_sec or 0.0)
        self._min_interval = 0.0 if rate <= 0 else 1.0 / rate
        self._next_slot = 0.0  # time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._min_interval > 0

    async def wait(self) -> None:
        if not self.enabled:
            return

        # Slots are reserved under the lock so two tasks never share one.
        async with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self._min_interval
            delay = slot - now

        if delay > 0:
            await asyncio.sleep(delay)
