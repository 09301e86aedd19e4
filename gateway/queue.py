"""In-process limiter for backend inference calls."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass


@dataclass
class QueueStats:
    waiting: int
    active: int


class InferenceQueue:
    """Caps concurrent inference calls against the backend and exposes counts."""

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._waiting = 0
        self._active = 0

    @asynccontextmanager
    async def acquire(self):
        self._waiting += 1
        try:
            await self.semaphore.acquire()
        finally:
            self._waiting -= 1
        self._active += 1
        try:
            yield
        finally:
            self._active -= 1
            self.semaphore.release()

    def stats(self) -> QueueStats:
        return QueueStats(waiting=self._waiting, active=self._active)
