from __future__ import annotations

import asyncio
import logging
from typing import Optional


class PendingQueue:
    """FIFO of sentences waiting for translation.

    Bounded: when full, the oldest sentence is dropped so the newest speech
    still gets translated under a slow backend. Backed by ``asyncio.Queue``,
    so all access must happen on the event loop's thread.
    """

    DEFAULT_MAXSIZE = 64

    def __init__(self, maxsize: int = DEFAULT_MAXSIZE) -> None:
        if maxsize < 1:
            raise ValueError("Pending queue maxsize must be at least 1.")
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def __len__(self) -> int:
        return self._queue.qsize()

    def put(self, text: str) -> None:
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            # Keep the newest sentence to favor real-time behavior.
            try:
                dropped = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            else:
                self.dropped += 1
                logging.warning("pending_dropped text=%r backlog=%d", dropped[:80], self._queue.qsize())
            self._queue.put_nowait(text)

    async def get(self) -> str:
        return await self._queue.get()

    def get_nowait(self) -> Optional[str]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def snapshot(self) -> list[str]:
        items = self._drain()
        for item in items:
            self._queue.put_nowait(item)
        return items

    def clear(self) -> None:
        self._drain()
        self.dropped = 0

    def _drain(self) -> list[str]:
        items: list[str] = []
        while not self._queue.empty():
            try:
                items.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return items
