"""
Bounded background work queue.

Best-effort work (semantic-cache population, enrichment persistence) is
submitted here instead of being scheduled as loose tasks. A single worker
consumes the queue; failures are logged and never reach the request path.
Tests call drain() to wait for pending work deterministically.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


@dataclass
class BackgroundStats:
    submitted: int = 0
    processed: int = 0
    failed: int = 0
    dropped: int = 0


class BackgroundQueue:
    """
    Single-consumer queue of async jobs.

    Args:
        max_size: Queue bound; submissions beyond it are dropped and logged.
    """

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.stats = BackgroundStats()

    def _ensure_worker(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_size)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())
        return self._queue

    def submit(self, job: Job, name: str = "job") -> bool:
        """
        Enqueue a job without waiting for it.

        Returns:
            False when the queue is full and the job was dropped.
        """
        queue = self._ensure_worker()
        try:
            queue.put_nowait((name, job))
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(f"Background queue full, dropping '{name}'")
            return False
        self.stats.submitted += 1
        return True

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            name, job = await self._queue.get()
            try:
                await job()
                self.stats.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats.failed += 1
                logger.warning(f"Background job '{name}' failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Finish pending work, then stop the worker."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
