"""Fire-and-forget persistence through an explicit async queue.

Writes are blocking Supabase calls executed one at a time, in submission
order, on a worker task. Each write is bounded by a timeout; failures are
logged and never reach the caller.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class WriteJob:
    label: str
    fn: Callable[..., Any]
    args: tuple[Any, ...]


class PersistenceQueue:
    """Single-worker FIFO for best-effort writes."""

    def __init__(self, write_timeout: float = 5.0):
        self._write_timeout = write_timeout
        self._queue: asyncio.Queue[WriteJob] | None = None
        self._worker: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.completed = 0
        self.failed = 0

    def _ensure_worker(self) -> asyncio.Queue[WriteJob]:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._queue is None:
            # Queues are bound to the loop that created them
            self._loop = loop
            self._queue = asyncio.Queue()
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    def submit(self, label: str, fn: Callable[..., Any], *args: Any) -> None:
        """Enqueue a blocking write. Must be called from a running event loop."""
        queue = self._ensure_worker()
        queue.put_nowait(WriteJob(label=label, fn=fn, args=args))

    async def _write(self, job: WriteJob) -> None:
        # asyncio.wait never absorbs a cancellation of the worker itself
        write = asyncio.ensure_future(asyncio.to_thread(job.fn, *job.args))
        done, _ = await asyncio.wait({write}, timeout=self._write_timeout)
        if not done:
            write.cancel()
            raise asyncio.TimeoutError
        write.result()

    async def _run(self, queue: asyncio.Queue[WriteJob]) -> None:
        while True:
            job = await queue.get()
            try:
                await self._write(job)
                self.completed += 1
            except asyncio.TimeoutError:
                self.failed += 1
                logger.warning(f"Persistence write '{job.label}' timed out after {self._write_timeout}s")
            except Exception as e:
                self.failed += 1
                logger.warning(f"Persistence write '{job.label}' failed: {e}")
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every submitted write has finished (or failed)."""
        if self._queue is None or self._loop is not asyncio.get_running_loop():
            return
        await self._queue.join()

    async def close(self) -> None:
        """Drain pending writes and stop the worker."""
        await self.drain()
        owned = self._loop is asyncio.get_running_loop()
        if owned and self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
