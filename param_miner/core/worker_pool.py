"""
Bounded worker pool shared by every guessing run of a scan.

The pool size is the upper bound on concurrent in-flight requests to the
target. Callers submit coroutines, get tasks back and wait for them as a
batch, which is how the guess coordinator builds its generation barrier.
"""

import asyncio
from typing import Any, Awaitable, Dict, Iterable, List, Set

from param_miner.core.logger import get_component_logger

logger = get_component_logger("worker_pool")


class WorkerPool:
    """
    Semaphore-bounded task runner.

    Tasks start immediately but only ``max_workers`` of them get past the
    semaphore at once; the rest stay queued on it until a slot frees up.
    """

    def __init__(self, max_workers: int = 10):
        """
        Initialize the pool.

        Args:
            max_workers: Maximum number of tasks running concurrently
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._semaphore = asyncio.Semaphore(max_workers)
        self._tasks: Set[asyncio.Task] = set()
        self.active_tasks = 0
        self.completed_tasks = 0
        self.failed_tasks = 0
        self.cancelled_tasks = 0
        self.closed = False

    def submit(self, coro: Awaitable) -> asyncio.Task:
        """
        Schedule a coroutine on the pool.

        Args:
            coro: Coroutine to execute once a worker slot is free

        Returns:
            The task wrapping the coroutine
        """
        if self.closed:
            coro.close()
            raise RuntimeError("worker pool has been shut down")

        task = asyncio.ensure_future(self._bounded(coro))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        # A task cancelled before its first step never awaits the coroutine
        task.add_done_callback(lambda _: coro.close())
        return task

    async def _bounded(self, coro: Awaitable) -> Any:
        async with self._semaphore:
            self.active_tasks += 1
            try:
                return await coro
            finally:
                self.active_tasks -= 1

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.cancelled_tasks += 1
        elif task.exception() is not None:
            self.failed_tasks += 1
        else:
            self.completed_tasks += 1

    async def wait_all(self, tasks: Iterable[asyncio.Task]) -> List[Any]:
        """
        Wait until every task has finished.

        Results come back in the order of ``tasks``. Exceptions and
        cancellations are returned in place of results, never raised.
        """
        return await asyncio.gather(*tasks, return_exceptions=True)

    async def run_batch(self, coros: Iterable[Awaitable]) -> List[Any]:
        """Submit a batch and wait for all of it."""
        return await self.wait_all([self.submit(c) for c in coros])

    @staticmethod
    def cancel(tasks: Iterable[asyncio.Task]) -> int:
        """Cancel the given tasks; returns how many were still pending."""
        cancelled = 0
        for task in tasks:
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    async def shutdown(self) -> None:
        """Refuse new work and cancel everything queued or in flight."""
        self.closed = True
        pending = list(self._tasks)
        if pending:
            logger.debug(f"Cancelling {len(pending)} pending task(s)")
            self.cancel(pending)
            await asyncio.gather(*pending, return_exceptions=True)

    def get_pool_stats(self) -> Dict[str, Any]:
        """Get pool statistics."""
        return {
            'max_workers': self.max_workers,
            'active_tasks': self.active_tasks,
            'queued_tasks': len(self._tasks) - self.active_tasks,
            'completed_tasks': self.completed_tasks,
            'failed_tasks': self.failed_tasks,
            'cancelled_tasks': self.cancelled_tasks,
            'closed': self.closed
        }
