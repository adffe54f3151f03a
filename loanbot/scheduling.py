"""Background timers owned by the application lifecycle.

One TaskScheduler is started with the web app and shut down with it; all
delayed cleanups and periodic sweeps go through it so nothing outlives
the process teardown.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class TaskScheduler:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        self._running = True
        logger.info("Scheduler started")

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_later(
        self, delay: float, fn: Callable[..., Any], *args: Any
    ) -> Optional[asyncio.Task]:
        """Run *fn(*args)* once after *delay* seconds; dropped when stopped."""
        if not self._running:
            logger.warning(
                "Scheduler is not running, dropping call to %s", getattr(fn, "__name__", fn)
            )
            return None

        async def _delayed() -> None:
            await asyncio.sleep(delay)
            try:
                await _call(fn, *args)
            except Exception:
                logger.exception("Scheduled call %s failed", getattr(fn, "__name__", fn))

        return self._spawn(_delayed(), name=f"later:{getattr(fn, '__name__', 'task')}")

    def every(
        self, interval: float, fn: Callable[..., Any], *args: Any
    ) -> Optional[asyncio.Task]:
        """Run *fn(*args)* every *interval* seconds until shutdown."""
        if not self._running:
            logger.warning(
                "Scheduler is not running, dropping periodic %s", getattr(fn, "__name__", fn)
            )
            return None

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await _call(fn, *args)
                except Exception:
                    logger.exception("Periodic call %s failed", getattr(fn, "__name__", fn))

        return self._spawn(_loop(), name=f"every:{getattr(fn, '__name__', 'task')}")

    async def shutdown(self) -> None:
        """Cancel everything still pending and wait for it to unwind."""
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped (%d tasks cancelled)", len(tasks))
