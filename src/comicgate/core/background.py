"""Long-lived maintenance loops.

Loops run next to request handling on the same event loop. A failing run
is logged and the loop keeps its schedule; nothing is surfaced to callers.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from comicgate.core.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


async def run_periodic(
    name: str,
    interval: float,
    job: Job,
    *,
    run_first: bool = False,
) -> None:
    """Run ``job`` every ``interval`` seconds until cancelled.

    Args:
        name: Loop name used in log events
        interval: Sleep between runs, in seconds
        job: Coroutine function to run
        run_first: Run once before the first sleep
    """
    if not run_first:
        await asyncio.sleep(interval)
    while True:
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("background_job_failed", job=name)
        await asyncio.sleep(interval)


class BackgroundRunner:
    """Owns the maintenance tasks of one application instance."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def names(self) -> list[str]:
        return list(self._tasks)

    def start(self, name: str, interval: float, job: Job, *, run_first: bool = False) -> None:
        if name in self._tasks and not self._tasks[name].done():
            return
        self._tasks[name] = asyncio.create_task(
            run_periodic(name, interval, job, run_first=run_first), name=f"comicgate:{name}"
        )
        logger.info("background_loop_started", job=name, interval=interval)

    def spawn_once(self, name: str, job: Job) -> None:
        """Run ``job`` a single time in the background."""

        async def _once() -> None:
            try:
                await job()
            except Exception:
                logger.exception("background_job_failed", job=name)

        self._tasks[name] = asyncio.create_task(_once(), name=f"comicgate:{name}")

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
