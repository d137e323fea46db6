"""In-process periodic task scheduler.

Drives background jobs such as automatic challenge completion on fixed
intervals inside the FastAPI event loop.
"""

import asyncio
from typing import Any, Callable, Coroutine, NamedTuple

from habitpact.shared.utils.logging import get_logger

logger = get_logger(__name__)

TaskFunc = Callable[[], Coroutine[Any, Any, Any]]


class PeriodicTask(NamedTuple):
    name: str
    interval_seconds: float
    func: TaskFunc


class PeriodicScheduler:
    """Runs each registered task once at start, then every ``interval_seconds``."""

    def __init__(self) -> None:
        self._tasks: list[PeriodicTask] = []
        self._handles: list[asyncio.Task[None]] = []

    def register(self, name: str, interval_seconds: float, func: TaskFunc) -> None:
        self._tasks.append(PeriodicTask(name, interval_seconds, func))
        logger.debug("periodic_task_registered", task=name, interval_seconds=interval_seconds)

    async def start(self) -> None:
        for task in self._tasks:
            self._handles.append(asyncio.create_task(self._run_periodic(task), name=task.name))
        logger.info("scheduler_started", tasks=[t.name for t in self._tasks])

    async def stop(self) -> None:
        """Cancel every task and wait until each loop has exited."""
        for handle in self._handles:
            handle.cancel()
        await asyncio.gather(*self._handles, return_exceptions=True)
        self._handles.clear()
        logger.info("scheduler_stopped")

    async def _run_periodic(self, task: PeriodicTask) -> None:
        while True:
            try:
                await task.func()
            except Exception as e:
                logger.error(
                    "periodic_task_error",
                    task=task.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            await asyncio.sleep(task.interval_seconds)
