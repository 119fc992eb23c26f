"""Periodic task runner.

Each registered task gets its own asyncio loop; an exception in one run is
logged and the loop keeps going. ``run_once`` drives tasks directly so tests
and the CLI can execute a single tick without starting the loops.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    name: str
    interval: float
    func: Callable[[], Awaitable[Any]]
    runs: int = 0
    failures: int = 0
    last_result: Any = None


class Scheduler:
    """A ticker plus a task list."""

    def __init__(self):
        self._tasks: dict[str, ScheduledTask] = {}
        self._running: dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return bool(self._running)

    @property
    def tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def add_task(
        self, name: str, interval: float, func: Callable[[], Awaitable[Any]],
    ) -> ScheduledTask:
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already registered")
        task = ScheduledTask(name=name, interval=interval, func=func)
        self._tasks[name] = task
        return task

    async def run_once(self, name: Optional[str] = None) -> dict[str, Any]:
        """Run one task (or every task) once; returns results by task name."""
        selected = [self._tasks[name]] if name else list(self._tasks.values())
        results = {}
        for task in selected:
            results[task.name] = await self._run(task)
        return results

    async def _run(self, task: ScheduledTask) -> Any:
        task.runs += 1
        try:
            task.last_result = await task.func()
        except Exception:
            task.failures += 1
            task.last_result = None
            logger.exception("Scheduled task '%s' failed", task.name)
        return task.last_result

    async def _loop(self, task: ScheduledTask) -> None:
        while True:
            await self._run(task)
            await asyncio.sleep(task.interval)

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return
        for task in self._tasks.values():
            self._running[task.name] = asyncio.create_task(
                self._loop(task), name=f"scheduler:{task.name}",
            )
        logger.info("Scheduler started with %d task(s)", len(self._tasks))

    async def stop(self) -> None:
        running, self._running = self._running, {}
        for handle in running.values():
            handle.cancel()
        for handle in running.values():
            try:
                await handle
            except asyncio.CancelledError:
                pass
        if running:
            logger.info("Scheduler stopped")
