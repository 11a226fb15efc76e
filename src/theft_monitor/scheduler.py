"""Named periodic tasks on the asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodicTask:
    name: str
    interval: float
    body: Callable[[], Any]


class Scheduler:
    """Runs each task body every ``interval`` seconds until stopped.

    Bodies are synchronous and run in a worker thread. The first run
    happens one interval after start. A failing body is logged and the
    task keeps its schedule.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}
        self._handles: dict[str, asyncio.Task] = {}
        self._stopping: asyncio.Event | None = None

    def add(self, name: str, interval: float, body: Callable[[], Any]) -> None:
        if name in self._tasks:
            raise ValueError(f"Task {name!r} is already scheduled")
        self._tasks[name] = PeriodicTask(name, interval, body)

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    @property
    def running(self) -> bool:
        return bool(self._handles)

    async def start(self) -> None:
        if self._handles:
            return
        self._stopping = asyncio.Event()
        for task in self._tasks.values():
            self._handles[task.name] = asyncio.create_task(self._loop(task), name=task.name)
            logger.info("Scheduled %s every %.1fs", task.name, task.interval)

    async def stop(self, timeout: float | None = None) -> None:
        """Stop all tasks, letting in-flight bodies finish.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        if not self._handles:
            return
        assert self._stopping is not None
        self._stopping.set()
        handles = list(self._handles.values())
        _, pending = await asyncio.wait(handles, timeout=timeout)
        for handle in pending:
            handle.cancel()
            try:
                await handle
            except asyncio.CancelledError:
                pass
        self._handles.clear()
        logger.info("Scheduler stopped")

    async def _loop(self, task: PeriodicTask) -> None:
        assert self._stopping is not None
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=task.interval)
                return
            except asyncio.TimeoutError:
                pass

            try:
                await asyncio.to_thread(task.body)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled task %s failed", task.name)
