"""Cancellable periodic task with an overlap guard."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Runs an async callable every interval_seconds until stopped.

    A run that raises is logged and the next tick runs normally. A run
    requested while another one is in flight is skipped.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        run_immediately: bool = True,
    ):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self._in_flight = False

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self.is_started:
            raise RuntimeError(f"Periodic task {self.name} already started")

        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("periodic.started", task=self.name, interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic.stopped", task=self.name)

    async def trigger(self) -> bool:
        """Run once now, outside the schedule.

        Returns:
            False if a run was already in flight and this one was skipped
        """
        return await self.run_once()

    async def run_once(self) -> bool:
        if self._in_flight:
            logger.warning("periodic.run.skipped", task=self.name, reason="in_flight")
            return False

        self._in_flight = True
        try:
            await self.func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "periodic.run.failed",
                task=self.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            self._in_flight = False
        return True

    async def _loop(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval_seconds)

        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
