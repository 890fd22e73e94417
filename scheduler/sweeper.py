"""
Periodic Sweeper.

============================================================
PURPOSE
============================================================
Run a blocking sweep job on a fixed interval, independent of
request traffic, for the lifetime of the process.

PRINCIPLES:
- One tick = one bounded unit of work, run in a worker thread
- Single-flight: a tick requested while one is running is skipped
- A failing tick is logged; the loop keeps running
- Stop is honoured between ticks without waiting a full interval
- Stop before the first tick means no tick ever runs

============================================================
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SWEEP REPORT
# ============================================================

@dataclass
class SweepReport:
    """Outcome of one sweep tick."""

    name: str
    selected: int = 0
    processed: int = 0
    failed: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def skipped(self) -> int:
        """Selected records another path transitioned first."""
        return max(self.selected - self.processed - self.failed, 0)

    def summary(self) -> str:
        return (
            f"{self.name}: selected={self.selected} processed={self.processed} "
            f"failed={self.failed} skipped={self.skipped}"
        )


SweepJob = Callable[[], Optional[SweepReport]]


# ============================================================
# PERIODIC SWEEPER
# ============================================================

class PeriodicSweeper:
    """
    Cancellable periodic task around a blocking sweep job.

    Runs as a background asyncio task; the job itself runs in a
    worker thread via asyncio.to_thread.
    """

    def __init__(
        self,
        name: str,
        job: SweepJob,
        interval_seconds: float,
        run_immediately: bool = True,
        stop_timeout_seconds: float = 10.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._name = name
        self._job = job
        self._interval = interval_seconds
        self._run_immediately = run_immediately
        self._stop_timeout = stop_timeout_seconds

        self._stop_event = asyncio.Event()
        self._job_lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self.tick_count = 0
        self.skipped_ticks = 0
        self.error_count = 0
        self.last_report: Optional[SweepReport] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ---------------------------------------------------------
    # LIFECYCLE
    # ---------------------------------------------------------

    async def start(self) -> None:
        """Start the sweeper as a background task."""
        if self._task is not None:
            return

        self._task = asyncio.create_task(self.run_forever(), name=f"sweeper:{self._name}")
        logger.info(f"Sweeper {self._name} scheduled | interval={self._interval}s")

    def request_stop(self) -> None:
        """Ask the loop to exit at its next wait. Safe from signal handlers."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop the sweeper, waiting for a running tick up to the stop timeout."""
        self.request_stop()

        task = self._task
        if task is None:
            return

        # asyncio.wait leaves the loop task's outcome on the task, so a
        # CancelledError raised here belongs to the caller of stop().
        try:
            done, _ = await asyncio.wait({task}, timeout=self._stop_timeout)
            if not done:
                logger.warning(
                    f"Sweeper {self._name} did not stop within {self._stop_timeout}s, cancelling"
                )
                task.cancel()
                await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Sweeper {self._name} exited with error: {task.exception()}")
        finally:
            self._task = None

        logger.info(f"Sweeper {self._name} stopped")

    async def wait_until_stopped(self) -> None:
        """Block until stop is requested."""
        await self._stop_event.wait()

    # ---------------------------------------------------------
    # LOOP
    # ---------------------------------------------------------

    async def run_forever(self) -> None:
        """
        Run ticks until stop is requested.

        Returns immediately, without running the job, when stop was
        requested before the loop started.
        """
        if self._stop_event.is_set():
            logger.info(f"Sweeper {self._name} stopped before first tick")
            return

        self._running = True
        logger.info(f"Sweeper {self._name} started | interval={self._interval}s")

        try:
            if not self._run_immediately and await self._wait_for_next_tick():
                return

            while not self._stop_event.is_set():
                await self.tick()
                if await self._wait_for_next_tick():
                    break
        except asyncio.CancelledError:
            logger.info(f"Sweeper {self._name} cancelled")
            raise
        finally:
            self._running = False

    async def _wait_for_next_tick(self) -> bool:
        """Sleep one interval. Returns True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            return True
        except asyncio.TimeoutError:
            return False

    async def tick(self) -> Optional[SweepReport]:
        """
        Run the job once in a worker thread.

        Returns:
            The job's report, or None when the tick was skipped or failed
        """
        self.tick_count += 1
        try:
            ran, report = await asyncio.to_thread(self._run_job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.error(f"Sweeper {self._name} tick failed: {e}", exc_info=True)
            return None

        if not ran:
            self.skipped_ticks += 1
            logger.warning(f"Sweeper {self._name} tick skipped, previous tick still running")
            return None

        self.last_report = report
        if report is not None and report.selected:
            logger.info(f"Sweep {report.summary()}")
        return report

    def _run_job(self):
        if not self._job_lock.acquire(blocking=False):
            return False, None
        try:
            return True, self._job()
        finally:
            self._job_lock.release()


__all__ = ["PeriodicSweeper", "SweepReport", "SweepJob"]
