import asyncio
import logging
from typing import Callable, Coroutine, List

from .config import parse_duration

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Manages the scheduling and execution of periodic async tasks using asyncio.
    Used by the manager to resync every Provisioner independently of watch events.
    """

    def __init__(self):
        self.tasks: List[asyncio.Task] = []
        logger.info("AsyncScheduler initialized.")

    async def _run_periodically(self, interval_seconds: float, job_func: Callable[[], Coroutine]):
        """Internal loop to run a job periodically."""
        try:
            while True:
                try:
                    await job_func()
                except Exception as e:
                    logger.error(f"Error in scheduled job '{job_func.__name__}': {e}", exc_info=True)

                await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info(f"Job '{job_func.__name__}' cancelled.")
            raise

    def add_job(self, job_func: Callable[[], Coroutine], interval_seconds: float = 0, interval_minutes: int = 0):
        """
        Adds a new async job to the schedule.
        """
        if interval_minutes > 0:
            interval_seconds = interval_minutes * 60

        if interval_seconds > 0:
            task = asyncio.create_task(self._run_periodically(interval_seconds, job_func))
            self.tasks.append(task)
            logger.info(f"Scheduled job '{job_func.__name__}' to run every {interval_seconds:g} second(s).")

    def add_job_from_string(self, job_func: Callable[[], Coroutine], interval_str: str):
        """
        Adds a job based on a duration string like '30s', '5m' or '1h'.
        """
        try:
            interval = parse_duration(interval_str)
        except ValueError:
            raise ValueError(f"Invalid interval format: '{interval_str}'. Use 's', 'm', or 'h'.")

        task = asyncio.create_task(self._run_periodically(interval.total_seconds(), job_func))
        self.tasks.append(task)
        logger.info(f"Scheduled job '{job_func.__name__}' to run every {interval_str}.")

    async def stop(self):
        """Cancels all scheduled tasks."""
        logger.info("Stopping scheduler...")
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks.clear()
