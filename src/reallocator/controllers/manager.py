# src/reallocator/controllers/manager.py
"""
Runs controllers: one rate-limited work queue per controller, a fixed number
of workers draining it, and watch loops that translate cluster events into
queued keys.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.rest import ApiException

from ..core.config import config
from ..core.k8s_client import is_conflict
from ..core.scheduler import Scheduler
from ..core.workqueue import ShutDown, WorkQueue
from .base import Controller

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], Awaitable[None]]

WATCH_RETRY_SECONDS = 5


class Manager:
    def __init__(self, scheduler: Scheduler = None):
        self.controllers: Dict[str, Controller] = {}
        self.queues: Dict[str, WorkQueue] = {}
        self.scheduler = scheduler or Scheduler()
        self._watches: List[tuple] = []
        self._periodic: List[tuple] = []
        self._tasks: List[asyncio.Task] = []
        self._stopping = False

    def register(self, controller: Controller) -> WorkQueue:
        """Adds a controller and creates its work queue."""
        if controller.name in self.controllers:
            raise ValueError(f"Controller '{controller.name}' is already registered.")
        queue = WorkQueue(controller.name, rate_limiter=controller.rate_limiter())
        self.controllers[controller.name] = controller
        self.queues[controller.name] = queue
        logger.info(
            "Registered controller '%s' with %d concurrent reconcile(s).",
            controller.name,
            controller.max_concurrent_reconciles,
        )
        return queue

    def add_watch(self, name: str, list_func: Callable, handler: EventHandler, **kwargs) -> None:
        """Streams list_func with kubernetes_asyncio's Watch and passes each event to handler."""
        self._watches.append((name, list_func, handler, kwargs))

    def add_periodic(self, job: Callable[[], Awaitable[None]], interval: str) -> None:
        """Runs job every interval (e.g. '5m') once the manager has started."""
        self._periodic.append((job, interval))

    async def start(self) -> None:
        for name, controller in self.controllers.items():
            for i in range(controller.max_concurrent_reconciles):
                task = asyncio.create_task(self._worker(controller, self.queues[name]), name=f"{name}-worker-{i}")
                self._tasks.append(task)
        for name, list_func, handler, kwargs in self._watches:
            self._tasks.append(asyncio.create_task(self._run_watch(name, list_func, handler, **kwargs), name=name))
        for job, interval in self._periodic:
            self.scheduler.add_job_from_string(job, interval)
        logger.info("Manager started %d controller(s) and %d watch(es).", len(self.controllers), len(self._watches))

    async def stop(self) -> None:
        """Shuts queues down and cancels workers, watches and scheduled jobs."""
        logger.info("Stopping manager...")
        self._stopping = True
        for queue in self.queues.values():
            await queue.shutdown()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.scheduler.stop()

    async def _worker(self, controller: Controller, queue: WorkQueue) -> None:
        while await self.process_next(controller, queue):
            pass
        logger.debug("Worker for '%s' exiting.", controller.name)

    async def process_next(self, controller: Controller, queue: WorkQueue) -> bool:
        """
        Reconciles one key. Failures are requeued through the rate limiter,
        successes reset the key's backoff and honour requeue_after.

        Returns:
            False once the queue has been shut down.
        """
        try:
            key = await queue.get()
        except ShutDown:
            return False

        try:
            result = await controller.reconcile(key)
        except Exception as e:
            delay = queue.add_rate_limited(key)
            if is_conflict(getattr(e, "cause", e)):
                logger.info("%s: '%s' was modified concurrently, retrying in %.2fs.", controller.name, key, delay)
            else:
                logger.error("%s: reconciling '%s' failed, retrying in %.2fs: %s", controller.name, key, delay, e)
        else:
            queue.forget(key)
            if result.requeue_after:
                queue.add_after(key, result.requeue_after)
        finally:
            await queue.done(key)
        return True

    async def _run_watch(self, name: str, list_func: Callable, handler: EventHandler, **kwargs) -> None:
        while not self._stopping:
            w = watch.Watch()
            try:
                async for event in w.stream(list_func, timeout_seconds=config.WATCH_TIMEOUT_SECONDS, **kwargs):
                    await handler(event["type"], event["object"])
            except ApiException as e:
                if e.status == 410:
                    logger.info("Watch '%s' resource version expired, restarting.", name)
                    continue
                logger.error("Watch '%s' error: %s", name, e)
                await asyncio.sleep(WATCH_RETRY_SECONDS)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Unexpected error in watch '%s': %s", name, e, exc_info=True)
                await asyncio.sleep(WATCH_RETRY_SECONDS)
            finally:
                w.stop()
        logger.info("Watch '%s' stopped.", name)
