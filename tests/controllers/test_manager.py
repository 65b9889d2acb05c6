# tests/controllers/test_manager.py

import asyncio
import logging

import pytest
from kubernetes_asyncio.client.rest import ApiException

from reallocator.controllers.base import Controller, Result
from reallocator.controllers.manager import Manager
from reallocator.core.exceptions import ReconcileError
from reallocator.core.workqueue import ItemExponentialFailureRateLimiter


class StubController(Controller):
    name = "Stub"

    def __init__(self, outcomes=None, max_concurrent_reconciles=1):
        self.outcomes = list(outcomes or [])
        self.seen = []
        self.max_concurrent_reconciles = max_concurrent_reconciles

    async def reconcile(self, key):
        self.seen.append(key)
        outcome = self.outcomes.pop(0) if self.outcomes else Result()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def rate_limiter(self):
        return ItemExponentialFailureRateLimiter(0.01, 1)


class FakeWatch:
    """Replays one scripted stream per Watch() instance."""

    streams = []

    def __init__(self):
        self.stopped = False
        self.script = FakeWatch.streams.pop(0) if FakeWatch.streams else []

    async def stream(self, func, **kwargs):
        for item in self.script:
            if isinstance(item, Exception):
                raise item
            yield item

    def stop(self):
        self.stopped = True


@pytest.mark.asyncio
async def test_register_rejects_duplicates():
    manager = Manager()
    manager.register(StubController())

    with pytest.raises(ValueError, match="already registered"):
        manager.register(StubController())


@pytest.mark.asyncio
async def test_success_forgets_and_requeues_after():
    manager = Manager()
    controller = StubController([Result(requeue_after=0.01)])
    queue = manager.register(controller)
    await queue.add("default")

    assert await manager.process_next(controller, queue)
    assert queue.num_requeues("default") == 0

    assert await asyncio.wait_for(queue.get(), timeout=1) == "default"
    await queue.shutdown()


@pytest.mark.asyncio
async def test_result_without_requeue_is_not_revisited():
    manager = Manager()
    controller = StubController([Result()])
    queue = manager.register(controller)
    await queue.add("default")

    await manager.process_next(controller, queue)

    assert len(queue) == 0
    assert not queue.is_processing("default")
    await queue.shutdown()


@pytest.mark.asyncio
async def test_failure_is_requeued_with_backoff(caplog):
    manager = Manager()
    error = ReconcileError("terminating expired nodes", RuntimeError("boom"))
    controller = StubController([error, Result()])
    queue = manager.register(controller)
    await queue.add("default")

    await manager.process_next(controller, queue)

    assert queue.num_requeues("default") == 1
    assert "terminating expired nodes, boom" in caplog.text

    # The rate-limited retry arrives and a success resets the backoff.
    assert await asyncio.wait_for(queue.get(), timeout=1) == "default"
    await queue.done("default")
    await queue.add("default")
    await manager.process_next(controller, queue)
    assert queue.num_requeues("default") == 0
    await queue.shutdown()


@pytest.mark.asyncio
async def test_conflicts_are_retried_quietly(caplog):
    caplog.set_level(logging.INFO)
    manager = Manager()
    conflict = ReconcileError("removing ttl from node", ApiException(status=409, reason="Conflict"))
    controller = StubController([conflict])
    queue = manager.register(controller)
    await queue.add("default")

    await manager.process_next(controller, queue)

    assert queue.num_requeues("default") == 1
    assert "modified concurrently" in caplog.text
    await queue.shutdown()


@pytest.mark.asyncio
async def test_process_next_stops_after_shutdown():
    manager = Manager()
    controller = StubController()
    queue = manager.register(controller)
    await queue.shutdown()

    assert await manager.process_next(controller, queue) is False


@pytest.mark.asyncio
async def test_start_runs_workers_until_stop():
    manager = Manager()
    controller = StubController(max_concurrent_reconciles=2)
    queue = manager.register(controller)

    await manager.start()
    await queue.add("a")
    await queue.add("b")
    for _ in range(50):
        if len(controller.seen) == 2:
            break
        await asyncio.sleep(0.01)
    await manager.stop()

    assert sorted(controller.seen) == ["a", "b"]


@pytest.mark.asyncio
async def test_watch_restarts_after_expired_resource_version(monkeypatch):
    monkeypatch.setattr("reallocator.controllers.manager.watch.Watch", FakeWatch)
    FakeWatch.streams = [
        [ApiException(status=410, reason="Gone")],
        [{"type": "ADDED", "object": {"metadata": {"name": "default"}}}],
    ]
    manager = Manager()
    received = []

    async def handler(event_type, obj):
        received.append((event_type, obj["metadata"]["name"]))
        manager._stopping = True

    await manager._run_watch("provisioners", object(), handler)

    assert received == [("ADDED", "default")]
