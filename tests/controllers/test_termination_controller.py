# tests/controllers/test_termination_controller.py

import pytest

from reallocator.cloudprovider.fake import FakeCloudProvider
from reallocator.controllers.base import Result
from reallocator.controllers.termination.controller import TerminationController
from reallocator.core.config import config


@pytest.fixture
def controller(cluster):
    return TerminationController(cluster, FakeCloudProvider())


@pytest.mark.asyncio
async def test_missing_node_is_done(controller):
    assert await controller.reconcile("ghost") == Result()


@pytest.mark.asyncio
async def test_draining_node_is_revisited(cluster, controller):
    cluster.add_node("node-a")
    cluster.add_pod("web", "node-a", owner_kind="ReplicaSet")
    await cluster.delete_node("node-a")

    result = await controller.reconcile("node-a")

    assert result == Result(requeue_after=config.DRAIN_RETRY_INTERVAL_SECONDS)


@pytest.mark.asyncio
async def test_terminated_node_is_released(cluster, controller):
    cluster.add_node("node-a")
    await cluster.delete_node("node-a")

    assert await controller.reconcile("node-a") == Result()
    assert "node-a" not in cluster.nodes


@pytest.mark.asyncio
async def test_active_node_is_ignored(cluster, controller):
    cluster.add_node("node-a")

    assert await controller.reconcile("node-a") == Result()
    assert cluster.mutations() == []
