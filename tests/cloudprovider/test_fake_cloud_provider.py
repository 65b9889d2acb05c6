# tests/cloudprovider/test_fake_cloud_provider.py

import pytest
from kubernetes_asyncio.client import V1Node, V1ObjectMeta

from reallocator.cloudprovider.fake import FakeCloudProvider
from reallocator.core.exceptions import CloudProviderError


@pytest.mark.asyncio
async def test_records_terminations_once():
    provider = FakeCloudProvider()
    node = V1Node(metadata=V1ObjectMeta(name="node-a"))

    await provider.terminate(node)
    await provider.terminate(node)

    assert provider.terminated == ["node-a"]


@pytest.mark.asyncio
async def test_configured_error_is_raised():
    provider = FakeCloudProvider(error="insufficient capacity")

    with pytest.raises(CloudProviderError, match="insufficient capacity"):
        await provider.terminate(V1Node(metadata=V1ObjectMeta(name="node-a")))
    assert provider.terminated == []
