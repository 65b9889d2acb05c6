# src/reallocator/cloudprovider/fake.py

import logging
from typing import List, Optional

from kubernetes_asyncio.client import V1Node

from ..core.exceptions import CloudProviderError
from .base import CloudProvider

logger = logging.getLogger(__name__)


class FakeCloudProvider(CloudProvider):
    """
    In-memory cloud provider. Records terminations instead of performing them;
    used for dry runs and tests. Set `error` to make every call fail.
    """

    def __init__(self, error: Optional[str] = None):
        self.error = error
        self.terminated: List[str] = []

    async def terminate(self, node: V1Node) -> None:
        name = node.metadata.name
        if self.error:
            raise CloudProviderError(f"terminating instance for node '{name}', {self.error}")
        if name not in self.terminated:
            self.terminated.append(name)
        logger.info("Fake cloud provider terminated instance for node '%s'.", name)
