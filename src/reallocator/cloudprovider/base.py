# src/reallocator/cloudprovider/base.py
"""
The boundary between the controllers and whatever launches and terminates
compute instances. The controllers only ever ask for an instance to be
terminated, as the last step before a node's termination finalizer is released.
"""

from abc import ABC, abstractmethod

from kubernetes_asyncio.client import V1Node


class CloudProvider(ABC):
    """
    Abstract Base Class for cloud provider adapters.
    """

    @abstractmethod
    async def terminate(self, node: V1Node) -> None:
        """
        Terminates the instance backing the node. Must be idempotent: an
        instance that is already gone counts as terminated.

        Raises:
            CloudProviderError: If the instance could not be terminated.
        """
        pass

    async def close(self):
        """
        Clean up resources (e.g., close HTTP sessions).
        """
        pass
