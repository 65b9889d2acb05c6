# src/reallocator/collectors/node_collector.py

import logging
from typing import List

from kubernetes_asyncio.client import V1Node

from ..core.exceptions import ReallocatorError
from ..core.k8s_client import get_core_v1_api
from ..models.provisioner import Provisioner
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class NodeCollector(BaseCollector):
    """Lists the nodes a Provisioner owns, selected by the provisioner-name label."""

    def __init__(self, api=None):
        self._api = api

    async def _ensure_client(self):
        """
        Lazily initialize the Kubernetes Async client using the centralized thread-safe loader.
        """
        if self._api:
            return self._api

        self._api = await get_core_v1_api()
        if not self._api:
            raise ReallocatorError("Kubernetes client is not configured.")
        return self._api

    async def collect(self, provisioner: Provisioner) -> List[V1Node]:
        """
        Returns a fresh snapshot of every node owned by the provisioner.
        Nodes already being deleted are included; callers decide how to treat them.
        """
        api = await self._ensure_client()
        nodes = await api.list_node(label_selector=provisioner.owned_node_selector)
        items = nodes.items or []
        logger.debug("Found %d node(s) owned by provisioner '%s'.", len(items), provisioner.name)
        return items

    async def get(self, name: str) -> V1Node:
        """Reads a single node. A missing node raises ApiException(404)."""
        api = await self._ensure_client()
        return await api.read_node(name=name)

    async def close(self):
        """Close the Kubernetes API client if it exists."""
        if self._api:
            await self._api.api_client.close()
            logger.debug("NodeCollector Kubernetes client closed.")
            self._api = None
