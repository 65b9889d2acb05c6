# src/reallocator/collectors/pod_collector.py
"""
Answers the occupancy question for a node: which non-system workloads are
bound to it right now.
"""

import logging
from typing import List

from kubernetes_asyncio.client import V1Pod

from ..core.exceptions import ReallocatorError
from ..core.k8s_client import get_core_v1_api
from ..utils.k8s_utils import is_system_workload, is_terminal
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class PodCollector(BaseCollector):
    """
    Lists pods scheduled to a node through the Kubernetes API.
    """

    def __init__(self, api=None):
        self._api = api

    async def _ensure_client(self):
        """Lazily initialize the Kubernetes Client."""
        if self._api:
            return self._api

        self._api = await get_core_v1_api()
        if not self._api:
            raise ReallocatorError("Kubernetes client is not configured.")
        logger.debug("PodCollector initialized with centralized config.")
        return self._api

    async def collect(self, node_name: str) -> List[V1Pod]:
        """
        Fetches all pods bound to the node, in every namespace.
        """
        api = await self._ensure_client()
        pod_list = await api.list_pod_for_all_namespaces(field_selector=f"spec.nodeName={node_name}")
        return pod_list.items or []

    async def list_non_system_workloads(self, node_name: str) -> List[V1Pod]:
        """
        Pods on the node that count toward occupancy: not a per-node agent
        (DaemonSet or static pod) and not already finished.
        """
        pods = await self.collect(node_name)
        workloads = [pod for pod in pods if not is_system_workload(pod) and not is_terminal(pod)]
        logger.debug("Node '%s' has %d non-system workload(s).", node_name, len(workloads))
        return workloads

    async def is_empty(self, node_name: str) -> bool:
        return not await self.list_non_system_workloads(node_name)

    async def close(self):
        """Close the Kubernetes API client if it exists."""
        if self._api:
            await self._api.api_client.close()
            logger.debug("PodCollector Kubernetes client closed.")
            self._api = None
