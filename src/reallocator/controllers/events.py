# src/reallocator/controllers/events.py
"""
Maps cluster events onto controller keys.

Provisioner events queue the provisioner itself. Node events queue the
provisioner that owns the node, and nodes that are terminating with the
termination finalizer are also handed to the termination controller.
"""

import logging
from typing import Any

from kubernetes_asyncio.client import V1Node

from ..collectors.provisioner_collector import ProvisionerCollector
from ..core.workqueue import WorkQueue
from ..models.provisioner import PROVISIONER_NAME_LABEL_KEY, TERMINATION_FINALIZER
from ..utils.k8s_utils import has_finalizer, is_terminating, node_labels

logger = logging.getLogger(__name__)


class EventRouter:
    def __init__(
        self,
        reallocation_queue: WorkQueue,
        termination_queue: WorkQueue,
        provisioners: ProvisionerCollector,
        core_api,
    ):
        self.reallocation_queue = reallocation_queue
        self.termination_queue = termination_queue
        self.provisioners = provisioners
        self.core_api = core_api

    async def on_provisioner_event(self, event_type: str, obj: Any) -> None:
        name = (obj.get("metadata") or {}).get("name") if isinstance(obj, dict) else None
        if not name:
            return
        logger.debug("Provisioner '%s' %s.", name, event_type.lower())
        await self.reallocation_queue.add(name)

    async def on_node_event(self, event_type: str, node: V1Node) -> None:
        owner = node_labels(node).get(PROVISIONER_NAME_LABEL_KEY)
        if owner and event_type != "DELETED":
            await self.reallocation_queue.add(owner)
        if is_terminating(node) and has_finalizer(node, TERMINATION_FINALIZER):
            await self.termination_queue.add(node.metadata.name)

    async def resync(self) -> None:
        """
        Queues every provisioner and every terminating owned node, so that
        missed watch events never leave work behind.
        """
        for provisioner in await self.provisioners.collect():
            await self.reallocation_queue.add(provisioner.name)

        nodes = await self.core_api.list_node(label_selector=PROVISIONER_NAME_LABEL_KEY)
        for node in nodes.items or []:
            if is_terminating(node) and has_finalizer(node, TERMINATION_FINALIZER):
                await self.termination_queue.add(node.metadata.name)
        logger.debug("Resync queued %d provisioner(s).", len(self.reallocation_queue))
