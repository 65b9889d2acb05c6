# src/reallocator/controllers/termination/terminator.py
"""
Finalizer-gated node deletion.

Deleting a node only sets its deletionTimestamp: the termination finalizer
keeps the object around until the node has been cordoned, drained and its
instance terminated. Every step is derived from the node's own fields, so a
restarted controller resumes wherever the object says it is:

    requested -> cordoned -> draining -> instance-terminated -> finalizer-released
"""

import logging
from enum import Enum
from typing import List

from kubernetes_asyncio.client import V1DeleteOptions, V1Eviction, V1Node, V1ObjectMeta, V1Pod
from kubernetes_asyncio.client.rest import ApiException

from ...cloudprovider.base import CloudProvider
from ...collectors.pod_collector import PodCollector
from ...core.k8s_client import is_not_found
from ...core.telemetry import node_termination_counter
from ...models.provisioner import DO_NOT_EVICT_POD_ANNOTATION_KEY, TERMINATION_FINALIZER
from ...utils.k8s_utils import has_finalizer, is_system_workload, is_terminal, is_terminating, is_unschedulable

logger = logging.getLogger(__name__)


class TerminationPhase(str, Enum):
    ACTIVE = "active"
    REQUESTED = "requested"
    CORDONED = "cordoned"
    DRAINING = "draining"
    INSTANCE_TERMINATED = "instance-terminated"
    FINALIZER_RELEASED = "finalizer-released"


def observe_phase(node: V1Node) -> TerminationPhase:
    """Reads the persisted termination phase off the node object."""
    if not is_terminating(node):
        return TerminationPhase.ACTIVE
    if not has_finalizer(node, TERMINATION_FINALIZER):
        return TerminationPhase.FINALIZER_RELEASED
    if not is_unschedulable(node):
        return TerminationPhase.REQUESTED
    return TerminationPhase.CORDONED


class Terminator:
    def __init__(self, api, cloud_provider: CloudProvider, pods: PodCollector = None):
        self.api = api
        self.cloud_provider = cloud_provider
        self.pods = pods or PodCollector(api=api)

    async def delete(self, node: V1Node, reason: str = "") -> None:
        """
        Requests graceful deletion of the node. Adds the termination finalizer
        first if it is missing, so the delete can never skip the drain.
        Already-terminating and vanished nodes are left alone.
        """
        name = node.metadata.name
        if is_terminating(node):
            logger.debug("Node '%s' is already terminating.", name)
            return

        try:
            if not has_finalizer(node, TERMINATION_FINALIZER):
                finalizers = list(node.metadata.finalizers or []) + [TERMINATION_FINALIZER]
                await self.api.patch_node(
                    name=name,
                    body={"metadata": {"finalizers": finalizers, "resourceVersion": node.metadata.resource_version}},
                )
            await self.api.delete_node(name=name, body=V1DeleteOptions(propagation_policy="Background"))
        except ApiException as e:
            if is_not_found(e):
                logger.debug("Node '%s' vanished before it could be deleted.", name)
                return
            raise

        node_termination_counter.add(1, {"reason": reason or "unspecified"})
        logger.info("Requested deletion of node '%s' (%s).", name, reason or "no reason given")

    async def reconcile(self, node: V1Node) -> TerminationPhase:
        """
        Advances a terminating node as far as it can go in one pass.

        Returns:
            The phase reached. DRAINING means pods are still on the node and
            the caller should revisit later.
        """
        name = node.metadata.name
        phase = observe_phase(node)
        if phase in (TerminationPhase.ACTIVE, TerminationPhase.FINALIZER_RELEASED):
            return phase

        try:
            if phase == TerminationPhase.REQUESTED:
                # The patch bumps resourceVersion; keep the returned object for the finalizer update.
                node = await self.cordon(node)

            remaining = await self.drain(node)
            if remaining:
                logger.info("Node '%s' is draining, %d pod(s) remaining.", name, len(remaining))
                return TerminationPhase.DRAINING

            await self.cloud_provider.terminate(node)
            logger.debug("Node '%s' reached phase %s.", name, TerminationPhase.INSTANCE_TERMINATED.value)

            await self.release_finalizer(node)
        except ApiException as e:
            if is_not_found(e):
                logger.debug("Node '%s' vanished during termination.", name)
                return TerminationPhase.FINALIZER_RELEASED
            raise

        logger.info("Node '%s' terminated, finalizer released.", name)
        return TerminationPhase.FINALIZER_RELEASED

    async def cordon(self, node: V1Node) -> V1Node:
        patched = await self.api.patch_node(name=node.metadata.name, body={"spec": {"unschedulable": True}})
        logger.info("Cordoned node '%s'.", node.metadata.name)
        return patched

    async def drain(self, node: V1Node) -> List[V1Pod]:
        """
        Evicts every evictable pod on the node.

        Returns:
            Pods still on the node: already shutting down, blocked by a
            disruption budget, or annotated do-not-evict.
        """
        remaining = []
        for pod in await self.pods.collect(node.metadata.name):
            if is_system_workload(pod) or is_terminal(pod):
                continue
            remaining.append(pod)
            if pod.metadata.deletion_timestamp is not None:
                continue
            annotations = pod.metadata.annotations or {}
            if annotations.get(DO_NOT_EVICT_POD_ANNOTATION_KEY) == "true":
                logger.info(
                    "Pod %s/%s is annotated %s, node '%s' stays cordoned.",
                    pod.metadata.namespace,
                    pod.metadata.name,
                    DO_NOT_EVICT_POD_ANNOTATION_KEY,
                    node.metadata.name,
                )
                continue
            await self._evict(pod)
        return remaining

    async def _evict(self, pod: V1Pod) -> None:
        namespace, name = pod.metadata.namespace, pod.metadata.name
        eviction = V1Eviction(metadata=V1ObjectMeta(name=name, namespace=namespace))
        try:
            await self.api.create_namespaced_pod_eviction(name=name, namespace=namespace, body=eviction)
            logger.info("Evicted pod %s/%s.", namespace, name)
        except ApiException as e:
            if is_not_found(e):
                return
            if e.status == 429:
                logger.info("Eviction of pod %s/%s blocked by a disruption budget.", namespace, name)
                return
            raise

    async def release_finalizer(self, node: V1Node) -> None:
        """
        Removes the termination finalizer and keeps any others.

        Sent as a JSON patch, since a strategic merge patch unions finalizer
        lists. The test op pins the observed resourceVersion.
        """
        finalizers = [f for f in (node.metadata.finalizers or []) if f != TERMINATION_FINALIZER]
        await self.api.patch_node(
            name=node.metadata.name,
            body=[
                {"op": "test", "path": "/metadata/resourceVersion", "value": node.metadata.resource_version},
                {"op": "replace", "path": "/metadata/finalizers", "value": finalizers},
            ],
        )
