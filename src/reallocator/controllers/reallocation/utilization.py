# src/reallocator/controllers/reallocation/utilization.py
"""
Tracks whether the nodes owned by a Provisioner may be reclaimed.

A node observed empty is marked with the underutilized label plus a
ttl-after-empty annotation holding the time it was first seen empty. Label
and annotation are always written and removed together, in one patch. Every
operation re-lists the provisioner's nodes, patches with the observed
resourceVersion, and is safe to repeat: re-applying it to an unchanged
cluster is a no-op.

Nodes are processed best-effort. Each node is attempted even when another
one fails, and the first error is raised once the whole set has been visited.
"""

import logging
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from kubernetes_asyncio.client import V1Node
from kubernetes_asyncio.client.rest import ApiException

from ...collectors.node_collector import NodeCollector
from ...collectors.pod_collector import PodCollector
from ...core.config import config
from ...core.k8s_client import is_not_found
from ...models.provisioner import (
    NOT_READY_TAINT_KEY,
    PROVISIONER_TTL_AFTER_EMPTY_KEY,
    PROVISIONER_UNDERUTILIZED_LABEL_KEY,
    Provisioner,
)
from ...utils.date_utils import Clock, age, format_age, to_rfc3339, utc_now
from ...utils.k8s_utils import (
    has_marker_key,
    has_taint,
    is_marked_underutilized,
    is_ready,
    is_terminating,
    ready_condition_status,
    underutilized_since,
)
from ..termination.terminator import Terminator

logger = logging.getLogger(__name__)


class Utilization:
    def __init__(
        self,
        api,
        terminator: Terminator,
        nodes: NodeCollector = None,
        pods: PodCollector = None,
        clock: Clock = utc_now,
        failed_to_join_timeout: Optional[timedelta] = None,
    ):
        self.api = api
        self.terminator = terminator
        self.nodes = nodes or NodeCollector(api=api)
        self.pods = pods or PodCollector(api=api)
        self.clock = clock
        self.failed_to_join_timeout = (
            config.failed_to_join_timeout if failed_to_join_timeout is None else failed_to_join_timeout
        )

    async def terminate_failed_to_join(self, provisioner: Provisioner) -> None:
        """Deletes owned nodes that never became ready within the join timeout."""
        now = self.clock()

        async def terminate(node: V1Node):
            if not self.has_failed_to_join(node, now):
                return
            logger.info(
                "Node '%s' failed to join after %s, terminating.",
                node.metadata.name,
                format_age(age(node.metadata.creation_timestamp, now)),
            )
            await self.terminator.delete(node, reason="failed-to-join")

        await self._for_each_node(provisioner, terminate)

    async def mark_underutilized(self, provisioner: Provisioner) -> None:
        """
        Marks every empty, unmarked node with the current time. Marked nodes keep
        their timestamp; a marker whose timestamp does not parse is rewritten.
        """
        now = self.clock()

        async def mark(node: V1Node):
            if is_marked_underutilized(node):
                return
            if not await self.pods.is_empty(node.metadata.name):
                return
            await self._patch_marker(node, to_rfc3339(now))
            logger.info("Added TTL and underutilized label to node '%s'.", node.metadata.name)

        await self._for_each_node(provisioner, mark)

    async def clear_underutilized(self, provisioner: Provisioner) -> None:
        """
        Removes the marker from nodes that are no longer empty. When the
        provisioner no longer defines an empty TTL every marker is removed.
        """
        policy_enabled = provisioner.spec.ttl_seconds_after_empty is not None

        async def clear(node: V1Node):
            if not has_marker_key(node):
                return
            if policy_enabled and await self.pods.is_empty(node.metadata.name):
                return
            await self._patch_marker(node, None)
            logger.info("Removed TTL and underutilized label from node '%s'.", node.metadata.name)

        await self._for_each_node(provisioner, clear)

    async def terminate_expired(self, provisioner: Provisioner) -> None:
        """Deletes nodes whose empty TTL or maximum age has elapsed."""
        now = self.clock()

        async def terminate(node: V1Node):
            expired, reason = self.is_expired(node, provisioner, now)
            if not expired:
                return
            logger.info("Node '%s' has expired (%s), terminating.", node.metadata.name, reason)
            await self.terminator.delete(node, reason=reason)

        await self._for_each_node(provisioner, terminate)

    def has_failed_to_join(self, node: V1Node, now) -> bool:
        """
        A node failed to join when it is older than the join timeout and has
        never become ready: Ready is not True and either the kubelet never
        reported readiness or the not-ready taint it starts with is still on it.
        A node that joined and later went unhealthy is left alone.
        """
        if age(node.metadata.creation_timestamp, now) < self.failed_to_join_timeout:
            return False
        if is_ready(node):
            return False
        return ready_condition_status(node) is None or has_taint(node, NOT_READY_TAINT_KEY)

    @staticmethod
    def is_expired(node: V1Node, provisioner: Provisioner, now) -> Tuple[bool, str]:
        """Checks both TTLs. Boundaries are inclusive."""
        spec = provisioner.spec
        if spec.ttl_seconds_after_empty is not None:
            since = underutilized_since(node)
            if since is not None and age(since, now) >= timedelta(seconds=spec.ttl_seconds_after_empty):
                return True, f"empty for {format_age(age(since, now))}"
        if spec.ttl_seconds_until_expired is not None:
            node_age = age(node.metadata.creation_timestamp, now)
            if node_age >= timedelta(seconds=spec.ttl_seconds_until_expired):
                return True, f"age {format_age(node_age)}"
        return False, ""

    async def _patch_marker(self, node: V1Node, timestamp: Optional[str]) -> None:
        """Sets (timestamp) or removes (None) label and annotation in a single patch."""
        body = {
            "metadata": {
                "labels": {PROVISIONER_UNDERUTILIZED_LABEL_KEY: "true" if timestamp else None},
                "annotations": {PROVISIONER_TTL_AFTER_EMPTY_KEY: timestamp},
                "resourceVersion": node.metadata.resource_version,
            }
        }
        try:
            await self.api.patch_node(name=node.metadata.name, body=body)
        except ApiException as e:
            if is_not_found(e):
                logger.debug("Node '%s' vanished before its marker could be updated.", node.metadata.name)
                return
            raise

    async def _for_each_node(self, provisioner: Provisioner, fn: Callable[[V1Node], Awaitable[None]]) -> None:
        nodes: List[V1Node] = [node for node in await self.nodes.collect(provisioner) if not is_terminating(node)]
        errors = []
        for node in nodes:
            try:
                await fn(node)
            except Exception as e:
                logger.warning("Processing node '%s' failed: %s", node.metadata.name, e)
                errors.append(e)
        if errors:
            raise errors[0]
