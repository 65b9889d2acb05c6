# src/reallocator/controllers/termination/controller.py

import logging

from ...cloudprovider.base import CloudProvider
from ...collectors.node_collector import NodeCollector
from ...collectors.pod_collector import PodCollector
from ...core.config import config
from ...core.k8s_client import is_not_found
from ...core.telemetry import reconcile_counter, tracer
from ..base import Controller, Result
from .terminator import TerminationPhase, Terminator

logger = logging.getLogger(__name__)


class TerminationController(Controller):
    """
    Reconciles nodes that are being deleted and still carry the termination
    finalizer. Keyed by node name.
    """

    name = "Termination"

    def __init__(self, api, cloud_provider: CloudProvider, terminator: Terminator = None):
        self.nodes = NodeCollector(api=api)
        self.terminator = terminator or Terminator(api, cloud_provider, pods=PodCollector(api=api))

    async def reconcile(self, key: str) -> Result:
        with tracer.start_as_current_span("termination.reconcile") as span:
            span.set_attribute("node", key)
            try:
                node = await self.nodes.get(key)
            except Exception as e:
                if is_not_found(e):
                    return Result()
                raise

            try:
                phase = await self.terminator.reconcile(node)
            except Exception:
                reconcile_counter.add(1, {"controller": self.name, "outcome": "error"})
                raise

            span.set_attribute("phase", phase.value)
            reconcile_counter.add(1, {"controller": self.name, "outcome": phase.value})
            if phase == TerminationPhase.DRAINING:
                return Result(requeue_after=config.DRAIN_RETRY_INTERVAL_SECONDS)
            return Result()
