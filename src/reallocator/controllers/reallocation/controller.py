# src/reallocator/controllers/reallocation/controller.py

import logging

from ...cloudprovider.base import CloudProvider
from ...collectors.provisioner_collector import ProvisionerCollector
from ...core.config import config
from ...core.exceptions import ReconcileError
from ...core.telemetry import reconcile_counter, tracer
from ..base import Controller, Result
from ..termination.terminator import Terminator
from .utilization import Utilization

logger = logging.getLogger(__name__)


class ReallocationController(Controller):
    """
    Reconciles a Provisioner's nodes against its TTL policies. Keyed by
    provisioner name; exactly one cycle runs at a time.
    """

    name = "Reallocation"
    # Exactly one cycle in flight.
    max_concurrent_reconciles = 1

    def __init__(
        self,
        api,
        custom_objects_api,
        cloud_provider: CloudProvider,
        utilization: Utilization = None,
        provisioners: ProvisionerCollector = None,
    ):
        self.cloud_provider = cloud_provider
        self.provisioners = provisioners or ProvisionerCollector(api=custom_objects_api)
        self.utilization = utilization or Utilization(api, Terminator(api, cloud_provider))
        self.revisit_interval = config.REVISIT_INTERVAL_SECONDS

    async def reconcile(self, key: str) -> Result:
        """
        Executes a reallocation control loop for the provisioner.

        Raises:
            ReconcileError: When a stage fails; the key is retried with backoff.
        """
        with tracer.start_as_current_span("reallocation.reconcile") as span:
            span.set_attribute("provisioner", key)
            try:
                result = await self._reconcile(key)
            except Exception as e:
                reconcile_counter.add(1, {"controller": self.name, "outcome": "error"})
                span.record_exception(e)
                raise
            reconcile_counter.add(1, {"controller": self.name, "outcome": "success"})
            return result

    async def _reconcile(self, key: str) -> Result:
        # 1. Retrieve provisioner from reconcile request
        provisioner = await self.provisioners.get(key)
        if provisioner is None:
            logger.debug("Provisioner '%s' no longer exists, nothing to do.", key)
            return Result()

        # 2. Delete any node that has been unable to join.
        await self._stage("terminating nodes that failed to join", self.utilization.terminate_failed_to_join, provisioner)

        # Without an empty TTL only age-based expiry applies, but it still needs revisiting.
        if provisioner.spec.ttl_seconds_after_empty is None:
            await self._stage("removing ttl from node", self.utilization.clear_underutilized, provisioner)
            await self._stage("terminating expired nodes", self.utilization.terminate_expired, provisioner)
            return Result(requeue_after=self.revisit_interval)

        # 3. Set TTL on TTLable Nodes
        await self._stage("adding ttl and underutilized label", self.utilization.mark_underutilized, provisioner)

        # 4. Remove TTL from Utilized Nodes
        await self._stage("removing ttl from node", self.utilization.clear_underutilized, provisioner)

        # 5. Delete any node past its TTL
        await self._stage("terminating expired nodes", self.utilization.terminate_expired, provisioner)

        return Result(requeue_after=self.revisit_interval)

    @staticmethod
    async def _stage(description: str, operation, provisioner) -> None:
        try:
            await operation(provisioner)
        except Exception as e:
            raise ReconcileError(description, e) from e
