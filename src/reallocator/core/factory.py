# src/reallocator/core/factory.py
"""
Factory functions to instantiate the cloud provider and a fully wired
controller Manager.
"""

import logging
from functools import lru_cache

from ..cloudprovider.base import CloudProvider
from ..cloudprovider.fake import FakeCloudProvider
from ..cloudprovider.http import HTTPCloudProvider
from ..collectors.provisioner_collector import ProvisionerCollector
from ..controllers.events import EventRouter
from ..controllers.manager import Manager
from ..controllers.reallocation.controller import ReallocationController
from ..controllers.termination.controller import TerminationController
from ..models.provisioner import PROVISIONER_NAME_LABEL_KEY
from .config import config
from .exceptions import ReallocatorError
from .k8s_client import get_core_v1_api, get_custom_objects_api

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_cloud_provider() -> CloudProvider:
    """
    Factory function to get the configured cloud provider.
    Uses lru_cache to act as a singleton.
    """
    provider = config.CLOUD_PROVIDER
    if provider == "http":
        logger.info("Using HTTP cloud provider at %s.", config.CLOUD_PROVIDER_ENDPOINT)
        return HTTPCloudProvider()
    if provider == "fake":
        logger.info("Using fake cloud provider.")
        return FakeCloudProvider()
    raise ReallocatorError(f"Unsupported cloud provider: {provider}")


async def build_manager(core_api=None, custom_objects_api=None, cloud_provider: CloudProvider = None) -> Manager:
    """
    Wires the reallocation and termination controllers, their watches and the
    periodic resync into a Manager. Call start() on the result to run it.
    """
    core_api = core_api or await get_core_v1_api()
    custom_objects_api = custom_objects_api or await get_custom_objects_api()
    if core_api is None or custom_objects_api is None:
        raise ReallocatorError("Kubernetes client is not configured.")
    cloud_provider = cloud_provider or get_cloud_provider()

    manager = Manager()
    reallocation_queue = manager.register(ReallocationController(core_api, custom_objects_api, cloud_provider))
    termination_queue = manager.register(TerminationController(core_api, cloud_provider))

    router = EventRouter(
        reallocation_queue,
        termination_queue,
        ProvisionerCollector(api=custom_objects_api),
        core_api,
    )
    manager.add_watch(
        "provisioners",
        custom_objects_api.list_cluster_custom_object,
        router.on_provisioner_event,
        group=config.PROVISIONER_GROUP,
        version=config.PROVISIONER_VERSION,
        plural=config.PROVISIONER_PLURAL,
    )
    manager.add_watch("nodes", core_api.list_node, router.on_node_event, label_selector=PROVISIONER_NAME_LABEL_KEY)
    manager.add_periodic(router.resync, config.RESYNC_INTERVAL)
    return manager
