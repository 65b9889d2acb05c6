# src/reallocator/collectors/provisioner_collector.py

import logging
from typing import List, Optional

from ..core.config import config
from ..core.exceptions import ProvisionerDecodeError, ReallocatorError
from ..core.k8s_client import get_custom_objects_api, is_not_found
from ..models.provisioner import Provisioner
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class ProvisionerCollector(BaseCollector):
    """Reads cluster-scoped Provisioner custom objects."""

    def __init__(self, api=None):
        self._api = api
        self.group = config.PROVISIONER_GROUP
        self.version = config.PROVISIONER_VERSION
        self.plural = config.PROVISIONER_PLURAL

    async def _ensure_client(self):
        if self._api:
            return self._api

        self._api = await get_custom_objects_api()
        if not self._api:
            raise ReallocatorError("Kubernetes client is not configured.")
        return self._api

    async def get(self, name: str) -> Optional[Provisioner]:
        """
        Fetches a Provisioner by name.

        Returns:
            The decoded Provisioner, or None if it no longer exists.

        Raises:
            ProvisionerDecodeError: If the object does not match the schema.
            ApiException: For any API failure other than not-found.
        """
        api = await self._ensure_client()
        try:
            obj = await api.get_cluster_custom_object(self.group, self.version, self.plural, name)
        except Exception as e:
            if is_not_found(e):
                logger.debug("Provisioner '%s' not found.", name)
                return None
            raise
        return Provisioner.from_object(obj)

    async def collect(self) -> List[Provisioner]:
        """
        Lists every Provisioner. Objects that fail to decode are logged and skipped
        so that one malformed object does not hide the others.
        """
        api = await self._ensure_client()
        response = await api.list_cluster_custom_object(self.group, self.version, self.plural)
        provisioners = []
        for obj in response.get("items", []):
            try:
                provisioners.append(Provisioner.from_object(obj))
            except ProvisionerDecodeError as e:
                logger.error("Skipping provisioner: %s", e)
        return provisioners

    async def close(self):
        if self._api:
            await self._api.api_client.close()
            logger.debug("ProvisionerCollector Kubernetes client closed.")
            self._api = None
