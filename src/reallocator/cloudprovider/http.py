# src/reallocator/cloudprovider/http.py
"""
Cloud provider adapter that delegates instance termination to an external
HTTP service, e.g. a small sidecar that wraps the cloud SDK.

POST {endpoint}/terminate with {"name": ..., "providerID": ...}. 2xx and 404
(instance already gone) are success; anything else is a failure.
"""

import logging
from typing import Optional

import httpx
from kubernetes_asyncio.client import V1Node

from ..core.config import config
from ..core.exceptions import CloudProviderError
from ..utils.http_client import get_async_http_client
from .base import CloudProvider

logger = logging.getLogger(__name__)


class HTTPCloudProvider(CloudProvider):
    def __init__(self, endpoint: Optional[str] = None, token: Optional[str] = None, verify: Optional[bool] = None):
        self.endpoint = (endpoint or config.CLOUD_PROVIDER_ENDPOINT).rstrip("/")
        self.token = token if token is not None else config.CLOUD_PROVIDER_TOKEN
        self.verify = config.CLOUD_PROVIDER_VERIFY_CERTS if verify is None else verify
        self._client: Optional[httpx.AsyncClient] = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
            self._client = get_async_http_client(verify=self.verify, headers=headers)
        return self._client

    async def terminate(self, node: V1Node) -> None:
        name = node.metadata.name
        payload = {"name": name, "providerID": node.spec.provider_id if node.spec else None}
        client = self._ensure_client()
        try:
            response = await client.post(f"{self.endpoint}/terminate", json=payload)
        except httpx.HTTPError as e:
            raise CloudProviderError(f"terminating instance for node '{name}', {e}") from e

        if response.status_code == 404:
            logger.info("Instance for node '%s' is already terminated.", name)
            return
        if response.is_error:
            raise CloudProviderError(
                f"terminating instance for node '{name}', provider returned HTTP {response.status_code}"
            )
        logger.info("Terminated instance for node '%s'.", name)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
