from .base import CloudProvider
from .fake import FakeCloudProvider
from .http import HTTPCloudProvider

__all__ = ["CloudProvider", "FakeCloudProvider", "HTTPCloudProvider"]
