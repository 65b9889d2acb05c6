# src/reallocator/collectors/base_collector.py
"""
This module defines the abstract base class for all object-store collectors.
Each collector reads one kind of cluster object through the Kubernetes API
and returns fresh snapshots; nothing is cached between calls, since every
lifecycle stage must act on the state it has just observed.
"""

from abc import ABC, abstractmethod
from typing import Any, List


class BaseCollector(ABC):
    """
    Abstract Base Class for all cluster object collectors.
    """

    @abstractmethod
    async def collect(self, *args, **kwargs) -> List[Any]:
        """
        The main method for a collector. It should list objects from the
        Kubernetes API and return them. API errors propagate to the caller.
        """
        pass

    async def close(self):
        """
        Clean up resources (e.g., close API clients).
        """
        pass
