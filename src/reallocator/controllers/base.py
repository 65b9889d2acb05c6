# src/reallocator/controllers/base.py
"""
Common types for controllers run by the manager.

A controller reconciles one key at a time. It returns a Result to ask for a
future revisit, or raises to have the key retried under the queue's rate
limiter. A missing object is not an error and simply returns Result().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Hashable, Optional

from ..core.workqueue import RateLimiter


@dataclass(frozen=True)
class Result:
    """Outcome of a successful reconcile. requeue_after=None means no revisit."""

    requeue_after: Optional[float] = None


class Controller(ABC):
    """
    Abstract Base Class for controllers.
    """

    name: str = "controller"
    max_concurrent_reconciles: int = 1

    @abstractmethod
    async def reconcile(self, key: Hashable) -> Result:
        """Drives the object identified by key toward its desired state."""
        pass

    def rate_limiter(self) -> Optional[RateLimiter]:
        """Rate limiter for this controller's queue; None selects the default."""
        return None
