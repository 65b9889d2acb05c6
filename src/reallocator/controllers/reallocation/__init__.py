from .controller import ReallocationController
from .utilization import Utilization

__all__ = ["ReallocationController", "Utilization"]
