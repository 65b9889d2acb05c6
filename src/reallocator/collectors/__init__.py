from .node_collector import NodeCollector
from .pod_collector import PodCollector
from .provisioner_collector import ProvisionerCollector

__all__ = [
    "NodeCollector",
    "PodCollector",
    "ProvisionerCollector",
]
