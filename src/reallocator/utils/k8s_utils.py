# src/reallocator/utils/k8s_utils.py
"""Read-only helpers over kubernetes_asyncio Node and Pod models."""

from datetime import datetime
from typing import Optional

from kubernetes_asyncio.client import V1Node, V1Pod

from ..models.provisioner import (
    PROVISIONER_TTL_AFTER_EMPTY_KEY,
    PROVISIONER_UNDERUTILIZED_LABEL_KEY,
)
from .date_utils import parse_iso_date

TERMINAL_POD_PHASES = ("Succeeded", "Failed")


def node_labels(node: V1Node) -> dict:
    return node.metadata.labels or {}


def node_annotations(node: V1Node) -> dict:
    return node.metadata.annotations or {}


def ready_condition_status(node: V1Node) -> Optional[str]:
    """Status of the Ready condition ('True', 'False', 'Unknown'), or None if never reported."""
    conditions = (node.status.conditions if node.status else None) or []
    for condition in conditions:
        if condition.type == "Ready":
            return condition.status
    return None


def is_ready(node: V1Node) -> bool:
    return ready_condition_status(node) == "True"


def has_taint(node: V1Node, key: str) -> bool:
    taints = (node.spec.taints if node.spec else None) or []
    return any(taint.key == key for taint in taints)


def is_terminating(node: V1Node) -> bool:
    return node.metadata.deletion_timestamp is not None


def has_finalizer(node: V1Node, finalizer: str) -> bool:
    return finalizer in (node.metadata.finalizers or [])


def is_unschedulable(node: V1Node) -> bool:
    return bool(node.spec and node.spec.unschedulable)


def underutilized_since(node: V1Node) -> Optional[datetime]:
    """Timestamp recorded by the marker, or None if either half is missing or the timestamp is unparseable."""
    if PROVISIONER_UNDERUTILIZED_LABEL_KEY not in node_labels(node):
        return None
    return parse_iso_date(node_annotations(node).get(PROVISIONER_TTL_AFTER_EMPTY_KEY))


def is_marked_underutilized(node: V1Node) -> bool:
    """True only when both halves of the marker are present and the timestamp parses."""
    return underutilized_since(node) is not None


def has_marker_key(node: V1Node) -> bool:
    """True when the marker label or annotation is present, valid or not."""
    return PROVISIONER_UNDERUTILIZED_LABEL_KEY in node_labels(node) or (
        PROVISIONER_TTL_AFTER_EMPTY_KEY in node_annotations(node)
    )


def is_owned_by(pod: V1Pod, kind: str) -> bool:
    owner_references = pod.metadata.owner_references or []
    return any(owner.kind == kind for owner in owner_references)


def is_system_workload(pod: V1Pod) -> bool:
    """
    Per-node agents never count toward occupancy: DaemonSet pods and static
    (mirror) pods, which are owned by the Node itself.
    """
    return is_owned_by(pod, "DaemonSet") or is_owned_by(pod, "Node")


def is_terminal(pod: V1Pod) -> bool:
    return bool(pod.status and pod.status.phase in TERMINAL_POD_PHASES)
