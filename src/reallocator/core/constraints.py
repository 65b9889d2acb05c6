# src/reallocator/core/constraints.py
"""
Resolves the placement constraints for a node launch request.

Every constrainable dimension is described by an ordered list of sources.
Sources are evaluated top-down and the first one that yields a value wins:

    1. the workload's node selector, on the dimension's well-known key
    2. the provisioner's configured constraint, if non-empty
    3. a built-in default (amd64, linux, or unconstrained)

Labels are a key-wise union where the workload's selector wins on collision.
Taints always come from the provisioner unchanged.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..models.constraints import EffectiveConstraints
from ..models.provisioner import (
    ARCHITECTURE_AMD64,
    ARCHITECTURE_LABEL_KEY,
    INSTANCE_TYPE_LABEL_KEY,
    OPERATING_SYSTEM_LABEL_KEY,
    OPERATING_SYSTEM_LINUX,
    ZONE_LABEL_KEY,
    Constraints,
)

Source = Callable[[Constraints, Mapping[str, str]], Optional[Any]]


def from_selector(key: str, as_list: bool = False) -> Source:
    """The workload explicitly asked for a value on this key."""

    def source(_: Constraints, selector: Mapping[str, str]) -> Optional[Any]:
        if key not in selector:
            return None
        value = selector[key]
        return [value] if as_list else value

    source.__name__ = f"selector[{key}]"
    return source


def from_constraint(attribute: str) -> Source:
    """The provisioner configured a non-empty value for this dimension."""

    def source(constraints: Constraints, _: Mapping[str, str]) -> Optional[Any]:
        value = getattr(constraints, attribute)
        if value is None or (isinstance(value, (list, tuple)) and len(value) == 0):
            return None
        return list(value) if isinstance(value, (list, tuple)) else value

    source.__name__ = f"provisioner.{attribute}"
    return source


def default(value: Any) -> Source:
    """Built-in fallback. A None default leaves the dimension unconstrained."""

    def source(_: Constraints, __: Mapping[str, str]) -> Optional[Any]:
        return value

    source.__name__ = f"default({value!r})"
    return source


@dataclass(frozen=True)
class Dimension:
    name: str
    sources: Sequence[Source]

    def resolve(self, constraints: Constraints, selector: Mapping[str, str]) -> Optional[Any]:
        for source in self.sources:
            value = source(constraints, selector)
            if value is not None:
                return value
        return None


ZONES = Dimension(
    "zones",
    (from_selector(ZONE_LABEL_KEY, as_list=True), from_constraint("zones"), default(None)),
)
INSTANCE_TYPES = Dimension(
    "instance_types",
    (from_selector(INSTANCE_TYPE_LABEL_KEY, as_list=True), from_constraint("instance_types"), default(None)),
)
ARCHITECTURE = Dimension(
    "architecture",
    (from_selector(ARCHITECTURE_LABEL_KEY), from_constraint("architecture"), default(ARCHITECTURE_AMD64)),
)
OPERATING_SYSTEM = Dimension(
    "operating_system",
    (from_selector(OPERATING_SYSTEM_LABEL_KEY), from_constraint("operating_system"), default(OPERATING_SYSTEM_LINUX)),
)

DIMENSIONS = (ZONES, INSTANCE_TYPES, ARCHITECTURE, OPERATING_SYSTEM)


def resolve_zones(constraints: Constraints, selector: Optional[Mapping[str, str]] = None) -> Optional[List[str]]:
    return ZONES.resolve(constraints, selector or {})


def resolve_instance_types(
    constraints: Constraints, selector: Optional[Mapping[str, str]] = None
) -> Optional[List[str]]:
    return INSTANCE_TYPES.resolve(constraints, selector or {})


def resolve_architecture(constraints: Constraints, selector: Optional[Mapping[str, str]] = None) -> str:
    return ARCHITECTURE.resolve(constraints, selector or {})


def resolve_operating_system(constraints: Constraints, selector: Optional[Mapping[str, str]] = None) -> str:
    return OPERATING_SYSTEM.resolve(constraints, selector or {})


def merge_labels(provisioner_labels: Mapping[str, str], selector: Mapping[str, str]) -> Dict[str, str]:
    """Union of both maps. Later maps win, so the workload selector overrides provisioner labels."""
    return {**provisioner_labels, **selector}


def resolve(
    constraints: Constraints, node_selector: Optional[Mapping[str, str]] = None
) -> EffectiveConstraints:
    """
    Merges provisioner constraints with a workload's node selector.

    Args:
        constraints: The provisioner's default constraints.
        node_selector: The pod's node selector, may be None.

    Returns:
        The effective constraints for the launch request.
    """
    selector = dict(node_selector or {})
    resolved = {dimension.name: dimension.resolve(constraints, selector) for dimension in DIMENSIONS}
    return EffectiveConstraints(
        labels=merge_labels(constraints.labels, selector),
        taints=list(constraints.taints),
        **resolved,
    )
