# src/reallocator/models/constraints.py

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .provisioner import Taint


class EffectiveConstraints(BaseModel):
    """
    Placement constraints for a single request after merging provisioner
    defaults with a workload's node selector. Recomputed on demand, never stored.

    Attributes:
        zones: Allowed zones, None when any zone is acceptable
        instance_types: Allowed instance types, None when any type is acceptable
        architecture: Required CPU architecture
        operating_system: Required operating system
        labels: Labels to apply to the launched node
        taints: Taints copied from the provisioner
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    zones: Optional[List[str]] = Field(None, description="Zone allow-set")
    instance_types: Optional[List[str]] = Field(None, description="Instance type allow-set")
    architecture: str = Field(..., description="CPU architecture")
    operating_system: str = Field(..., description="Operating system")
    labels: Dict[str, str] = Field(default_factory=dict, description="Node labels")
    taints: List[Taint] = Field(default_factory=list, description="Node taints")
