# src/reallocator/models/provisioner.py
"""
Pydantic models for the Provisioner custom resource and the well-known
label, annotation, taint and finalizer keys that the controllers read and
write on nodes.

A Provisioner launches nodes for pending pods. Node configuration is driven
by a combination of provisioner specification (defaults) and pod scheduling
constraints (overrides). Nodes record their owner with the provisioner-name
label, which is how every lifecycle stage scopes its work.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.config import config
from ..core.exceptions import ProvisionerDecodeError

GROUP = config.PROVISIONER_GROUP

# Supported values
ARCHITECTURE_AMD64 = "amd64"
ARCHITECTURE_ARM64 = "arm64"
OPERATING_SYSTEM_LINUX = "linux"

# Well known, supported labels
ARCHITECTURE_LABEL_KEY = "kubernetes.io/arch"
OPERATING_SYSTEM_LABEL_KEY = "kubernetes.io/os"
ZONE_LABEL_KEY = "topology.kubernetes.io/zone"
INSTANCE_TYPE_LABEL_KEY = "node.kubernetes.io/instance-type"

# Reserved taints
NOT_READY_TAINT_KEY = f"{GROUP}/not-ready"

# Reserved labels
PROVISIONER_NAME_LABEL_KEY = f"{GROUP}/provisioner-name"
PROVISIONER_UNDERUTILIZED_LABEL_KEY = f"{GROUP}/underutilized"

# Reserved annotations
DO_NOT_EVICT_POD_ANNOTATION_KEY = f"{GROUP}/do-not-evict"
PROVISIONER_TTL_AFTER_EMPTY_KEY = f"{GROUP}/ttl-after-empty"

# Finalizers
TERMINATION_FINALIZER = f"{GROUP}/termination"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Taint(_CamelModel):
    """A node taint, as carried on provisioner constraints."""

    key: str = Field(..., description="Taint key")
    value: Optional[str] = Field(None, description="Taint value")
    effect: str = Field(..., description="NoSchedule, PreferNoSchedule or NoExecute")


class Cluster(_CamelModel):
    """
    Connection info for nodes joining the cluster. Passed through untouched.
    """

    endpoint: str = Field(..., description="API server endpoint nodes connect to")
    ca_bundle: Optional[str] = Field(None, alias="caBundle", description="CA bundle for the API server")
    name: Optional[str] = Field(None, description="Cluster name")


class Constraints(_CamelModel):
    """
    Constraints are applied to all nodes created by the provisioner. They can
    be overridden by node selectors at the pod level.
    """

    taints: List[Taint] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    zones: List[str] = Field(default_factory=list)
    instance_types: List[str] = Field(default_factory=list, alias="instanceTypes")
    architecture: Optional[str] = None
    operating_system: Optional[str] = Field(None, alias="operatingSystem")

    def with_label(self, key: str, value: str) -> "Constraints":
        """Returns a copy of these constraints with the label added or replaced."""
        return self.model_copy(update={"labels": {**self.labels, key: value}})

    def with_overrides(self, node_selector: Optional[Dict[str, str]]):
        """Resolves these defaults against a pod's node selector."""
        from ..core.constraints import resolve

        return resolve(self, node_selector)


class ProvisionerSpec(Constraints):
    """
    Top level provisioner specification. Inline constraints plus the TTLs
    that drive node reclamation.
    """

    cluster: Optional[Cluster] = None
    ttl_seconds_after_empty: Optional[int] = Field(
        None,
        alias="ttlSecondsAfterEmpty",
        ge=0,
        description="Seconds a node may stay empty before termination. Unset disables it.",
    )
    ttl_seconds_until_expired: Optional[int] = Field(
        None,
        alias="ttlSecondsUntilExpired",
        ge=0,
        description="Seconds after creation before a node is terminated. Unset disables it.",
    )

    @property
    def constraints(self) -> Constraints:
        return Constraints.model_validate(self.model_dump(include=set(Constraints.model_fields)))


class ObjectMeta(_CamelModel):
    name: str
    resource_version: Optional[str] = Field(None, alias="resourceVersion")
    uid: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)


class Provisioner(_CamelModel):
    """The Provisioner custom resource."""

    metadata: ObjectMeta
    spec: ProvisionerSpec = Field(default_factory=ProvisionerSpec)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def owned_node_selector(self) -> str:
        """Label selector matching every node this provisioner owns."""
        return f"{PROVISIONER_NAME_LABEL_KEY}={self.name}"

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Provisioner":
        """
        Decodes a custom object dict as returned by CustomObjectsApi.

        Raises:
            ProvisionerDecodeError: If the object does not match the schema.
        """
        try:
            return cls.model_validate(obj)
        except ValidationError as e:
            name = (obj.get("metadata") or {}).get("name", "<unknown>") if isinstance(obj, dict) else "<unknown>"
            raise ProvisionerDecodeError(f"decoding provisioner '{name}', {e}") from e
