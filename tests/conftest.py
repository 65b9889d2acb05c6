# tests/conftest.py

from datetime import datetime, timedelta, timezone

import pytest
from kubernetes_asyncio.client import models as k8s
from kubernetes_asyncio.client.rest import ApiException

from reallocator.models.provisioner import PROVISIONER_NAME_LABEL_KEY, TERMINATION_FINALIZER

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable wall clock injected into the controllers."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def _api_error(status: int, reason: str) -> ApiException:
    return ApiException(status=status, reason=reason)


def _matches_selector(labels: dict, selector: str) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        if "=" in term:
            key, value = term.split("=", 1)
            if labels.get(key) != value:
                return False
        elif term not in labels:
            return False
    return True


class FakeCluster:
    """
    In-memory stand-in for CoreV1Api and CustomObjectsApi.

    Nodes are stored as plain state and rebuilt into fresh V1Node objects on
    every read, so callers hold snapshots that go stale exactly like real API
    responses. Patches honour resourceVersion, and deletes honour finalizers.
    """

    def __init__(self):
        self.nodes = {}
        self.pods = []
        self.provisioners = {}
        self.calls = []
        self.patches = []
        self.eviction_blocked = set()
        self.fail_on = {}
        self._rv = 0

    # --- fixture builders ---

    def add_node(
        self,
        name,
        provisioner="default",
        created=T0,
        ready="True",
        taints=(),
        finalizers=(TERMINATION_FINALIZER,),
        labels=None,
        annotations=None,
    ):
        self._rv += 1
        node_labels = {PROVISIONER_NAME_LABEL_KEY: provisioner} if provisioner else {}
        node_labels.update(labels or {})
        self.nodes[name] = {
            "labels": node_labels,
            "annotations": dict(annotations or {}),
            "finalizers": list(finalizers),
            "created": created,
            "deleted": None,
            "unschedulable": False,
            "taints": list(taints),
            "ready": ready,
            "rv": self._rv,
        }

    def add_pod(self, name, node_name, namespace="default", owner_kind=None, phase="Running", annotations=None):
        owners = None
        if owner_kind:
            owners = [k8s.V1OwnerReference(api_version="v1", kind=owner_kind, name=f"{name}-owner", uid="uid")]
        pod = k8s.V1Pod(
            metadata=k8s.V1ObjectMeta(
                name=name,
                namespace=namespace,
                owner_references=owners,
                annotations=annotations,
            ),
            spec=k8s.V1PodSpec(node_name=node_name, containers=[k8s.V1Container(name="main")]),
            status=k8s.V1PodStatus(phase=phase),
        )
        self.pods.append(pod)
        return pod

    def remove_pod(self, name):
        self.pods = [pod for pod in self.pods if pod.metadata.name != name]

    def add_provisioner(self, name="default", ttl_after_empty=None, ttl_until_expired=None, **spec):
        body = {"cluster": {"endpoint": "https://api.example.com"}, **spec}
        if ttl_after_empty is not None:
            body["ttlSecondsAfterEmpty"] = ttl_after_empty
        if ttl_until_expired is not None:
            body["ttlSecondsUntilExpired"] = ttl_until_expired
        self.provisioners[name] = {
            "apiVersion": "karpenter.sh/v1alpha3",
            "kind": "Provisioner",
            "metadata": {"name": name, "resourceVersion": "1"},
            "spec": body,
        }

    def node(self, name):
        return self._to_node(name)

    def mutations(self):
        return [call for call in self.calls if call[0] in ("patch_node", "delete_node")]

    # --- helpers ---

    def _record(self, method, name=None):
        self.calls.append((method, name))
        error = self.fail_on.get((method, name)) or self.fail_on.get((method, None))
        if error is not None:
            raise error

    def _to_node(self, name):
        state = self.nodes[name]
        conditions = None
        if state["ready"] is not None:
            conditions = [k8s.V1NodeCondition(type="Ready", status=state["ready"])]
        return k8s.V1Node(
            metadata=k8s.V1ObjectMeta(
                name=name,
                labels=dict(state["labels"]),
                annotations=dict(state["annotations"]),
                finalizers=list(state["finalizers"]) or None,
                creation_timestamp=state["created"],
                deletion_timestamp=state["deleted"],
                resource_version=str(state["rv"]),
            ),
            spec=k8s.V1NodeSpec(
                unschedulable=state["unschedulable"] or None,
                taints=[k8s.V1Taint(key=key, effect="NoSchedule") for key in state["taints"]] or None,
                provider_id=f"fake:///{name}",
            ),
            status=k8s.V1NodeStatus(conditions=conditions),
        )

    def _finalize_if_released(self, name):
        state = self.nodes[name]
        if state["deleted"] is not None and not state["finalizers"]:
            del self.nodes[name]

    # --- CoreV1Api ---

    async def list_node(self, label_selector=None, **kwargs):
        self._record("list_node")
        names = [name for name, state in self.nodes.items() if _matches_selector(state["labels"], label_selector)]
        return k8s.V1NodeList(items=[self._to_node(name) for name in names])

    async def read_node(self, name, **kwargs):
        self._record("read_node", name)
        if name not in self.nodes:
            raise _api_error(404, "Not Found")
        return self._to_node(name)

    async def patch_node(self, name, body, **kwargs):
        """
        List bodies are applied as JSON patches, dict bodies as strategic merge
        patches. Like the API server, a strategic merge unions
        metadata.finalizers with the stored list rather than replacing it.
        """
        self._record("patch_node", name)
        self.patches.append((name, body))
        if name not in self.nodes:
            raise _api_error(404, "Not Found")
        state = self.nodes[name]
        if isinstance(body, list):
            self._apply_json_patch(state, body)
        else:
            self._apply_strategic_merge(state, body)
        self._rv += 1
        state["rv"] = self._rv
        patched = self._to_node(name)
        self._finalize_if_released(name)
        return patched

    def _apply_strategic_merge(self, state, body):
        metadata = body.get("metadata", {})
        expected_rv = metadata.get("resourceVersion")
        if expected_rv is not None and expected_rv != str(state["rv"]):
            raise _api_error(409, "Conflict")
        for field in ("labels", "annotations"):
            for key, value in (metadata.get(field) or {}).items():
                if value is None:
                    state[field].pop(key, None)
                else:
                    state[field][key] = value
        for finalizer in metadata.get("finalizers") or []:
            if finalizer not in state["finalizers"]:
                state["finalizers"].append(finalizer)
        if "unschedulable" in body.get("spec", {}):
            state["unschedulable"] = bool(body["spec"]["unschedulable"])

    def _apply_json_patch(self, state, operations):
        paths = {
            "/metadata/resourceVersion": "rv",
            "/metadata/finalizers": "finalizers",
            "/spec/unschedulable": "unschedulable",
        }
        for op in operations:
            field = paths[op["path"]]
            current = str(state["rv"]) if field == "rv" else state[field]
            if op["op"] == "test":
                if current != op["value"]:
                    raise _api_error(422, "Unprocessable Entity")
            elif op["op"] in ("replace", "add"):
                state[field] = list(op["value"]) if field == "finalizers" else op["value"]
            else:
                raise ValueError(f"unsupported JSON patch op: {op['op']}")

    async def delete_node(self, name, body=None, **kwargs):
        self._record("delete_node", name)
        if name not in self.nodes:
            raise _api_error(404, "Not Found")
        state = self.nodes[name]
        if state["deleted"] is None:
            state["deleted"] = T0
            self._rv += 1
            state["rv"] = self._rv
        self._finalize_if_released(name)
        return k8s.V1Status(status="Success")

    async def list_pod_for_all_namespaces(self, field_selector=None, **kwargs):
        self._record("list_pod_for_all_namespaces")
        node_name = field_selector.split("=", 1)[1] if field_selector else None
        items = [pod for pod in self.pods if node_name is None or pod.spec.node_name == node_name]
        return k8s.V1PodList(items=items)

    async def create_namespaced_pod_eviction(self, name, namespace, body, **kwargs):
        self._record("create_namespaced_pod_eviction", name)
        if name in self.eviction_blocked:
            raise _api_error(429, "Too Many Requests")
        self.remove_pod(name)
        return body

    # --- CustomObjectsApi ---

    async def get_cluster_custom_object(self, group, version, plural, name, **kwargs):
        self._record("get_cluster_custom_object", name)
        if name not in self.provisioners:
            raise _api_error(404, "Not Found")
        return self.provisioners[name]

    async def list_cluster_custom_object(self, group, version, plural, **kwargs):
        self._record("list_cluster_custom_object")
        return {"items": list(self.provisioners.values())}


@pytest.fixture
def cluster():
    """A fresh in-memory cluster for each test."""
    return FakeCluster()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Keeps the access-time config properties predictable and isolated from the
    actual environment.
    """
    monkeypatch.setenv("CLOUD_PROVIDER", "fake")
    monkeypatch.delenv("CLOUD_PROVIDER_ENDPOINT", raising=False)
