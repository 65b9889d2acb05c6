# tests/models/test_provisioner.py

import pytest

from reallocator.core.exceptions import ProvisionerDecodeError
from reallocator.models.provisioner import (
    PROVISIONER_NAME_LABEL_KEY,
    Constraints,
    Provisioner,
)


def _provisioner_object(**spec):
    return {
        "apiVersion": "karpenter.sh/v1alpha3",
        "kind": "Provisioner",
        "metadata": {"name": "default", "resourceVersion": "42"},
        "spec": spec,
    }


def test_decodes_camel_case_fields():
    provisioner = Provisioner.from_object(
        _provisioner_object(
            cluster={"endpoint": "https://api.example.com", "caBundle": "Zm9v", "name": "prod"},
            ttlSecondsAfterEmpty=30,
            ttlSecondsUntilExpired=86400,
            instanceTypes=["m5.large"],
            operatingSystem="linux",
            zones=["us-west-2a"],
            taints=[{"key": "dedicated", "value": "gpu", "effect": "NoSchedule"}],
        )
    )

    assert provisioner.name == "default"
    assert provisioner.metadata.resource_version == "42"
    assert provisioner.spec.ttl_seconds_after_empty == 30
    assert provisioner.spec.ttl_seconds_until_expired == 86400
    assert provisioner.spec.instance_types == ["m5.large"]
    assert provisioner.spec.operating_system == "linux"
    assert provisioner.spec.cluster.ca_bundle == "Zm9v"
    assert provisioner.spec.taints[0].key == "dedicated"


def test_unset_ttls_disable_policies():
    provisioner = Provisioner.from_object(_provisioner_object())

    assert provisioner.spec.ttl_seconds_after_empty is None
    assert provisioner.spec.ttl_seconds_until_expired is None


def test_unknown_fields_are_ignored():
    provisioner = Provisioner.from_object(_provisioner_object(limits={"cpu": "1000"}))
    assert provisioner.spec.zones == []


@pytest.mark.parametrize(
    "obj",
    [
        _provisioner_object(ttlSecondsAfterEmpty=-1),
        _provisioner_object(ttlSecondsAfterEmpty="soon"),
        {"spec": {}},
    ],
)
def test_invalid_objects_raise_decode_error(obj):
    with pytest.raises(ProvisionerDecodeError):
        Provisioner.from_object(obj)


def test_decode_error_names_the_provisioner():
    with pytest.raises(ProvisionerDecodeError, match="decoding provisioner 'default'"):
        Provisioner.from_object(_provisioner_object(ttlSecondsUntilExpired=-5))


def test_owned_node_selector():
    provisioner = Provisioner.from_object(_provisioner_object())
    assert provisioner.owned_node_selector == f"{PROVISIONER_NAME_LABEL_KEY}=default"


def test_spec_constraints_drop_reclamation_fields():
    provisioner = Provisioner.from_object(
        _provisioner_object(zones=["us-west-2b"], architecture="arm64", ttlSecondsAfterEmpty=10)
    )

    constraints = provisioner.spec.constraints

    assert isinstance(constraints, Constraints)
    assert constraints.zones == ["us-west-2b"]
    assert constraints.architecture == "arm64"
    assert not hasattr(constraints, "ttl_seconds_after_empty")
