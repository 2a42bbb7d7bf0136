import pytest

from sriovop.meta import (
    GroupKind,
    GroupResource,
    GroupVersion,
    GroupVersionKind,
    GroupVersionResource,
    NotFoundError,
    everything,
    is_not_found,
    parse_selector,
)

SRIOV_LABEL = "feature.node.kubernetes.io/network-sriov.capable"


def test_group_version_string():
    assert str(GroupVersion("sriovnetwork.openshift.io", "v1")) == "sriovnetwork.openshift.io/v1"
    assert str(GroupVersion("", "v1")) == "v1"


def test_with_resource_and_group_resource():
    gv = GroupVersion("sriovnetwork.openshift.io", "v1")
    gvr = gv.with_resource("sriovnetworknodestates")
    assert gvr == GroupVersionResource("sriovnetwork.openshift.io", "v1", "sriovnetworknodestates")
    assert gvr.group_resource() == GroupResource("sriovnetwork.openshift.io", "sriovnetworknodestates")


def test_with_kind_and_group_kind():
    gv = GroupVersion("k8s.cni.cncf.io", "v1")
    gvk = gv.with_kind("NetworkAttachmentDefinition")
    assert gvk == GroupVersionKind("k8s.cni.cncf.io", "v1", "NetworkAttachmentDefinition")
    assert gvk.group_kind() == GroupKind("k8s.cni.cncf.io", "NetworkAttachmentDefinition")


def test_equality_selector():
    selector = parse_selector(f"{SRIOV_LABEL}=true")
    assert selector.matches({SRIOV_LABEL: "true"})
    assert not selector.matches({SRIOV_LABEL: "false"})
    assert not selector.matches({})


def test_double_equals_same_as_equals():
    assert parse_selector("a==b") == parse_selector("a=b")


def test_not_equals_matches_missing_label():
    selector = parse_selector("zone!=east")
    assert selector.matches({})
    assert selector.matches({"zone": "west"})
    assert not selector.matches({"zone": "east"})


def test_set_selectors():
    inside = parse_selector("zone in (east, west)")
    assert inside.matches({"zone": "west"})
    assert not inside.matches({"zone": "north"})
    assert not inside.matches({})
    outside = parse_selector("zone notin (east,west)")
    assert outside.matches({})
    assert not outside.matches({"zone": "east"})


def test_existence_selectors():
    assert parse_selector("gpu").matches({"gpu": ""})
    assert not parse_selector("gpu").matches({})
    assert parse_selector("!gpu").matches({})
    assert not parse_selector("!gpu").matches({"gpu": "yes"})


def test_conjunction():
    selector = parse_selector("a=1,b in (2,3),!c")
    assert selector.matches({"a": "1", "b": "3"})
    assert not selector.matches({"a": "1", "b": "3", "c": "x"})
    assert not selector.matches({"a": "1"})


def test_everything_matches_all():
    assert everything().matches({})
    assert everything().matches(None)
    assert everything().matches({"a": "b"})
    assert parse_selector("   ") == everything()


@pytest.mark.parametrize("text", ["a=1,b in (2,3),!c", "zone!=east", "x notin (q,p)", "gpu"])
def test_selector_round_trip(text):
    selector = parse_selector(text)
    assert parse_selector(str(selector)) == selector


@pytest.mark.parametrize("text", ["a=(b", "a in (", "a b c", "a,,b", "a in ()", "x)"])
def test_invalid_selectors(text):
    with pytest.raises(ValueError):
        parse_selector(text)


def test_not_found_error():
    err = NotFoundError(GroupResource("sriovnetwork.openshift.io", "sriovnetworknodestate"), "node-1")
    assert str(err) == 'sriovnetworknodestate.sriovnetwork.openshift.io "node-1" not found'
    assert err.name == "node-1"
    assert is_not_found(err)
    assert not is_not_found(ValueError("other"))