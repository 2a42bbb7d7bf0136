import threading
import time

import pytest

from sriovop.fake import FakeClientset
from sriovop.informers import (
    NoInformerError,
    ResourceEventHandlerFuncs,
    SharedInformerFactory,
    new_filtered_shared_informer_factory,
    new_shared_informer_factory,
    new_shared_informer_factory_with_options,
    new_sriov_network_node_state_informer,
    with_custom_resync_config,
    with_namespace,
    with_tweak_list_options,
)
from sriovop.meta import GroupVersionResource, NotFoundError, ObjectMeta
from sriovop.types import SriovNetworkNodeState


def make_state(name, namespace="ns1", labels=None):
    return SriovNetworkNodeState(
        metadata=ObjectMeta(name=name, namespace=namespace, labels=dict(labels or {}))
    )


def wait_until(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


@pytest.fixture
def stop():
    event = threading.Event()
    yield event
    event.set()


def test_factory_syncs_existing_objects(stop):
    client = FakeClientset(make_state("node-a"), make_state("node-b"))
    factory = new_shared_informer_factory(client, 0)
    states = factory.sriovnetwork().v1().sriov_network_node_states()
    states.informer()
    factory.start(stop)
    assert factory.wait_for_cache_sync(stop) == {SriovNetworkNodeState: True}
    names = sorted(s.metadata.name for s in states.lister().list())
    assert names == ["node-a", "node-b"]
    got = states.lister().sriov_network_node_states("ns1").get("node-a")
    assert got.metadata.name == "node-a"


def test_informer_for_returns_shared_instance():
    factory = new_shared_informer_factory(FakeClientset(), 0)
    states = factory.sriovnetwork().v1().sriov_network_node_states()
    assert states.informer() is states.informer()
    other = factory.sriovnetwork().v1().sriov_network_node_states()
    assert other.informer() is states.informer()


def test_wait_for_cache_sync_ignores_unstarted_informers(stop):
    factory = new_shared_informer_factory(FakeClientset(), 0)
    factory.sriovnetwork().v1().sriov_network_node_states().informer()
    assert factory.wait_for_cache_sync(stop) == {}


def test_watch_events_update_cache(stop):
    client = FakeClientset(make_state("node-a"))
    factory = new_shared_informer_factory(client, 0)
    states = factory.sriovnetwork().v1().sriov_network_node_states()
    states.informer()
    factory.start(stop)
    factory.wait_for_cache_sync(stop)
    api = client.sriovnetwork_v1().sriov_network_node_states("ns1")
    api.create(make_state("node-c"))
    lister = states.lister().sriov_network_node_states("ns1")

    def has_c():
        try:
            return lister.get("node-c").metadata.name == "node-c"
        except NotFoundError:
            return False

    assert wait_until(has_c)
    api.delete("node-a")
    assert wait_until(lambda: [s.metadata.name for s in lister.list()] == ["node-c"])
    with pytest.raises(NotFoundError):
        lister.get("node-a")


def test_event_handlers_receive_adds_and_deletes(stop):
    client = FakeClientset(make_state("node-a"))
    informer = new_sriov_network_node_state_informer(client, "", 0, None)
    added, deleted = [], []
    informer.add_event_handler(
        ResourceEventHandlerFuncs(
            add_func=lambda obj: added.append(obj.metadata.name),
            delete_func=lambda obj: deleted.append(obj.metadata.name),
        )
    )
    threading.Thread(target=informer.run, args=(stop,), daemon=True).start()
    assert wait_until(informer.has_synced)
    assert added == ["node-a"]
    client.sriovnetwork_v1().sriov_network_node_states("ns1").delete("node-a")
    assert wait_until(lambda: deleted == ["node-a"])


def test_late_handler_sees_existing_objects(stop):
    client = FakeClientset(make_state("node-a"))
    informer = new_sriov_network_node_state_informer(client, "", 0, None)
    threading.Thread(target=informer.run, args=(stop,), daemon=True).start()
    assert wait_until(informer.has_synced)
    seen = []
    informer.add_event_handler(ResourceEventHandlerFuncs(add_func=lambda o: seen.append(o.metadata.name)))
    assert seen == ["node-a"]


def test_namespace_option_limits_informer(stop):
    client = FakeClientset(make_state("node-a", "ns1"), make_state("node-b", "ns2"))
    factory = new_shared_informer_factory_with_options(client, 0, with_namespace("ns2"))
    assert factory.namespace == "ns2"
    states = factory.sriovnetwork().v1().sriov_network_node_states()
    states.informer()
    factory.start(stop)
    factory.wait_for_cache_sync(stop)
    assert [s.metadata.name for s in states.lister().list()] == ["node-b"]


def test_tweak_list_options_filters_listing(stop):
    client = FakeClientset(
        make_state("node-a", labels={"role": "worker"}),
        make_state("node-b", labels={"role": "master"}),
    )

    def tweak(options):
        options.label_selector = "role=worker"

    factory = new_shared_informer_factory_with_options(client, 0, with_tweak_list_options(tweak))
    states = factory.sriovnetwork().v1().sriov_network_node_states()
    states.informer()
    factory.start(stop)
    factory.wait_for_cache_sync(stop)
    assert [s.metadata.name for s in states.lister().list()] == ["node-a"]
    assert client.actions[0].list_options.label_selector == "role=worker"


def test_filtered_factory_sets_namespace_and_tweak():
    def tweak(options):
        options.field_selector = "x"

    factory = new_filtered_shared_informer_factory(FakeClientset(), 3, "ns1", tweak)
    assert factory.namespace == "ns1"
    assert factory.tweak_list_options is tweak
    assert factory.default_resync == 3


def test_custom_resync_config_applies_per_type():
    factory = new_shared_informer_factory_with_options(
        FakeClientset(), 10, with_custom_resync_config({SriovNetworkNodeState(): 5})
    )
    informer = factory.sriovnetwork().v1().sriov_network_node_states().informer()
    assert informer.resync_period == 5


def test_default_resync_used_without_custom_config():
    factory = SharedInformerFactory(FakeClientset(), 7)
    informer = factory.sriovnetwork().v1().sriov_network_node_states().informer()
    assert informer.resync_period == 7


def test_for_resource_known_resource():
    factory = new_shared_informer_factory(FakeClientset(), 0)
    gvr = GroupVersionResource("sriovnetwork.openshift.io", "v1", "sriovnetworknodestates")
    generic = factory.for_resource(gvr)
    expected = factory.sriovnetwork().v1().sriov_network_node_states().informer()
    assert generic.informer() is expected
    assert generic.resource == gvr.group_resource()


def test_for_resource_unknown_raises():
    factory = new_shared_informer_factory(FakeClientset(), 0)
    with pytest.raises(NoInformerError):
        factory.for_resource(GroupVersionResource("sriovnetwork.openshift.io", "v1", "sriovnetworks"))


def test_generic_lister_get_missing_raises(stop):
    client = FakeClientset(make_state("node-a"))
    factory = new_shared_informer_factory(client, 0)
    gvr = GroupVersionResource("sriovnetwork.openshift.io", "v1", "sriovnetworknodestates")
    generic = factory.for_resource(gvr)
    factory.start(stop)
    factory.wait_for_cache_sync(stop)
    assert generic.lister().get("ns1/node-a").metadata.name == "node-a"
    with pytest.raises(NotFoundError):
        generic.lister().get("ns1/missing")


def test_run_twice_concurrently_raises(stop):
    informer = new_sriov_network_node_state_informer(FakeClientset(), "", 0, None)
    threading.Thread(target=informer.run, args=(stop,), daemon=True).start()
    assert wait_until(informer.has_synced)
    with pytest.raises(RuntimeError):
        informer.run(stop)