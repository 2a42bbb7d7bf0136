import json
from urllib.parse import parse_qs, urlsplit

import pytest
import responses

from sriovop.client import (
    DEFAULT_USER_AGENT,
    ApiError,
    Config,
    PatchType,
    RESTClient,
    WatchEvent,
    new_for_config,
)
from sriovop.meta import ListOptions, NotFoundError, ObjectMeta, is_not_found
from sriovop.types import SriovNetworkNodeState

HOST = "https://cluster.example.com"
NS = "sriov-network-operator"
COLLECTION = f"{HOST}/apis/sriovnetwork.openshift.io/v1/namespaces/{NS}/sriovnetworknodestates"


def _state_dict(name="worker-0"):
    return {
        "apiVersion": "sriovnetwork.openshift.io/v1",
        "kind": "SriovNetworkNodeState",
        "metadata": {"name": name, "namespace": NS},
        "status": {
            "interfaces": [
                {
                    "name": "ens785f0",
                    "pciAddress": "0000:86:00.0",
                    "vendor": "8086",
                    "deviceID": "1583",
                    "driver": "i40e",
                }
            ]
        },
    }


@pytest.fixture
def mock():
    with responses.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def states():
    return new_for_config(Config(host=HOST)).sriovnetwork_v1().sriov_network_node_states(NS)


def _query(call):
    return parse_qs(urlsplit(call.request.url).query)


def test_get_decodes_object(mock, states):
    mock.add(responses.GET, f"{COLLECTION}/worker-0", json=_state_dict())
    state = states.get("worker-0")
    assert state.metadata.name == "worker-0"
    assert state.get_driver_by_pci_address("0000:86:00.0") == "i40e"
    assert mock.calls[0].request.method == "GET"


def test_get_missing_raises_not_found(mock, states):
    mock.add(
        responses.GET,
        f"{COLLECTION}/missing",
        status=404,
        json={"kind": "Status", "reason": "NotFound", "message": "not found"},
    )
    with pytest.raises(NotFoundError) as info:
        states.get("missing")
    assert is_not_found(info.value)
    assert info.value.name == "missing"


def test_server_error_raises_api_error(mock, states):
    mock.add(responses.GET, f"{COLLECTION}/worker-0", status=500, json={"reason": "InternalError", "message": "boom"})
    with pytest.raises(ApiError) as info:
        states.get("worker-0")
    assert info.value.status_code == 500
    assert info.value.message == "boom"
    assert not is_not_found(info.value)


def test_list_sends_options(mock, states):
    mock.add(
        responses.GET,
        COLLECTION,
        json={"metadata": {"resourceVersion": "7"}, "items": [_state_dict("a"), _state_dict("b")]},
    )
    result = states.list(ListOptions(label_selector="role=worker", timeout_seconds=30))
    assert [item.metadata.name for item in result.items] == ["a", "b"]
    assert result.metadata.resource_version == "7"
    query = _query(mock.calls[0])
    assert query["labelSelector"] == ["role=worker"]
    assert query["timeoutSeconds"] == ["30"]
    assert query["timeout"] == ["30s"]
    assert "watch" not in query


def test_list_all_namespaces(mock):
    clientset = new_for_config(Config(host=HOST))
    mock.add(responses.GET, f"{HOST}/apis/sriovnetwork.openshift.io/v1/sriovnetworknodestates", json={"items": []})
    result = clientset.sriovnetwork_v1().sriov_network_node_states("").list()
    assert result.items == []


def test_watch_yields_decoded_events(mock, states):
    lines = [
        {"type": "ADDED", "object": _state_dict("a")},
        {"type": "MODIFIED", "object": _state_dict("b")},
        {"type": "ERROR", "object": {"kind": "Status", "message": "gone"}},
    ]
    mock.add(responses.GET, COLLECTION, body="\n".join(json.dumps(line) for line in lines) + "\n")
    options = ListOptions(resource_version="5")
    events = list(states.watch(options))
    assert [event.type for event in events] == ["ADDED", "MODIFIED", "ERROR"]
    assert events[0].object.metadata.name == "a"
    assert events[2] == WatchEvent("ERROR", {"kind": "Status", "message": "gone"})
    query = _query(mock.calls[0])
    assert query["watch"] == ["true"]
    assert query["resourceVersion"] == ["5"]
    assert options.watch is False


def test_create_sets_type_meta(mock, states):
    mock.add(responses.POST, COLLECTION, json=_state_dict("new"))
    state = SriovNetworkNodeState(metadata=ObjectMeta(name="new", namespace=NS))
    created = states.create(state)
    sent = json.loads(mock.calls[0].request.body)
    assert sent["kind"] == "SriovNetworkNodeState"
    assert sent["apiVersion"] == "sriovnetwork.openshift.io/v1"
    assert sent["metadata"]["name"] == "new"
    assert created.metadata.name == "new"
    assert state.type_meta.kind == ""


def test_update_uses_put_on_name(mock, states):
    mock.add(responses.PUT, f"{COLLECTION}/worker-0", json=_state_dict())
    state = SriovNetworkNodeState.from_dict(_state_dict())
    state.spec.dp_config_version = "3"
    updated = states.update(state)
    sent = json.loads(mock.calls[0].request.body)
    assert sent["spec"]["dpConfigVersion"] == "3"
    assert updated.metadata.name == "worker-0"


def test_update_status_targets_subresource(mock, states):
    mock.add(responses.PUT, f"{COLLECTION}/worker-0/status", json=_state_dict())
    state = SriovNetworkNodeState.from_dict(_state_dict())
    state.status.sync_status = "Succeeded"
    result = states.update_status(state)
    sent = json.loads(mock.calls[0].request.body)
    assert sent["status"]["syncStatus"] == "Succeeded"
    assert result.metadata.name == "worker-0"


def test_patch_sends_raw_data(mock, states):
    mock.add(responses.PATCH, f"{COLLECTION}/worker-0/status", json=_state_dict())
    data = b'{"status":{"syncStatus":"InProgress"}}'
    patched = states.patch("worker-0", PatchType.MERGE, data, "status")
    assert patched.metadata.name == "worker-0"
    assert patched.get_driver_by_pci_address("0000:86:00.0") == "i40e"
    request = mock.calls[0].request
    assert request.headers["Content-Type"] == PatchType.MERGE.value
    assert request.body == data


def test_patch_rejects_unknown_type(states):
    with pytest.raises(ValueError):
        states.patch("worker-0", "text/plain", b"{}")


def test_delete_sends_options(mock, states):
    mock.add(responses.DELETE, f"{COLLECTION}/worker-0", json={"kind": "Status", "status": "Success"})
    assert states.delete("worker-0", {"propagationPolicy": "Foreground"}) is None
    assert json.loads(mock.calls[0].request.body) == {"propagationPolicy": "Foreground"}


def test_delete_collection_uses_selector(mock, states):
    mock.add(responses.DELETE, COLLECTION, json={"kind": "Status", "status": "Success"})
    assert states.delete_collection(None, ListOptions(label_selector="stale")) is None
    assert _query(mock.calls[0])["labelSelector"] == ["stale"]
    assert mock.calls[0].request.body is None


def test_headers_and_host_without_scheme(mock):
    clientset = new_for_config(Config(host="cluster.example.com:6443", bearer_token="token"))
    url = "https://cluster.example.com:6443/apis/sriovnetwork.openshift.io/v1/namespaces/ns/sriovnetworknodestates/n"
    mock.add(responses.GET, url, json=_state_dict("n"))
    state = clientset.sriovnetwork_v1().sriov_network_node_states("ns").get("n")
    assert state.metadata.name == "n"
    headers = mock.calls[0].request.headers
    assert headers["Authorization"] == "Bearer token"
    assert headers["User-Agent"] == DEFAULT_USER_AGENT


def test_rate_limiter_consulted_per_request(mock):
    class Counter:
        count = 0

        def accept(self):
            self.count += 1

    counter = Counter()
    clientset = new_for_config(Config(host=HOST, rate_limiter=counter))
    mock.add(responses.GET, f"{COLLECTION}/worker-0", json=_state_dict())
    clientset.sriovnetwork_v1().sriov_network_node_states(NS).get("worker-0")
    assert counter.count == 1


def test_qps_without_burst_rejected():
    with pytest.raises(ValueError):
        new_for_config(Config(host=HOST, qps=5.0, burst=0))


def test_empty_host_rejected():
    with pytest.raises(ValueError):
        new_for_config(Config())


def test_rest_client_needs_group_version():
    with pytest.raises(ValueError):
        RESTClient(Config(host=HOST))


def test_config_not_mutated():
    config = Config(host=HOST)
    clientset = new_for_config(config)
    assert config.api_path == ""
    assert config.group_version is None
    assert clientset.sriovnetwork_v1().rest_client.base_path == "/apis/sriovnetwork.openshift.io/v1"


def test_default_version_is_v1():
    clientset = new_for_config(Config(host=HOST))
    assert clientset.sriovnetwork() is clientset.sriovnetwork_v1()