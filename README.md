# sriovop

Python building blocks for SR-IOV network resources of the Kubernetes-style
API group `sriovnetwork.openshift.io/v1`, plus the `k8s.cni.cncf.io/v1`
`NetworkAttachmentDefinition` type.

## What is in the package

- `sriovop.meta` – group/version/kind/resource identifiers (`GroupVersion`,
  `GroupVersionResource`, `GroupVersionKind`, ...), `TypeMeta`, `ObjectMeta`,
  `ListMeta`, `ListOptions`, a minimal `Node`, label selectors
  (`parse_selector`, `everything`, `LabelSelector.matches`) and
  `NotFoundError` / `is_not_found`.
- `sriovop.types` – dataclasses for `SriovNetwork`, `SriovNetworkNodePolicy`,
  `SriovNetworkNodeState`, `NetworkAttachmentDefinition` and their specs,
  statuses and list forms. Every type has `to_dict()` (JSON field names,
  empty optional fields left out) and `from_dict()` (raises `ValueError` on
  a wrongly shaped document). Policy logic:
  - `SriovNetworkNodePolicy.selected(node)` – every node selector label must
    be present on the node with the same value.
  - `SriovNetworkNodePolicySpec.selected(iface)` – matches vendor, device ID
    (with `num_vfs > 0` the selector's device ID is compared with the VF
    device ID of the interface's PF device ID), root devices and PF names.
  - `SriovNetworkNodePolicy.apply(state)` – appends an `Interface` entry to
    `state.spec.interfaces` for every matching interface in
    `state.status.interfaces`; an empty NIC selector matches nothing.
  - `SriovNetworkNodeState.get_interface_state_by_pci_address` and
    `get_driver_by_pci_address`.
  - `resource(name)` and `kind(name)` qualify names with the sriovnetwork group.
- `sriovop.helper` – `string_in_array`, `unique_append`, `sort_by_priority`
  (highest priority value first) and the `SRIOV_PF_VF_MAP` device table.
- `sriovop.scheme` – `Scheme` (type ↔ kind registry), `SchemeBuilder`,
  `add_to_scheme(scheme)` registering every type above, and `SCHEME`, which
  knows the sriovnetwork group.
- `sriovop.client` – a `requests`-based `RESTClient`, `Config` (host, bearer
  token, TLS verification and client cert, timeout, `qps`/`burst` rate
  limiting), and a typed `SriovNetworkNodeStates` client with `get`, `list`,
  `watch` (yields `WatchEvent`s), `create`, `update`, `update_status`,
  `delete`, `delete_collection` and `patch` (`PatchType` JSON, merge,
  strategic merge). Server errors raise `ApiError`; a 404 raises
  `NotFoundError`. `new_for_config(config)` returns a `Clientset`.
- `sriovop.fake` – `FakeClientset`, an in-memory clientset that records every
  call in `actions`, supports `prepend_reactor`, applies JSON and merge
  patches, and feeds watchers.
- `sriovop.lister` – `Indexer` (keyed store with named indices),
  `meta_namespace_key`, `SriovNetworkNodeStateLister` and
  `SriovNetworkNodeStateNamespaceLister`.
- `sriovop.informers` – `SharedIndexInformer` (list, then watch, mirror into
  an indexer, notify handlers, optional resync), `SharedInformerFactory` with
  the options `with_namespace`, `with_tweak_list_options` and
  `with_custom_resync_config`, and `for_resource` for generic access.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example: applying a policy

```python
from sriovop.types import (
    InterfaceExt,
    SriovNetworkNicSelector,
    SriovNetworkNodePolicy,
    SriovNetworkNodePolicySpec,
    SriovNetworkNodeState,
)

policy = SriovNetworkNodePolicy(
    spec=SriovNetworkNodePolicySpec(
        resource_name="resource-1",
        node_selector={"feature.node.kubernetes.io/network-sriov.capable": "true"},
        priority=99,
        mtu=9000,
        num_vfs=6,
        nic_selector=SriovNetworkNicSelector(vendor="8086", root_devices=["0000:86:00.1"]),
        device_type="vfio-pci",
    )
)

state = SriovNetworkNodeState()
state.status.interfaces.append(
    InterfaceExt(name="ens1f1", pci_address="0000:86:00.1", vendor="8086")
)
policy.apply(state)
print(state.spec.interfaces)
```

## Example: talking to an API server

```python
from sriovop.client import Config, new_for_config

clientset = new_for_config(Config(host="https://localhost:6443", bearer_token="token"))
states = clientset.sriovnetwork_v1().sriov_network_node_states("sriov-network-operator")
for state in states.list().items:
    print(state.metadata.name, state.status.sync_status)
```

## Example: testing with the fake clientset

```python
from sriovop.fake import FakeClientset
from sriovop.types import SriovNetworkNodeState

fake = FakeClientset()
states = fake.sriovnetwork_v1().sriov_network_node_states("default")
states.create(SriovNetworkNodeState.from_dict({"metadata": {"name": "worker-0"}}))
print(states.get("worker-0").metadata.name)
print([action.verb for action in fake.actions])
```

## Example: informers

```python
import threading
from sriovop.informers import new_shared_informer_factory

factory = new_shared_informer_factory(clientset, 30.0)
informer = factory.sriovnetwork().v1().sriov_network_node_states()
lister = informer.lister()

stop = threading.Event()
factory.start(stop)
factory.wait_for_cache_sync(stop)
print([s.metadata.name for s in lister.list(None)])
stop.set()
```

## What the package does not do

- It is a library only: it has no command, no controller that reconciles
  policies or networks, and no daemon that configures NICs on a host.
- The REST client, fake clientset, listers and informers cover
  `SriovNetworkNodeState` only; `SriovNetwork`, `SriovNetworkNodePolicy` and
  `NetworkAttachmentDefinition` exist as types (and in the scheme) but have
  no client.
- It does not read kubeconfig files or in-cluster service account settings;
  build a `Config` yourself.