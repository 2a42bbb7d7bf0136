"""SR-IOV network custom resources and network attachment definitions."""

import copy
import logging
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Mapping, Optional, TypeVar, Union, get_args, get_origin

from .helper import SRIOV_PF_VF_MAP
from .meta import GroupKind, GroupResource, GroupVersion, ListMeta, Node, ObjectMeta, TypeMeta

log = logging.getLogger(__name__)

SRIOVNETWORK_GROUP_VERSION = GroupVersion("sriovnetwork.openshift.io", "v1")
NETWORK_ATTACHMENT_GROUP_VERSION = GroupVersion("k8s.cni.cncf.io", "v1")

T = TypeVar("T", bound="ApiObject")


def resource(resource: str) -> GroupResource:
    """Qualify a resource name with the sriovnetwork group."""
    return SRIOVNETWORK_GROUP_VERSION.with_resource(resource).group_resource()


def kind(kind: str) -> GroupKind:
    """Qualify a kind with the sriovnetwork group."""
    return SRIOVNETWORK_GROUP_VERSION.with_kind(kind).group_kind()


def _field(json_name: str, default: Any = MISSING, *, omitempty: bool = False, nullable: bool = False):
    metadata = {"json": json_name, "omitempty": omitempty, "nullable": nullable}
    if callable(default):
        return field(default_factory=default, metadata=metadata)
    return field(default=default, metadata=metadata)


def _inline(factory: Any):
    return field(default_factory=factory, metadata={"inline": True})


def _is_empty(value: Any, nullable: bool) -> bool:
    if value is None:
        return True
    if nullable or is_dataclass(value):
        return False
    if isinstance(value, (str, list, dict, tuple)):
        return not value
    if isinstance(value, (bool, int, float)):
        return not value
    return False


def _encode(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _encode_dataclass(value)
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    return value


def _encode_dataclass(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if f.metadata.get("inline"):
            out.update(_encode_dataclass(value))
            continue
        if f.metadata.get("omitempty") and _is_empty(value, f.metadata.get("nullable", False)):
            continue
        out[f.metadata.get("json", f.name)] = _encode(value)
    return out


def _check_scalar(hint: type, data: Any, where: str) -> Any:
    if hint is float:
        ok = isinstance(data, (int, float)) and not isinstance(data, bool)
    else:
        ok = isinstance(data, hint) and (hint is bool or not isinstance(data, bool))
    if not ok:
        raise ValueError(f"{where}: expected {hint.__name__}, got {type(data).__name__}")
    return data


def _decode(hint: Any, data: Any, where: str) -> Any:
    origin = get_origin(hint)
    if origin is Union:
        if data is None:
            return None
        inner = [arg for arg in get_args(hint) if arg is not type(None)]
        return _decode(inner[0], data, where)
    if origin is list:
        if not isinstance(data, list):
            raise ValueError(f"{where}: expected a list, got {type(data).__name__}")
        (item_hint,) = get_args(hint)
        return [_decode(item_hint, item, f"{where}[]") for item in data]
    if origin is dict:
        if not isinstance(data, Mapping):
            raise ValueError(f"{where}: expected an object, got {type(data).__name__}")
        _, value_hint = get_args(hint)
        return {key: _decode(value_hint, item, f"{where}.{key}") for key, item in data.items()}
    if isinstance(hint, type) and is_dataclass(hint):
        return _decode_dataclass(hint, data, where)
    if hint in (str, int, float, bool):
        return _check_scalar(hint, data, where)
    return data


def _decode_dataclass(cls: type, data: Any, where: str) -> Any:
    if not isinstance(data, Mapping):
        raise ValueError(f"{where}: expected an object, got {type(data).__name__}")
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if not f.init:
            continue
        if f.metadata.get("inline"):
            kwargs[f.name] = _decode_dataclass(f.type, data, where)
            continue
        key = f.metadata.get("json", f.name)
        if key not in data or (data[key] is None and not f.metadata.get("nullable")):
            continue
        kwargs[f.name] = _decode(f.type, data[key], f"{where}.{key}")
    return cls(**kwargs)


class ApiObject:
    """Base of the API types: conversion to and from their JSON form."""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible form, omitting empty optional fields."""
        return _encode_dataclass(self)

    @classmethod
    def from_dict(cls: type[T], data: Mapping[str, Any]) -> T:
        """Build an object from its JSON form; raises ValueError on bad shapes."""
        return _decode_dataclass(cls, data, cls.__name__)


@dataclass
class SriovNetworkSpec(ApiObject):
    network_namespace: str = _field("networkNamespace", "", omitempty=True)
    resource_name: str = _field("resourceName", "")
    ipam: str = _field("ipam", "", omitempty=True)
    vlan: int = _field("vlan", 0, omitempty=True)
    spoof_chk: Optional[bool] = _field("spoofChk", None, omitempty=True, nullable=True)
    trust: Optional[bool] = _field("trust", None, omitempty=True, nullable=True)


@dataclass
class SriovNetwork(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ObjectMeta = _field("metadata", ObjectMeta, omitempty=True)
    spec: SriovNetworkSpec = _field("spec", SriovNetworkSpec, omitempty=True)
    status: dict[str, Any] = _field("status", dict)


@dataclass
class SriovNetworkList(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ListMeta = _field("metadata", ListMeta, omitempty=True)
    items: list[SriovNetwork] = _field("items", list)


@dataclass
class InterfaceProperty(ApiObject):
    name: str = _field("name", "", omitempty=True)
    mac: str = _field("mac", "", omitempty=True)
    assigned: str = _field("assigned", "", omitempty=True)
    driver: str = _field("driver", "", omitempty=True)
    pci_address: str = _field("pciAddress", "", omitempty=True)
    vendor: str = _field("vendor", "", omitempty=True)
    device_id: str = _field("deviceID", "", omitempty=True)
    vlan: int = _field("Vlan", 0, omitempty=True)
    mtu: int = _field("mtu", 0, omitempty=True)


@dataclass
class VirtualFunction(InterfaceProperty):
    """A virtual function; carries the same properties as a physical interface."""


@dataclass
class InterfaceExt(InterfaceProperty):
    num_vfs: int = _field("numVfs", 0, omitempty=True)
    link_speed: str = _field("linkSpeed", "", omitempty=True)
    total_vfs: int = _field("totalvfs", 0, omitempty=True)
    vfs: list[VirtualFunction] = _field("Vfs", list, omitempty=True)


@dataclass
class Interface(ApiObject):
    pci_address: str = _field("pciAddress", "")
    num_vfs: int = _field("numVfs", 0, omitempty=True)
    mtu: int = _field("mtu", 0, omitempty=True)
    device_type: str = _field("deviceType", "", omitempty=True)


@dataclass
class SriovNetworkNicSelector(ApiObject):
    vendor: str = _field("vendor", "", omitempty=True)
    device_id: str = _field("deviceID", "", omitempty=True)
    root_devices: list[str] = _field("rootDevices", list, omitempty=True)
    pf_names: list[str] = _field("pfNames", list, omitempty=True)


@dataclass
class SriovNetworkNodeStateSpec(ApiObject):
    dp_config_version: str = _field("dpConfigVersion", "", omitempty=True)
    interfaces: list[Interface] = _field("interfaces", list, omitempty=True)


@dataclass
class SriovNetworkNodeStateStatus(ApiObject):
    interfaces: list[InterfaceExt] = _field("interfaces", list, omitempty=True)
    sync_status: str = _field("syncStatus", "", omitempty=True)
    last_sync_error: str = _field("lastSyncError", "", omitempty=True)


@dataclass
class SriovNetworkNodeState(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ObjectMeta = _field("metadata", ObjectMeta, omitempty=True)
    spec: SriovNetworkNodeStateSpec = _field("spec", SriovNetworkNodeStateSpec, omitempty=True)
    status: SriovNetworkNodeStateStatus = _field("status", SriovNetworkNodeStateStatus, omitempty=True)

    def get_interface_state_by_pci_address(self, addr: str) -> Optional[InterfaceExt]:
        """Return a copy of the observed interface at ``addr``, or None."""
        for iface in self.status.interfaces:
            if iface.pci_address == addr:
                return copy.deepcopy(iface)
        return None

    def get_driver_by_pci_address(self, addr: str) -> str:
        """Return the driver bound to the interface at ``addr``, or an empty string."""
        for iface in self.status.interfaces:
            if iface.pci_address == addr:
                return iface.driver
        return ""


@dataclass
class SriovNetworkNodeStateList(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ListMeta = _field("metadata", ListMeta, omitempty=True)
    items: list[SriovNetworkNodeState] = _field("items", list)


@dataclass
class SriovNetworkNodePolicySpec(ApiObject):
    resource_name: str = _field("resourceName", "")
    node_selector: dict[str, str] = _field("nodeSelector", dict)
    priority: int = _field("priority", 0, omitempty=True)
    mtu: int = _field("mtu", 0, omitempty=True)
    num_vfs: int = _field("numVfs", 0)
    nic_selector: SriovNetworkNicSelector = _field("nicSelector", SriovNetworkNicSelector)
    device_type: str = _field("deviceType", "", omitempty=True)
    is_rdma: bool = _field("isRdma", False, omitempty=True)

    def selected(self, iface: InterfaceExt) -> bool:
        """Tell whether the NIC selector picks the given interface."""
        sel = self.nic_selector
        if sel.vendor and sel.vendor != iface.vendor:
            return False
        if sel.device_id:
            if self.num_vfs == 0 and sel.device_id != iface.device_id:
                return False
            if self.num_vfs > 0 and sel.device_id != SRIOV_PF_VF_MAP.get(iface.device_id, ""):
                return False
        if sel.root_devices and iface.pci_address not in sel.root_devices:
            return False
        if sel.pf_names and iface.name not in sel.pf_names:
            return False
        return True


@dataclass
class SriovNetworkNodePolicy(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ObjectMeta = _field("metadata", ObjectMeta, omitempty=True)
    spec: SriovNetworkNodePolicySpec = _field("spec", SriovNetworkNodePolicySpec, omitempty=True)
    status: dict[str, Any] = _field("status", dict)

    def selected(self, node: Node) -> bool:
        """Tell whether every node selector label is present on the node."""
        labels = node.labels or {}
        for key, value in self.spec.node_selector.items():
            if key not in labels or labels[key] != value:
                return False
        log.info("Selected(): node %s", node.name)
        return True

    def apply(self, state: SriovNetworkNodeState) -> None:
        """Append the desired configuration of every matching interface to the state spec."""
        sel = self.spec.nic_selector
        if not sel.vendor and not sel.device_id and not sel.root_devices and not sel.pf_names:
            # An empty NIC selector matches nothing.
            return
        matched = []
        for iface in state.status.interfaces:
            if self.spec.selected(iface):
                log.info("Update interface %s", iface.name)
                matched.append(
                    Interface(
                        pci_address=iface.pci_address,
                        mtu=self.spec.mtu,
                        num_vfs=self.spec.num_vfs,
                        device_type=self.spec.device_type,
                    )
                )
        state.spec.interfaces.extend(matched)


@dataclass
class SriovNetworkNodePolicyList(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ListMeta = _field("metadata", ListMeta, omitempty=True)
    items: list[SriovNetworkNodePolicy] = _field("items", list)


@dataclass
class NetworkAttachmentDefinitionSpec(ApiObject):
    config: str = _field("config", "")


@dataclass
class NetworkAttachmentDefinition(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ObjectMeta = _field("metadata", ObjectMeta, omitempty=True)
    spec: NetworkAttachmentDefinitionSpec = _field("spec", NetworkAttachmentDefinitionSpec, omitempty=True)
    status: dict[str, Any] = _field("status", dict)


@dataclass
class NetworkAttachmentDefinitionList(ApiObject):
    type_meta: TypeMeta = _inline(TypeMeta)
    metadata: ListMeta = _field("metadata", ListMeta, omitempty=True)
    items: list[NetworkAttachmentDefinition] = _field("items", list)