"""Registry that maps API kinds to the Python types that represent them."""

from __future__ import annotations

from typing import Any, Callable

from .meta import GroupVersion, GroupVersionKind
from .types import (
    NETWORK_ATTACHMENT_GROUP_VERSION,
    SRIOVNETWORK_GROUP_VERSION,
    NetworkAttachmentDefinition,
    NetworkAttachmentDefinitionList,
    SriovNetwork,
    SriovNetworkList,
    SriovNetworkNodePolicy,
    SriovNetworkNodePolicyList,
    SriovNetworkNodeState,
    SriovNetworkNodeStateList,
)


class NotRegisteredError(LookupError):
    """Raised when a type or kind is unknown to a scheme."""


def _type_of(obj: Any) -> type:
    return obj if isinstance(obj, type) else type(obj)


def _format_gvk(gvk: GroupVersionKind) -> str:
    version = f"{gvk.group}/{gvk.version}" if gvk.group else gvk.version
    return f"{version}, Kind={gvk.kind}"


class Scheme:
    """Two-way mapping between group/version/kind triples and Python types."""

    def __init__(self) -> None:
        self._kind_to_type: dict[GroupVersionKind, type] = {}
        self._type_to_kinds: dict[type, list[GroupVersionKind]] = {}

    def add_known_types(self, group_version: GroupVersion, *args: Any) -> None:
        """Register types (or instances of them) under their class names as kinds."""
        for obj in args:
            cls = _type_of(obj)
            gvk = group_version.with_kind(cls.__name__)
            existing = self._kind_to_type.get(gvk)
            if existing is not None and existing is not cls:
                raise ValueError(
                    f"double registration of different types for {_format_gvk(gvk)}: "
                    f"{existing.__name__} and {cls.__name__}"
                )
            self._kind_to_type[gvk] = cls
            kinds = self._type_to_kinds.setdefault(cls, [])
            if gvk not in kinds:
                kinds.append(gvk)

    def object_kind(self, obj: Any) -> list[GroupVersionKind]:
        """Return every kind the object's type is registered under."""
        cls = _type_of(obj)
        kinds = self._type_to_kinds.get(cls)
        if not kinds:
            raise NotRegisteredError(f"no kind is registered for the type {cls.__name__}")
        return list(kinds)

    def new(self, gvk: GroupVersionKind) -> Any:
        """Return an empty object of the type registered for ``gvk``."""
        cls = self._kind_to_type.get(gvk)
        if cls is None:
            raise NotRegisteredError(f"no kind is registered for {_format_gvk(gvk)}")
        return cls()

    def recognizes(self, gvk: GroupVersionKind) -> bool:
        """Tell whether ``gvk`` is registered."""
        return gvk in self._kind_to_type


class SchemeBuilder:
    """Collects registrations and applies them to a scheme in order."""

    def __init__(self, group_version: GroupVersion | None = None) -> None:
        self.group_version = group_version
        self._functions: list[Callable[[Scheme], Any]] = []

    def register(self, *args: Any) -> None:
        """Queue types to register under the builder's group version, or functions taking a scheme."""
        for arg in args:
            if isinstance(arg, type) or not callable(arg):
                if self.group_version is None:
                    raise ValueError("registering types needs a builder with a group version")
                self._functions.append(self._adder(self.group_version, _type_of(arg)))
            else:
                self._functions.append(arg)

    @staticmethod
    def _adder(group_version: GroupVersion, cls: type) -> Callable[[Scheme], None]:
        def add(scheme: Scheme) -> None:
            scheme.add_known_types(group_version, cls)

        return add

    def add_to_scheme(self, scheme: Scheme) -> None:
        """Apply every queued registration to ``scheme``."""
        for function in self._functions:
            function(scheme)


SRIOVNETWORK_SCHEME_BUILDER = SchemeBuilder(SRIOVNETWORK_GROUP_VERSION)
SRIOVNETWORK_SCHEME_BUILDER.register(
    SriovNetwork,
    SriovNetworkList,
    SriovNetworkNodeState,
    SriovNetworkNodeStateList,
    SriovNetworkNodePolicy,
    SriovNetworkNodePolicyList,
)

NETWORK_ATTACHMENT_SCHEME_BUILDER = SchemeBuilder(NETWORK_ATTACHMENT_GROUP_VERSION)
NETWORK_ATTACHMENT_SCHEME_BUILDER.register(NetworkAttachmentDefinition, NetworkAttachmentDefinitionList)

_ALL_GROUPS = SchemeBuilder()
_ALL_GROUPS.register(
    NETWORK_ATTACHMENT_SCHEME_BUILDER.add_to_scheme,
    SRIOVNETWORK_SCHEME_BUILDER.add_to_scheme,
)


def add_to_scheme(scheme: Scheme) -> None:
    """Register every resource type of the project with ``scheme``."""
    NETWORK_ATTACHMENT_SCHEME_BUILDER.add_to_scheme(scheme)
    _ALL_GROUPS.add_to_scheme(scheme)


# The scheme used by the clients: it knows the sriovnetwork group only.
SCHEME = Scheme()
SRIOVNETWORK_SCHEME_BUILDER.add_to_scheme(SCHEME)