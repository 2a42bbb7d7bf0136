"""In-memory clientset for SriovNetworkNodeState resources, for use in tests."""

from __future__ import annotations

import copy
import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Union

from .client import ApiError, PatchType, WatchEvent
from .meta import (
    GroupVersionKind,
    GroupVersionResource,
    ListOptions,
    NotFoundError,
    parse_selector,
)
from .types import SriovNetworkNodeState, SriovNetworkNodeStateList, resource

SRIOVNETWORKNODESTATES_RESOURCE = GroupVersionResource(
    "sriovnetwork.openshift.io", "v1", "sriovnetworknodestates"
)
SRIOVNETWORKNODESTATES_KIND = GroupVersionKind(
    "sriovnetwork.openshift.io", "v1", "SriovNetworkNodeState"
)

Reaction = Callable[["Action"], "tuple[bool, Any]"]

_STOP = object()


@dataclass
class Action:
    """A call made against the fake clientset."""

    verb: str
    resource: GroupVersionResource
    namespace: str
    name: str = ""
    subresource: str = ""
    object: Any = None
    list_options: Optional[ListOptions] = None
    patch_type: Optional[PatchType] = None
    patch: bytes = b""


class FakeWatcher:
    """A watch stream fed by the fake clientset; iteration ends after stop()."""

    def __init__(self) -> None:
        self._events: queue.Queue = queue.Queue()
        self.stopped = False

    def stop(self) -> None:
        if not self.stopped:
            self.stopped = True
            self._events.put(_STOP)

    def send(self, event: WatchEvent) -> None:
        if not self.stopped:
            self._events.put(event)

    def __iter__(self) -> Iterator[WatchEvent]:
        return self

    def __next__(self) -> WatchEvent:
        event = self._events.get()
        if event is _STOP:
            self._events.put(_STOP)
            raise StopIteration
        return event


def _pointer(path: str) -> list[str]:
    if path == "":
        return []
    if not path.startswith("/"):
        raise ValueError(f"invalid JSON pointer {path!r}")
    return [token.replace("~1", "/").replace("~0", "~") for token in path[1:].split("/")]


def _list_index(items: list, token: str, allow_end: bool = False) -> int:
    if allow_end and token == "-":
        return len(items)
    if not token.isdigit():
        raise ValueError(f"invalid array index {token!r}")
    index = int(token)
    if index > (len(items) if allow_end else len(items) - 1):
        raise ValueError(f"array index {index} out of range")
    return index


def _child(container: Any, token: str) -> Any:
    if isinstance(container, list):
        return container[_list_index(container, token)]
    if isinstance(container, dict):
        if token not in container:
            raise ValueError(f"path member {token!r} does not exist")
        return container[token]
    raise ValueError(f"cannot descend into {type(container).__name__}")


def _lookup(doc: Any, tokens: list[str]) -> Any:
    for token in tokens:
        doc = _child(doc, token)
    return doc


def _add(doc: Any, tokens: list[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _lookup(doc, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, list):
        parent.insert(_list_index(parent, last, allow_end=True), value)
    elif isinstance(parent, dict):
        parent[last] = value
    else:
        raise ValueError(f"cannot add to {type(parent).__name__}")
    return doc


def _remove(doc: Any, tokens: list[str]) -> Any:
    if not tokens:
        raise ValueError("cannot remove the whole document")
    parent = _lookup(doc, tokens[:-1])
    last = tokens[-1]
    if isinstance(parent, list):
        return parent.pop(_list_index(parent, last))
    if isinstance(parent, dict):
        if last not in parent:
            raise ValueError(f"path member {last!r} does not exist")
        return parent.pop(last)
    raise ValueError(f"cannot remove from {type(parent).__name__}")


def _json_patch(doc: Any, operations: Any) -> Any:
    if not isinstance(operations, list):
        raise ValueError("a JSON patch must be a list of operations")
    for operation in operations:
        op = operation.get("op")
        path = _pointer(operation.get("path", ""))
        if op == "add":
            doc = _add(doc, path, copy.deepcopy(operation["value"]))
        elif op == "remove":
            _remove(doc, path)
        elif op == "replace":
            if path:
                _remove(doc, path)
            doc = _add(doc, path, copy.deepcopy(operation["value"]))
        elif op == "move":
            value = _remove(doc, _pointer(operation["from"]))
            doc = _add(doc, path, value)
        elif op == "copy":
            value = copy.deepcopy(_lookup(doc, _pointer(operation["from"])))
            doc = _add(doc, path, value)
        elif op == "test":
            if _lookup(doc, path) != operation.get("value"):
                raise ValueError(f"test operation failed at {operation.get('path')!r}")
        else:
            raise ValueError(f"unsupported JSON patch operation {op!r}")
    return doc


def _merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


class _ObjectTracker:
    """Stores node states by namespace and name and answers actions against them."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], SriovNetworkNodeState] = {}
        self._watchers: list[tuple[str, FakeWatcher]] = []
        self._lock = threading.RLock()
        self._handlers: dict[str, Callable[[Action], Any]] = {
            "get": self._get,
            "list": self._list,
            "watch": self._watch,
            "create": self._create,
            "update": self._update,
            "delete": self._delete,
            "delete-collection": self._delete_collection,
            "patch": self._patch,
        }

    def add(self, obj: SriovNetworkNodeState) -> None:
        with self._lock:
            stored = copy.deepcopy(obj)
            self._objects[(stored.metadata.namespace, stored.metadata.name)] = stored
            self._notify("ADDED", stored)

    def react(self, action: Action) -> tuple[bool, Any]:
        handler = self._handlers.get(action.verb)
        if handler is None:
            raise ValueError(f"no reaction implemented for {action.verb}")
        with self._lock:
            return True, handler(action)

    @staticmethod
    def _not_found(name: str) -> NotFoundError:
        return NotFoundError(resource(SRIOVNETWORKNODESTATES_RESOURCE.resource), name)

    def _existing(self, namespace: str, name: str) -> SriovNetworkNodeState:
        obj = self._objects.get((namespace, name))
        if obj is None:
            raise self._not_found(name)
        return obj

    @staticmethod
    def _check_namespace(obj: SriovNetworkNodeState, namespace: str) -> None:
        if not obj.metadata.namespace:
            obj.metadata.namespace = namespace
        elif obj.metadata.namespace != namespace:
            raise ApiError(
                400,
                "BadRequest",
                "request namespace does not match object namespace, "
                f'request: "{namespace}" object: "{obj.metadata.namespace}"',
            )

    def _notify(self, event_type: str, obj: SriovNetworkNodeState) -> None:
        self._watchers = [(ns, w) for ns, w in self._watchers if not w.stopped]
        for namespace, watcher in self._watchers:
            if not namespace or namespace == obj.metadata.namespace:
                watcher.send(WatchEvent(event_type, copy.deepcopy(obj)))

    def _get(self, action: Action) -> SriovNetworkNodeState:
        return copy.deepcopy(self._existing(action.namespace, action.name))

    def _list(self, action: Action) -> SriovNetworkNodeStateList:
        items = [
            copy.deepcopy(obj)
            for (namespace, _), obj in self._objects.items()
            if not action.namespace or namespace == action.namespace
        ]
        return SriovNetworkNodeStateList(items=items)

    def _watch(self, action: Action) -> FakeWatcher:
        watcher = FakeWatcher()
        self._watchers.append((action.namespace, watcher))
        return watcher

    def _create(self, action: Action) -> SriovNetworkNodeState:
        obj = copy.deepcopy(action.object)
        self._check_namespace(obj, action.namespace)
        key = (obj.metadata.namespace, obj.metadata.name)
        if key in self._objects:
            raise ApiError(
                409,
                "AlreadyExists",
                f'{resource(SRIOVNETWORKNODESTATES_RESOURCE.resource)} "{obj.metadata.name}" already exists',
            )
        self._objects[key] = obj
        self._notify("ADDED", obj)
        return copy.deepcopy(obj)

    def _update(self, action: Action) -> SriovNetworkNodeState:
        obj = copy.deepcopy(action.object)
        self._check_namespace(obj, action.namespace)
        self._existing(obj.metadata.namespace, obj.metadata.name)
        self._objects[(obj.metadata.namespace, obj.metadata.name)] = obj
        self._notify("MODIFIED", obj)
        return copy.deepcopy(obj)

    def _delete(self, action: Action) -> None:
        obj = self._existing(action.namespace, action.name)
        del self._objects[(action.namespace, action.name)]
        self._notify("DELETED", obj)

    def _delete_collection(self, action: Action) -> None:
        options = action.list_options or ListOptions()
        selector = parse_selector(options.label_selector)
        doomed = [
            key
            for key, obj in self._objects.items()
            if (not action.namespace or key[0] == action.namespace)
            and selector.matches(obj.metadata.labels)
        ]
        for key in doomed:
            self._notify("DELETED", self._objects.pop(key))

    def _patch(self, action: Action) -> SriovNetworkNodeState:
        existing = self._existing(action.namespace, action.name)
        document = existing.to_dict()
        patch = json.loads(action.patch.decode() or "null")
        if action.patch_type is PatchType.JSON:
            document = _json_patch(document, patch)
        elif action.patch_type in (PatchType.MERGE, PatchType.STRATEGIC_MERGE):
            document = _merge_patch(document, patch)
        else:
            raise ValueError(f"unsupported patch type {action.patch_type}")
        patched = SriovNetworkNodeState.from_dict(document)
        self._objects[(action.namespace, action.name)] = patched
        self._notify("MODIFIED", patched)
        return copy.deepcopy(patched)


class FakeClientset:
    """A clientset whose calls are recorded and answered from memory."""

    def __init__(self, *objects: SriovNetworkNodeState) -> None:
        self._tracker = _ObjectTracker()
        for obj in objects:
            self._tracker.add(obj)
        self.actions: list[Action] = []
        self._lock = threading.Lock()
        self._reactors: list[tuple[str, str, Reaction]] = [("*", "*", self._tracker.react)]

    def sriovnetwork_v1(self) -> FakeSriovnetworkV1:
        return FakeSriovnetworkV1(self)

    def sriovnetwork(self) -> FakeSriovnetworkV1:
        """The default version of the sriovnetwork group."""
        return FakeSriovnetworkV1(self)

    def prepend_reactor(self, verb: str, resource: str, reaction: Reaction) -> None:
        """Run ``reaction`` before the others for matching actions ("*" matches any)."""
        with self._lock:
            self._reactors.insert(0, (verb, resource, reaction))

    def invokes(self, action: Action) -> Any:
        """Record ``action`` and return what the first reactor handling it returns."""
        with self._lock:
            self.actions.append(copy.deepcopy(action))
            reactors = list(self._reactors)
        for verb, res, reaction in reactors:
            if verb not in ("*", action.verb) or res not in ("*", action.resource.resource):
                continue
            handled, obj = reaction(action)
            if handled:
                return obj
        return None


class FakeSriovnetworkV1:
    """The sriovnetwork.openshift.io/v1 group of a fake clientset."""

    def __init__(self, fake: FakeClientset) -> None:
        self.fake = fake

    @property
    def rest_client(self) -> None:
        """The fake has no REST client behind it."""
        return None

    def sriov_network_node_states(self, namespace: str) -> FakeSriovNetworkNodeStates:
        return FakeSriovNetworkNodeStates(self, namespace)


class FakeSriovNetworkNodeStates:
    """Node state operations of one namespace, answered by a fake clientset."""

    def __init__(self, fake: FakeSriovnetworkV1, namespace: str) -> None:
        self.fake = fake
        self.namespace = namespace

    def _invoke(self, verb: str, **kwargs: Any) -> Any:
        action = Action(verb, SRIOVNETWORKNODESTATES_RESOURCE, self.namespace, **kwargs)
        return self.fake.fake.invokes(action)

    def get(self, name: str) -> Optional[SriovNetworkNodeState]:
        return self._invoke("get", name=name)

    def list(self, options: Optional[ListOptions] = None) -> Optional[SriovNetworkNodeStateList]:
        options = options or ListOptions()
        obj = self._invoke("list", list_options=options)
        if obj is None:
            return None
        selector = parse_selector(options.label_selector)
        return SriovNetworkNodeStateList(
            metadata=copy.deepcopy(obj.metadata),
            items=[item for item in obj.items if selector.matches(item.metadata.labels)],
        )

    def watch(self, options: Optional[ListOptions] = None) -> Any:
        return self._invoke("watch", list_options=options or ListOptions())

    def create(self, state: SriovNetworkNodeState) -> Optional[SriovNetworkNodeState]:
        return self._invoke("create", object=state)

    def update(self, state: SriovNetworkNodeState) -> Optional[SriovNetworkNodeState]:
        return self._invoke("update", name=state.metadata.name, object=state)

    def update_status(self, state: SriovNetworkNodeState) -> Optional[SriovNetworkNodeState]:
        return self._invoke("update", name=state.metadata.name, subresource="status", object=state)

    def delete(self, name: str, options: Any = None) -> None:
        self._invoke("delete", name=name)

    def delete_collection(self, options: Any = None, list_options: Optional[ListOptions] = None) -> None:
        self._invoke("delete-collection", list_options=list_options or ListOptions())

    def patch(
        self,
        name: str,
        patch_type: Union[PatchType, str],
        data: Union[bytes, str],
        *args: str,
    ) -> Optional[SriovNetworkNodeState]:
        raw = data.encode() if isinstance(data, str) else bytes(data)
        return self._invoke(
            "patch",
            name=name,
            subresource="/".join(args),
            patch_type=PatchType(patch_type),
            patch=raw,
        )