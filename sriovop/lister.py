"""Keyed object store with secondary indices, and listers for node states."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .meta import LabelSelector, NotFoundError, everything, parse_selector
from .types import SriovNetworkNodeState, resource

log = logging.getLogger(__name__)

NAMESPACE_INDEX = "namespace"

IndexFunc = Callable[[Any], "list[str]"]
Selector = Union[LabelSelector, str, None]


def meta_namespace_key(obj: Any) -> str:
    """Return ``namespace/name`` for an object, or just ``name`` without a namespace."""
    if isinstance(obj, str):
        return obj
    metadata = obj.metadata
    if metadata.namespace:
        return f"{metadata.namespace}/{metadata.name}"
    return metadata.name


def meta_namespace_index_func(obj: Any) -> list[str]:
    """Index an object by its namespace."""
    return [obj.metadata.namespace]


class Indexer:
    """A thread-safe store of objects by key, with named secondary indices."""

    def __init__(
        self,
        indexers: Optional[Mapping[str, IndexFunc]] = None,
        key_func: Callable[[Any], str] = meta_namespace_key,
    ) -> None:
        self._indexers: dict[str, IndexFunc] = dict(indexers or {})
        self._key_func = key_func
        self._items: dict[str, Any] = {}
        self._indices: dict[str, dict[str, set[str]]] = {name: {} for name in self._indexers}
        self._lock = threading.RLock()

    def _index(self, key: str, obj: Any) -> None:
        for name, func in self._indexers.items():
            for value in func(obj):
                self._indices[name].setdefault(value, set()).add(key)

    def _unindex(self, key: str, obj: Any) -> None:
        for name, func in self._indexers.items():
            index = self._indices[name]
            for value in func(obj):
                keys = index.get(value)
                if keys is None:
                    continue
                keys.discard(key)
                if not keys:
                    del index[value]

    def add(self, obj: Any) -> None:
        """Store ``obj``, replacing any object with the same key."""
        key = self._key_func(obj)
        with self._lock:
            old = self._items.get(key)
            if old is not None:
                self._unindex(key, old)
            self._items[key] = obj
            self._index(key, obj)

    def update(self, obj: Any) -> None:
        """Store a newer version of ``obj``."""
        self.add(obj)

    def delete(self, obj: Any) -> None:
        """Remove the object with the same key as ``obj``, if stored."""
        key = self._key_func(obj)
        with self._lock:
            old = self._items.pop(key, None)
            if old is not None:
                self._unindex(key, old)

    def get_by_key(self, key: str) -> Optional[Any]:
        """Return the object stored under ``key``, or None."""
        with self._lock:
            return self._items.get(key)

    def list(self) -> list[Any]:
        """Return every stored object."""
        with self._lock:
            return list(self._items.values())

    def by_index(self, index_name: str, value: str) -> list[Any]:
        """Return the objects whose index ``index_name`` holds ``value``."""
        with self._lock:
            if index_name not in self._indexers:
                raise KeyError(f"index with name {index_name} does not exist")
            keys = self._indices[index_name].get(value, set())
            return [self._items[key] for key in sorted(keys)]

    def replace(self, objects: Iterable[Any]) -> None:
        """Replace the whole contents of the store."""
        with self._lock:
            self._items = {}
            self._indices = {name: {} for name in self._indexers}
            for obj in objects:
                key = self._key_func(obj)
                self._items[key] = obj
            for key, obj in self._items.items():
                self._index(key, obj)


def _selector(selector: Selector) -> LabelSelector:
    if selector is None:
        return everything()
    if isinstance(selector, str):
        return parse_selector(selector)
    return selector


def _labels(obj: Any) -> Mapping[str, str]:
    return obj.metadata.labels


class SriovNetworkNodeStateLister:
    """Lists node states held in an indexer."""

    def __init__(self, indexer: Indexer) -> None:
        self.indexer = indexer

    def list(self, selector: Selector = None) -> list[SriovNetworkNodeState]:
        """Return every node state whose labels match ``selector``."""
        sel = _selector(selector)
        return [obj for obj in self.indexer.list() if sel.matches(_labels(obj))]

    def sriov_network_node_states(self, namespace: str) -> SriovNetworkNodeStateNamespaceLister:
        """A lister restricted to one namespace; an empty namespace means all."""
        return SriovNetworkNodeStateNamespaceLister(self.indexer, namespace)


class SriovNetworkNodeStateNamespaceLister:
    """Lists and gets node states of one namespace held in an indexer."""

    def __init__(self, indexer: Indexer, namespace: str) -> None:
        self.indexer = indexer
        self.namespace = namespace

    def list(self, selector: Selector = None) -> list[SriovNetworkNodeState]:
        """Return the node states of the namespace whose labels match ``selector``."""
        sel = _selector(selector)
        if not self.namespace:
            candidates = self.indexer.list()
        else:
            try:
                candidates = self.indexer.by_index(NAMESPACE_INDEX, self.namespace)
            except KeyError:
                log.warning("can not retrieve list of objects using index: scanning all objects")
                candidates = [
                    obj for obj in self.indexer.list() if obj.metadata.namespace == self.namespace
                ]
        return [obj for obj in candidates if sel.matches(_labels(obj))]

    def get(self, name: str) -> SriovNetworkNodeState:
        """Return the named node state; raises NotFoundError if it is not stored."""
        obj = self.indexer.get_by_key(f"{self.namespace}/{name}")
        if obj is None:
            raise NotFoundError(resource("sriovnetworknodestate"), name)
        return obj