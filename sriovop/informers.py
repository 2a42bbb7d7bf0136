"""Shared informers that keep a local cache of SriovNetworkNodeState objects in sync."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

from .lister import (
    NAMESPACE_INDEX,
    Indexer,
    SriovNetworkNodeStateLister,
    SriovNetworkNodeStateNamespaceLister,
    meta_namespace_index_func,
)
from .meta import (
    GroupResource,
    GroupVersionResource,
    LabelSelector,
    ListOptions,
    NotFoundError,
    everything,
    parse_selector,
)
from .types import SRIOVNETWORK_GROUP_VERSION, SriovNetworkNodeState

log = logging.getLogger(__name__)

TweakListOptionsFunc = Callable[[ListOptions], Any]
NewInformerFunc = Callable[[Any, float], "SharedIndexInformer"]
SharedInformerOption = Callable[["SharedInformerFactory"], "SharedInformerFactory"]

_RETRY_DELAY = 1.0
_POLL_INTERVAL = 0.05


class NoInformerError(LookupError):
    """Raised when no informer serves the requested resource."""


@dataclass
class ResourceEventHandlerFuncs:
    """Event handler built from optional callables."""

    add_func: Optional[Callable[[Any], None]] = None
    update_func: Optional[Callable[[Any, Any], None]] = None
    delete_func: Optional[Callable[[Any], None]] = None

    def on_add(self, obj: Any) -> None:
        if self.add_func is not None:
            self.add_func(obj)

    def on_update(self, old: Any, new: Any) -> None:
        if self.update_func is not None:
            self.update_func(old, new)

    def on_delete(self, obj: Any) -> None:
        if self.delete_func is not None:
            self.delete_func(obj)


def _close_watch(watcher: Any) -> None:
    for name in ("stop", "close"):
        method = getattr(watcher, name, None)
        if method is None:
            continue
        try:
            method()
        except ValueError:
            # A generator that is still executing cannot be closed from another thread.
            pass
        return


class SharedIndexInformer:
    """Lists and watches objects, mirrors them in an indexer and notifies handlers."""

    def __init__(
        self,
        list_func: Callable[[ListOptions], Any],
        watch_func: Callable[[ListOptions], Iterable[Any]],
        obj_type: type,
        resync_period: float = 0.0,
        indexers: Optional[Mapping[str, Callable[[Any], list]]] = None,
    ) -> None:
        self._list_func = list_func
        self._watch_func = watch_func
        self.obj_type = obj_type
        self.resync_period = resync_period
        self._indexer = Indexer(indexers)
        self._handlers: list[Any] = []
        self._synced = threading.Event()
        self._lock = threading.Lock()
        self._running = False

    def run(self, stop_event: threading.Event) -> None:
        """Keep the cache in sync until ``stop_event`` is set."""
        with self._lock:
            if self._running:
                raise RuntimeError("informer is already running")
            self._running = True
        try:
            if self.resync_period and self.resync_period > 0:
                threading.Thread(target=self._resync_loop, args=(stop_event,), daemon=True).start()
            while not stop_event.is_set():
                try:
                    self._list_and_watch(stop_event)
                except Exception:
                    log.exception("list and watch of %s failed", self.obj_type.__name__)
                stop_event.wait(_RETRY_DELAY)
        finally:
            with self._lock:
                self._running = False

    def has_synced(self) -> bool:
        """Tell whether the initial listing has been stored."""
        return self._synced.is_set()

    def get_indexer(self) -> Indexer:
        return self._indexer

    def add_event_handler(self, handler: Any) -> None:
        """Register a handler with on_add, on_update and on_delete methods.

        A handler added after the cache holds objects is told of each of them as an add.
        """
        with self._lock:
            self._handlers.append(handler)
            existing = self._indexer.list() if self._synced.is_set() else []
        for obj in existing:
            handler.on_add(obj)

    def _notify(self, method: str, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                getattr(handler, method)(*args)
            except Exception:
                log.exception("event handler failed on %s", method)

    def _replace(self, items: Iterable[Any]) -> None:
        new = {self._key(obj): obj for obj in items}
        old = {self._key(obj): obj for obj in self._indexer.list()}
        self._indexer.replace(new.values())
        for key, obj in old.items():
            if key not in new:
                self._notify("on_delete", obj)
        for key, obj in new.items():
            if key in old:
                self._notify("on_update", old[key], obj)
            else:
                self._notify("on_add", obj)

    @staticmethod
    def _key(obj: Any) -> str:
        metadata = obj.metadata
        return f"{metadata.namespace}/{metadata.name}" if metadata.namespace else metadata.name

    def _list_and_watch(self, stop_event: threading.Event) -> None:
        listed = self._list_func(ListOptions())
        items = list(listed.items) if listed is not None else []
        resource_version = ""
        if listed is not None and getattr(listed, "metadata", None) is not None:
            resource_version = listed.metadata.resource_version
        self._replace(items)
        if stop_event.is_set():
            return
        watcher = self._watch_func(ListOptions(resource_version=resource_version))
        self._synced.set()
        if watcher is None:
            return
        done = threading.Event()

        def closer() -> None:
            while not done.wait(_POLL_INTERVAL):
                if stop_event.is_set():
                    _close_watch(watcher)
                    return

        threading.Thread(target=closer, daemon=True).start()
        try:
            for event in watcher:
                if stop_event.is_set():
                    break
                self._handle(event)
        finally:
            done.set()
            _close_watch(watcher)

    def _handle(self, event: Any) -> None:
        obj = event.object
        if event.type == "ERROR":
            log.warning("watch of %s reported an error: %s", self.obj_type.__name__, obj)
            return
        if not isinstance(obj, self.obj_type):
            log.warning("unexpected object in watch: %r", obj)
            return
        key = self._key(obj)
        if event.type in ("ADDED", "MODIFIED"):
            old = self._indexer.get_by_key(key)
            self._indexer.add(obj)
            if old is None:
                self._notify("on_add", obj)
            else:
                self._notify("on_update", old, obj)
        elif event.type == "DELETED":
            old = self._indexer.get_by_key(key)
            self._indexer.delete(obj)
            self._notify("on_delete", old if old is not None else obj)

    def _resync_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.resync_period):
            for obj in self._indexer.list():
                self._notify("on_update", obj, obj)


def _wait_for_sync(informer: SharedIndexInformer, stop_event: threading.Event) -> bool:
    while not informer.has_synced():
        if stop_event.is_set():
            return False
        stop_event.wait(_POLL_INTERVAL)
    return True


def _type_of(obj: Any) -> type:
    return obj if isinstance(obj, type) else type(obj)


class _GenericLister:
    """Lists and gets objects of one resource from an indexer."""

    def __init__(self, indexer: Indexer, resource: GroupResource) -> None:
        self.indexer = indexer
        self.resource = resource

    def list(self, selector: LabelSelector | str | None = None) -> list[Any]:
        if selector is None:
            sel = everything()
        elif isinstance(selector, str):
            sel = parse_selector(selector)
        else:
            sel = selector
        return [obj for obj in self.indexer.list() if sel.matches(obj.metadata.labels)]

    def get(self, name: str) -> Any:
        obj = self.indexer.get_by_key(name)
        if obj is None:
            raise NotFoundError(self.resource, name)
        return obj

    def by_namespace(self, namespace: str) -> SriovNetworkNodeStateNamespaceLister:
        return SriovNetworkNodeStateNamespaceLister(self.indexer, namespace)


class GenericInformer:
    """An informer and lister for a resource chosen at run time."""

    def __init__(self, informer: SharedIndexInformer, resource: GroupResource) -> None:
        self._informer = informer
        self.resource = resource

    def informer(self) -> SharedIndexInformer:
        return self._informer

    def lister(self) -> _GenericLister:
        return _GenericLister(self._informer.get_indexer(), self.resource)


class SharedInformerFactory:
    """Hands out one shared informer per object type and starts them together."""

    def __init__(self, client: Any, default_resync: float = 0.0) -> None:
        self.client = client
        self.namespace = ""
        self.tweak_list_options: Optional[TweakListOptionsFunc] = None
        self.default_resync = default_resync
        self.custom_resync: dict[type, float] = {}
        self._informers: dict[type, SharedIndexInformer] = {}
        self._started: dict[type, bool] = {}
        self._lock = threading.Lock()

    def start(self, stop_event: threading.Event) -> None:
        """Run every requested informer that is not running yet, each in its own thread."""
        with self._lock:
            for informer_type, informer in self._informers.items():
                if not self._started.get(informer_type):
                    threading.Thread(target=informer.run, args=(stop_event,), daemon=True).start()
                    self._started[informer_type] = True

    def wait_for_cache_sync(self, stop_event: threading.Event) -> dict[type, bool]:
        """Wait until every started informer has synced or ``stop_event`` is set."""
        with self._lock:
            informers = {
                informer_type: informer
                for informer_type, informer in self._informers.items()
                if self._started.get(informer_type)
            }
        return {
            informer_type: _wait_for_sync(informer, stop_event)
            for informer_type, informer in informers.items()
        }

    def informer_for(self, obj_type: Any, new_func: NewInformerFunc) -> SharedIndexInformer:
        """Return the shared informer of ``obj_type``, creating it with ``new_func``."""
        informer_type = _type_of(obj_type)
        with self._lock:
            informer = self._informers.get(informer_type)
            if informer is not None:
                return informer
            resync = self.custom_resync.get(informer_type, self.default_resync)
            informer = new_func(self.client, resync)
            self._informers[informer_type] = informer
            return informer

    def for_resource(self, resource: GroupVersionResource) -> GenericInformer:
        """Return a generic informer for a known resource."""
        if resource == SRIOVNETWORK_GROUP_VERSION.with_resource("sriovnetworknodestates"):
            informer = self.sriovnetwork().v1().sriov_network_node_states().informer()
            return GenericInformer(informer, resource.group_resource())
        raise NoInformerError(f"no informer found for {resource}")

    def sriovnetwork(self) -> SriovnetworkGroup:
        return SriovnetworkGroup(self, self.namespace, self.tweak_list_options)


class SriovnetworkGroup:
    """Informers of the sriovnetwork.openshift.io group."""

    def __init__(
        self,
        factory: SharedInformerFactory,
        namespace: str,
        tweak_list_options: Optional[TweakListOptionsFunc],
    ) -> None:
        self.factory = factory
        self.namespace = namespace
        self.tweak_list_options = tweak_list_options

    def v1(self) -> SriovnetworkV1Informers:
        return SriovnetworkV1Informers(self.factory, self.namespace, self.tweak_list_options)


class SriovnetworkV1Informers:
    """Informers of sriovnetwork.openshift.io/v1."""

    def __init__(
        self,
        factory: SharedInformerFactory,
        namespace: str,
        tweak_list_options: Optional[TweakListOptionsFunc],
    ) -> None:
        self.factory = factory
        self.namespace = namespace
        self.tweak_list_options = tweak_list_options

    def sriov_network_node_states(self) -> SriovNetworkNodeStateInformer:
        return SriovNetworkNodeStateInformer(self.factory, self.namespace, self.tweak_list_options)


class SriovNetworkNodeStateInformer:
    """Access to the shared informer and lister of SriovNetworkNodeStates."""

    def __init__(
        self,
        factory: SharedInformerFactory,
        namespace: str,
        tweak_list_options: Optional[TweakListOptionsFunc],
    ) -> None:
        self.factory = factory
        self.namespace = namespace
        self.tweak_list_options = tweak_list_options

    def _default_informer(self, client: Any, resync_period: float) -> SharedIndexInformer:
        return new_filtered_sriov_network_node_state_informer(
            client,
            self.namespace,
            resync_period,
            {NAMESPACE_INDEX: meta_namespace_index_func},
            self.tweak_list_options,
        )

    def informer(self) -> SharedIndexInformer:
        return self.factory.informer_for(SriovNetworkNodeState, self._default_informer)

    def lister(self) -> SriovNetworkNodeStateLister:
        return SriovNetworkNodeStateLister(self.informer().get_indexer())


def with_custom_resync_config(resync_config: Mapping[Any, float]) -> SharedInformerOption:
    """Set resync periods for particular object types (types or instances as keys)."""

    def option(factory: SharedInformerFactory) -> SharedInformerFactory:
        for obj, period in resync_config.items():
            factory.custom_resync[_type_of(obj)] = period
        return factory

    return option


def with_tweak_list_options(tweak_list_options: Optional[TweakListOptionsFunc]) -> SharedInformerOption:
    """Filter every list and watch of the factory's informers."""

    def option(factory: SharedInformerFactory) -> SharedInformerFactory:
        factory.tweak_list_options = tweak_list_options
        return factory

    return option


def with_namespace(namespace: str) -> SharedInformerOption:
    """Restrict the factory's informers to one namespace."""

    def option(factory: SharedInformerFactory) -> SharedInformerFactory:
        factory.namespace = namespace
        return factory

    return option


def new_shared_informer_factory(client: Any, default_resync: float) -> SharedInformerFactory:
    """A factory whose informers see every namespace."""
    return new_shared_informer_factory_with_options(client, default_resync)


def new_filtered_shared_informer_factory(
    client: Any,
    default_resync: float,
    namespace: str,
    tweak_list_options: Optional[TweakListOptionsFunc],
) -> SharedInformerFactory:
    """A factory limited to a namespace and with filtered listings."""
    return new_shared_informer_factory_with_options(
        client,
        default_resync,
        with_namespace(namespace),
        with_tweak_list_options(tweak_list_options),
    )


def new_shared_informer_factory_with_options(
    client: Any, default_resync: float, *args: SharedInformerOption
) -> SharedInformerFactory:
    """A factory configured by the given options, applied in order."""
    factory = SharedInformerFactory(client, default_resync)
    for option in args:
        factory = option(factory)
    return factory


def new_sriov_network_node_state_informer(
    client: Any,
    namespace: str,
    resync_period: float,
    indexers: Optional[Mapping[str, Callable[[Any], list]]],
) -> SharedIndexInformer:
    """An independent informer for SriovNetworkNodeStates."""
    return new_filtered_sriov_network_node_state_informer(
        client, namespace, resync_period, indexers, None
    )


def _tweaked(options: ListOptions, tweak: Optional[TweakListOptionsFunc]) -> ListOptions:
    if tweak is None:
        return options
    result = tweak(options)
    return result if isinstance(result, ListOptions) else options


def new_filtered_sriov_network_node_state_informer(
    client: Any,
    namespace: str,
    resync_period: float,
    indexers: Optional[Mapping[str, Callable[[Any], list]]],
    tweak_list_options: Optional[TweakListOptionsFunc],
) -> SharedIndexInformer:
    """An independent informer for SriovNetworkNodeStates with filtered listings."""

    def list_func(options: ListOptions) -> Any:
        options = _tweaked(options, tweak_list_options)
        return client.sriovnetwork_v1().sriov_network_node_states(namespace).list(options)

    def watch_func(options: ListOptions) -> Any:
        options = _tweaked(options, tweak_list_options)
        return client.sriovnetwork_v1().sriov_network_node_states(namespace).watch(options)

    return SharedIndexInformer(
        list_func, watch_func, SriovNetworkNodeState, resync_period, indexers
    )