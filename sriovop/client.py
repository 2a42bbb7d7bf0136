"""REST clients for the sriovnetwork.openshift.io API group."""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional, Union
from urllib.parse import quote

import requests

from .meta import GroupVersion, ListOptions, NotFoundError
from .scheme import SCHEME
from .types import (
    SRIOVNETWORK_GROUP_VERSION,
    ApiObject,
    SriovNetworkNodeState,
    SriovNetworkNodeStateList,
    resource,
)

DEFAULT_USER_AGENT = "sriovop"
_RESOURCE = "sriovnetworknodestates"


class PatchType(str, Enum):
    """Content types accepted for patch requests."""

    JSON = "application/json-patch+json"
    MERGE = "application/merge-patch+json"
    STRATEGIC_MERGE = "application/strategic-merge-patch+json"
    APPLY = "application/apply-patch+yaml"


@dataclass
class Config:
    """Connection settings for an API server."""

    host: str = ""
    api_path: str = ""
    group_version: Optional[GroupVersion] = None
    user_agent: str = ""
    bearer_token: str = ""
    verify: Union[bool, str] = True
    cert: Optional[Union[str, tuple[str, str]]] = None
    qps: float = 0.0
    burst: int = 0
    rate_limiter: Optional[Any] = None
    timeout: Optional[float] = None


class ApiError(Exception):
    """An error status returned by the API server."""

    def __init__(self, status_code: int, reason: str = "", message: str = "", body: Any = None):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        self.body = body
        text = f"{status_code} {reason}".strip()
        super().__init__(f"{text}: {message}" if message else text)


@dataclass(frozen=True)
class WatchEvent:
    """One change notification from a watch stream."""

    type: str
    object: Any


class _TokenBucket:
    """Allows ``qps`` requests per second on average with bursts up to ``burst``."""

    def __init__(
        self,
        qps: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if qps <= 0:
            raise ValueError("qps must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1 when qps is set")
        self._qps = qps
        self._burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def accept(self) -> None:
        with self._lock:
            now = self._clock()
            self._tokens = min(self._burst, self._tokens + (now - self._last) * self._qps)
            self._last = now
            if self._tokens >= 1:
                self._tokens -= 1
                return
            wait = (1 - self._tokens) / self._qps
            self._tokens = 0.0
            self._last = now + wait
        self._sleep(wait)


@dataclass(frozen=True)
class _RawBody:
    content_type: str
    data: bytes


def _go_duration(seconds: int) -> str:
    sign = "-" if seconds < 0 else ""
    hours, rest = divmod(abs(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


class RESTClient:
    """Sends JSON requests to one API group and version of a server."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None) -> None:
        if not config.host:
            raise ValueError("host must be a URL or a host:port pair")
        if config.group_version is None:
            raise ValueError("group_version is required when initializing a RESTClient")
        host = config.host if "://" in config.host else f"https://{config.host}"
        self.base_url = host.rstrip("/")
        self.config = config
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = config.user_agent or DEFAULT_USER_AGENT
        self.session.headers["Accept"] = "application/json"
        if config.bearer_token:
            self.session.headers["Authorization"] = f"Bearer {config.bearer_token}"
        self.session.verify = config.verify
        if config.cert:
            self.session.cert = config.cert

    @property
    def base_path(self) -> str:
        """Path prefix of the group version, e.g. ``/apis/<group>/<version>``."""
        gv = self.config.group_version
        prefix = self.config.api_path.rstrip("/")
        middle = f"{gv.group}/{gv.version}" if gv.group else gv.version
        return f"{prefix}/{middle}"

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, str]],
        body: Any,
        timeout: Optional[float],
        stream: bool,
    ) -> requests.Response:
        if self.config.rate_limiter is not None:
            self.config.rate_limiter.accept()
        headers: dict[str, str] = {}
        data: Optional[bytes] = None
        if isinstance(body, _RawBody):
            headers["Content-Type"] = body.content_type
            data = body.data
        elif body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body).encode()
        return self.session.request(
            method,
            self.base_url + path,
            params=dict(params or {}),
            data=data,
            headers=headers,
            timeout=timeout if timeout is not None else self.config.timeout,
            stream=stream,
        )

    @staticmethod
    def _check(response: requests.Response) -> None:
        if response.status_code < 400:
            return
        reason, message, payload = response.reason or "", response.text, None
        try:
            payload = response.json()
        except ValueError:
            pass
        if isinstance(payload, Mapping):
            reason = payload.get("reason") or reason
            message = payload.get("message") or message
        raise ApiError(response.status_code, reason, message, payload)

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return the decoded JSON reply, or None if it is empty."""
        with self._send(method, path, params, body, timeout, stream=False) as response:
            self._check(response)
            if not response.content:
                return None
            return response.json()

    def stream(
        self,
        path: str,
        params: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[WatchEvent]:
        """Open a watch stream and return an iterator over its events."""
        response = self._send("GET", path, params, None, timeout, stream=True)
        try:
            self._check(response)
        except ApiError:
            response.close()
            raise
        return self._events(response)

    @staticmethod
    def _events(response: requests.Response) -> Iterator[WatchEvent]:
        with response:
            for line in response.iter_lines():
                if not line or not line.strip():
                    continue
                event = json.loads(line)
                yield WatchEvent(event.get("type", ""), event.get("object"))


def _list_params(options: ListOptions) -> dict[str, str]:
    params: dict[str, str] = {}
    for f in fields(options):
        value = getattr(options, f.name)
        if value is None or value == "" or value is False:
            continue
        key = f.metadata.get("json", f.name)
        params[key] = "true" if value is True else str(value)
    if options.timeout_seconds:
        params["timeout"] = _go_duration(options.timeout_seconds)
    return params


def _encode(obj: ApiObject) -> dict[str, Any]:
    data = obj.to_dict()
    gvk = SCHEME.object_kind(obj)[0]
    data["apiVersion"] = str(GroupVersion(gvk.group, gvk.version))
    data["kind"] = gvk.kind
    return data


class SriovNetworkNodeStates:
    """Operations on SriovNetworkNodeState resources of one namespace."""

    def __init__(self, client: RESTClient, namespace: str) -> None:
        self._client = client
        self.namespace = namespace

    def _path(self, name: str = "", *subresources: str) -> str:
        parts = [self._client.base_path]
        if self.namespace:
            parts += ["namespaces", quote(self.namespace, safe="")]
        parts.append(_RESOURCE)
        if name:
            parts.append(quote(name, safe=""))
        parts.extend(subresources)
        return "/".join(parts)

    def _call(self, method: str, path: str, name: str, **kwargs: Any) -> Any:
        try:
            return self._client.request(method, path, **kwargs)
        except ApiError as err:
            if err.status_code == 404:
                raise NotFoundError(resource(_RESOURCE), name) from err
            raise

    def get(self, name: str) -> SriovNetworkNodeState:
        """Fetch the named node state."""
        data = self._call("GET", self._path(name), name)
        return SriovNetworkNodeState.from_dict(data)

    def list(self, options: Optional[ListOptions] = None) -> SriovNetworkNodeStateList:
        """List node states matching the options' selectors."""
        options = options or ListOptions()
        data = self._call(
            "GET",
            self._path(),
            "",
            params=_list_params(options),
            timeout=options.timeout_seconds or None,
        )
        return SriovNetworkNodeStateList.from_dict(data or {})

    def watch(self, options: Optional[ListOptions] = None) -> Iterator[WatchEvent]:
        """Watch node states; yields events carrying decoded objects."""
        options = replace(options or ListOptions(), watch=True)
        events = self._client.stream(
            self._path(), _list_params(options), timeout=options.timeout_seconds or None
        )
        return (self._decode_event(event) for event in events)

    @staticmethod
    def _decode_event(event: WatchEvent) -> WatchEvent:
        if event.type != "ERROR" and isinstance(event.object, Mapping):
            return WatchEvent(event.type, SriovNetworkNodeState.from_dict(event.object))
        return event

    def create(self, state: SriovNetworkNodeState) -> SriovNetworkNodeState:
        """Create a node state and return the server's copy."""
        data = self._call("POST", self._path(), state.metadata.name, body=_encode(state))
        return SriovNetworkNodeState.from_dict(data)

    def update(self, state: SriovNetworkNodeState) -> SriovNetworkNodeState:
        """Replace a node state and return the server's copy."""
        name = state.metadata.name
        data = self._call("PUT", self._path(name), name, body=_encode(state))
        return SriovNetworkNodeState.from_dict(data)

    def update_status(self, state: SriovNetworkNodeState) -> SriovNetworkNodeState:
        """Replace the status subresource of a node state."""
        name = state.metadata.name
        data = self._call("PUT", self._path(name, "status"), name, body=_encode(state))
        return SriovNetworkNodeState.from_dict(data)

    def delete(self, name: str, options: Optional[Mapping[str, Any]] = None) -> None:
        """Delete the named node state."""
        self._call("DELETE", self._path(name), name, body=dict(options) if options else None)

    def delete_collection(
        self,
        options: Optional[Mapping[str, Any]] = None,
        list_options: Optional[ListOptions] = None,
    ) -> None:
        """Delete every node state matching ``list_options``."""
        list_options = list_options or ListOptions()
        self._call(
            "DELETE",
            self._path(),
            "",
            params=_list_params(list_options),
            body=dict(options) if options else None,
            timeout=list_options.timeout_seconds or None,
        )

    def patch(
        self,
        name: str,
        patch_type: Union[PatchType, str],
        data: Union[bytes, str],
        *args: str,
    ) -> SriovNetworkNodeState:
        """Apply a patch to the named node state, optionally to a subresource."""
        content_type = PatchType(patch_type).value
        raw = data.encode() if isinstance(data, str) else bytes(data)
        reply = self._call("PATCH", self._path(name, *args), name, body=_RawBody(content_type, raw))
        return SriovNetworkNodeState.from_dict(reply)


class SriovnetworkV1Client:
    """Client for the resources of sriovnetwork.openshift.io/v1."""

    def __init__(self, rest_client: RESTClient) -> None:
        self.rest_client = rest_client

    def sriov_network_node_states(self, namespace: str) -> SriovNetworkNodeStates:
        return SriovNetworkNodeStates(self.rest_client, namespace)


class Clientset:
    """The clients of every API group this project defines."""

    def __init__(self, sriovnetwork_v1: SriovnetworkV1Client) -> None:
        self._sriovnetwork_v1 = sriovnetwork_v1

    def sriovnetwork_v1(self) -> SriovnetworkV1Client:
        return self._sriovnetwork_v1

    def sriovnetwork(self) -> SriovnetworkV1Client:
        """The default version of the sriovnetwork group."""
        return self._sriovnetwork_v1


def new_for_config(config: Config) -> Clientset:
    """Build a clientset from ``config`` without changing it."""
    cfg = replace(config)
    if cfg.rate_limiter is None and cfg.qps > 0:
        cfg.rate_limiter = _TokenBucket(cfg.qps, cfg.burst)
    cfg.group_version = SRIOVNETWORK_GROUP_VERSION
    cfg.api_path = "/apis"
    if not cfg.user_agent:
        cfg.user_agent = DEFAULT_USER_AGENT
    return Clientset(SriovnetworkV1Client(RESTClient(cfg)))